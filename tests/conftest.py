"""Shared fixtures for all tests."""

from datetime import datetime, timedelta, timezone

import pytest

from consultant.agent.tools import ToolDefinition, ToolRegistry, object_schema
from consultant.core.config import ProviderConfig, Settings
from consultant.core.database import init_db
from consultant.core.memory import ChatMemoryStore
from tests.fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 6, 15, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_factory():
    return init_db("sqlite:///:memory:")


@pytest.fixture
def memory(session_factory, clock) -> ChatMemoryStore:
    return ChatMemoryStore(session_factory, continuity_window=timedelta(hours=24), clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        default_provider="gemini",
        providers={
            "claude": ProviderConfig("claude", api_key="sk-claude"),
            "gemini": ProviderConfig("gemini", api_key="gm-key"),
            "deepseek": ProviderConfig("deepseek", api_key=""),
            "cerebras": ProviderConfig("cerebras", api_key="cb-key"),
            "groq": ProviderConfig("groq", api_key=""),
        },
        database_url="sqlite:///:memory:",
        live_probe=False,
    )


@pytest.fixture
def echo_registry() -> ToolRegistry:
    """Registry with an echo tool and a tool that always fails."""
    registry = ToolRegistry()

    async def echo(args):
        return {"echo": args.get("value")}

    async def broken(args):
        raise RuntimeError("upstream exploded")

    registry.register(
        ToolDefinition("echo", "Echo a value", object_schema({"value": {"type": "string"}}, ["value"])),
        echo,
    )
    registry.register(ToolDefinition("broken", "Always fails", object_schema({})), broken)
    return registry
