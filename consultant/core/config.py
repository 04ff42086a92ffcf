"""Process configuration resolved from environment variables.

Everything the selector, memory store and action client need is collected
into one Settings object at startup and passed in explicitly.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping

DEFAULT_PROVIDER_ORDER = ("claude", "gemini", "deepseek", "cerebras", "groq")

# provider tag -> (api key variable, model variable)
_PROVIDER_ENV = {
    "claude": ("ANTHROPIC_API_KEY", "CLAUDE_MODEL"),
    "gemini": ("GEMINI_API_KEY", "GEMINI_MODEL"),
    "deepseek": ("DEEPSEEK_API_KEY", "DEEPSEEK_MODEL"),
    "cerebras": ("CEREBRAS_API_KEY", "CEREBRAS_MODEL"),
    "groq": ("GROQ_API_KEY", "GROQ_MODEL"),
}


@dataclass(frozen=True)
class ProviderConfig:
    """Credential and model for a single LLM backend."""
    provider_type: str
    api_key: str = ""
    model: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class Settings:
    """Runtime settings. Build with Settings.from_env() or directly in tests."""
    default_provider: str = "gemini"
    providers: dict[str, ProviderConfig] = field(default_factory=dict)

    llm_temperature: float = 0.0
    llm_max_tokens: int = 4096
    llm_timeout: float = 60.0
    live_probe: bool = True
    max_agent_iterations: int = 10

    history_limit: int = 20
    history_token_budget: int = 6000
    session_window_hours: float = 24.0
    session_title_length: int = 50

    database_url: str = "sqlite:///data/consultant.sqlite"

    gas_api_url: str = ""
    gas_api_timeout: float = 30.0
    gas_api_retry_count: int = 3
    gas_api_retry_base_delay: float = 1.0

    supabase_url: str = ""
    supabase_service_key: str = ""

    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    rate_limit_per_min: int = 30

    @property
    def provider_order(self) -> list[str]:
        """Declared provider order (dict insertion order)."""
        return list(self.providers)

    @property
    def session_window(self) -> timedelta:
        return timedelta(hours=self.session_window_hours)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Read settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            Populated Settings instance.
        """
        env = os.environ if environ is None else environ

        order = [
            tag.strip().lower()
            for tag in env.get("PROVIDER_ORDER", ",".join(DEFAULT_PROVIDER_ORDER)).split(",")
            if tag.strip()
        ]
        providers = {}
        for tag in order:
            key_var, model_var = _PROVIDER_ENV.get(tag, (f"{tag.upper()}_API_KEY", f"{tag.upper()}_MODEL"))
            providers[tag] = ProviderConfig(
                provider_type=tag,
                api_key=env.get(key_var, ""),
                model=env.get(model_var) or None,
            )

        return cls(
            default_provider=env.get("AI_PROVIDER", "gemini").strip().lower(),
            providers=providers,
            llm_temperature=float(env.get("LLM_TEMPERATURE", "0")),
            llm_max_tokens=int(env.get("LLM_MAX_TOKENS", "4096")),
            llm_timeout=float(env.get("LLM_TIMEOUT", "60")),
            live_probe=_as_bool(env.get("PROVIDER_LIVE_PROBE", "true")),
            max_agent_iterations=int(env.get("MAX_AGENT_ITERATIONS", "10")),
            history_limit=int(env.get("HISTORY_LIMIT", "20")),
            history_token_budget=int(env.get("HISTORY_TOKEN_BUDGET", "6000")),
            session_window_hours=float(env.get("SESSION_WINDOW_HOURS", "24")),
            session_title_length=int(env.get("SESSION_TITLE_LENGTH", "50")),
            database_url=env.get("DATABASE_URL", "sqlite:///data/consultant.sqlite"),
            gas_api_url=env.get("GAS_API_URL", ""),
            gas_api_timeout=float(env.get("GAS_API_TIMEOUT", "30")),
            gas_api_retry_count=int(env.get("GAS_API_RETRY_COUNT", "3")),
            gas_api_retry_base_delay=float(env.get("GAS_API_RETRY_BASE_DELAY", "1.0")),
            supabase_url=env.get("SUPABASE_URL", "").rstrip("/"),
            supabase_service_key=env.get("SUPABASE_SERVICE_KEY", ""),
            allowed_origins=[
                o.strip() for o in env.get("ALLOWED_ORIGINS", "http://localhost:5173").split(",") if o.strip()
            ],
            rate_limit_per_min=int(env.get("RATE_LIMIT_PER_MIN", "30")),
        )


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}
