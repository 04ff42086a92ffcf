"""Agent factory.

Wires the action client, tools and provider selector together.
"""

import structlog

from consultant.agent.document_tools import register_document_tools
from consultant.agent.drive_tools import register_drive_tools
from consultant.agent.equipment_tools import register_equipment_tools
from consultant.agent.photo_tools import register_photo_tools
from consultant.agent.tools import ToolRegistry
from consultant.core.config import Settings
from consultant.core.provider_selector import ProviderSelector
from consultant.core.transport import ActionClient

logger = structlog.get_logger(__name__)


def build_tool_registry(client: ActionClient | None) -> ToolRegistry:
    """Register every tool backed by the action API.

    Without a client (no GAS_API_URL) the registry stays empty and the
    model answers from the conversation alone.
    """
    registry = ToolRegistry()
    if client is None:
        logger.warning("agent.tools_disabled", reason="action API not configured")
        return registry

    register_equipment_tools(registry, client)
    register_drive_tools(registry, client)
    register_photo_tools(registry, client)
    register_document_tools(registry, client)
    logger.info("agent.tools_registered", tools=registry.names())
    return registry


def create_selector(settings: Settings, client: ActionClient | None) -> ProviderSelector:
    """Build the provider selector with the full tool set attached.

    Args:
        settings: Process settings.
        client: Action API client, or None when not configured.

    Returns:
        ProviderSelector whose adapters execute tools through the registry.
    """
    registry = build_tool_registry(client)
    selector = ProviderSelector(settings, tool_registry=registry)
    logger.info("agent.created", providers=selector.list_available(), default=settings.default_provider)
    return selector
