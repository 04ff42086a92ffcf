"""Provider selection with ordered fallback.

Given a preferred provider tag, returns a ready adapter: the preferred one if
it is configured and answers its availability check, otherwise the first
available provider in the declared order.
"""

import structlog

from consultant.agent.tools import ToolRegistry
from consultant.core.config import Settings
from consultant.core.llm_adapter import (
    PROVIDER_FACTORIES,
    AdapterFactory,
    ProviderAdapter,
    UnsupportedProviderError,
)

logger = structlog.get_logger(__name__)


class ProviderUnavailableError(Exception):
    """No configured provider passed its availability check."""

    def __init__(self, tried: list[str]):
        self.tried = list(tried)
        names = ", ".join(self.tried) or "none configured"
        super().__init__(f"No AI provider available (tried: {names})")


class ProviderSelector:
    """Builds adapters from settings and picks one per request."""

    def __init__(
        self,
        settings: Settings,
        tool_registry: ToolRegistry | None = None,
        factories: dict[str, AdapterFactory] | None = None,
    ):
        self.settings = settings
        self.tool_registry = tool_registry
        self.factories = PROVIDER_FACTORIES if factories is None else factories

    def list_available(self) -> list[str]:
        """Tags that have a credential and a registered adapter, in declared order."""
        return [
            tag for tag in self.settings.provider_order
            if tag in self.factories and self.settings.providers[tag].configured
        ]

    def create(self, provider_type: str) -> ProviderAdapter:
        """Build an adapter without probing it.

        Raises:
            UnsupportedProviderError: Unknown tag or no credential configured.
        """
        factory = self.factories.get(provider_type)
        config = self.settings.providers.get(provider_type)
        if factory is None or config is None:
            raise UnsupportedProviderError(f"Unsupported AI provider: {provider_type}")
        return factory(config, self.settings, self.tool_registry)

    async def resolve(self, preferred: str | None = None) -> ProviderAdapter:
        """Return the preferred adapter, or the first available fallback.

        Raises:
            ProviderUnavailableError: Every configured provider is unavailable.
        """
        target = preferred or self.settings.default_provider
        configured = self.list_available()
        tried: list[str] = []

        if target in configured:
            tried.append(target)
            adapter = await self._try(target)
            if adapter is not None:
                logger.info("provider.selected", provider=target)
                return adapter
        else:
            logger.warning("provider.not_configured", provider=target)

        for tag in configured:
            if tag == target:
                continue
            tried.append(tag)
            adapter = await self._try(tag)
            if adapter is not None:
                logger.warning("provider.fallback", requested=target, provider=tag)
                return adapter

        logger.error("provider.none_available", requested=target, tried=tried)
        raise ProviderUnavailableError(tried)

    async def _try(self, provider_type: str) -> ProviderAdapter | None:
        try:
            adapter = self.create(provider_type)
            if await adapter.is_available():
                return adapter
            logger.warning("provider.unavailable", provider=provider_type)
        except Exception as e:
            logger.warning("provider.check_failed", provider=provider_type, error=str(e))
        return None
