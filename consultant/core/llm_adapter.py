"""LLM provider adapters.

Every backend is wrapped in a ProviderAdapter exposing the same surface:
complete() for a single model turn, chat() for a full tool-calling exchange
and is_available() for the liveness check used by the selector.

Variants register themselves by tag with @register_provider; the selector
looks constructors up in PROVIDER_FACTORIES instead of switching on tags.
"""

from abc import ABC, abstractmethod
from typing import Callable

import structlog
from langchain_anthropic import ChatAnthropic
from langchain_cerebras import ChatCerebras
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI

from consultant.agent.loop import AgentLoop
from consultant.agent.prompts import build_system_prompt
from consultant.agent.tools import ToolDefinition, ToolRegistry
from consultant.api.schemas import ChatMessage, EquipmentContext
from consultant.core.config import ProviderConfig, Settings
from consultant.core.turns import (
    AssistantReply,
    ModelTurn,
    TokenUsage,
    ToolCall,
    message_text,
    to_langchain_messages,
)

logger = structlog.get_logger(__name__)

NO_ANSWER_TEXT = "Не удалось получить ответ"


class LLMError(Exception):
    """Provider call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMRateLimitError(LLMError):
    """Provider rejected the request for quota/rate reasons (429)."""


class LLMAuthError(LLMError):
    """Provider rejected the credential (401/403)."""


class UnsupportedProviderError(Exception):
    """Adapter requested for an unknown or unconfigured provider tag."""


AdapterFactory = Callable[[ProviderConfig, Settings, ToolRegistry | None], "ProviderAdapter"]

PROVIDER_FACTORIES: dict[str, AdapterFactory] = {}


def register_provider(provider_type: str):
    """Class decorator registering an adapter under a provider tag."""
    def decorator(cls):
        cls.provider_type = provider_type
        PROVIDER_FACTORIES[provider_type] = cls
        return cls
    return decorator


def _status_code(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    if status is None:
        status = getattr(exc, "code", None)
    return status if isinstance(status, int) else None


class ProviderAdapter(ABC):
    """Uniform wrapper around one LLM backend."""

    name: str = "base"
    provider_type: str = ""
    default_model: str = ""
    # False: a configured credential alone counts as available
    live_probe: bool = True

    def __init__(self, config: ProviderConfig, settings: Settings, tool_registry: ToolRegistry | None = None):
        if not config.api_key:
            raise UnsupportedProviderError(f"Provider {config.provider_type} has no API key configured")
        self.config = config
        self.settings = settings
        self.model_name = config.model or self.default_model
        self.tool_registry = tool_registry or ToolRegistry()
        self._chat_model: BaseChatModel | None = None

    @abstractmethod
    def _build_chat_model(self) -> BaseChatModel:
        """Create the underlying langchain chat model."""

    @property
    def chat_model(self) -> BaseChatModel:
        if self._chat_model is None:
            self._chat_model = self._build_chat_model()
        return self._chat_model

    async def complete(
        self,
        transcript: list[BaseMessage],
        tools: list[ToolDefinition],
        system_prompt: str,
    ) -> ModelTurn:
        """Send the transcript once and parse the reply into a ModelTurn."""
        model = self.chat_model
        runnable = model.bind_tools([t.to_function_spec() for t in tools]) if tools else model

        messages = [SystemMessage(content=system_prompt), *transcript] if system_prompt else list(transcript)
        logger.debug("llm.invoke", provider=self.provider_type, model=self.model_name, messages=len(messages))
        response = await runnable.ainvoke(messages)

        calls = [
            ToolCall(id=tc.get("id") or f"call_{i}", name=tc["name"], input=dict(tc.get("args") or {}))
            for i, tc in enumerate(getattr(response, "tool_calls", None) or [])
        ]
        usage = None
        meta = getattr(response, "usage_metadata", None)
        if meta:
            usage = TokenUsage(input=meta.get("input_tokens", 0), output=meta.get("output_tokens", 0))

        return ModelTurn(message=response, text=message_text(response), tool_calls=calls, usage=usage)

    async def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        user_id: str,
        equipment_context: EquipmentContext | None = None,
    ) -> AssistantReply:
        """Run a full tool-calling exchange.

        Args:
            messages: History plus the new user message, oldest first.
            tools: Tools offered to the model (executed through this adapter's registry).
            user_id: Caller id, for logging.
            equipment_context: Equipment the chat was opened from.

        Returns:
            AssistantReply with the final text and audit data.

        Raises:
            LLMRateLimitError: Provider returned 429.
            LLMAuthError: Provider rejected the credential.
            LLMError: Any other provider failure.
        """
        loop = AgentLoop(self, self.tool_registry, max_iterations=self.settings.max_agent_iterations)
        logger.info("llm.chat", provider=self.provider_type, user_id=user_id,
                    messages=len(messages), equipment_id=equipment_context.id if equipment_context else None)
        try:
            result = await loop.run(
                to_langchain_messages(messages),
                tools=tools,
                system_prompt=build_system_prompt(equipment_context),
            )
        except Exception as e:
            raise self._translate_error(e) from e

        return AssistantReply(
            message=result.text or NO_ANSWER_TEXT,
            tools_used=result.tools_used,
            provider=self.name,
            tokens_used=result.usage,
            iterations=result.iterations,
            budget_exhausted=result.budget_exhausted,
        )

    async def is_available(self) -> bool:
        """Credential check plus an optional tiny live request."""
        if not self.config.api_key:
            return False
        if not (self.live_probe and self.settings.live_probe):
            return True
        try:
            await self.chat_model.ainvoke([HumanMessage(content="ping")])
            return True
        except Exception as e:
            logger.warning("llm.probe_failed", provider=self.provider_type, error=str(e))
            return False

    def _translate_error(self, exc: Exception) -> LLMError:
        if isinstance(exc, LLMError):
            return exc
        status = _status_code(exc)
        text = str(exc)
        logger.error("llm.chat_failed", provider=self.provider_type, status=status, error=text)

        if status == 429 or "RESOURCE_EXHAUSTED" in text:
            return LLMRateLimitError("Превышен лимит запросов. Подождите немного.", status or 429)
        if status in (401, 403) or "API_KEY_INVALID" in text:
            return LLMAuthError(f"Ошибка авторизации {self.name} API", status)
        return LLMError(f"{self.name} API error: {text}", status)


@register_provider("claude")
class ClaudeAdapter(ProviderAdapter):
    name = "Claude"
    default_model = "claude-sonnet-4-20250514"

    def _build_chat_model(self) -> BaseChatModel:
        return ChatAnthropic(
            api_key=self.config.api_key,
            model=self.model_name,
            temperature=self.settings.llm_temperature,
            max_tokens=self.settings.llm_max_tokens,
            timeout=self.settings.llm_timeout,
        )


@register_provider("gemini")
class GeminiAdapter(ProviderAdapter):
    name = "Gemini"
    default_model = "gemini-2.5-flash"

    def _build_chat_model(self) -> BaseChatModel:
        return ChatGoogleGenerativeAI(
            google_api_key=self.config.api_key,
            model=self.model_name,
            temperature=self.settings.llm_temperature,
            max_output_tokens=self.settings.llm_max_tokens,
            timeout=self.settings.llm_timeout,
        )


@register_provider("deepseek")
class DeepSeekAdapter(ProviderAdapter):
    name = "DeepSeek"
    default_model = "deepseek-chat"
    live_probe = False
    base_url = "https://api.deepseek.com"

    def _build_chat_model(self) -> BaseChatModel:
        return ChatOpenAI(
            api_key=self.config.api_key,
            base_url=self.base_url,
            model=self.model_name,
            temperature=self.settings.llm_temperature,
            max_tokens=self.settings.llm_max_tokens,
            timeout=self.settings.llm_timeout,
        )


@register_provider("cerebras")
class CerebrasAdapter(ProviderAdapter):
    name = "Cerebras"
    default_model = "gpt-oss-120b"

    def _build_chat_model(self) -> BaseChatModel:
        return ChatCerebras(
            api_key=self.config.api_key,
            model=self.model_name,
            temperature=self.settings.llm_temperature,
            max_tokens=self.settings.llm_max_tokens,
            timeout=self.settings.llm_timeout,
        )


@register_provider("groq")
class GroqAdapter(ProviderAdapter):
    name = "Groq"
    default_model = "openai/gpt-oss-120b"

    def _build_chat_model(self) -> BaseChatModel:
        return ChatGroq(
            api_key=self.config.api_key,
            model=self.model_name,
            temperature=self.settings.llm_temperature,
            max_tokens=self.settings.llm_max_tokens,
            timeout=self.settings.llm_timeout,
        )
