"""Bounded tool-calling loop.

States:

    AWAITING_MODEL_TURN --(tool calls)--> EXECUTING_TOOLS --> AWAITING_MODEL_TURN
    AWAITING_MODEL_TURN --(plain text)--> DONE
    AWAITING_MODEL_TURN --(ceiling reached)--> DONE (partial answer)

Every model turn counts as one iteration. Tool failures are reported back to
the model as error results; they never abort the loop.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import structlog
from langchain_core.messages import BaseMessage

from consultant.agent.tools import ToolDefinition, ToolRegistry
from consultant.core.turns import (
    TOOL_ERROR_PREFIX,
    ModelTurn,
    TokenUsage,
    ToolCall,
    ToolResult,
    serialize_tool_result,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class LoopState(str, Enum):
    AWAITING_MODEL_TURN = "awaiting_model_turn"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class TurnModel(Protocol):
    """Anything that can produce one model turn (provider adapters, test fakes)."""
    name: str

    async def complete(
        self,
        transcript: list[BaseMessage],
        tools: list[ToolDefinition],
        system_prompt: str,
    ) -> ModelTurn: ...


@dataclass
class LoopResult:
    """Outcome of one chat exchange.

    Attributes:
        text: Final answer, or a partial answer if the ceiling was hit.
        tools_used: Tool names in call order, for auditing.
        usage: Summed token usage, None if the backend reported none.
        iterations: Number of model turns taken.
        budget_exhausted: True when the loop stopped at the ceiling.
        transcript: Messages accumulated during the exchange.
    """
    text: str
    tools_used: list[str] = field(default_factory=list)
    usage: TokenUsage | None = None
    iterations: int = 0
    budget_exhausted: bool = False
    transcript: list[BaseMessage] = field(default_factory=list)


def budget_exhausted_notice(iterations: int, tools_used: list[str]) -> str:
    used = ", ".join(dict.fromkeys(tools_used)) or "нет"
    return (
        f"Не удалось завершить анализ за {iterations} шагов. "
        f"Использованные инструменты: {used}. Уточните, пожалуйста, запрос."
    )


class AgentLoop:
    """Drives model turns and tool executions until an answer or the ceiling."""

    def __init__(self, model: TurnModel, registry: ToolRegistry, max_iterations: int = DEFAULT_MAX_ITERATIONS):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.model = model
        self.registry = registry
        self.max_iterations = max_iterations

    async def run(
        self,
        transcript: list[BaseMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str = "",
    ) -> LoopResult:
        """Run the loop over a seeded transcript (history + new user message).

        Args:
            transcript: Conversation so far, ending with the user's message.
            tools: Tools offered to the model. Defaults to everything in the registry.
            system_prompt: System instructions for every turn.

        Returns:
            LoopResult with the final (or partial) text.
        """
        tools = self.registry.definitions() if tools is None else tools
        transcript = list(transcript)
        state = LoopState.AWAITING_MODEL_TURN

        turn: ModelTurn | None = None
        iterations = 0
        tools_used: list[str] = []
        usage: TokenUsage | None = None
        last_text = ""
        budget_exhausted = False

        while state is not LoopState.DONE:
            if state is LoopState.AWAITING_MODEL_TURN:
                turn = await self.model.complete(transcript, tools, system_prompt)
                iterations += 1
                if turn.usage is not None:
                    usage = turn.usage if usage is None else usage + turn.usage
                if turn.text.strip():
                    last_text = turn.text

                if not turn.tool_calls:
                    state = LoopState.DONE
                elif iterations >= self.max_iterations:
                    logger.warning(
                        "agent.iteration_budget_exhausted",
                        provider=self.model.name,
                        iterations=iterations,
                        pending_tools=[c.name for c in turn.tool_calls],
                    )
                    budget_exhausted = True
                    state = LoopState.DONE
                else:
                    transcript.append(turn.message)
                    state = LoopState.EXECUTING_TOOLS

            elif state is LoopState.EXECUTING_TOOLS:
                for call in turn.tool_calls:
                    tools_used.append(call.name)
                    result = await self._execute(call)
                    transcript.append(result.to_message())
                state = LoopState.AWAITING_MODEL_TURN

        if budget_exhausted:
            text = last_text or budget_exhausted_notice(iterations, tools_used)
        else:
            text = turn.text

        logger.info("agent.done", provider=self.model.name, iterations=iterations,
                    tools=tools_used, budget_exhausted=budget_exhausted)
        return LoopResult(
            text=text,
            tools_used=tools_used,
            usage=usage,
            iterations=iterations,
            budget_exhausted=budget_exhausted,
            transcript=transcript,
        )

    async def _execute(self, call: ToolCall) -> ToolResult:
        logger.info("agent.tool_call", provider=self.model.name, tool=call.name)
        try:
            result = await self.registry.execute(call.name, call.input)
        except Exception as e:
            # reported to the model, which can retry or explain
            return ToolResult(call_id=call.id, name=call.name,
                              content=f"{TOOL_ERROR_PREFIX}{e}", is_error=True)
        return ToolResult(call_id=call.id, name=call.name, content=serialize_tool_result(result))
