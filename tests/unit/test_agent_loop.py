"""Unit tests for the bounded tool-calling loop."""

import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from consultant.agent.loop import AgentLoop, budget_exhausted_notice
from consultant.core.turns import TOOL_ERROR_PREFIX, TokenUsage
from tests.fakes import ScriptedModel, text_turn, tool_turn


@pytest.fixture
def seed():
    return [HumanMessage(content="Когда меняли фильтр?")]


class TestAgentLoop:

    async def test_plain_answer_single_iteration(self, echo_registry, seed):
        model = ScriptedModel([text_turn("Фильтр меняли вчера.")])
        result = await AgentLoop(model, echo_registry).run(seed, system_prompt="sys")

        assert result.text == "Фильтр меняли вчера."
        assert result.iterations == 1
        assert result.tools_used == []
        assert result.budget_exhausted is False
        assert model.calls[0]["system_prompt"] == "sys"

    async def test_tool_round_trip(self, echo_registry, seed):
        model = ScriptedModel([
            tool_turn(("echo", {"value": "F-01"})),
            text_turn("Готово"),
        ])
        result = await AgentLoop(model, echo_registry).run(seed)

        assert result.text == "Готово"
        assert result.iterations == 2
        assert result.tools_used == ["echo"]

        second_transcript = model.calls[1]["transcript"]
        assert isinstance(second_transcript[1], AIMessage)
        tool_msg = second_transcript[2]
        assert isinstance(tool_msg, ToolMessage)
        assert tool_msg.tool_call_id == "call_0"
        assert json.loads(tool_msg.content) == {"echo": "F-01"}

    async def test_multiple_calls_in_one_turn_run_in_order(self, echo_registry, seed):
        model = ScriptedModel([
            tool_turn(("echo", {"value": "a"}), ("echo", {"value": "b"})),
            text_turn("ok"),
        ])
        result = await AgentLoop(model, echo_registry).run(seed)

        assert result.tools_used == ["echo", "echo"]
        contents = [m.content for m in model.calls[1]["transcript"] if isinstance(m, ToolMessage)]
        assert [json.loads(c)["echo"] for c in contents] == ["a", "b"]

    async def test_tool_error_fed_back_to_model(self, echo_registry, seed):
        model = ScriptedModel([tool_turn(("broken", {})), text_turn("Инструмент недоступен")])
        result = await AgentLoop(model, echo_registry).run(seed)

        assert result.text == "Инструмент недоступен"
        tool_msg = model.calls[1]["transcript"][-1]
        assert tool_msg.status == "error"
        assert tool_msg.content.startswith(TOOL_ERROR_PREFIX)
        assert "upstream exploded" in tool_msg.content

    async def test_unknown_tool_is_error_result(self, echo_registry, seed):
        model = ScriptedModel([tool_turn(("no_such_tool", {})), text_turn("ok")])
        result = await AgentLoop(model, echo_registry).run(seed)

        assert result.tools_used == ["no_such_tool"]
        assert model.calls[1]["transcript"][-1].status == "error"

    async def test_missing_required_argument_is_error_result(self, echo_registry, seed):
        model = ScriptedModel([tool_turn(("echo", {})), text_turn("ok")])
        await AgentLoop(model, echo_registry).run(seed)

        assert "value" in model.calls[1]["transcript"][-1].content

    async def test_usage_summed_across_turns(self, echo_registry, seed):
        model = ScriptedModel([
            tool_turn(("echo", {"value": "x"}), usage=TokenUsage(100, 20)),
            text_turn("done", usage=TokenUsage(150, 30)),
        ])
        result = await AgentLoop(model, echo_registry).run(seed)
        assert result.usage == TokenUsage(250, 50)

    async def test_no_usage_reported(self, echo_registry, seed):
        model = ScriptedModel([text_turn("done")])
        result = await AgentLoop(model, echo_registry).run(seed)
        assert result.usage is None

    async def test_defaults_to_registry_tools(self, echo_registry, seed):
        model = ScriptedModel([text_turn("done")])
        await AgentLoop(model, echo_registry).run(seed)
        assert [t.name for t in model.calls[0]["tools"]] == ["echo", "broken"]


class TestIterationCeiling:

    async def test_stops_at_ceiling_with_notice(self, echo_registry, seed):
        model = ScriptedModel([tool_turn(("echo", {"value": str(i)})) for i in range(3)])
        result = await AgentLoop(model, echo_registry, max_iterations=3).run(seed)

        assert result.budget_exhausted is True
        assert result.iterations == 3
        # the third turn's tool calls are not executed
        assert result.tools_used == ["echo", "echo"]
        assert result.text == budget_exhausted_notice(3, ["echo", "echo"])
        assert len(model.calls) == 3

    async def test_partial_answer_prefers_last_model_text(self, echo_registry, seed):
        model = ScriptedModel([
            tool_turn(("echo", {"value": "1"}), text="Смотрю журнал..."),
            tool_turn(("echo", {"value": "2"}), text="Проверяю паспорт..."),
        ])
        result = await AgentLoop(model, echo_registry, max_iterations=2).run(seed)

        assert result.budget_exhausted is True
        assert result.text == "Проверяю паспорт..."

    async def test_answer_on_last_allowed_turn_is_not_exhausted(self, echo_registry, seed):
        model = ScriptedModel([tool_turn(("echo", {"value": "1"})), text_turn("Ответ")])
        result = await AgentLoop(model, echo_registry, max_iterations=2).run(seed)

        assert result.budget_exhausted is False
        assert result.text == "Ответ"

    async def test_ceiling_of_one(self, echo_registry, seed):
        model = ScriptedModel([tool_turn(("echo", {"value": "1"}))])
        result = await AgentLoop(model, echo_registry, max_iterations=1).run(seed)

        assert result.budget_exhausted is True
        assert result.tools_used == []
        assert result.text

    def test_invalid_ceiling_rejected(self, echo_registry):
        with pytest.raises(ValueError):
            AgentLoop(ScriptedModel([]), echo_registry, max_iterations=0)

    def test_notice_lists_tools_once(self):
        notice = budget_exhausted_notice(10, ["echo", "echo", "broken"])
        assert "echo, broken" in notice
        assert "10" in notice
