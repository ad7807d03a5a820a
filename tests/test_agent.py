"""Tests for the LangGraph conversation loop and per-turn orchestration.

Covers:
  - Routing between the chatbot and tools nodes (iteration ceiling)
  - Tool node behaviour, including unknown and unparsable calls
  - End-to-end turns with a mocked chat model
"""

from __future__ import annotations

import itertools
from unittest.mock import MagicMock

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.graph import END

from accounting_assistant.agent import (
    ERROR_REPLY,
    FALLBACK_REPLY,
    AccountingAgent,
    AgentState,
    message_text,
    should_use_tools,
    tools_node,
)
from accounting_assistant.config import MAX_TOOL_ITERATIONS
from accounting_assistant.prompts import get_system_prompt
from accounting_assistant.services.sessions import SessionStore
from accounting_assistant.tools.accounting import TOOLS_BY_NAME

# ── Helpers ──────────────────────────────────────────────────────────


def _tool_call(name: str, call_id: str = "call_1", args: dict | None = None) -> dict:
    return {"name": name, "args": args or {}, "id": call_id}


def _mock_llm(*responses: AIMessage) -> MagicMock:
    """A chat model returning *responses* in order (fresh objects each turn)."""
    llm = MagicMock()
    llm.invoke.side_effect = list(responses)
    return llm


def _looping_llm(content: str = "") -> MagicMock:
    """A chat model that asks for another tool call every time."""
    counter = itertools.count()
    llm = MagicMock()
    llm.invoke.side_effect = lambda messages: AIMessage(
        content=content, tool_calls=[_tool_call("get_summary", f"call_{next(counter)}")],
    )
    return llm


# ── Routing ──────────────────────────────────────────────────────────


class TestShouldUseTools:
    def test_routes_to_tools_when_calls_pending(self):
        state: AgentState = {
            "messages": [AIMessage(content="", tool_calls=[_tool_call("get_summary")])],
            "iterations": 0,
        }
        assert should_use_tools(state) == "tools"

    def test_ends_without_tool_calls(self):
        state: AgentState = {"messages": [AIMessage(content="Merhaba")], "iterations": 0}
        assert should_use_tools(state) == END

    def test_ends_at_iteration_ceiling(self):
        state: AgentState = {
            "messages": [AIMessage(content="", tool_calls=[_tool_call("get_summary")])],
            "iterations": MAX_TOOL_ITERATIONS,
        }
        assert should_use_tools(state) == END


class TestToolsNode:
    def test_answers_every_call_with_its_id(self):
        state: AgentState = {
            "messages": [
                AIMessage(
                    content="",
                    tool_calls=[_tool_call("get_debts", "c1"), _tool_call("get_advances", "c2")],
                )
            ],
            "iterations": 0,
        }
        result = tools_node(state)
        assert [m.tool_call_id for m in result["messages"]] == ["c1", "c2"]
        assert "Toplam Borç" in result["messages"][0].content
        assert result["iterations"] == 1

    def test_unknown_tool_yields_error_text(self):
        state: AgentState = {
            "messages": [AIMessage(content="", tool_calls=[_tool_call("drop_tables")])],
            "iterations": 2,
        }
        result = tools_node(state)
        assert result["messages"][0].content == "❌ Bilinmeyen fonksiyon: drop_tables"
        assert result["iterations"] == 3

    def test_unparsable_call_still_gets_an_answer(self):
        message = AIMessage(
            content="",
            invalid_tool_calls=[
                {"name": "get_stock", "args": "{oops", "id": "c9", "error": "bad json"}
            ],
        )
        result = tools_node({"messages": [message], "iterations": 0})
        assert result["messages"][0].tool_call_id == "c9"
        assert "get_stock" in result["messages"][0].content

    def test_unparsable_call_without_id_is_dropped(self):
        message = AIMessage(
            id="ai-1",
            content="",
            invalid_tool_calls=[
                {"name": "get_stock", "args": "{oops", "id": None, "error": "bad json"},
                {"name": "get_debts", "args": "{", "id": "c2", "error": "bad json"},
            ],
        )
        result = tools_node({"messages": [message], "iterations": 0})

        replaced, answer = result["messages"]
        assert isinstance(replaced, AIMessage)
        assert replaced.id == "ai-1"
        assert [c["id"] for c in replaced.invalid_tool_calls] == ["c2"]
        assert answer.tool_call_id == "c2"

    def test_no_tool_message_has_an_empty_id(self):
        message = AIMessage(
            content="",
            invalid_tool_calls=[{"name": "get_stock", "args": "{", "id": None, "error": "bad json"}],
        )
        result = tools_node({"messages": [message], "iterations": 0})
        assert not [m for m in result["messages"] if isinstance(m, ToolMessage)]


# ── End-to-end turns ─────────────────────────────────────────────────


class TestProcessMessage:
    def test_direct_answer(self):
        llm = _mock_llm(AIMessage(content="Merhaba! Size nasıl yardımcı olabilirim?"))
        agent = AccountingAgent(llm=llm)

        reply = agent.process_message("905550000001", "Merhaba")

        assert reply == "Merhaba! Size nasıl yardımcı olabilirim?"
        session = agent.sessions.get("905550000001")
        assert [type(m) for m in session.messages] == [SystemMessage, HumanMessage, AIMessage]

    def test_tool_round_trip(self):
        llm = _mock_llm(
            AIMessage(content="", tool_calls=[_tool_call("get_receivables")]),
            AIMessage(content="Toplam alacağınız ₺284.920."),
        )
        agent = AccountingAgent(llm=llm)

        reply = agent.process_message("905550000002", "Alacaklarım ne durumda?")

        assert reply == "Toplam alacağınız ₺284.920."
        assert llm.invoke.call_count == 2
        second_input = llm.invoke.call_args_list[1][0][0]
        assert isinstance(second_input[-1], ToolMessage)
        assert second_input[-1].tool_call_id == "call_1"
        assert "Toplam Alacak: ₺284.920" in second_input[-1].content

    def test_model_sees_system_prompt_first(self):
        llm = _mock_llm(AIMessage(content="ok"))
        agent = AccountingAgent(llm=llm)
        agent.process_message("905550000003", "Özet?")
        first_input = llm.invoke.call_args_list[0][0][0]
        assert isinstance(first_input[0], SystemMessage)
        assert "Tekno Elektronik" in first_input[0].content

    def test_loop_stops_at_ceiling_with_fallback(self):
        llm = _looping_llm()
        agent = AccountingAgent(llm=llm)

        reply = agent.process_message("905550000004", "Sonsuz döngü")

        assert reply == FALLBACK_REPLY
        assert llm.invoke.call_count == MAX_TOOL_ITERATIONS + 1
        last = agent.sessions.get("905550000004").messages[-1]
        assert isinstance(last, AIMessage)
        assert not last.tool_calls

    def test_ceiling_keeps_last_assistant_text(self):
        agent = AccountingAgent(llm=_looping_llm(content="Kısmi cevap"))
        assert agent.process_message("905550000005", "Soru") == "Kısmi cevap"

    def test_model_failure_returns_apology_and_keeps_user_message(self):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("provider down")
        agent = AccountingAgent(llm=llm)

        assert agent.process_message("905550000006", "Stok?") == ERROR_REPLY
        messages = agent.sessions.get("905550000006").messages
        assert isinstance(messages[-1], HumanMessage)
        assert messages[-1].content == "Stok?"

    def test_uses_the_given_session_store(self):
        store = SessionStore(max_messages=4)
        assert len(store) == 0
        agent = AccountingAgent(llm=_mock_llm(AIMessage(content="ok")), sessions=store)

        assert agent.sessions is store
        agent.process_message("905550000009", "selam")
        assert "905550000009" in store

    def test_idless_unparsable_call_leaves_clean_history(self):
        llm = _mock_llm(
            AIMessage(
                content="",
                invalid_tool_calls=[{"name": "get_stock", "args": "{", "id": None, "error": "bad json"}],
            )
        )
        agent = AccountingAgent(llm=llm)

        assert agent.process_message("905550000010", "Stok?") == FALLBACK_REPLY
        assert llm.invoke.call_count == 1
        messages = agent.sessions.get("905550000010").messages
        assert not messages[-1].invalid_tool_calls
        assert not [m for m in messages if isinstance(m, ToolMessage)]

    def test_ceiling_above_default_recursion_limit(self, monkeypatch):
        monkeypatch.setattr("accounting_assistant.agent.MAX_TOOL_ITERATIONS", 15)
        llm = _looping_llm(content="Kısmi cevap")
        agent = AccountingAgent(llm=llm)

        assert agent.process_message("905550000011", "Soru") == "Kısmi cevap"
        assert llm.invoke.call_count == 16

    def test_history_is_truncated(self):
        llm = MagicMock()
        llm.invoke.side_effect = lambda messages: AIMessage(content="cevap")
        agent = AccountingAgent(llm=llm, sessions=SessionStore(max_messages=4))

        for i in range(5):
            agent.process_message("905550000007", f"soru {i}")

        messages = agent.sessions.get("905550000007").messages
        assert len(messages) == 5
        assert isinstance(messages[0], SystemMessage)
        assert messages[-1].content == "cevap"
        assert messages[-2].content == "soru 4"

    def test_clear_session(self):
        agent = AccountingAgent(llm=_mock_llm(AIMessage(content="ok")))
        agent.process_message("905550000008", "selam")
        assert agent.clear_session("905550000008") is True
        assert agent.sessions.get("905550000008") is None


class TestPromptAndText:
    def test_system_prompt_embeds_context_and_tools(self, dataset):
        prompt = get_system_prompt(dataset, TOOLS_BY_NAME)
        assert "Tekno Elektronik Ticaret Ltd. Şti." in prompt
        assert "31.10.2025" in prompt
        assert "get_receivables" in prompt
        assert '"kritikStok": 3' in prompt

    def test_message_text_joins_content_blocks(self):
        message = AIMessage(content=[{"type": "text", "text": "Merhaba "}, {"type": "text", "text": "dünya"}])
        assert message_text(message) == "Merhaba dünya"
