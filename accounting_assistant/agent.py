"""LangGraph conversation loop for the accounting assistant.

Graph
-----
A StateGraph with two nodes:

  1. **chatbot** — the OpenAI chat model, bound to every accounting tool,
                   sees the whole session history (system prompt first)
  2. **tools**   — runs each requested tool call through the static
                   dispatch table and appends one ``ToolMessage`` per call

  chatbot → (tool calls pending and under the ceiling?) → tools → chatbot
          → (otherwise)                                 → END

The graph is compiled without a checkpointer: history lives in the
:class:`~accounting_assistant.services.sessions.SessionStore`, which also
owns idle expiry, truncation and per-sender serialisation.
:class:`AccountingAgent` glues the two together for one user turn.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.runnables import Runnable
from langchain_openai import ChatOpenAI
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from accounting_assistant.config import (
    MAX_OUTPUT_TOKENS,
    MAX_TOOL_ITERATIONS,
    MODEL_NAME,
    OPENAI_API_KEY,
)
from accounting_assistant.prompts import get_system_prompt
from accounting_assistant.services.dataset import get_dataset
from accounting_assistant.services.metrics import metrics
from accounting_assistant.services.sessions import SessionStore
from accounting_assistant.tools.accounting import ALL_TOOLS, TOOLS_BY_NAME, dispatch_tool_call

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Üzgünüm, bir yanıt oluşturamadım."
ERROR_REPLY = "Üzgünüm, bir hata oluştu. Lütfen tekrar deneyin."


class AgentState(TypedDict):
    """State flowing through the graph.

    ``iterations`` counts completed tool rounds within the current turn.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    iterations: int


def _build_llm() -> Runnable:
    llm = ChatOpenAI(
        model=MODEL_NAME,
        api_key=OPENAI_API_KEY,
        max_tokens=MAX_OUTPUT_TOKENS,
    )
    return llm.bind_tools(ALL_TOOLS)


def _answerable_invalid_calls(message: BaseMessage) -> list:
    """Unparsable calls that carry an id; without one no tool reply can refer to them."""
    return [call for call in getattr(message, "invalid_tool_calls", None) or [] if call.get("id")]


def _pending_calls(message: BaseMessage) -> bool:
    return bool(getattr(message, "tool_calls", None) or _answerable_invalid_calls(message))


def _has_any_calls(message: BaseMessage) -> bool:
    return bool(getattr(message, "tool_calls", None) or getattr(message, "invalid_tool_calls", None))


def recursion_limit() -> int:
    """Graph step budget: two steps per tool round plus the final answer."""
    return 2 * MAX_TOOL_ITERATIONS + 3


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


# ── Nodes ────────────────────────────────────────────────────────────


def _make_chatbot_node(llm: Runnable | BaseChatModel):
    """The bound LLM is captured once and reused across loop iterations."""

    def chatbot_node(state: AgentState) -> dict:
        with metrics.track("openai", "chat_completion"):
            response = llm.invoke(state["messages"])
        logger.debug(
            "chatbot responded (tool calls: %d)", len(getattr(response, "tool_calls", []) or []),
        )
        return {"messages": [response]}

    return chatbot_node


def tools_node(state: AgentState) -> dict:
    """Execute every tool call of the last assistant message."""
    last = state["messages"][-1]
    results: list[BaseMessage] = []

    invalid_calls = getattr(last, "invalid_tool_calls", None) or []
    answerable = _answerable_invalid_calls(last)
    if len(answerable) != len(invalid_calls):
        # Same id, so add_messages replaces the assistant message in place.
        logger.warning("Dropping %d unparsable call(s) without id", len(invalid_calls) - len(answerable))
        results.append(last.model_copy(update={"invalid_tool_calls": answerable}))

    for call in getattr(last, "tool_calls", []) or []:
        logger.info("Executing tool %s %r", call["name"], call.get("args"))
        results.append(
            ToolMessage(
                content=dispatch_tool_call(call["name"], call.get("args")),
                tool_call_id=call["id"],
                name=call["name"],
            )
        )
    # Calls whose arguments were not valid JSON still need an answer.
    for call in answerable:
        name = call.get("name") or "?"
        logger.warning("Model produced an unparsable call to %s: %s", name, call.get("error"))
        results.append(
            ToolMessage(
                content=f"❌ Fonksiyon çalıştırılırken hata oluştu: {name}",
                tool_call_id=call["id"],
                name=name,
            )
        )

    return {"messages": results, "iterations": state.get("iterations", 0) + 1}


def should_use_tools(state: AgentState) -> str:
    """Route to tools while calls are pending and the round ceiling is not reached."""
    last_message = state["messages"][-1]
    if _pending_calls(last_message) and state.get("iterations", 0) < MAX_TOOL_ITERATIONS:
        return "tools"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def create_agent_graph(llm: Runnable | BaseChatModel | None = None):
    """Build and compile the chatbot ↔ tools graph.

    Invoke with ``{"messages": [...], "iterations": 0}``; the result carries
    the full message list including everything produced during the turn.
    """
    graph = StateGraph(AgentState)
    graph.add_node("chatbot", _make_chatbot_node(llm if llm is not None else _build_llm()))
    graph.add_node("tools", tools_node)

    graph.set_entry_point("chatbot")
    graph.add_conditional_edges("chatbot", should_use_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "chatbot")

    compiled = graph.compile()
    logger.debug("Agent graph compiled — model: %s, tools: %d", MODEL_NAME, len(ALL_TOOLS))
    return compiled


# ── Turn orchestration ───────────────────────────────────────────────


class AccountingAgent:
    """Run one conversational turn per inbound message, per sender."""

    def __init__(
        self,
        *,
        llm: Runnable | BaseChatModel | None = None,
        sessions: SessionStore | None = None,
    ) -> None:
        self._dataset = get_dataset()
        self._graph = create_agent_graph(llm)
        self.sessions = sessions if sessions is not None else SessionStore()

    def _seed(self) -> SystemMessage:
        return SystemMessage(content=get_system_prompt(self._dataset, TOOLS_BY_NAME))

    def process_message(self, sender: str, text: str) -> str:
        """Answer *text* from *sender*, updating that sender's session.

        Model failures never propagate: they are logged and turned into a
        polite apology, while the user message stays in the history.
        """
        with self.sessions.checkout(sender, self._seed) as session:
            session.messages.append(HumanMessage(content=text))
            turn_start = len(session.messages)
            t0 = time.perf_counter()

            try:
                result = self._graph.invoke(
                    {"messages": list(session.messages), "iterations": 0},
                    config={"recursion_limit": recursion_limit()},
                )
            except Exception:
                logger.exception("Error processing message from %s", sender)
                metrics.record_turn((time.perf_counter() - t0) * 1000, 0, failed=True)
                session.messages = self.sessions.truncate(session.messages)
                return ERROR_REPLY

            messages = list(result["messages"])
            reply = self._extract_reply(messages[turn_start:])

            # Calls left unanswered (ceiling reached or no id): keep a plain answer instead.
            if isinstance(messages[-1], AIMessage) and _has_any_calls(messages[-1]):
                messages[-1] = AIMessage(content=reply)

            session.messages = self.sessions.truncate(messages)
            metrics.record_turn((time.perf_counter() - t0) * 1000, result.get("iterations", 0))
            return reply

    @staticmethod
    def _extract_reply(turn_messages: list[BaseMessage]) -> str:
        for message in reversed(turn_messages):
            if isinstance(message, AIMessage):
                text = message_text(message).strip()
                if text:
                    return text
        return FALLBACK_REPLY

    def clear_session(self, sender: str) -> bool:
        return self.sessions.clear(sender)
