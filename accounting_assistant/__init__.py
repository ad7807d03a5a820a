"""WhatsApp Accounting Assistant — answers business owners' accounting
questions (in Turkish) over WhatsApp.

Architecture Overview
=====================

Inbound WhatsApp deliveries hit ``POST /webhook``.  The gateway extracts the
text of each message (voice notes are transcribed with Whisper first) and
hands it to the conversation agent, whose reply is sent back through the
WhatsApp Cloud API.

The agent is a **LangGraph** state machine with two nodes:

1. **chatbot** — an OpenAI chat model bound to ~30 read-only accounting
   tools, given the sender's session history.
2. **tools** — runs the requested tool calls against the static dataset and
   feeds the results back to the chatbot.

Routing: chatbot → (tool calls?) → tools → chatbot, until the model answers
directly or five tool rounds have run.

Key Design Decisions
--------------------
- **Sessions**: kept in process memory per sender; idle ones are reseeded
  after five minutes and swept in the background.  Turns from the same
  sender are serialised.
- **Dataset**: a single JSON document loaded once and never mutated; every
  query renders a short WhatsApp-ready Turkish text block.
- **No retries**: failed WhatsApp or OpenAI calls surface immediately and are
  turned into apology messages or HTTP errors.

Package Structure
-----------------
- ``accounting_assistant/agent.py`` — LangGraph graph and per-turn orchestration
- ``accounting_assistant/config.py`` — configuration from env / SSM
- ``accounting_assistant/formatting.py`` — currency, date and percent helpers
- ``accounting_assistant/prompts.py`` — system prompt
- ``accounting_assistant/server.py`` — FastAPI application
- ``accounting_assistant/main.py`` — CLI chat interface
- ``accounting_assistant/services/`` — dataset, sessions, WhatsApp, transcription, gateway, metrics
- ``accounting_assistant/tools/`` — LangChain accounting tools
- ``accounting_assistant/api/`` — FastAPI routes and Pydantic schemas
"""
