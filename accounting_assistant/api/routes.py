"""FastAPI route definitions: WhatsApp webhook, direct chat and health."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import PlainTextResponse

from accounting_assistant.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    SessionClearResponse,
)
from accounting_assistant.config import WHATSAPP_VERIFY_TOKEN

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_state(request: Request, name: str):
    """Fetch a component built during the lifespan, or answer 503."""
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return component


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse()


# ── WhatsApp webhook ─────────────────────────────────────────────────


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
):
    """Meta's subscription handshake: echo the challenge if the token matches."""
    if mode == "subscribe" and token == WHATSAPP_VERIFY_TOKEN:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge or "")
    logger.warning("Webhook verification failed (mode=%r)", mode)
    return Response(status_code=403)


@router.post("/webhook")
async def receive_webhook(http_request: Request):
    """Process a WhatsApp delivery to completion before acknowledging it.

    The processor makes blocking HTTP and LLM calls, so it runs in a worker
    thread via ``asyncio.to_thread``.
    """
    gateway = _get_state(http_request, "gateway")
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        payload = await http_request.json()
    except ValueError:
        logger.warning("[%s] Webhook body is not JSON", request_id)
        return Response(status_code=404)

    try:
        handled = await asyncio.to_thread(gateway.handle_payload, payload)
    except Exception:
        logger.exception("[%s] Error processing webhook", request_id)
        return Response(status_code=500)

    return Response(status_code=200 if handled else 404)


# ── Direct chat & sessions ───────────────────────────────────────────


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Ask the assistant directly, sharing session state with WhatsApp."""
    agent = _get_state(http_request, "agent")
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        reply = await asyncio.to_thread(agent.process_message, request.sender, request.message)
    except Exception as e:
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return ChatResponse(reply=reply, sender=request.sender)


@router.delete("/sessions/{sender}", response_model=SessionClearResponse)
async def clear_session(sender: str, http_request: Request):
    agent = _get_state(http_request, "agent")
    return SessionClearResponse(sender=sender, cleared=agent.clear_session(sender))
