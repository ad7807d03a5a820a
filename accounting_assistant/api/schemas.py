"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """A message typed directly against the assistant (no WhatsApp hop)."""

    message: str = Field(..., min_length=1, max_length=4000, description="The user's question")
    sender: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Conversation key, normally a phone number",
    )


class ChatResponse(BaseModel):
    reply: str = Field(..., description="The assistant's answer")
    sender: str = Field(..., description="The conversation key the answer belongs to")


class SessionClearResponse(BaseModel):
    sender: str
    cleared: bool = Field(..., description="Whether a session existed and was removed")


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "whatsapp-accounting-assistant"
