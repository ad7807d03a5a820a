"""FastAPI server for the WhatsApp accounting assistant.

Run with:
    uvicorn accounting_assistant.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response

from accounting_assistant.agent import AccountingAgent
from accounting_assistant.api.routes import router
from accounting_assistant.config import SERVER_HOST, SERVER_PORT, SESSION_SWEEP_INTERVAL_SECONDS
from accounting_assistant.services.dataset import get_dataset
from accounting_assistant.services.gateway import WebhookProcessor
from accounting_assistant.services.metrics import metrics
from accounting_assistant.services.transcription import AudioTranscriber
from accounting_assistant.services.whatsapp_client import get_whatsapp_client

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the dataset, agent and WhatsApp plumbing once per process."""
    logger.info("Loading dataset and compiling agent…")
    get_dataset()
    agent = AccountingAgent()
    whatsapp = get_whatsapp_client()

    application.state.agent = agent
    application.state.gateway = WebhookProcessor(whatsapp, AudioTranscriber(whatsapp), agent)
    sweeper = agent.sessions.start_sweeper(SESSION_SWEEP_INTERVAL_SECONDS)
    logger.info("Assistant ready.")
    yield
    sweeper.stop()
    whatsapp.close()
    metrics.flush()


app = FastAPI(
    title="WhatsApp Accounting Assistant",
    description="Answers business owners' accounting questions over WhatsApp.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (echoed if the caller sent one) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router)


@app.get("/")
async def root():
    return {
        "service": "WhatsApp Accounting Assistant",
        "version": "1.0.0",
        "webhook": "/webhook",
        "health": "/health",
    }


if __name__ == "__main__":
    logger.info("Starting accounting assistant on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run("accounting_assistant.server:app", host=SERVER_HOST, port=SERVER_PORT)
