"""Centralized configuration for the WhatsApp accounting assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/accounting-assistant/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 cannot reach
    SSM.  Errors are logged but never raised so that the local-dev fallback
    still works.
    """
    try:
        import boto3  # noqa: PLC0415  (only needed on AWS)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/accounting-assistant/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /accounting-assistant/{name} (AWS)."
    )


# ── WhatsApp Cloud API ──────────────────────────────────────────────
WHATSAPP_PHONE_NUMBER_ID: str = _require_env("WHATSAPP_PHONE_NUMBER_ID")
WHATSAPP_ACCESS_TOKEN: str = _require_env("WHATSAPP_ACCESS_TOKEN")
WHATSAPP_VERIFY_TOKEN: str = _require_env("WHATSAPP_VERIFY_TOKEN")
GRAPH_API_BASE_URL: str = os.getenv("GRAPH_API_BASE_URL", "https://graph.facebook.com/v18.0")

# ── OpenAI (chat completions + speech-to-text) ──────────────────────
OPENAI_API_KEY: str = _require_env("OPENAI_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "gpt-4o-mini")
MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "1500"))
TRANSCRIPTION_MODEL: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
TRANSCRIPTION_LANGUAGE: str = os.getenv("TRANSCRIPTION_LANGUAGE", "tr")

# ── Conversation loop ───────────────────────────────────────────────
MAX_TOOL_ITERATIONS: int = int(os.getenv("MAX_TOOL_ITERATIONS", "5"))
MAX_HISTORY_MESSAGES: int = int(os.getenv("MAX_HISTORY_MESSAGES", "20"))
SESSION_TIMEOUT_SECONDS: float = float(os.getenv("SESSION_TIMEOUT_SECONDS", "300"))
SESSION_SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "60"))

# ── Dataset ─────────────────────────────────────────────────────────
DATA_PATH: Path = Path(
    os.getenv(
        "ACCOUNTING_DATA_PATH",
        str(Path(__file__).resolve().parent / "data" / "accounting.json"),
    )
)

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("PORT", os.getenv("SERVER_PORT", "3000")))
