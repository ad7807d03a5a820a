"""Shared test fixtures for the accounting assistant test suite."""

from __future__ import annotations

import os
from datetime import date
from unittest.mock import MagicMock

import pytest

TODAY = date(2025, 10, 31)


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any test module imports, so config.py won't fail on
    module load.
    """
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-123")
    os.environ.setdefault("WHATSAPP_ACCESS_TOKEN", "test-whatsapp-token-456")
    os.environ.setdefault("WHATSAPP_PHONE_NUMBER_ID", "1234567890")
    os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test-verify-token")


@pytest.fixture
def dataset():
    """The bundled sample dataset with the calendar pinned to 31 Oct 2025."""
    from accounting_assistant.config import DATA_PATH
    from accounting_assistant.services.dataset import AccountingDataset

    return AccountingDataset.from_file(DATA_PATH, clock=lambda: TODAY)


@pytest.fixture
def empty_dataset():
    from accounting_assistant.services.dataset import AccountingDataset

    return AccountingDataset({}, clock=lambda: TODAY)


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict | None = None, status_code: int = 200, content: bytes = b""):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data or {}
        mock.text = str(data)
        mock.content = content
        return mock

    return _make
