"""CloudWatch custom metrics for the assistant.

Two families of data points are published:

``ExternalAPI/*``
    count, latency and errors for every call a conversation turn makes to
    OpenAI (chat completions and speech-to-text) or the WhatsApp Cloud API,
    dimensioned by ``Service`` and ``Operation``.
``Conversation/*``
    one data point set per answered turn: turn count, end-to-end latency
    and how many tool rounds the model needed.

Points are only buffered while ``METRICS_ENABLED=true``; a daemon thread
flushes the buffer every ``FLUSH_INTERVAL_SECONDS``.  When disabled every
point is logged at DEBUG level and discarded straight away.  The buffer is
bounded by ``MAX_BUFFER_SIZE``; when CloudWatch is unreachable for long the
oldest points are dropped first.

Usage
-----
>>> from accounting_assistant.services.metrics import metrics
>>> with metrics.track("whatsapp", "POST /messages"):
...     client.send_text(...)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "AccountingAssistant"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit
MAX_BUFFER_SIZE = 20_000


def _datum(
    name: str,
    value: float,
    unit: str,
    dimensions: dict[str, str],
    timestamp: datetime,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Bounded, batched CloudWatch metrics publisher."""

    def __init__(self, enabled: bool | None = None, max_buffer: int = MAX_BUFFER_SIZE) -> None:
        if enabled is None:
            enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._enabled = enabled
        self._buffer: deque[dict[str, Any]] = deque(maxlen=max_buffer)
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── External API calls ───────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)
        now = datetime.now(UTC)
        call = {"Service": service, "Operation": operation}
        self._emit(
            _datum("ExternalAPI/RequestCount", 1, "Count", {**call, "Status": "success"}, now),
            _datum("ExternalAPI/Latency", latency_ms, "Milliseconds", call, now),
        )

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )
        now = datetime.now(UTC)
        call = {"Service": service, "Operation": operation}
        points = [
            _datum("ExternalAPI/RequestCount", 1, "Count", {**call, "Status": "failure"}, now),
            _datum("ExternalAPI/ErrorCount", 1, "Count", {"Service": service, "ErrorType": error_type}, now),
        ]
        if latency_ms > 0:
            points.append(_datum("ExternalAPI/Latency", latency_ms, "Milliseconds", call, now))
        self._emit(*points)

    @contextmanager
    def track(self, service: str, operation: str) -> Iterator[None]:
        """Time the enclosed block and record success or failure.

        The exception, if any, is re-raised after being counted.
        """
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            self.record_failure(service, operation, type(exc).__name__, latency_ms=elapsed)
            raise
        self.record_success(service, operation, (time.perf_counter() - t0) * 1000)

    # ── Conversation turns ───────────────────────────────────────────

    def record_turn(self, latency_ms: float, tool_rounds: int, *, failed: bool = False) -> None:
        """One answered user turn, successful or turned into an apology."""
        logger.debug(
            "Metric: turn failed=%s latency=%.1fms tool_rounds=%d", failed, latency_ms, tool_rounds,
        )
        now = datetime.now(UTC)
        outcome = {"Outcome": "error" if failed else "answered"}
        self._emit(
            _datum("Conversation/Turns", 1, "Count", outcome, now),
            _datum("Conversation/Latency", latency_ms, "Milliseconds", outcome, now),
            _datum("Conversation/ToolRounds", tool_rounds, "Count", {}, now),
        )

    # ── Publishing ───────────────────────────────────────────────────

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            batch = list(self._buffer)
            self._buffer.clear()
        if not batch:
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch (%d dropped)", len(batch) - sent)
        return sent

    def _emit(self, *points: dict[str, Any]) -> None:
        if not self._enabled:
            return
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
