"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for the external
services the engine depends on (Google Places, Anthropic) plus token and
cost data points for every completed AI reply.

* Metrics are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS``.
* With ``METRICS_ENABLED != "true"`` metrics are only logged at DEBUG and
  dropped on flush.

>>> from concierge.services.metrics import metrics
>>> metrics.record_success("places", "GET /details", latency_ms=123.4)
>>> metrics.record_llm_usage("claude-haiku-4-5", 120, 80, cost=0.00052)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "Concierge"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self, enabled: bool | None = None) -> None:
        if enabled is None:
            enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._enabled = enabled
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3  # noqa: PLC0415

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful external call."""
        now = datetime.now(UTC)
        service_dim = [{"Name": "Service", "Value": service}]

        self._append(
            _datum(
                "ExternalAPI/RequestCount",
                service_dim + [{"Name": "Status", "Value": "success"}],
                now, 1, "Count",
            )
        )
        self._append(
            _datum(
                "ExternalAPI/Latency",
                service_dim + [{"Name": "Operation", "Value": operation}],
                now, latency_ms, "Milliseconds",
            )
        )
        logger.debug(
            "Metric: %s %s success latency=%.1fms", service, operation, latency_ms,
        )

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed external call."""
        now = datetime.now(UTC)
        service_dim = [{"Name": "Service", "Value": service}]

        self._append(
            _datum(
                "ExternalAPI/RequestCount",
                service_dim + [{"Name": "Status", "Value": "failure"}],
                now, 1, "Count",
            )
        )
        self._append(
            _datum(
                "ExternalAPI/ErrorCount",
                service_dim + [{"Name": "ErrorType", "Value": error_type}],
                now, 1, "Count",
            )
        )
        if latency_ms > 0:
            self._append(
                _datum(
                    "ExternalAPI/Latency",
                    service_dim + [{"Name": "Operation", "Value": operation}],
                    now, latency_ms, "Milliseconds",
                )
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_llm_usage(
        self,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost: float,
    ) -> None:
        """Record token consumption and cost of one completed reply."""
        now = datetime.now(UTC)
        model_dim = [{"Name": "Model", "Value": model}]

        self._append(_datum("LLM/InputTokens", model_dim, now, input_tokens, "Count"))
        self._append(_datum("LLM/OutputTokens", model_dim, now, output_tokens, "Count"))
        self._append(_datum("LLM/Cost", model_dim, now, cost, "None"))
        logger.debug(
            "Metric: llm %s in=%d out=%d cost=%.6f", model, input_tokens, output_tokens, cost,
        )

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
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
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info(
            "Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS,
        )


def _datum(
    name: str,
    dimensions: list[dict[str, str]],
    timestamp: datetime,
    value: float,
    unit: str,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": dimensions,
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
