"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from concierge.services.metrics import MetricsClient


class TestMetricsRecording:
    """Verify that the record_* methods buffer the right data."""

    def _make_client(self, *, enabled: bool = False) -> MetricsClient:
        with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
            return MetricsClient()

    def test_record_success_appends_two_data_points(self):
        client = self._make_client()
        client.record_success("places", "GET /details", latency_ms=123.4)
        assert client.pending == 2
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalAPI/RequestCount", "ExternalAPI/Latency"}

    def test_record_failure_appends_count_and_error(self):
        client = self._make_client()
        client.record_failure("anthropic", "llm_invoke", error_type="timeout")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalAPI/RequestCount", "ExternalAPI/ErrorCount"}

    def test_record_failure_with_latency_appends_three_data_points(self):
        client = self._make_client()
        client.record_failure("places", "GET /details", error_type="503", latency_ms=500.0)
        assert client.pending == 3

    def test_failure_dimensions_include_error_type(self):
        client = self._make_client()
        client.record_failure("anthropic", "llm_invoke", error_type="BadRequestError")
        error_metric = next(
            m for m in client._buffer if m["MetricName"] == "ExternalAPI/ErrorCount"
        )
        dim_map = {d["Name"]: d["Value"] for d in error_metric["Dimensions"]}
        assert dim_map == {"Service": "anthropic", "ErrorType": "BadRequestError"}

    def test_record_llm_usage_per_model(self):
        client = self._make_client()
        client.record_llm_usage("claude-haiku-4-5", 10, 20, cost=0.00011)

        by_name = {m["MetricName"]: m for m in client._buffer}
        assert set(by_name) == {"LLM/InputTokens", "LLM/OutputTokens", "LLM/Cost"}
        assert by_name["LLM/OutputTokens"]["Value"] == 20
        assert by_name["LLM/Cost"]["Dimensions"] == [
            {"Name": "Model", "Value": "claude-haiku-4-5"},
        ]


class TestMetricsFlush:
    """Verify flush behaviour with and without CloudWatch enabled."""

    def test_flush_when_disabled_sends_nothing_and_clears(self):
        client = MetricsClient(enabled=False)
        client.record_success("places", "GET /details", latency_ms=100.0)
        assert client.flush() == 0
        assert client.pending == 0

    def test_flush_when_enabled_calls_put_metric_data(self):
        with patch.object(MetricsClient, "_start_flush_thread"):
            client = MetricsClient(enabled=True)
        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_success("places", "GET /details", latency_ms=100.0)
        sent = client.flush()

        assert sent == 2
        call_args = mock_cw.put_metric_data.call_args
        assert call_args[1]["Namespace"] == "Concierge"
        assert len(call_args[1]["MetricData"]) == 2

    def test_flush_failure_is_swallowed(self):
        with patch.object(MetricsClient, "_start_flush_thread"):
            client = MetricsClient(enabled=True)
        client._cw_client = MagicMock()
        client._cw_client.put_metric_data.side_effect = RuntimeError("throttled")

        client.record_success("places", "GET /details", latency_ms=1.0)
        assert client.flush() == 0

    def test_flush_empty_buffer_returns_zero(self):
        assert MetricsClient(enabled=False).flush() == 0
