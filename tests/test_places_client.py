"""Tests for the PlacesClient service."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from concierge.services.places_client import (
    INITIAL_BACKOFF_SECONDS,
    MAX_PHOTOS,
    MAX_RETRIES,
    PlacesAPIError,
    PlacesClient,
)

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_response(data: dict, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = data
    mock.text = str(data)
    return mock


PLACE_RESULT = {
    "status": "OK",
    "result": {
        "name": "Bar Pepe",
        "formatted_address": "Calle Mayor 1, Madrid",
        "international_phone_number": "+34 910 000 000",
        "website": "https://pepe.es",
        "rating": 4.5,
        "user_ratings_total": 120,
        "opening_hours": {"open_now": True, "weekday_text": ["Monday: 9:00 AM – 5:00 PM"]},
        "photos": [{"photo_reference": f"ref-{i}", "width": 400, "height": 300} for i in range(12)],
        "editorial_summary": {"overview": "Tapas since 1970."},
    },
}


# ── Tests: get_details ───────────────────────────────────────────────


class TestGetDetails:
    def test_normalises_result(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(client._client, "get", return_value=_mock_response(PLACE_RESULT)):
            details = client.get_details("biz-1")

        assert details["display_name"] == "Bar Pepe"
        assert details["formatted_address"] == "Calle Mayor 1, Madrid"
        assert details["opening_hours"] == ["Monday: 9:00 AM – 5:00 PM"]
        assert details["is_open_now"] is True
        assert details["editorial_summary"] == "Tapas since 1970."

    def test_drops_missing_fields(self):
        client = PlacesClient(api_key="test-key")
        body = {"status": "OK", "result": {"name": "Bar Pepe"}}

        with patch.object(client._client, "get", return_value=_mock_response(body)):
            details = client.get_details("biz-1")

        assert "website" not in details
        assert "rating" not in details

    def test_caps_photos_and_builds_urls(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(client._client, "get", return_value=_mock_response(PLACE_RESULT)):
            details = client.get_details("biz-1")

        assert len(details["photos"]) == MAX_PHOTOS
        assert "photo_reference=ref-0" in details["photos"][0]["url"]
        assert "key=test-key" in details["photos"][0]["url"]

    def test_sends_place_id_fields_and_key(self):
        client = PlacesClient(api_key="test-key", language="es")

        with patch.object(client._client, "get", return_value=_mock_response(PLACE_RESULT)) as mock_get:
            client.get_details("biz-1")

        params = mock_get.call_args[1]["params"]
        assert params["place_id"] == "biz-1"
        assert params["key"] == "test-key"
        assert params["language"] == "es"
        assert "formatted_address" in params["fields"]

    @pytest.mark.parametrize("status", ["NOT_FOUND", "ZERO_RESULTS"])
    def test_not_found_returns_none(self, status):
        client = PlacesClient(api_key="test-key")

        with patch.object(client._client, "get", return_value=_mock_response({"status": status})):
            assert client.get_details("biz-1") is None

    def test_hard_status_raises_without_retry(self):
        client = PlacesClient(api_key="test-key")
        body = {"status": "REQUEST_DENIED", "error_message": "bad key"}

        with patch.object(client._client, "get", return_value=_mock_response(body)) as mock_get:
            with pytest.raises(PlacesAPIError, match="REQUEST_DENIED"):
                client.get_details("biz-1")
            assert mock_get.call_count == 1


# ── Tests: retry logic ──────────────────────────────────────────────


class TestRetryLogic:
    def test_retries_on_timeout(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get",
            side_effect=[httpx.TimeoutException("timeout"), _mock_response(PLACE_RESULT)],
        ), patch("concierge.services.places_client.time.sleep") as mock_sleep:
            details = client.get_details("biz-1")

        assert details["display_name"] == "Bar Pepe"
        mock_sleep.assert_called_once_with(INITIAL_BACKOFF_SECONDS)

    def test_retries_on_server_error(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get",
            side_effect=[_mock_response({}, 502), _mock_response(PLACE_RESULT)],
        ), patch("concierge.services.places_client.time.sleep"):
            assert client.get_details("biz-1") is not None

    def test_retries_on_unknown_error_status(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get",
            side_effect=[_mock_response({"status": "UNKNOWN_ERROR"}), _mock_response(PLACE_RESULT)],
        ), patch("concierge.services.places_client.time.sleep"):
            assert client.get_details("biz-1") is not None

    @pytest.mark.parametrize(
        "error",
        [httpx.ReadError("connection reset"), httpx.RemoteProtocolError("peer closed")],
    )
    def test_retries_on_transport_error(self, error):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get", side_effect=[error, _mock_response(PLACE_RESULT)],
        ) as mock_get, patch("concierge.services.places_client.time.sleep"):
            details = client.get_details("biz-1")

        assert details["display_name"] == "Bar Pepe"
        assert mock_get.call_count == 2

    def test_persistent_transport_error_raises_places_error(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get", side_effect=httpx.ReadError("connection reset"),
        ) as mock_get, patch("concierge.services.places_client.time.sleep"):
            with pytest.raises(PlacesAPIError, match="failed after"):
                client.get_details("biz-1")

        assert mock_get.call_count == MAX_RETRIES

    def test_non_json_body_raises_places_error(self):
        client = PlacesClient(api_key="test-key")
        response = _mock_response({})
        response.json.side_effect = ValueError("not json")

        with patch.object(client._client, "get", return_value=response) as mock_get, \
                patch("concierge.services.places_client.time.sleep") as mock_sleep:
            with pytest.raises(PlacesAPIError, match="Unreadable"):
                client.get_details("biz-1")

        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    def test_does_not_retry_on_4xx(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get", return_value=_mock_response({}, 403),
        ) as mock_get, patch("concierge.services.places_client.time.sleep") as mock_sleep:
            with pytest.raises(PlacesAPIError) as exc_info:
                client.get_details("biz-1")

        assert exc_info.value.status_code == 403
        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    def test_gives_up_after_max_retries(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get", side_effect=httpx.ConnectError("refused"),
        ) as mock_get, patch("concierge.services.places_client.time.sleep"):
            with pytest.raises(PlacesAPIError, match="failed after"):
                client.get_details("biz-1")

        assert mock_get.call_count == MAX_RETRIES

    def test_exponential_backoff_between_attempts(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(
            client._client, "get", side_effect=httpx.ConnectError("refused"),
        ), patch("concierge.services.places_client.time.sleep") as mock_sleep:
            with pytest.raises(PlacesAPIError):
                client.get_details("biz-1")

        delays = [c.args[0] for c in mock_sleep.call_args_list]
        assert delays == [INITIAL_BACKOFF_SECONDS, INITIAL_BACKOFF_SECONDS * 2]


# ── Tests: metrics ───────────────────────────────────────────────────


class TestPlacesMetrics:
    def test_records_success(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(client._client, "get", return_value=_mock_response(PLACE_RESULT)), \
                patch("concierge.services.places_client.metrics") as mock_metrics:
            client.get_details("biz-1")

        mock_metrics.record_success.assert_called_once()
        assert mock_metrics.record_success.call_args[0][0] == "places"

    def test_records_failure(self):
        client = PlacesClient(api_key="test-key")

        with patch.object(client._client, "get", return_value=_mock_response({}, 400)), \
                patch("concierge.services.places_client.metrics") as mock_metrics:
            with pytest.raises(PlacesAPIError):
                client.get_details("biz-1")

        mock_metrics.record_failure.assert_called_once()
        assert mock_metrics.record_failure.call_args[1]["error_type"] == "400"
