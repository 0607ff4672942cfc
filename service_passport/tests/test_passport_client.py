"""
Unit tests for the scorer API client.
"""

import json

import httpx
import pytest

from service_passport.app.adapters.passport_client import PassportClient
from shared.errors import InvalidResponse, ProviderUnavailable
from shared.metrics import MetricsCollector

ADDRESS = "0x" + "ef" * 20


def make_client(handler, **kwargs):
    return PassportClient(
        "https://scorer.example.com/",
        api_key="test-key",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
        **kwargs
    )


class TestPassportClient:
    """Test cases for PassportClient."""

    @pytest.mark.asyncio
    async def test_fetch_score_success(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"address": ADDRESS, "score": "23.75", "status": "DONE"})

        client = make_client(handler)
        score = await client.fetch_score(ADDRESS, "42")

        assert score == 23.75
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://scorer.example.com/registry/submit-passport"
        assert request.headers["X-API-KEY"] == "test-key"
        assert json.loads(request.content) == {"address": ADDRESS, "scorer_id": "42"}

    @pytest.mark.asyncio
    async def test_numeric_score_without_status(self):
        client = make_client(lambda request: httpx.Response(200, json={"score": 7}))

        assert await client.fetch_score(ADDRESS, "42") == 7.0

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        client = make_client(lambda request: httpx.Response(503, text="busy"))

        with pytest.raises(ProviderUnavailable) as exc_info:
            await client.fetch_score(ADDRESS, "42")

        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_client_error_is_invalid_response(self):
        client = make_client(lambda request: httpx.Response(400, json={"detail": "Invalid address"}))

        with pytest.raises(InvalidResponse):
            await client.fetch_score(ADDRESS, "42")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(InvalidResponse):
            await client.fetch_score(ADDRESS, "42")

    @pytest.mark.asyncio
    async def test_score_still_processing(self):
        client = make_client(lambda request: httpx.Response(200, json={"status": "PROCESSING", "score": None}))

        with pytest.raises(InvalidResponse) as exc_info:
            await client.fetch_score(ADDRESS, "42")

        assert exc_info.value.details["status"] == "PROCESSING"

    @pytest.mark.asyncio
    async def test_missing_score(self):
        client = make_client(lambda request: httpx.Response(200, json={"status": "DONE"}))

        with pytest.raises(InvalidResponse):
            await client.fetch_score(ADDRESS, "42")

    @pytest.mark.asyncio
    async def test_negative_score(self):
        client = make_client(lambda request: httpx.Response(200, json={"status": "DONE", "score": "-1"}))

        with pytest.raises(InvalidResponse):
            await client.fetch_score(ADDRESS, "42")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw_score", ["1e999", "Infinity", "-Infinity", "NaN"])
    async def test_non_finite_score(self, raw_score):
        client = make_client(lambda request: httpx.Response(200, json={"status": "DONE", "score": raw_score}))

        with pytest.raises(InvalidResponse) as exc_info:
            await client.fetch_score(ADDRESS, "42")

        assert exc_info.value.details["score"] == raw_score

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable_and_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)

        with pytest.raises(ProviderUnavailable) as exc_info:
            await client.fetch_score(ADDRESS, "42")

        assert exc_info.value.message == "passport: Request timed out"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(ProviderUnavailable) as exc_info:
            await client.fetch_score(ADDRESS, "42")

        assert exc_info.value.code == "PROVIDER_UNAVAILABLE"
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_records_latency_by_outcome(self):
        metrics = MetricsCollector("passport")
        client = make_client(lambda request: httpx.Response(200, json={"score": "1"}), metrics=metrics)

        await client.fetch_score(ADDRESS, "42")

        count = metrics.registry.get_sample_value(
            "provider_request_duration_seconds_count",
            {"outcome": "ok"}
        )
        assert count == 1.0
