"""
Gitcoin Passport scorer API client.
"""

import math
import time
from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.errors import InvalidResponse, ProviderUnavailable
from shared.metrics import MetricsCollector


class PassportClient:
    """Fetches passport scores from the scorer API.

    The client never retries; callers decide what a failure means. Every
    request is bounded by ``timeout`` seconds.
    """

    def __init__(self, api_url: str, api_key: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self.metrics = metrics
        self.logger = get_logger("passport.provider")

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers

    async def fetch_score(self, identity: str, scorer_id: str) -> float:
        """Submit ``identity`` to the scorer and return its score."""
        payload = {"address": identity, "scorer_id": str(scorer_id)}
        start_time = time.time()
        outcome = "error"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_url}/registry/submit-passport",
                    json=payload,
                    headers=self._headers()
                )
            score = self._parse_response(response, identity)
            outcome = "ok"
            return score

        except httpx.TimeoutException as e:
            outcome = "timeout"
            self.logger.warning("Scoring provider timed out", address=identity, error=str(e))
            raise ProviderUnavailable("Request timed out", details={"timeout_seconds": self.timeout})
        except httpx.RequestError as e:
            self.logger.warning("Scoring provider unreachable", address=identity, error=str(e))
            raise ProviderUnavailable("Request failed", details={"http_error": str(e)})
        finally:
            if self.metrics is not None:
                self.metrics.observe_histogram(
                    "provider_request_duration_seconds",
                    time.time() - start_time,
                    outcome=outcome
                )

    def _parse_response(self, response: httpx.Response, identity: str) -> float:
        if response.status_code >= 500:
            self.logger.warning("Scoring provider error", address=identity, status_code=response.status_code)
            raise ProviderUnavailable(
                f"Status {response.status_code}",
                details={"status_code": response.status_code}
            )
        if response.status_code != 200:
            self.logger.warning("Scoring provider rejected request", address=identity,
                                status_code=response.status_code)
            raise InvalidResponse(
                f"Status {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            data: Dict[str, Any] = response.json()
        except ValueError:
            raise InvalidResponse("Response body is not JSON")

        if not isinstance(data, dict):
            raise InvalidResponse("Response body is not an object")

        status = data.get("status")
        if status and status != "DONE":
            raise InvalidResponse(
                f"Score not available (status {status})",
                details={"status": status, "error": data.get("error")}
            )

        raw_score = data.get("score")
        try:
            score = float(raw_score)
        except (TypeError, ValueError):
            raise InvalidResponse("Missing or malformed score", details={"score": raw_score})

        if score < 0 or not math.isfinite(score):
            raise InvalidResponse("Score out of range", details={"score": raw_score})

        self.logger.info("Fetched passport score", address=identity, score=score)
        return score
