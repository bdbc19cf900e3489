"""Inference over HTTP: ``POST {base_url}/models/{resource_id}`` with JSON inputs."""

import logging
import time
from typing import Any

import httpx

from modelpass.core.config import settings
from modelpass.services.invocation.base import InvocationProviderBase, InvocationResult

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class HttpInferenceProvider(InvocationProviderBase):
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.INFERENCE_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.INFERENCE_API_KEY
        self.timeout = timeout or settings.INFERENCE_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "http"

    async def invoke(
        self, resource_id: str, inputs: Any, parameters: dict[str, Any] | None = None
    ) -> InvocationResult:
        url = f"{self.base_url}/models/{resource_id}"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {"inputs": inputs, "parameters": parameters or {}}

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException:
            logger.warning("Inference timed out for %s", resource_id)
            return InvocationResult.failure(
                "timeout", "Inference request timed out", _elapsed_ms(started)
            )
        except httpx.HTTPError as exc:
            logger.warning("Inference transport error for %s: %s", resource_id, exc)
            return InvocationResult.failure("network_error", str(exc), _elapsed_ms(started))

        latency_ms = _elapsed_ms(started)
        if response.status_code == 429:
            return InvocationResult.failure(
                "upstream_rate_limited", "Upstream provider is rate limiting", latency_ms
            )
        if not 200 <= response.status_code < 300:
            logger.warning(
                "Inference for %s returned HTTP %d", resource_id, response.status_code
            )
            return InvocationResult.failure(
                "upstream_error",
                f"Upstream provider returned HTTP {response.status_code}",
                latency_ms,
            )

        try:
            output = response.json()
        except ValueError:
            return InvocationResult.failure(
                "invalid_response", "Upstream provider returned non-JSON output", latency_ms
            )
        return InvocationResult.ok(output, latency_ms)
