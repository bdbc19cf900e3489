"""Tests for inference providers."""

import json
from unittest.mock import patch

import httpx
import pytest

from modelpass.services.invocation import (
    EchoProvider,
    HttpInferenceProvider,
    get_invocation_provider,
)


def _http(handler):
    return HttpInferenceProvider(
        base_url="https://inference.test/",
        api_key="ik",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestGetInvocationProvider:
    def test_http(self):
        assert isinstance(get_invocation_provider("http"), HttpInferenceProvider)

    def test_echo(self):
        assert isinstance(get_invocation_provider("ECHO"), EchoProvider)

    def test_uses_settings(self):
        with patch("modelpass.services.invocation.settings") as mock_settings:
            mock_settings.INFERENCE_PROVIDER = "echo"
            assert isinstance(get_invocation_provider(), EchoProvider)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unsupported inference provider"):
            get_invocation_provider("grpc")


class TestHttpInferenceProvider:
    @pytest.mark.asyncio
    async def test_success(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(200, json={"generated_text": "positive"})

        result = await _http(handler).invoke("m1", "great movie", {"max_tokens": 5})

        assert result.success is True
        assert result.output == {"generated_text": "positive"}
        assert result.latency_ms >= 0
        request = captured["request"]
        assert str(request.url) == "https://inference.test/models/m1"
        assert request.headers["Authorization"] == "Bearer ik"
        assert json.loads(request.content) == {
            "inputs": "great movie",
            "parameters": {"max_tokens": 5},
        }

    @pytest.mark.asyncio
    async def test_upstream_error(self):
        result = await _http(lambda request: httpx.Response(500, text="boom")).invoke("m1", "x")
        assert result.success is False
        assert result.error_kind == "upstream_error"
        assert "500" in result.message

    @pytest.mark.asyncio
    async def test_upstream_rate_limited(self):
        result = await _http(lambda request: httpx.Response(429)).invoke("m1", "x")
        assert result.error_kind == "upstream_rate_limited"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        result = await _http(handler).invoke("m1", "x")
        assert result.success is False
        assert result.error_kind == "timeout"

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await _http(handler).invoke("m1", "x")
        assert result.error_kind == "network_error"

    @pytest.mark.asyncio
    async def test_non_json_output(self):
        result = await _http(lambda request: httpx.Response(200, text="<html>")).invoke("m1", "x")
        assert result.error_kind == "invalid_response"


class TestEchoProvider:
    @pytest.mark.asyncio
    async def test_echoes_inputs(self):
        result = await EchoProvider().invoke("m1", {"text": "hi"})
        assert result.success is True
        assert result.output == {"resource_id": "m1", "generated_text": {"text": "hi"}}
