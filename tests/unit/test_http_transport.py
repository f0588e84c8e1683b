"""Tests for the httpx chat-completion transport.

HTTP calls are mocked using respx so no network access is needed.
"""

import json

import httpx
import pytest
import respx
from httpx import Response

from docai.errors import (
    ConfigurationError,
    ErrorKind,
    ExhaustedRetriesError,
    ParseError,
    ProviderError,
    TransportError,
)
from docai.models import LLMRequest
from docai.providers.http_transport import HttpTransport
from docai.utils.retry import RetryConfig, RetryScheduler
from mocks.api_mocks import (
    CHAT_COMPLETION_NO_CHOICES,
    CHAT_COMPLETION_SUCCESS,
    ERROR_401,
    ERROR_429,
    ERROR_500,
)

BASE_URL = "https://llm.test/v1"
ENDPOINT = f"{BASE_URL}/chat/completions"


def make_transport(api_key="sk-test", timeout=5.0):
    return HttpTransport(api_key=api_key, base_url=BASE_URL + "/", default_model="gpt-3.5-turbo", timeout=timeout)


def make_request(**params):
    return LLMRequest.coerce({"messages": [{"role": "user", "content": "Extract metadata"}], **params})


class TestHttpTransportSuccess:
    """Test the happy path."""

    def test_endpoint_strips_trailing_slash(self):
        """Test endpoint composition."""
        assert make_transport().endpoint == ENDPOINT

    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_payload_and_parses_body(self):
        """Test request body, headers and response mapping."""
        route = respx.post(ENDPOINT).mock(return_value=Response(200, json=CHAT_COMPLETION_SUCCESS))
        transport = make_transport()

        try:
            response = await transport.send(make_request(max_tokens=64))
        finally:
            await transport.aclose()

        assert response.content == "Invoice from Acme Corp dated 2024-01-15"
        assert response.usage.total_tokens == 53
        sent = route.calls.last.request
        assert sent.headers["Authorization"] == "Bearer sk-test"
        assert sent.headers["Content-Type"] == "application/json"
        body = json.loads(sent.content)
        assert body["model"] == "gpt-3.5-turbo"
        assert body["max_tokens"] == 64
        assert body["messages"] == [{"role": "user", "content": "Extract metadata"}]

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_model_in_body_uses_request_model(self):
        """Test the sent model is reported when the provider omits it."""
        body = dict(CHAT_COMPLETION_SUCCESS)
        body.pop("model")
        respx.post(ENDPOINT).mock(return_value=Response(200, json=body))
        transport = make_transport()

        try:
            response = await transport.send(make_request(model="gpt-4"))
        finally:
            await transport.aclose()

        assert response.model == "gpt-4"


class TestHttpTransportErrors:
    """Test error mapping onto typed errors."""

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test nothing is sent without a key."""
        with pytest.raises(ConfigurationError, match="API key is required"):
            await make_transport(api_key=None).send(make_request())

    @pytest.mark.parametrize(
        "status,body,kind,message",
        [
            (429, ERROR_429, ErrorKind.RATE_LIMITED, "API Error 429: Rate limit reached for requests"),
            (500, ERROR_500, ErrorKind.SERVER_ERROR, "API Error 500: Internal server error"),
            (401, ERROR_401, ErrorKind.CLIENT_ERROR, "API Error 401: Incorrect API key provided"),
        ],
    )
    @pytest.mark.asyncio
    @respx.mock
    async def test_status_errors(self, status, body, kind, message):
        """Test non-2xx statuses become ProviderError with the provider message."""
        respx.post(ENDPOINT).mock(return_value=Response(status, json=body))
        transport = make_transport()

        try:
            with pytest.raises(ProviderError) as exc_info:
                await transport.send(make_request())
        finally:
            await transport.aclose()

        assert exc_info.value.status_code == status
        assert exc_info.value.kind is kind
        assert str(exc_info.value).startswith(message)

    @pytest.mark.asyncio
    @respx.mock
    async def test_status_error_without_json_uses_reason(self):
        """Test the reason phrase stands in for a missing error body."""
        respx.post(ENDPOINT).mock(return_value=Response(502, text="<html>bad</html>"))
        transport = make_transport()

        try:
            with pytest.raises(ProviderError, match="API Error 502: Bad Gateway"):
                await transport.send(make_request())
        finally:
            await transport.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self):
        """Test httpx timeouts become TIMEOUT transport errors."""
        respx.post(ENDPOINT).mock(side_effect=httpx.ConnectTimeout("Connection timed out"))
        transport = make_transport(timeout=2.5)

        try:
            with pytest.raises(TransportError, match="Request timeout after 2.5s") as exc_info:
                await transport.send(make_request())
        finally:
            await transport.aclose()

        assert exc_info.value.kind is ErrorKind.TIMEOUT
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self):
        """Test connection failures become NETWORK transport errors."""
        respx.post(ENDPOINT).mock(side_effect=httpx.ConnectError("Connection refused"))
        transport = make_transport()

        try:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(make_request())
        finally:
            await transport.aclose()

        assert exc_info.value.kind is ErrorKind.NETWORK

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_choices(self):
        """Test a 2xx body without choices is a parse error."""
        respx.post(ENDPOINT).mock(return_value=Response(200, json=CHAT_COMPLETION_NO_CHOICES))
        transport = make_transport()

        try:
            with pytest.raises(ParseError, match="no choices found"):
                await transport.send(make_request())
        finally:
            await transport.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json(self):
        """Test a 2xx non-JSON body is a parse error."""
        respx.post(ENDPOINT).mock(return_value=Response(200, text="not json"))
        transport = make_transport()

        try:
            with pytest.raises(ParseError):
                await transport.send(make_request())
        finally:
            await transport.aclose()


class TestHttpTransportRetryDecisions:
    """Test which provider replies are retried, judged by their error text."""

    @staticmethod
    async def _attempts_for(status, message):
        route = respx.post(ENDPOINT).mock(return_value=Response(status, json={"error": {"message": message}}))
        transport = make_transport()
        scheduler = RetryScheduler(RetryConfig(max_retries=3, retry_delay=0.0, max_delay=0.0))

        try:
            with pytest.raises(ExhaustedRetriesError) as exc_info:
                await scheduler.run(lambda: transport.send(make_request()))
        finally:
            await transport.aclose()

        assert exc_info.value.attempts == route.call_count
        return exc_info.value

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_status_without_retryable_text_is_not_retried(self):
        """Test a 501 reporting "Not Implemented" fails on the first attempt."""
        error = await self._attempts_for(501, "Not Implemented")

        assert error.attempts == 1
        assert error.kind is ErrorKind.CLIENT_ERROR

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_status_reporting_timeout_is_retried(self):
        """Test a 400 whose message mentions a timeout uses every attempt."""
        error = await self._attempts_for(400, "Upstream request timeout")

        assert error.attempts == 3
        assert error.kind is ErrorKind.TIMEOUT
        assert "API Error 400: Upstream request timeout" in str(error)

    @pytest.mark.asyncio
    @respx.mock
    async def test_service_unavailable_is_retried(self):
        """Test a 503 reporting "Service Unavailable" uses every attempt."""
        error = await self._attempts_for(503, "Service Unavailable")

        assert error.attempts == 3
        assert error.kind is ErrorKind.SERVER_ERROR


class TestHttpTransportHealthCheck:
    """Test the health check helper."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_healthy(self):
        """Test a successful probe."""
        respx.post(ENDPOINT).mock(return_value=Response(200, json=CHAT_COMPLETION_SUCCESS))
        transport = make_transport()

        try:
            result = await transport.health_check_async()
        finally:
            await transport.aclose()

        assert result["healthy"] is True
        assert result["status"] == "ok"

    @pytest.mark.asyncio
    @respx.mock
    async def test_unhealthy(self):
        """Test a failing probe is reported, not raised."""
        respx.post(ENDPOINT).mock(return_value=Response(401, json=ERROR_401))
        transport = make_transport()

        try:
            result = await transport.health_check_async()
        finally:
            await transport.aclose()

        assert result["healthy"] is False
        assert "401" in result["details"]["error"]
