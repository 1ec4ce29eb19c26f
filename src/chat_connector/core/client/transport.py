"""
HTTP transport for OpenAI-compatible chat-completion endpoints.

The orchestrator only depends on the ChatTransport protocol; HttpxChatTransport
is the httpx implementation shipped with the package.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import httpx

from .errors import (
    ConfigurationError,
    ConnectorError,
    InvalidResponseError,
    NetworkError,
    QuotaExceededError,
    TimeoutError,
    error_for_status,
)

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class ChatTransport(Protocol):
    """Sends request payloads and returns decoded response bodies."""

    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def stream(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        ...


class HttpxChatTransport:
    """ChatTransport backed by an ``httpx.AsyncClient``."""

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        *,
        token: Optional[str] = None,
        deployment: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: float = 100.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize transport.

        Args:
            endpoint: Base URL of the service
            api_key: Key sent in the ``api-key`` header (Bearer when no deployment is set)
            token: Bearer token, takes precedence over api_key
            deployment: Deployment name; requests go to the deployment-scoped path
            api_version: ``api-version`` query parameter
            timeout: Request timeout in seconds
            user_agent: User-Agent header value
            client: Pre-built client, mainly for tests
        """
        if not endpoint:
            raise ConfigurationError("An endpoint is required", config_field="endpoint")

        self.endpoint = endpoint.rstrip("/")
        self.deployment = deployment
        self.api_version = api_version
        self.timeout = timeout

        headers = {"Content-Type": "application/json"}
        if user_agent:
            headers["User-Agent"] = user_agent
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif api_key:
            if deployment:
                headers["api-key"] = api_key
            else:
                headers["Authorization"] = f"Bearer {api_key}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._headers = headers

    @property
    def url(self) -> str:
        if self.deployment:
            return f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"
        return f"{self.endpoint}/chat/completions"

    @property
    def params(self) -> Dict[str, str]:
        return {"api-version": self.api_version} if self.api_version else {}

    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a payload and return the decoded JSON body."""
        logger.debug(f"Sending chat completion request to {self.url}")
        try:
            response = await self._client.post(
                self.url, json=payload, headers=self._headers, params=self.params
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._map_http_error(e)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request to {self.url} timed out", timeout_seconds=self.timeout, original_error=e)
        except httpx.RequestError as e:
            raise NetworkError(f"Request to {self.url} failed: {e}", original_error=e)

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"Response body is not JSON: {e}", original_error=e)

    async def stream(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """POST a payload and yield each decoded server-sent event until ``[DONE]``."""
        logger.debug(f"Opening chat completion stream to {self.url}")
        try:
            async with self._client.stream(
                "POST", self.url, json=payload, headers=self._headers, params=self.params
            ) as response:
                if response.is_error:
                    await response.aread()
                response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line.startswith(SSE_DATA_PREFIX):
                        continue
                    data = line[len(SSE_DATA_PREFIX):].strip()
                    if data == SSE_DONE:
                        break
                    if not data:
                        continue
                    try:
                        yield json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping undecodable stream event: {data[:80]}")
                        continue

        except httpx.HTTPStatusError as e:
            raise self._map_http_error(e)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Stream from {self.url} timed out", timeout_seconds=self.timeout, original_error=e)
        except httpx.RequestError as e:
            raise NetworkError(f"Stream from {self.url} failed: {e}", original_error=e)

    def _map_http_error(self, error: httpx.HTTPStatusError) -> ConnectorError:
        """Map HTTP errors to connector error types."""
        response = error.response
        mapped = error_for_status(response.status_code, _error_message(response), original_error=error)
        if isinstance(mapped, QuotaExceededError):
            retry_after = response.headers.get("retry-after")
            if retry_after and retry_after.isdigit():
                mapped.details["retry_after"] = int(retry_after)
        logger.error(f"Chat completion request failed: {mapped}")
        return mapped

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxChatTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _error_message(response: httpx.Response) -> str:
    """Prefer the service's ``error.message``; fall back to the raw body."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        message = error.get("message") or response.text
        code = error.get("code")
        return f"{message} [{code}]" if code else message
    return response.text or f"HTTP {response.status_code}"
