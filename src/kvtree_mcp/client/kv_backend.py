"""Flat key-value backends the tree is stored in."""

import logging
import time
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx

from ..config import CloudflareKVConfiguration
from ..models import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    ServerError,
    StoreError,
    StoreTimeoutError,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class KVBackend(Protocol):
    """Single-key get/put/delete; no transactions."""

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryKVBackend:
    """Dict-backed store.

    Args:
        min_write_interval: If set, writing the same key again within this many
            seconds raises ``RateLimitError``, like Workers KV's one write per
            second per key.
    """

    def __init__(self, min_write_interval: float | None = None):
        self._data: dict[str, str] = {}
        self._last_write: dict[str, float] = {}
        self.min_write_interval = min_write_interval

    def _check_write_rate(self, key: str) -> None:
        if not self.min_write_interval:
            return
        now = time.monotonic()
        last = self._last_write.get(key)
        if last is not None and now - last < self.min_write_interval:
            raise RateLimitError(retry_after=self.min_write_interval - (now - last))
        self._last_write[key] = now

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._check_write_rate(key)
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._check_write_rate(key)
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)


class CloudflareKVBackend:
    """Workers KV namespace accessed through the Cloudflare REST API."""

    def __init__(self, config: CloudflareKVConfiguration, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self.base_url = config.namespace_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {
                "Authorization": f"Bearer {self.config.api_token.get_secret_value()}",
                "Accept": "application/json",
            }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.config.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CloudflareKVBackend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @staticmethod
    def _value_url(key: str) -> str:
        return f"/values/{quote(key, safe='')}"

    def _handle_response(self, response: httpx.Response) -> None:
        """Raise the classified error for a failed response."""
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid API token or unauthorized access")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                parsed = float(retry_after) if retry_after else None
            except ValueError:
                parsed = None
            raise RateLimitError(retry_after=parsed)

        if response.status_code >= 500:
            raise ServerError(response.status_code)

        if response.status_code >= 400:
            try:
                errors = response.json().get("errors") or []
                message = "; ".join(str(e.get("message", e)) for e in errors) or "KV request failed"
            except (ValueError, AttributeError):
                message = f"KV error: {response.status_code}"
            raise StoreError(message)

    async def _request(self, method: str, key: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, self._value_url(key), **kwargs)
        except httpx.TimeoutException as err:
            raise StoreTimeoutError(f"{method} {key}") from err
        except httpx.TransportError as err:
            raise NetworkError(f"{method} {key} failed: {err}") from err

    async def get(self, key: str) -> str | None:
        response = await self._request("GET", key)
        if response.status_code == 404:
            return None
        self._handle_response(response)
        return response.content.decode("utf-8")

    async def put(self, key: str, value: str) -> None:
        response = await self._request(
            "PUT",
            key,
            content=value.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        self._handle_response(response)

    async def delete(self, key: str) -> None:
        response = await self._request("DELETE", key)
        if response.status_code == 404:
            logger.debug(f"Delete of missing key {key} ignored")
            return
        self._handle_response(response)
