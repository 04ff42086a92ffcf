"""Async HTTP client for envelope-style action APIs.

The equipment database is fronted by a web app that takes
GET ?action=<name>&k=v or POST {"action": <name>, ...} and answers with
{"success": bool, "data": ..., "error": "..."}.

Retry policy: 5xx and network failures are retried with exponential backoff.
Timeouts, 4xx and success=false are surfaced immediately.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

import httpx
import structlog

logger = structlog.get_logger(__name__)


class ActionClientError(Exception):
    """Base class for action API failures."""

    def __init__(self, action: str, message: str):
        super().__init__(message)
        self.action = action


class TransportTimeoutError(ActionClientError):
    """Request exceeded the configured timeout. Never retried."""

    def __init__(self, action: str, elapsed: float):
        super().__init__(action, f"{action}: timeout after {elapsed:.1f}s")
        self.elapsed = elapsed


class TransportNetworkError(ActionClientError):
    """Connection/DNS failure that persisted through all retries."""


class UpstreamHTTPError(ActionClientError):
    """Non-2xx response (4xx immediately, 5xx after retries)."""

    def __init__(self, action: str, status_code: int, reason: str = ""):
        super().__init__(action, f"{action}: HTTP {status_code} {reason}".rstrip())
        self.status_code = status_code


class BusinessError(ActionClientError):
    """Upstream answered success=false."""


class InvalidEnvelopeError(ActionClientError):
    """Body is not JSON or lacks the success flag."""


class ActionClient:
    """Envelope-unwrapping client with timeout and retry/backoff."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        retry_count: int = 3,
        base_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        try:
            url = httpx.URL(base_url) if base_url else None
        except httpx.InvalidURL:
            url = None
        if url is None or url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"Invalid action API URL: {base_url!r}")

        self.base_url = base_url
        self.timeout = timeout
        self.retry_count = retry_count
        self.base_delay = base_delay
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )

    async def get(self, action: str, params: dict[str, Any] | None = None) -> Any:
        """Read-only call. None-valued params are dropped.

        Args:
            action: Upstream action name, e.g. "getAll".
            params: Extra query members.

        Returns:
            The envelope's data member.
        """
        query = {"action": action}
        for key, value in (params or {}).items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            query[key] = value if isinstance(value, str) else str(value)

        return await self._request_with_retry("GET", action, params=query)

    async def post(self, action: str, body: dict[str, Any] | None = None) -> Any:
        """Write call. The action name is merged into the JSON body."""
        payload = {"action": action, **(body or {})}
        return await self._request_with_retry("POST", action, json=payload)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_with_retry(self, method: str, action: str, **kwargs) -> Any:
        for attempt in range(self.retry_count + 1):
            started = time.monotonic()
            try:
                response = await self._client.request(method, self.base_url, **kwargs)

            except httpx.TimeoutException as e:
                elapsed = time.monotonic() - started
                logger.error("transport.timeout", action=action, elapsed_s=round(elapsed, 3))
                raise TransportTimeoutError(action, elapsed) from e

            except httpx.TransportError as e:
                if attempt >= self.retry_count:
                    logger.error("transport.network_failed", action=action, attempts=attempt + 1, error=str(e))
                    raise TransportNetworkError(action, f"{action}: {e}") from e
                await self._backoff(action, attempt, reason=str(e) or type(e).__name__)
                continue

            status = response.status_code
            if status >= 500:
                if attempt >= self.retry_count:
                    logger.error("transport.http_error", action=action, status=status, attempts=attempt + 1)
                    raise UpstreamHTTPError(action, status, response.reason_phrase)
                await self._backoff(action, attempt, reason=f"HTTP {status}")
                continue

            if status >= 400:
                logger.error("transport.http_error", action=action, status=status)
                raise UpstreamHTTPError(action, status, response.reason_phrase)

            return self._unwrap(action, response)

        # range() always ends in a return or raise above
        raise TransportNetworkError(action, f"{action}: max retries exceeded")

    async def _backoff(self, action: str, attempt: int, reason: str) -> None:
        delay = self.base_delay * (2 ** attempt)
        logger.warning(
            "transport.retry",
            action=action,
            attempt=attempt + 1,
            max_retries=self.retry_count,
            delay_s=delay,
            reason=reason,
        )
        await self._sleep(delay)

    def _unwrap(self, action: str, response: httpx.Response) -> Any:
        try:
            envelope = response.json()
        except ValueError as e:
            raise InvalidEnvelopeError(action, f"{action}: response is not JSON") from e

        if not isinstance(envelope, dict) or "success" not in envelope:
            raise InvalidEnvelopeError(action, f"{action}: response has no success flag")

        if not envelope["success"]:
            message = envelope.get("error") or f"{action}: unknown error"
            logger.warning("transport.business_error", action=action, error=message)
            raise BusinessError(action, message)

        return envelope.get("data")
