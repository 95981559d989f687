"""Apartment record fetcher with a single-hop transport fallback.

The primary transport is httpx. When it fails at the transport level the
request is repeated once over a curl_cffi session with browser
impersonation. Definitive server answers (non-2xx) are never retried.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable, Coroutine
from enum import Enum
from typing import Any, Final, TypeVar

import httpx
from curl_cffi.requests import AsyncSession
from curl_cffi.requests.exceptions import RequestException as CurlRequestException
from curl_cffi.requests.exceptions import Timeout as CurlTimeout

from apartment_viewer.config import Settings
from apartment_viewer.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

JSON_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class FetchErrorKind(str, Enum):
    """Terminal outcome of a failed fetch cycle."""

    TIMEOUT = "timeout"
    NETWORK_UNREACHABLE = "network_unreachable"
    SERVER_STATUS = "server_status"
    CANCELLED = "cancelled"
    MALFORMED_RESPONSE = "malformed_response"

    @property
    def is_transient(self) -> bool:
        """Whether the failure is attributable to the network rather than the server."""
        return self in (FetchErrorKind.TIMEOUT, FetchErrorKind.NETWORK_UNREACHABLE)


# A malformed body from the primary transport is treated as a transport fault
# and gets the fallback hop; it is never retried beyond that.
_FALLBACK_KINDS: Final = frozenset(
    {
        FetchErrorKind.TIMEOUT,
        FetchErrorKind.NETWORK_UNREACHABLE,
        FetchErrorKind.MALFORMED_RESPONSE,
    }
)


class FetchError(Exception):
    """A fetch cycle failed."""

    def __init__(
        self,
        kind: FetchErrorKind,
        *,
        url: str = "",
        status_code: int | None = None,
        detail: str = "",
    ) -> None:
        self.kind = kind
        self.url = url
        self.status_code = status_code
        self.detail = detail
        super().__init__(str(self))

    @property
    def retryable(self) -> bool:
        """Whether the caller may offer a manual retry."""
        return self.kind.is_transient

    def __str__(self) -> str:
        parts = [self.kind.value]
        if self.status_code is not None:
            parts.append(str(self.status_code))
        if self.detail:
            parts.append(self.detail)
        return ": ".join(parts)

    def __repr__(self) -> str:
        return (
            f"FetchError(kind={self.kind.value!r}, "
            f"status_code={self.status_code!r}, url={self.url!r})"
        )


def triggers_fallback(error: FetchError) -> bool:
    """Whether a primary-transport failure is eligible for the fallback hop."""
    return error.kind in _FALLBACK_KINDS


class CancellationToken:
    """Cooperative cancellation signal for one fetch cycle."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


async def attempt_with_fallback(
    primary: Callable[[], Awaitable[T]],
    secondary: Callable[[], Awaitable[T]],
    is_transient: Callable[[FetchError], bool] = triggers_fallback,
) -> T:
    """Run ``primary``; on a transient failure run ``secondary`` exactly once.

    If the secondary attempt also fails, the primary's error is raised (with the
    secondary's error chained as its cause). Cancellation always propagates as is.
    """
    try:
        return await primary()
    except FetchError as primary_error:
        if not is_transient(primary_error):
            raise
        logger.warning(
            "primary_transport_failed",
            url=primary_error.url,
            kind=primary_error.kind.value,
            error=primary_error.detail,
        )
        try:
            return await secondary()
        except FetchError as fallback_error:
            if fallback_error.kind == FetchErrorKind.CANCELLED:
                raise
            logger.warning(
                "fallback_transport_failed",
                url=fallback_error.url,
                kind=fallback_error.kind.value,
                status_code=fallback_error.status_code,
                error=fallback_error.detail,
            )
            raise primary_error from fallback_error


def parse_json_body(status_code: int, content: bytes, url: str) -> dict[str, Any]:
    """Check the status and decode a JSON object body.

    Raises:
        FetchError: ``SERVER_STATUS`` for non-2xx, ``MALFORMED_RESPONSE`` when the
            body is not a JSON object.
    """
    if not 200 <= status_code < 300:
        raise FetchError(FetchErrorKind.SERVER_STATUS, url=url, status_code=status_code)
    try:
        payload = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FetchError(FetchErrorKind.MALFORMED_RESPONSE, url=url, detail=str(e)) from e
    if not isinstance(payload, dict):
        raise FetchError(
            FetchErrorKind.MALFORMED_RESPONSE,
            url=url,
            detail=f"expected a JSON object, got {type(payload).__name__}",
        )
    return payload


class ApartmentFetcher:
    """Fetches a single apartment record by identifier."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the fetcher.

        Args:
            settings: Base URL, timeout and proxy. Defaults to ``Settings()``.
        """
        self._settings = settings or Settings()
        self._timeout = self._settings.request_timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._curl_session: AsyncSession | None = None  # type: ignore[type-arg]

    async def __aenter__(self) -> "ApartmentFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers=JSON_HEADERS,
                proxy=self._settings.proxy_url or None,
            )
        return self._client

    async def _get_curl_session(self) -> AsyncSession:  # type: ignore[type-arg]
        """Get or create the curl_cffi session used for the fallback hop."""
        if self._curl_session is None:
            self._curl_session = AsyncSession()
        return self._curl_session

    async def _fetch_primary(self, url: str) -> dict[str, Any]:
        client = await self._get_client()
        try:
            async with asyncio.timeout(self._timeout):
                response = await client.get(url)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise FetchError(FetchErrorKind.TIMEOUT, url=url, detail=str(e)) from e
        except httpx.DecodingError as e:
            raise FetchError(FetchErrorKind.MALFORMED_RESPONSE, url=url, detail=str(e)) from e
        except httpx.RequestError as e:
            raise FetchError(FetchErrorKind.NETWORK_UNREACHABLE, url=url, detail=str(e)) from e
        return parse_json_body(response.status_code, response.content, url)

    async def _fetch_secondary(self, url: str) -> dict[str, Any]:
        session = await self._get_curl_session()
        kwargs: dict[str, object] = {
            "impersonate": "chrome",
            "headers": JSON_HEADERS,
            "timeout": self._timeout,
        }
        if self._settings.proxy_url:
            kwargs["proxy"] = self._settings.proxy_url
        try:
            async with asyncio.timeout(self._timeout):
                response = await session.get(url, **kwargs)  # type: ignore[arg-type]
        except (TimeoutError, CurlTimeout) as e:
            raise FetchError(FetchErrorKind.TIMEOUT, url=url, detail=str(e)) from e
        except CurlRequestException as e:
            raise FetchError(FetchErrorKind.NETWORK_UNREACHABLE, url=url, detail=str(e)) from e
        return parse_json_body(response.status_code, response.content, url)

    async def _run_cancellable(
        self,
        attempt: Coroutine[Any, Any, T],
        token: CancellationToken,
        url: str,
    ) -> T:
        """Await ``attempt`` unless ``token`` fires first, in which case abort it."""
        if token.cancelled:
            attempt.close()
            raise FetchError(FetchErrorKind.CANCELLED, url=url)

        attempt_task = asyncio.ensure_future(attempt)
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait(
                {attempt_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not attempt_task.done():
                attempt_task.cancel()
            await asyncio.gather(attempt_task, return_exceptions=True)

        # A response that lands after cancellation still belongs to a stale cycle.
        if token.cancelled or attempt_task.cancelled():
            raise FetchError(FetchErrorKind.CANCELLED, url=url)
        return attempt_task.result()

    async def fetch(self, identifier: str, token: CancellationToken) -> dict[str, Any]:
        """Fetch the raw apartment record for ``identifier``.

        Args:
            identifier: Apartment identifier, used as the final path segment.
            token: Cancellation token for this fetch cycle.

        Returns:
            The decoded JSON body, verbatim.

        Raises:
            FetchError: On cancellation, a non-2xx status, or when both
                transports fail (carrying the primary transport's error).
        """
        url = self._settings.apartment_url(identifier)
        logger.debug("apartment_fetch_started", identifier=identifier, url=url)
        try:
            payload = await attempt_with_fallback(
                lambda: self._run_cancellable(self._fetch_primary(url), token, url),
                lambda: self._run_cancellable(self._fetch_secondary(url), token, url),
            )
        except FetchError as e:
            if e.kind == FetchErrorKind.CANCELLED:
                logger.debug("fetch_cancelled", identifier=identifier)
            raise
        logger.info("apartment_fetched", identifier=identifier)
        return payload

    async def close(self) -> None:
        """Close the HTTP clients."""
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._curl_session:
            await self._curl_session.close()
            self._curl_session = None
