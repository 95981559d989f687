"""Per-mount controller: fetch, normalize and publish gallery state."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

from apartment_viewer.config import Settings
from apartment_viewer.fetcher import (
    ApartmentFetcher,
    CancellationToken,
    FetchError,
    FetchErrorKind,
)
from apartment_viewer.gallery import GalleryStateMachine
from apartment_viewer.logging import configure_logging, get_logger
from apartment_viewer.models import GalleryState, NormalizedRecord
from apartment_viewer.normalizer import normalize

logger = get_logger(__name__)


class RecordFetcher(Protocol):
    async def fetch(self, identifier: str, token: CancellationToken) -> dict[str, Any]: ...


@dataclass(frozen=True)
class SessionSnapshot:
    """What the view renders at a given moment."""

    identifier: str | None = None
    loading: bool = False
    record: NormalizedRecord | None = None
    gallery: GalleryState | None = None
    error: FetchError | None = None

    @property
    def can_retry(self) -> bool:
        return self.error is not None and self.error.retryable


class ApartmentSession:
    """Owns at most one fetch cycle and the record/gallery it produced.

    Starting a new cycle cancels the previous one before issuing the new
    request, so a superseded response can never overwrite newer state.
    """

    def __init__(self, fetcher: RecordFetcher) -> None:
        self._fetcher = fetcher
        self._identifier: str | None = None
        self._token: CancellationToken | None = None
        self._loading = False
        self._record: NormalizedRecord | None = None
        self._gallery: GalleryStateMachine | None = None
        self._error: FetchError | None = None

    @property
    def gallery(self) -> GalleryStateMachine | None:
        """The live gallery for the current record, for view-driven transitions."""
        return self._gallery

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            identifier=self._identifier,
            loading=self._loading,
            record=self._record,
            gallery=self._gallery.state if self._gallery else None,
            error=self._error,
        )

    def _cancel_in_flight(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None

    async def load(self, identifier: str) -> SessionSnapshot:
        """Run a fetch cycle for ``identifier`` and publish its result.

        Returns the snapshot as of the end of this cycle. A cycle that was
        superseded or cancelled leaves state untouched.
        """
        self._cancel_in_flight()
        token = CancellationToken()
        self._token = token
        self._identifier = identifier
        self._record = None
        self._gallery = None
        self._error = None
        self._loading = True

        try:
            raw = await self._fetcher.fetch(identifier, token)
        except FetchError as e:
            if e.kind == FetchErrorKind.CANCELLED or token.cancelled:
                logger.debug("stale_cycle_discarded", identifier=identifier)
                return self.snapshot()
            self._error = e
            self._loading = False
            self._token = None
            logger.warning(
                "apartment_load_failed",
                identifier=identifier,
                kind=e.kind.value,
                status_code=e.status_code,
                retryable=e.retryable,
            )
            return self.snapshot()

        if token.cancelled:
            logger.debug("stale_cycle_discarded", identifier=identifier)
            return self.snapshot()

        record = normalize(raw)
        self._record = record
        self._gallery = GalleryStateMachine(record)
        self._loading = False
        self._token = None
        logger.info(
            "apartment_loaded",
            identifier=identifier,
            images=len(record.images),
            videos=len(record.videos),
        )
        return self.snapshot()

    async def retry(self) -> bool:
        """Re-run the last cycle if it failed transiently. Returns whether it ran."""
        if self._identifier is None or self._error is None or not self._error.retryable:
            return False
        await self.load(self._identifier)
        return True

    def unmount(self) -> None:
        """Cancel any in-flight cycle; the view is going away."""
        self._cancel_in_flight()
        self._loading = False


@asynccontextmanager
async def open_session(settings: Settings | None = None) -> AsyncIterator[ApartmentSession]:
    """Mount a viewer: configure logging, open the transports, tear both down.

    Args:
        settings: Viewer settings. Defaults to ``Settings()``, which reads the
            ``APARTMENT_VIEWER_*`` environment.
    """
    settings = settings or Settings()
    configure_logging(json_output=settings.log_json)
    async with ApartmentFetcher(settings) as fetcher:
        session = ApartmentSession(fetcher)
        try:
            yield session
        finally:
            session.unmount()
