"""Gallery selection, fullscreen and playback state machine."""

from collections.abc import Callable
from enum import Enum
from typing import assert_never

from apartment_viewer.logging import get_logger
from apartment_viewer.models import GalleryState, MediaAsset, MediaKind, NormalizedRecord

logger = get_logger(__name__)


class NavigationKey(str, Enum):
    """Keyboard inputs the gallery reacts to while fullscreen."""

    ESCAPE = "Escape"
    LEFT = "ArrowLeft"
    RIGHT = "ArrowRight"


def initial_state(record: NormalizedRecord) -> GalleryState:
    """Default state for a freshly loaded record: videos first when present."""
    return GalleryState(
        active_media_index=0,
        media_type=MediaKind.VIDEO if record.videos else MediaKind.IMAGE,
    )


class GalleryStateMachine:
    """Owns the gallery state for one NormalizedRecord.

    Every transition replaces the frozen ``GalleryState`` wholesale. Requests
    that do not apply in the current state (wrong media type, index out of
    range, empty bucket) are ignored rather than raised.
    """

    def __init__(
        self,
        record: NormalizedRecord,
        *,
        on_playback_change: Callable[[bool], None] | None = None,
    ) -> None:
        """Initialize the gallery for ``record``.

        Args:
            record: The record whose media this gallery navigates.
            on_playback_change: Called with the new playing flag whenever
                playback starts or stops, so the view can drive the player.
        """
        self._record = record
        self._state = initial_state(record)
        self._on_playback_change = on_playback_change

    @property
    def record(self) -> NormalizedRecord:
        return self._record

    @property
    def state(self) -> GalleryState:
        return self._state

    def _update(self, **changes: object) -> None:
        was_playing = self._state.is_playing
        self._state = self._state.model_copy(update=changes)
        if was_playing != self._state.is_playing and self._on_playback_change is not None:
            self._on_playback_change(self._state.is_playing)

    def _set_active_image(self, index: int) -> None:
        changes: dict[str, object] = {"active_media_index": index}
        target = self._state.fullscreen_target
        # Keep the fullscreen view on the same image as the background gallery.
        if self._state.is_fullscreen and target is not None and target.kind == MediaKind.IMAGE:
            changes["fullscreen_target"] = self._record.images[index]
        self._update(**changes)

    # -- selection ---------------------------------------------------------

    def select_media_type(self, kind: MediaKind) -> None:
        """Switch between the image and video buckets."""
        changes: dict[str, object] = {"media_type": kind}
        bucket = self._record.bucket(kind)
        target = self._state.fullscreen_target
        if kind == MediaKind.IMAGE and target in bucket:
            changes["active_media_index"] = bucket.index(target)
        elif self._state.active_media_index >= len(bucket):
            changes["active_media_index"] = 0
        if kind != MediaKind.VIDEO:
            changes["is_playing"] = False
        self._update(**changes)

    def select_index(self, index: int) -> None:
        """Select image ``index``; ignored outside image mode or when out of range."""
        if self._state.media_type != MediaKind.IMAGE:
            return
        if not 0 <= index < len(self._record.images):
            return
        self._set_active_image(index)

    def next(self) -> None:
        """Advance to the next image, wrapping to the first."""
        count = len(self._record.images)
        if self._state.media_type != MediaKind.IMAGE or count <= 1:
            return
        self._set_active_image((self._state.active_media_index + 1) % count)

    def previous(self) -> None:
        """Retreat to the previous image, wrapping to the last."""
        count = len(self._record.images)
        if self._state.media_type != MediaKind.IMAGE or count <= 1:
            return
        self._set_active_image((self._state.active_media_index - 1) % count)

    def open_image(self, index: int) -> None:
        """Thumbnail click: show image ``index`` and open it fullscreen."""
        if not 0 <= index < len(self._record.images):
            return
        self.select_media_type(MediaKind.IMAGE)
        self.select_index(index)
        self.enter_fullscreen(self._record.images[index])

    # -- fullscreen --------------------------------------------------------

    def enter_fullscreen(self, asset: MediaAsset) -> None:
        """Open ``asset`` fullscreen.

        An image from this record also becomes the active image, switching out
        of video mode if needed, so navigation starts from what is on screen.
        """
        changes: dict[str, object] = {"is_fullscreen": True, "fullscreen_target": asset}
        if asset.kind == MediaKind.IMAGE and asset in self._record.images:
            changes["media_type"] = MediaKind.IMAGE
            changes["active_media_index"] = self._record.images.index(asset)
            changes["is_playing"] = False
        self._update(**changes)

    def exit_fullscreen(self) -> None:
        """Leave fullscreen; any playing video is paused."""
        self._update(is_fullscreen=False, fullscreen_target=None, is_playing=False)

    # -- playback ----------------------------------------------------------

    def toggle_video_playback(self) -> bool:
        """Flip playback while in video mode. Returns the new playing flag."""
        if self._state.media_type != MediaKind.VIDEO or not self._record.videos:
            return self._state.is_playing
        self._update(is_playing=not self._state.is_playing)
        return self._state.is_playing

    def report_video_error(self) -> None:
        """The active video failed to load: fall back to the image gallery."""
        if self._state.media_type != MediaKind.VIDEO:
            return
        logger.info("video_playback_failed", video_count=len(self._record.videos))
        self.select_media_type(MediaKind.IMAGE)

    # -- keyboard ----------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """Apply a keyboard input. Returns True if the key was consumed.

        Keys are only meaningful while fullscreen; arrows only move between images.
        """
        if not self._state.is_fullscreen:
            return False
        try:
            nav = NavigationKey(key)
        except ValueError:
            return False

        match nav:
            case NavigationKey.ESCAPE:
                self.exit_fullscreen()
                return True
            case NavigationKey.LEFT | NavigationKey.RIGHT:
                if self._state.media_type != MediaKind.IMAGE:
                    return False
                if nav == NavigationKey.LEFT:
                    self.previous()
                else:
                    self.next()
                return True
            case _ as unreachable:
                assert_never(unreachable)

    # -- queries for the view ----------------------------------------------

    def active_asset(self) -> MediaAsset | None:
        """The asset for the main viewer, or None when the bucket is empty."""
        bucket = self._record.bucket(self._state.media_type)
        if not bucket:
            return None
        return bucket[self._state.active_media_index]

    def is_thumbnail_active(self, kind: MediaKind, index: int = 0) -> bool:
        if kind == MediaKind.VIDEO:
            return self._state.media_type == MediaKind.VIDEO
        return (
            self._state.media_type == MediaKind.IMAGE
            and self._state.active_media_index == index
        )

    @staticmethod
    def image_alt(index: int) -> str:
        return f"Apartment image {index + 1}"
