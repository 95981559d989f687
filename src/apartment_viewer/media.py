"""Media URL validation and video container classification."""

import re
from typing import Final
from urllib.parse import unquote

from pydantic import AnyUrl, TypeAdapter, ValidationError

from apartment_viewer.logging import get_logger, loggable
from apartment_viewer.models import MediaAsset, MediaKind

logger = get_logger(__name__)

VIDEO_EXTENSIONS: Final = (".mp4", ".mov", ".webm", ".ogg")

VIDEO_MIME_TYPES: Final[dict[str, str]] = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".ogg": "video/ogg",
    ".mov": "video/quicktime",
}
DEFAULT_VIDEO_MIME: Final = "video/mp4"

# A "%" not followed by two hex digits cannot be percent-decoded.
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

_url_adapter: TypeAdapter[AnyUrl] = TypeAdapter(AnyUrl)


def decode_url(raw_url: str) -> str | None:
    """Percent-decode ``raw_url`` once, or None if it has broken escapes."""
    if _BAD_ESCAPE.search(raw_url):
        return None
    try:
        return unquote(raw_url, errors="strict")
    except UnicodeDecodeError:
        return None


def _video_extension(path: str) -> str | None:
    lowered = path.lower()
    for ext in VIDEO_EXTENSIONS:
        if lowered.endswith(ext):
            return ext
    return None


def classify(raw_url: str | None) -> MediaAsset | None:
    """Classify a raw media URL.

    Returns a ``VIDEO`` asset when the decoded URL is well formed and its path
    ends in a recognised video extension, an ``IMAGE`` asset for any other
    well-formed URL, and None when the input is empty or malformed. Never raises.
    """
    if not raw_url or not isinstance(raw_url, str):
        return None

    decoded = decode_url(raw_url)
    if decoded is None:
        logger.debug("media_url_rejected", url=loggable(raw_url), reason="bad_escape")
        return None

    try:
        parsed = _url_adapter.validate_python(decoded)
    except ValidationError:
        logger.debug("media_url_rejected", url=loggable(raw_url), reason="malformed_url")
        return None

    ext = _video_extension(parsed.path or "")
    if ext is None:
        return MediaAsset(url=decoded, kind=MediaKind.IMAGE)
    return MediaAsset(
        url=decoded,
        kind=MediaKind.VIDEO,
        mime_type=VIDEO_MIME_TYPES.get(ext, DEFAULT_VIDEO_MIME),
    )


def classify_video(raw_url: str | None) -> MediaAsset | None:
    """Classify ``raw_url`` as a video, or None if it is not a valid video URL."""
    asset = classify(raw_url)
    if asset is None:
        return None
    if asset.kind != MediaKind.VIDEO:
        logger.debug("video_url_rejected", url=loggable(asset.url), reason="not_a_video_extension")
        return None
    return asset
