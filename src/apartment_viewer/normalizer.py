"""Reshape a raw apartment payload into a display-ready record."""

import json
import math
from typing import Any, Final

from apartment_viewer.logging import get_logger, loggable
from apartment_viewer.media import classify_video
from apartment_viewer.models import (
    DEFAULT_APARTMENT_NAME,
    DEFAULT_DESCRIPTION,
    AgentInfo,
    MediaAsset,
    MediaKind,
    NormalizedRecord,
    OptionalFees,
)

logger = get_logger(__name__)

AMENITY_ICONS: Final[dict[str, str]] = {
    "WiFi": "wifi",
    "Pool": "swimming-pool",
    "Parking": "parking",
}


def amenity_icon(name: str) -> str | None:
    """Icon key for a known amenity, or None."""
    return AMENITY_ICONS.get(name)


def parse_amenities(raw: Any) -> list[Any]:
    """Unpack amenities that arrive as a single JSON-encoded string.

    ``['["WiFi","Pool"]']`` becomes ``["WiFi", "Pool"]``. Anything else, including
    a string that fails to parse as a list of strings, is returned unchanged.
    """
    if not isinstance(raw, list):
        return []
    if not raw:
        return raw

    first = raw[0]
    if not (isinstance(first, str) and first.startswith("[")):
        return raw

    try:
        parsed = json.loads(first)
    except json.JSONDecodeError:
        logger.debug("amenities_parse_failed", value=loggable(first))
        return raw
    if not isinstance(parsed, list) or not all(isinstance(a, str) for a in parsed):
        logger.debug("amenities_unexpected_shape", value=loggable(first))
        return raw
    return parsed


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _count(value: Any) -> int:
    """Coerce a count field to a non-negative int, defaulting to 0."""
    if isinstance(value, bool):
        return 0
    try:
        count = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(count, 0)


def _fee(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    try:
        fee = float(value)
    except (TypeError, ValueError):
        return 0
    return fee if math.isfinite(fee) and fee > 0 else 0


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def normalize(raw: dict[str, Any]) -> NormalizedRecord:
    """Build a NormalizedRecord from the raw JSON payload.

    Images are kept as given. Videos go through the classifier and any URL that
    is not a well-formed video link is dropped.
    """
    media = _as_dict(raw.get("media"))

    images = tuple(
        MediaAsset(url=url, kind=MediaKind.IMAGE)
        for url in _as_list(media.get("images"))
        if isinstance(url, str)
    )
    videos = tuple(
        asset
        for asset in (classify_video(url) for url in _as_list(media.get("videos")))
        if asset is not None
    )

    agent_raw = _as_dict(raw.get("agentId"))
    fees_raw = _as_dict(raw.get("optionalFees"))

    return NormalizedRecord(
        apartment_name=_text(raw.get("apartmentName"), DEFAULT_APARTMENT_NAME),
        description=_text(raw.get("description"), DEFAULT_DESCRIPTION),
        address=_text(raw.get("address")),
        city=_text(raw.get("city")),
        state=_text(raw.get("state")),
        guests=_count(raw.get("guests")),
        beds=_count(raw.get("beds")),
        bedrooms=_count(raw.get("bedrooms")),
        bathrooms=_count(raw.get("bathrooms")),
        amenities=parse_amenities(raw.get("amenities")),
        images=images,
        videos=videos,
        agent=AgentInfo(
            first_name=_text(agent_raw.get("firstName")),
            last_name=_text(agent_raw.get("lastName")),
        ),
        optional_fees=OptionalFees(
            party_fee=_fee(fees_raw.get("partyFee")),
            movie_shoot_fee=_fee(fees_raw.get("movieShootFee")),
            photo_shoot_fee=_fee(fees_raw.get("photoShootFee")),
        ),
    )
