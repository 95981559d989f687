"""Pydantic models for apartment records and gallery state."""

from enum import Enum
from typing import Any, Final, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_APARTMENT_NAME: Final = "Apartment Name"
DEFAULT_DESCRIPTION: Final = "No description available."
MISSING_AGENT_NAME: Final = "Agent Name Not Available"
CURRENCY_SYMBOL: Final = "₦"


class MediaKind(str, Enum):
    """Kind of media asset shown in the gallery."""

    IMAGE = "image"
    VIDEO = "video"


class MediaAsset(BaseModel):
    """A single displayable media reference."""

    model_config = ConfigDict(frozen=True)

    url: str
    kind: MediaKind
    mime_type: str | None = Field(default=None, description="Set for videos only")

    @model_validator(mode="after")
    def _mime_matches_kind(self) -> Self:
        if self.kind == MediaKind.VIDEO and not self.mime_type:
            raise ValueError("video assets require a mime_type")
        if self.kind == MediaKind.IMAGE and self.mime_type is not None:
            raise ValueError("image assets do not carry a mime_type")
        return self


class AgentInfo(BaseModel):
    """The agent who shared the apartment."""

    model_config = ConfigDict(frozen=True)

    first_name: str = ""
    last_name: str = ""

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or MISSING_AGENT_NAME


class OptionalFees(BaseModel):
    """Extra fees charged for special use of the apartment."""

    model_config = ConfigDict(frozen=True)

    party_fee: float = Field(default=0, ge=0)
    movie_shoot_fee: float = Field(default=0, ge=0)
    photo_shoot_fee: float = Field(default=0, ge=0)

    @staticmethod
    def formatted(fee: float) -> str:
        """Format a fee with the currency symbol and thousands separators."""
        if float(fee).is_integer():
            return f"{CURRENCY_SYMBOL}{int(fee):,}"
        return f"{CURRENCY_SYMBOL}{fee:,}"


class NormalizedRecord(BaseModel):
    """Display-ready apartment record.

    Created once per fetch and replaced wholesale on the next one.
    """

    model_config = ConfigDict(frozen=True)

    apartment_name: str = DEFAULT_APARTMENT_NAME
    description: str = DEFAULT_DESCRIPTION
    address: str = ""
    city: str = ""
    state: str = ""
    guests: int = Field(default=0, ge=0)
    beds: int = Field(default=0, ge=0)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    amenities: list[Any] = Field(default_factory=list)
    images: tuple[MediaAsset, ...] = ()
    videos: tuple[MediaAsset, ...] = ()
    agent: AgentInfo = Field(default_factory=AgentInfo)
    optional_fees: OptionalFees = Field(default_factory=OptionalFees)

    @property
    def location(self) -> str:
        """City and state, e.g. ``"Lekki, Lagos"``."""
        return ", ".join(part for part in (self.city, self.state) if part)

    @property
    def full_address(self) -> str:
        return ", ".join(part for part in (self.address, self.city, self.state) if part)

    @property
    def sharer_heading(self) -> str:
        return f"{self.agent.display_name} shared you this apartment"

    @property
    def has_media(self) -> bool:
        return bool(self.images or self.videos)

    def bucket(self, kind: MediaKind) -> tuple[MediaAsset, ...]:
        """Return the media bucket for ``kind``."""
        return self.videos if kind == MediaKind.VIDEO else self.images


class GalleryState(BaseModel):
    """Snapshot of the gallery's selection, fullscreen and playback state."""

    model_config = ConfigDict(frozen=True)

    active_media_index: int = Field(default=0, ge=0)
    media_type: MediaKind = MediaKind.IMAGE
    is_fullscreen: bool = False
    fullscreen_target: MediaAsset | None = None
    is_playing: bool = False
