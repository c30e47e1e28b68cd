"""Capture domain types: the pending record, its coordinate, and the hand-off triple."""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.capture.errors import CaptureError


class LocationPermissionState(str, enum.Enum):
    granted = "granted"
    denied = "denied"
    prompt = "prompt"
    unknown = "unknown"  # before the first permission query resolves


class AcquisitionStatus(str, enum.Enum):
    idle = "idle"
    requesting = "requesting"
    succeeded = "succeeded"
    failed = "failed"


class CaptureState(str, enum.Enum):
    empty = "EMPTY"
    media_set = "MEDIA_SET"
    awaiting_location = "AWAITING_LOCATION"
    ready = "READY"


@dataclass(frozen=True)
class MediaAsset:
    """An image picked by the user. `id` is new for every pick, even of the same file."""
    name: str
    content_type: str
    data: bytes = field(repr=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass
class PendingCapture:
    media: MediaAsset | None = None
    captured_at: datetime | None = None
    location: Coordinate | None = None
    validation_error: CaptureError | None = None

    @property
    def is_empty(self) -> bool:
        return self.media is None


@dataclass(frozen=True)
class HandOff:
    """A complete, validated capture as given to the upload collaborator."""
    media: MediaAsset
    location: Coordinate
    captured_at: datetime


@dataclass(frozen=True)
class HandOffReceipt:
    capture_id: str
    handed_off_at: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
