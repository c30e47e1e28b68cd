"""Capture error taxonomy. Every entry is recoverable and shown to the user, never raised."""
import enum
from dataclasses import dataclass


class CaptureErrorKind(str, enum.Enum):
    missing_media = "MissingMedia"
    missing_location = "MissingLocation"
    location_pending = "LocationPending"
    location_permission_denied = "LocationPermissionDenied"
    location_timeout = "LocationTimeout"
    location_unavailable = "LocationUnavailable"
    geolocation_unsupported = "GeolocationUnsupported"
    upload_failed = "UploadFailed"


@dataclass(frozen=True)
class CaptureError:
    kind: CaptureErrorKind
    message: str
    retryable: bool = False


MISSING_MEDIA = CaptureError(CaptureErrorKind.missing_media, "Please choose an image.")
MISSING_LOCATION = CaptureError(
    CaptureErrorKind.missing_location, "Location is required. Please allow location access."
)
LOCATION_PENDING = CaptureError(
    CaptureErrorKind.location_pending, "Location is still being acquired. Please wait."
)
# Denied permission cannot be re-prompted; the user has to change it in settings.
LOCATION_PERMISSION_DENIED = CaptureError(
    CaptureErrorKind.location_permission_denied,
    "Location access was denied. Please enable it in your browser settings.",
)
LOCATION_PERMISSION_PREVIOUSLY_DENIED = CaptureError(
    CaptureErrorKind.location_permission_denied,
    "Location permission was previously denied. Please enable it in your browser settings.",
)
LOCATION_TIMEOUT = CaptureError(
    CaptureErrorKind.location_timeout, "Location request timed out. Please try again.", retryable=True
)
LOCATION_UNAVAILABLE = CaptureError(
    CaptureErrorKind.location_unavailable,
    "Please allow location access to upload tree images.",
    retryable=True,
)
GEOLOCATION_UNSUPPORTED = CaptureError(
    CaptureErrorKind.geolocation_unsupported, "Geolocation is not supported by your browser."
)
UPLOAD_FAILED = CaptureError(
    CaptureErrorKind.upload_failed, "Upload failed. Please try again.", retryable=True
)


class UploadError(Exception):
    """Raised by an upload collaborator when a hand-off could not be delivered."""


class UnsupportedMediaError(ValueError):
    """The picked file is not an image."""


class MediaTooLargeError(ValueError):
    """The picked file exceeds the configured upload size."""
