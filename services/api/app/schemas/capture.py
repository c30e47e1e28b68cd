from datetime import datetime
from pydantic import BaseModel, Field


class CoordinateBody(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class PermissionReport(BaseModel):
    state: str  # "granted" | "denied" | "prompt"
    supported: bool = True


class LocationReport(BaseModel):
    """Outcome of navigator.geolocation.getCurrentPosition for one request."""
    coords: CoordinateBody | None = None
    timestamp: datetime | None = None  # position.timestamp, when the fix was taken
    error: str | None = None  # "permission_denied" | "timeout" | "position_unavailable"


class LocationRequestView(BaseModel):
    id: str
    enableHighAccuracy: bool
    timeout: int
    maximumAge: int


class CaptureErrorView(BaseModel):
    kind: str
    message: str
    retryable: bool


class CaptureView(BaseModel):
    state: str
    status: str
    permission: str
    geolocationSupported: bool
    canSubmit: bool
    mediaName: str | None = None
    mediaType: str | None = None
    mediaBytes: int | None = None
    capturedAt: datetime | None = None
    location: CoordinateBody | None = None
    error: CaptureErrorView | None = None
    locationRequest: LocationRequestView | None = None


class SubmitResponse(BaseModel):
    captureId: str
    handedOffAt: datetime
