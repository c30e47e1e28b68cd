"""Capture session controller: select media -> acquire location -> validate -> hand off.

All operations run on one asyncio loop. Each location acquisition carries a
ticket (sequence number plus the media identity it was requested for); a result
whose ticket no longer matches the pending capture is discarded.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from app.capture import errors
from app.capture.errors import CaptureError, UploadError
from app.capture.location import (
    AcquisitionOptions,
    LocationFailureReason,
    LocationProvider,
    LocationResult,
    Unsubscribe,
)
from app.capture.models import (
    AcquisitionStatus,
    CaptureState,
    HandOff,
    HandOffReceipt,
    LocationPermissionState,
    MediaAsset,
    PendingCapture,
    utcnow,
)
from app.capture.upload import Uploader

logger = logging.getLogger(__name__)

_FAILURE_ERRORS = {
    LocationFailureReason.permission_denied: errors.LOCATION_PERMISSION_DENIED,
    LocationFailureReason.timeout: errors.LOCATION_TIMEOUT,
    LocationFailureReason.position_unavailable: errors.LOCATION_UNAVAILABLE,
}


@dataclass(frozen=True)
class _Ticket:
    seq: int
    media_id: str | None
    captured_at: datetime | None


class CaptureSessionController:
    """Owns the single PendingCapture of a session and every mutation of it."""

    def __init__(
        self,
        provider: LocationProvider | None,
        uploader: Uploader,
        *,
        options: AcquisitionOptions | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._provider = provider
        self._uploader = uploader
        self._options = options or AcquisitionOptions()
        self._clock = clock
        self._capture = PendingCapture()
        self._status = AcquisitionStatus.idle
        self._permission = LocationPermissionState.unknown
        self._seq = 0
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Unsubscribe | None = None
        self._handing_off = False

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Query the permission state once and follow its changes from then on."""
        if self._provider is None:
            return
        self._permission = await self._provider.query_permission()
        self._unsubscribe = self._provider.subscribe(self._on_permission_change)
        logger.info("capture/start: permission=%s", self._permission.value)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_permission_change(self, state: LocationPermissionState) -> None:
        logger.info("capture/permission: %s -> %s", self._permission.value, state.value)
        self._permission = state

    # -- views ---------------------------------------------------------------

    @property
    def capture(self) -> PendingCapture:
        return self._capture

    @property
    def status(self) -> AcquisitionStatus:
        return self._status

    @property
    def permission(self) -> LocationPermissionState:
        return self._permission

    @property
    def options(self) -> AcquisitionOptions:
        return self._options

    @property
    def geolocation_supported(self) -> bool:
        return self._provider is not None and self._provider.supported

    @property
    def state(self) -> CaptureState:
        if self._capture.media is None:
            return CaptureState.empty
        if self._status is AcquisitionStatus.requesting:
            return CaptureState.awaiting_location
        if self._capture.location is not None:
            return CaptureState.ready
        return CaptureState.media_set

    @property
    def can_submit(self) -> bool:
        return self._precondition_error() is None

    # -- operations ----------------------------------------------------------

    def select_media(self, media: MediaAsset) -> None:
        if media is None:
            raise ValueError("media is required")
        capture = self._capture
        capture.media = media
        capture.captured_at = self._clock()
        capture.location = None
        capture.validation_error = None
        logger.info(
            "capture/select: media=%s name=%s type=%s bytes=%d capturedAt=%s",
            media.id,
            media.name,
            media.content_type,
            media.size,
            capture.captured_at.isoformat(),
        )
        self.request_location()

    def request_location(self) -> asyncio.Task | None:
        """Start a live location acquisition for the current capture."""
        self._seq += 1
        self._capture.validation_error = None
        if not self.geolocation_supported:
            self._status = AcquisitionStatus.failed
            self._capture.validation_error = errors.GEOLOCATION_UNSUPPORTED
            logger.warning("capture/location: geolocation unsupported")
            return None
        media = self._capture.media
        ticket = _Ticket(self._seq, media.id if media else None, self._capture.captured_at)
        self._status = AcquisitionStatus.requesting
        task = asyncio.get_running_loop().create_task(self._acquire(ticket))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def request_location_manually(self) -> asyncio.Task | None:
        """User-initiated retry. A denied permission is never re-prompted."""
        if self._permission is LocationPermissionState.denied:
            self._capture.validation_error = errors.LOCATION_PERMISSION_PREVIOUSLY_DENIED
            logger.info("capture/retry: permission denied, not prompting")
            return None
        return self.request_location()

    async def submit(self) -> HandOffReceipt | None:
        """Hand the capture to the uploader when complete; otherwise record why not."""
        capture = self._capture
        error = self._precondition_error()
        if error is not None:
            capture.validation_error = error
            logger.info("capture/submit: rejected kind=%s", error.kind.value)
            return None
        if self._handing_off:
            logger.info("capture/submit: hand-off already in progress")
            return None
        handoff = HandOff(media=capture.media, location=capture.location, captured_at=capture.captured_at)
        self._handing_off = True
        try:
            receipt = await self._uploader.hand_off(handoff)
        except UploadError as e:
            logger.warning("capture/submit: upload failed media=%s: %s", handoff.media.id, e)
            if self._still_holds(handoff):
                self._capture.validation_error = errors.UPLOAD_FAILED
            return None
        finally:
            self._handing_off = False
        logger.info("capture/submit: handed off media=%s captureId=%s", handoff.media.id, receipt.capture_id)
        if self._still_holds(handoff):
            self.reset()
        return receipt

    def reset(self) -> None:
        """Discard the pending capture regardless of any in-flight acquisition."""
        self._seq += 1
        self._capture = PendingCapture()
        self._status = AcquisitionStatus.idle
        logger.info("capture/reset")

    async def settle(self) -> None:
        """Wait for every in-flight acquisition, stale ones included."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- internals -----------------------------------------------------------

    def _precondition_error(self) -> CaptureError | None:
        if self._capture.media is None:
            return errors.MISSING_MEDIA
        if self._status is AcquisitionStatus.requesting:
            if self._capture.location is None:
                return errors.MISSING_LOCATION
            return errors.LOCATION_PENDING
        if self._capture.location is None:
            return errors.MISSING_LOCATION
        return None

    def _still_holds(self, handoff: HandOff) -> bool:
        capture = self._capture
        return capture.media is handoff.media and capture.captured_at == handoff.captured_at

    def _is_current(self, ticket: _Ticket) -> bool:
        capture = self._capture
        media_id = capture.media.id if capture.media else None
        return ticket.seq == self._seq and ticket.media_id == media_id and ticket.captured_at == capture.captured_at

    async def _acquire(self, ticket: _Ticket) -> None:
        try:
            result = await self._provider.get_current_fix(self._options)
        except Exception as e:
            logger.exception("capture/location: provider error seq=%s: %s", ticket.seq, e)
            result = LocationResult.failed(LocationFailureReason.position_unavailable)
        self._apply(ticket, result)

    def _apply(self, ticket: _Ticket, result: LocationResult) -> None:
        if not self._is_current(ticket):
            logger.info("capture/location: discarding stale result seq=%s current=%s", ticket.seq, self._seq)
            return
        capture = self._capture
        if result.ok:
            capture.location = result.coordinate
            capture.validation_error = None
            self._status = AcquisitionStatus.succeeded
            logger.info(
                "capture/location: fix lat=%.6f lng=%.6f",
                result.coordinate.latitude,
                result.coordinate.longitude,
            )
        else:
            capture.location = None
            capture.validation_error = _FAILURE_ERRORS[result.failure]
            self._status = AcquisitionStatus.failed
            logger.info("capture/location: failed reason=%s", result.failure.value)
