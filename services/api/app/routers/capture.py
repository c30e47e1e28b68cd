import asyncio
import logging
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from app.auth.deps import require_session
from app.auth.session import CaptureSession
from app.capture.errors import MediaTooLargeError, UnsupportedMediaError
from app.capture.location import LocationFailureReason, LocationResult
from app.capture.media import media_from_upload
from app.capture.models import Coordinate, LocationPermissionState
from app.schemas.capture import (
    CaptureErrorView,
    CaptureView,
    CoordinateBody,
    LocationReport,
    LocationRequestView,
    PermissionReport,
    SubmitResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/capture", tags=["capture"])


def _view(session: CaptureSession) -> CaptureView:
    controller = session.controller
    capture = controller.capture
    out = CaptureView(
        state=controller.state.value,
        status=controller.status.value,
        permission=controller.permission.value,
        geolocationSupported=controller.geolocation_supported,
        canSubmit=controller.can_submit,
        capturedAt=capture.captured_at,
    )
    if capture.media is not None:
        out.mediaName = capture.media.name
        out.mediaType = capture.media.content_type
        out.mediaBytes = capture.media.size
    if capture.location is not None:
        out.location = CoordinateBody(latitude=capture.location.latitude, longitude=capture.location.longitude)
    if capture.validation_error is not None:
        err = capture.validation_error
        out.error = CaptureErrorView(kind=err.kind.value, message=err.message, retryable=err.retryable)
    request = session.provider.pending_request()
    if request is not None:
        out.locationRequest = LocationRequestView(
            id=request.id,
            enableHighAccuracy=request.options.enable_high_accuracy,
            timeout=request.options.timeout_ms,
            maximumAge=request.options.maximum_age_ms,
        )
    return out


async def _let_acquisition_register() -> None:
    # One loop turn lets a freshly scheduled acquisition publish its pending request.
    await asyncio.sleep(0)


@router.get("", response_model=CaptureView)
async def get_capture(session: CaptureSession = Depends(require_session)):
    return _view(session)


@router.post("/media", response_model=CaptureView)
async def select_media(file: UploadFile = File(...), session: CaptureSession = Depends(require_session)):
    logger.info("capture/media: fileName=%s contentType=%s", file.filename, file.content_type)
    try:
        media = await media_from_upload(file)
    except UnsupportedMediaError as e:
        raise HTTPException(status_code=415, detail=str(e))
    except MediaTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    session.controller.select_media(media)
    await _let_acquisition_register()
    return _view(session)


@router.post("/permission", response_model=CaptureView)
async def report_permission(body: PermissionReport, session: CaptureSession = Depends(require_session)):
    try:
        state = LocationPermissionState(body.state)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown permission state: {body.state}")
    session.provider.report_permission(state, supported=body.supported)
    return _view(session)


@router.post("/location/retry", response_model=CaptureView)
async def retry_location(session: CaptureSession = Depends(require_session)):
    session.controller.request_location_manually()
    await _let_acquisition_register()
    return _view(session)


@router.post("/location/{request_id}", response_model=CaptureView)
async def report_location(
    request_id: str,
    body: LocationReport,
    session: CaptureSession = Depends(require_session),
):
    if body.coords is not None and body.error is None:
        result = LocationResult.success(Coordinate(body.coords.latitude, body.coords.longitude))
    elif body.error is not None:
        try:
            result = LocationResult.failed(LocationFailureReason(body.error))
        except ValueError:
            result = LocationResult.failed(LocationFailureReason.position_unavailable)
    else:
        raise HTTPException(status_code=422, detail="Either coords or error is required")
    waiter = session.provider.resolve(request_id, result, observed_at=body.timestamp)
    if waiter is None:
        raise HTTPException(status_code=404, detail="Location request not found or already settled")
    await waiter
    return _view(session)


@router.post("/submit")
async def submit(session: CaptureSession = Depends(require_session)):
    receipt = await session.controller.submit()
    if receipt is None:
        err = session.controller.capture.validation_error
        content = {"detail": "Capture is not ready", "capture": _view(session).model_dump(mode="json")}
        if err is not None:
            content["detail"] = err.message
            content["kind"] = err.kind.value
        return JSONResponse(status_code=422, content=content)
    return SubmitResponse(captureId=receipt.capture_id, handedOffAt=receipt.handed_off_at)


@router.post("/reset", response_model=CaptureView)
async def reset(session: CaptureSession = Depends(require_session)):
    session.controller.reset()
    return _view(session)
