import pytest

from app.capture.controller import CaptureSessionController
from app.capture.errors import CaptureErrorKind
from app.capture.location import LocationFailureReason, LocationResult
from app.capture.models import (
    AcquisitionStatus,
    CaptureState,
    Coordinate,
    LocationPermissionState,
)
from conftest import T0, FakeLocationProvider, RecordingUploader, flush, image


def ok(lat, lng):
    return LocationResult.success(Coordinate(lat, lng))


@pytest.fixture
async def controller(provider, uploader, clock):
    c = CaptureSessionController(provider, uploader, clock=clock)
    await c.start()
    yield c
    c.close()


async def test_select_media_stamps_time_and_requests_live_fix(controller, provider):
    media = image()
    controller.select_media(media)
    await flush()

    assert controller.capture.media is media
    assert controller.capture.captured_at == T0
    assert controller.capture.location is None
    assert controller.status is AcquisitionStatus.requesting
    assert controller.state is CaptureState.awaiting_location
    options, _ = provider.calls[0]
    assert options.enable_high_accuracy is True
    assert options.timeout_ms == 10_000
    assert options.maximum_age_ms == 0


async def test_select_media_requires_media(controller, provider):
    with pytest.raises(ValueError):
        controller.select_media(None)
    assert controller.state is CaptureState.empty
    assert provider.calls == []


async def test_fix_makes_capture_ready(controller, provider):
    controller.select_media(image())
    await flush()
    provider.resolve(0, ok(51.5, -0.12))
    await flush()

    assert controller.capture.location == Coordinate(51.5, -0.12)
    assert controller.status is AcquisitionStatus.succeeded
    assert controller.capture.validation_error is None
    assert controller.state is CaptureState.ready
    assert controller.can_submit


@pytest.mark.parametrize(
    "reason, kind, retryable",
    [
        (LocationFailureReason.permission_denied, CaptureErrorKind.location_permission_denied, False),
        (LocationFailureReason.timeout, CaptureErrorKind.location_timeout, True),
        (LocationFailureReason.position_unavailable, CaptureErrorKind.location_unavailable, True),
    ],
)
async def test_failure_reasons_map_to_distinct_errors(controller, provider, reason, kind, retryable):
    controller.select_media(image())
    await flush()
    provider.resolve(0, LocationResult.failed(reason))
    await flush()

    assert controller.capture.location is None
    assert controller.status is AcquisitionStatus.failed
    assert controller.state is CaptureState.media_set
    assert controller.capture.validation_error.kind is kind
    assert controller.capture.validation_error.retryable is retryable


async def test_permission_denied_message_points_to_settings(controller, provider):
    controller.select_media(image())
    await flush()
    provider.resolve(0, LocationResult.failed(LocationFailureReason.permission_denied))
    await flush()
    assert "settings" in controller.capture.validation_error.message


async def test_captured_at_follows_latest_selection(controller, provider, clock):
    for i in range(4):
        controller.select_media(image(f"tree-{i}.jpg"))
        assert controller.capture.location is None
        assert controller.capture.captured_at == T0.replace(second=i)
        await flush()
        provider.resolve(i, ok(10.0 + i, 20.0))
        await flush()
        assert controller.capture.location == Coordinate(10.0 + i, 20.0)


async def test_new_selection_discards_previous_fix(controller, provider):
    controller.select_media(image("a.jpg"))
    await flush()
    provider.resolve(0, ok(1.0, 1.0))
    await flush()
    assert controller.state is CaptureState.ready

    controller.select_media(image("b.jpg"))
    assert controller.capture.location is None
    assert controller.state is CaptureState.awaiting_location


async def test_stale_fix_after_newer_selection_is_discarded(controller, provider):
    controller.select_media(image("a.jpg"))
    await flush()
    controller.select_media(image("b.jpg"))
    await flush()
    second_captured_at = controller.capture.captured_at

    provider.resolve(0, ok(9.0, 9.0))
    await flush()
    assert controller.capture.location is None
    assert controller.status is AcquisitionStatus.requesting

    provider.resolve(1, ok(1.0, 2.0))
    await flush()
    assert controller.capture.media.name == "b.jpg"
    assert controller.capture.location == Coordinate(1.0, 2.0)
    assert controller.capture.captured_at == second_captured_at


async def test_stale_failure_arriving_late_does_not_clobber_fix(controller, provider):
    controller.select_media(image("a.jpg"))
    await flush()
    controller.select_media(image("b.jpg"))
    await flush()

    provider.resolve(1, ok(1.0, 2.0))
    await flush()
    provider.resolve(0, LocationResult.failed(LocationFailureReason.timeout))
    await flush()

    assert controller.capture.location == Coordinate(1.0, 2.0)
    assert controller.capture.validation_error is None
    assert controller.state is CaptureState.ready


async def test_reselecting_same_file_is_a_new_selection(controller, provider):
    controller.select_media(image("a.jpg"))
    await flush()
    controller.select_media(image("a.jpg"))
    await flush()
    provider.resolve(0, ok(9.0, 9.0))
    await flush()
    assert controller.capture.location is None


async def test_manual_retry_after_denial_does_not_prompt(uploader, clock):
    provider = FakeLocationProvider(permission=LocationPermissionState.denied)
    controller = CaptureSessionController(provider, uploader, clock=clock)
    await controller.start()
    controller.select_media(image())
    await flush()
    provider.resolve(0, LocationResult.failed(LocationFailureReason.permission_denied))
    await flush()

    assert controller.request_location_manually() is None
    await flush()

    assert len(provider.calls) == 1
    assert controller.capture.validation_error.kind is CaptureErrorKind.location_permission_denied
    assert "previously denied" in controller.capture.validation_error.message


async def test_manual_retry_after_timeout_requests_again(controller, provider):
    controller.select_media(image())
    await flush()
    provider.resolve(0, LocationResult.failed(LocationFailureReason.timeout))
    await flush()

    controller.request_location_manually()
    await flush()
    assert len(provider.calls) == 2
    assert controller.capture.validation_error is None
    provider.resolve(1, ok(3.0, 4.0))
    await flush()
    assert controller.state is CaptureState.ready


async def test_permission_changes_are_followed_until_close(uploader, clock):
    provider = FakeLocationProvider(permission=LocationPermissionState.prompt)
    controller = CaptureSessionController(provider, uploader, clock=clock)
    await controller.start()
    assert controller.permission is LocationPermissionState.prompt

    provider.change_permission(LocationPermissionState.denied)
    assert controller.permission is LocationPermissionState.denied
    assert controller.request_location_manually() is None
    assert provider.calls == []

    provider.change_permission(LocationPermissionState.granted)
    controller.select_media(image())
    await flush()
    assert len(provider.calls) == 1

    controller.close()
    assert provider.listeners == []
    provider.change_permission(LocationPermissionState.denied)
    assert controller.permission is LocationPermissionState.granted


async def test_denied_then_fresh_selection_scenario(uploader, clock):
    provider = FakeLocationProvider()
    controller = CaptureSessionController(provider, uploader, clock=clock)
    await controller.start()

    a = image("a.jpg")
    controller.select_media(a)
    await flush()
    provider.resolve(0, LocationResult.failed(LocationFailureReason.permission_denied))
    await flush()
    assert controller.capture.validation_error.kind is CaptureErrorKind.location_permission_denied

    assert await controller.submit() is None
    assert controller.capture.validation_error.kind is CaptureErrorKind.missing_location
    assert uploader.handoffs == []

    b = image("b.jpg")
    controller.select_media(b)
    t1 = controller.capture.captured_at
    await flush()
    provider.resolve(1, ok(1.0, 2.0))
    await flush()

    receipt = await controller.submit()
    assert receipt is not None
    (handoff,) = uploader.handoffs
    assert handoff.media is b
    assert handoff.location == Coordinate(1.0, 2.0)
    assert handoff.captured_at == t1
    assert controller.state is CaptureState.empty
    assert controller.capture.captured_at is None
    assert controller.status is AcquisitionStatus.idle


async def test_submit_without_media(controller, uploader):
    assert await controller.submit() is None
    assert controller.capture.validation_error.kind is CaptureErrorKind.missing_media
    assert uploader.handoffs == []


async def test_submit_is_idempotent_while_invalid(controller, provider, uploader):
    controller.select_media(image())
    await flush()
    provider.resolve(0, LocationResult.failed(LocationFailureReason.timeout))
    await flush()

    await controller.submit()
    first = (controller.state, controller.status, controller.capture.media, controller.capture.validation_error)
    await controller.submit()
    second = (controller.state, controller.status, controller.capture.media, controller.capture.validation_error)

    assert first == second
    assert first[3].kind is CaptureErrorKind.missing_location
    assert uploader.handoffs == []
    assert len(provider.calls) == 1


async def test_submit_refused_while_requesting(controller, provider, uploader):
    controller.select_media(image())
    await flush()
    assert not controller.can_submit
    assert await controller.submit() is None
    assert controller.capture.validation_error.kind is CaptureErrorKind.missing_location
    assert uploader.handoffs == []


async def test_submit_refused_while_re_requesting_with_location(controller, provider, uploader):
    controller.select_media(image())
    await flush()
    provider.resolve(0, ok(1.0, 2.0))
    await flush()
    controller.request_location_manually()
    await flush()

    assert controller.capture.location is not None
    assert controller.status is AcquisitionStatus.requesting
    assert await controller.submit() is None
    assert controller.capture.validation_error.kind is CaptureErrorKind.location_pending
    assert uploader.handoffs == []


async def test_can_submit_exactly_when_ready(controller, provider):
    seen = {}
    seen[controller.state] = controller.can_submit

    controller.select_media(image())
    await flush()
    seen[controller.state] = controller.can_submit

    provider.resolve(0, LocationResult.failed(LocationFailureReason.timeout))
    await flush()
    seen[controller.state] = controller.can_submit

    controller.request_location_manually()
    await flush()
    provider.resolve(1, ok(1.0, 2.0))
    await flush()
    seen[controller.state] = controller.can_submit

    assert seen == {
        CaptureState.empty: False,
        CaptureState.awaiting_location: False,
        CaptureState.media_set: False,
        CaptureState.ready: True,
    }


async def test_reset_discards_capture_and_in_flight_fix(controller, provider):
    controller.select_media(image())
    await flush()
    controller.reset()
    provider.resolve(0, ok(1.0, 2.0))
    await flush()

    assert controller.state is CaptureState.empty
    assert controller.capture.location is None
    assert controller.status is AcquisitionStatus.idle


async def test_upload_failure_keeps_capture(provider, clock):
    uploader = RecordingUploader(fail=True)
    controller = CaptureSessionController(provider, uploader, clock=clock)
    await controller.start()
    controller.select_media(image())
    await flush()
    provider.resolve(0, ok(1.0, 2.0))
    await flush()

    assert await controller.submit() is None
    assert controller.capture.validation_error.kind is CaptureErrorKind.upload_failed
    assert controller.state is CaptureState.ready


async def test_unsupported_geolocation_is_terminal(uploader, clock):
    provider = FakeLocationProvider(supported=False)
    controller = CaptureSessionController(provider, uploader, clock=clock)
    await controller.start()

    controller.select_media(image())
    await flush()
    assert provider.calls == []
    assert controller.status is AcquisitionStatus.failed
    assert controller.capture.validation_error.kind is CaptureErrorKind.geolocation_unsupported
    assert controller.capture.validation_error.retryable is False

    controller.request_location_manually()
    await flush()
    assert provider.calls == []
    assert controller.capture.validation_error.kind is CaptureErrorKind.geolocation_unsupported


async def test_no_provider_at_all(uploader, clock):
    controller = CaptureSessionController(None, uploader, clock=clock)
    await controller.start()
    controller.select_media(image())
    assert controller.capture.validation_error.kind is CaptureErrorKind.geolocation_unsupported
    assert controller.permission is LocationPermissionState.unknown


async def test_settle_waits_for_resolved_acquisitions(controller, provider):
    controller.select_media(image())
    await flush()
    provider.resolve(0, ok(1.0, 2.0))
    await controller.settle()
    assert controller.state is CaptureState.ready
