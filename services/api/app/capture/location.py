"""Permission and geolocation acquisition behind the LocationProvider protocol.

`ClientLocationProvider` treats the browser as the sensor: each acquisition is a
pending request the browser fulfils by running `getCurrentPosition` with the
request's options and posting the outcome back.
"""
import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from app.capture.models import Coordinate, LocationPermissionState, utcnow

logger = logging.getLogger(__name__)

PermissionListener = Callable[[LocationPermissionState], None]
Unsubscribe = Callable[[], None]


class LocationFailureReason(str, enum.Enum):
    permission_denied = "permission_denied"
    timeout = "timeout"
    position_unavailable = "position_unavailable"


@dataclass(frozen=True)
class AcquisitionOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 10_000
    maximum_age_ms: int = 0  # 0 = never accept a cached fix

    @classmethod
    def from_settings(cls, settings) -> "AcquisitionOptions":
        return cls(
            enable_high_accuracy=settings.location_high_accuracy,
            timeout_ms=settings.location_timeout_ms,
            maximum_age_ms=settings.location_max_age_ms,
        )


@dataclass(frozen=True)
class LocationResult:
    coordinate: Coordinate | None = None
    failure: LocationFailureReason | None = None

    @classmethod
    def success(cls, coordinate: Coordinate) -> "LocationResult":
        return cls(coordinate=coordinate)

    @classmethod
    def failed(cls, reason: LocationFailureReason) -> "LocationResult":
        return cls(failure=reason)

    @property
    def ok(self) -> bool:
        return self.coordinate is not None


class LocationProvider(Protocol):
    supported: bool

    async def query_permission(self) -> LocationPermissionState: ...

    def subscribe(self, listener: PermissionListener) -> Unsubscribe: ...

    async def get_current_fix(self, options: AcquisitionOptions) -> LocationResult: ...


@dataclass
class PendingFixRequest:
    id: str
    options: AcquisitionOptions
    issued_at: datetime
    future: asyncio.Future = field(repr=False)
    waiter: asyncio.Task | None = field(default=None, repr=False)


class ClientLocationProvider:
    """LocationProvider fed by browser reports (permission changes and position results)."""

    def __init__(
        self,
        *,
        clock_skew_seconds: float = 5.0,
        report_grace_ms: int = 5_000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.supported = True
        self._permission = LocationPermissionState.unknown
        self._listeners: list[PermissionListener] = []
        self._pending: dict[str, PendingFixRequest] = {}
        self._clock_skew = timedelta(seconds=clock_skew_seconds)
        self._report_grace_ms = report_grace_ms
        self._clock = clock

    @property
    def permission(self) -> LocationPermissionState:
        return self._permission

    async def query_permission(self) -> LocationPermissionState:
        return self._permission

    def subscribe(self, listener: PermissionListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def report_permission(self, state: LocationPermissionState, supported: bool = True) -> None:
        """Browser-side permission state changed (or was queried for the first time)."""
        if supported != self.supported:
            logger.info("location/permission: geolocation supported=%s", supported)
            self.supported = supported
        if state == self._permission:
            return
        logger.info("location/permission: %s -> %s", self._permission.value, state.value)
        self._permission = state
        for listener in list(self._listeners):
            listener(state)

    async def get_current_fix(self, options: AcquisitionOptions) -> LocationResult:
        if not self.supported:
            return LocationResult.failed(LocationFailureReason.position_unavailable)
        request = PendingFixRequest(
            id=str(uuid.uuid4()),
            options=options,
            issued_at=self._clock(),
            future=asyncio.get_running_loop().create_future(),
            waiter=asyncio.current_task(),
        )
        self._pending[request.id] = request
        logger.info(
            "location/request: id=%s highAccuracy=%s timeoutMs=%d maxAgeMs=%d",
            request.id,
            options.enable_high_accuracy,
            options.timeout_ms,
            options.maximum_age_ms,
        )
        # The browser runs its own timeout_ms clock once it sees the request and reports
        # "timeout" itself; the server waits a little longer for that report to arrive.
        wait_ms = options.timeout_ms + self._report_grace_ms
        try:
            return await asyncio.wait_for(request.future, timeout=wait_ms / 1000)
        except asyncio.TimeoutError:
            logger.info("location/request: id=%s no report after %dms", request.id, wait_ms)
            return LocationResult.failed(LocationFailureReason.timeout)
        finally:
            self._pending.pop(request.id, None)

    def pending_request(self) -> PendingFixRequest | None:
        """Newest outstanding request, i.e. the one the browser should work on."""
        for request in reversed(list(self._pending.values())):
            if not request.future.done():
                return request
        return None

    def resolve(
        self,
        request_id: str,
        result: LocationResult,
        observed_at: datetime | None = None,
    ) -> asyncio.Task | None:
        """Fulfil a pending request once.

        Returns the task that was waiting on the request, or None when the id is
        unknown or already settled. A fix observed earlier than the request's
        maximum age allows is turned into a position_unavailable failure.
        """
        request = self._pending.get(request_id)
        if request is None or request.future.done():
            logger.info("location/resolve: ignoring unknown or settled request id=%s", request_id)
            return None
        if result.ok and observed_at is not None and self._is_stale(request, observed_at):
            logger.warning(
                "location/resolve: rejecting cached fix id=%s observed_at=%s issued_at=%s",
                request_id,
                observed_at.isoformat(),
                request.issued_at.isoformat(),
            )
            result = LocationResult.failed(LocationFailureReason.position_unavailable)
        request.future.set_result(result)
        return request.waiter

    def _is_stale(self, request: PendingFixRequest, observed_at: datetime) -> bool:
        if observed_at.tzinfo is None:
            observed_at = observed_at.replace(tzinfo=timezone.utc)
        oldest_allowed = request.issued_at - timedelta(milliseconds=request.options.maximum_age_ms) - self._clock_skew
        return observed_at < oldest_allowed

    def close(self) -> None:
        for request in list(self._pending.values()):
            if not request.future.done():
                request.future.cancel()
        self._pending.clear()
        self._listeners.clear()
