import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Settings read the environment at import time; point the app at a throwaway database first.
_tmpdir = tempfile.mkdtemp(prefix="treetracker-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_tmpdir}/test.db")
os.environ.setdefault("UPLOAD_BACKEND", "log")

from app.capture.errors import UploadError  # noqa: E402
from app.capture.location import LocationResult  # noqa: E402
from app.capture.models import HandOffReceipt, LocationPermissionState, MediaAsset  # noqa: E402

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeLocationProvider:
    """Location provider whose fixes are resolved by the test, one future per call."""

    def __init__(self, permission=LocationPermissionState.granted, supported=True):
        self.supported = supported
        self.permission = permission
        self.calls = []  # (options, future)
        self.listeners = []

    async def query_permission(self):
        return self.permission

    def subscribe(self, listener):
        self.listeners.append(listener)

        def unsubscribe():
            self.listeners.remove(listener)

        return unsubscribe

    def change_permission(self, state):
        self.permission = state
        for listener in list(self.listeners):
            listener(state)

    async def get_current_fix(self, options):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((options, future))
        return await future

    def resolve(self, index: int, result: LocationResult) -> None:
        self.calls[index][1].set_result(result)


class RecordingUploader:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.handoffs = []

    async def hand_off(self, capture):
        if self.fail:
            raise UploadError("backend down")
        self.handoffs.append(capture)
        return HandOffReceipt(capture_id=f"cap-{len(self.handoffs)}", handed_off_at=T0)


class TickingClock:
    """Returns T0, T0+1s, T0+2s, ... on successive calls."""

    def __init__(self):
        self.calls = 0

    def __call__(self):
        now = T0 + timedelta(seconds=self.calls)
        self.calls += 1
        return now


async def flush():
    """Let scheduled acquisition tasks run up to their next suspension point."""
    for _ in range(3):
        await asyncio.sleep(0)


def image(name: str = "tree.jpg") -> MediaAsset:
    return MediaAsset(name=name, content_type="image/jpeg", data=b"\xff\xd8\xff" + name.encode())


@pytest.fixture
def provider():
    return FakeLocationProvider()


@pytest.fixture
def uploader():
    return RecordingUploader()


@pytest.fixture
def clock():
    return TickingClock()
