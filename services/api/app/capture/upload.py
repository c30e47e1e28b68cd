"""Upload collaborators: where a validated capture goes once it is submitted.

Transport to a remote server is not part of this service. `LoggingUploader`
records the hand-off in the log (the reference behaviour); `DatabaseUploader`
stores it in the `captures` table.
"""
import logging
import uuid
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.capture.errors import UploadError
from app.capture.models import HandOff, HandOffReceipt, utcnow
from app.db import models

logger = logging.getLogger(__name__)


class Uploader(Protocol):
    async def hand_off(self, capture: HandOff) -> HandOffReceipt: ...


class LoggingUploader:
    async def hand_off(self, capture: HandOff) -> HandOffReceipt:
        receipt = HandOffReceipt(capture_id=str(uuid.uuid4()), handed_off_at=utcnow())
        logger.info(
            "upload: captureId=%s image=%s type=%s bytes=%d location=(%.6f, %.6f) capturedAt=%s",
            receipt.capture_id,
            capture.media.name,
            capture.media.content_type,
            capture.media.size,
            capture.location.latitude,
            capture.location.longitude,
            capture.captured_at.isoformat(),
        )
        return receipt


class DatabaseUploader:
    def __init__(self, session_factory: Callable[[], Session] | None = None):
        if session_factory is None:
            from app.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def hand_off(self, capture: HandOff) -> HandOffReceipt:
        return await run_in_threadpool(self._store, capture)

    def _store(self, capture: HandOff) -> HandOffReceipt:
        db = self._session_factory()
        try:
            row = models.Capture(
                media_name=capture.media.name,
                content_type=capture.media.content_type,
                size_bytes=capture.media.size,
                image=capture.media.data,
                latitude=capture.location.latitude,
                longitude=capture.location.longitude,
                captured_at=capture.captured_at,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("upload: stored captureId=%s image=%s", row.id, row.media_name)
            return HandOffReceipt(capture_id=str(row.id), handed_off_at=utcnow())
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("upload: database error %s", e)
            raise UploadError(str(e)) from e
        finally:
            db.close()


def build_uploader(backend: str) -> Uploader:
    backend = (backend or "log").strip().lower()
    if backend == "log":
        return LoggingUploader()
    if backend == "database":
        return DatabaseUploader()
    raise ValueError(f"unknown upload backend: {backend!r}")
