import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)):
    out: dict = {"status": "ok", "upload_backend": settings.upload_backend}
    if settings.upload_backend == "database":
        # Only the database backend stores captures; the session connects lazily otherwise
        try:
            db.execute(text("SELECT 1"))
            out["database"] = "ok"
        except SQLAlchemyError as e:
            logger.warning("health: database check failed: %s", e)
            out["database"] = "unavailable"
    logger.info("health: %s", out)
    return out
