import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, Float, DateTime, LargeBinary
from sqlalchemy.orm import DeclarativeBase

ID_TYPE = String(36)


class Base(DeclarativeBase):
    pass


def uuid_str():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class Capture(Base):
    """A submitted tree photo with the location fix and timestamp taken when it was picked."""
    __tablename__ = "captures"
    id = Column(ID_TYPE, primary_key=True, default=uuid_str)
    media_name = Column(String(255), nullable=False)
    content_type = Column(String(128), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    image = Column(LargeBinary, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    captured_at = Column(DateTime(timezone=True), nullable=False, index=True)  # when the photo was picked, not submitted
    created_at = Column(DateTime(timezone=True), default=utcnow)
