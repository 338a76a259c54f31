# app/models/profile.py

from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Opaque identity of the owner, as forwarded by the auth layer
    user_id = Column(String(128), nullable=False, index=True)

    # Public handle used in profile URLs
    username = Column(String(50), nullable=False, unique=True)

    display_name = Column(String(100), nullable=False)
    bio = Column(Text, nullable=True)

    # Unpublished profiles are visible to their owner only
    is_published = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
