# app/schemas/profile.py

from pydantic import BaseModel, Field, constr, field_serializer
from typing import Optional
from datetime import datetime, timezone


# Schema for creating or replacing a profile
class ProfileWrite(BaseModel):
    username: constr(pattern=r"^[a-z0-9_-]{3,50}$") = Field(..., description="Public handle used in profile URLs.") # pyright: ignore[reportInvalidTypeForm]
    displayName: constr(min_length=1, max_length=100) = Field(..., description="Name shown on the card.") # pyright: ignore[reportInvalidTypeForm]
    bio: Optional[constr(max_length=1000)] = Field(None, description="Free-form biography.") # pyright: ignore[reportInvalidTypeForm]
    isPublished: bool = Field(False, description="Whether the profile appears in the public directory.")


class ProfileRead(BaseModel):
    """
    DTO for reading a profile from the API.
    Timestamps are emitted in UTC with a 'Z' suffix.
    """
    id: int
    userId: str
    username: str
    displayName: str
    bio: Optional[str] = None
    isPublished: bool
    createdAt: datetime
    updatedAt: datetime

    @field_serializer("createdAt", "updatedAt")
    def _ser_timestamps(self, v: datetime) -> str:
        # SQLite drops tzinfo; stored values are always UTC
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        v = v.astimezone(timezone.utc)
        iso = v.isoformat(timespec="milliseconds")
        return iso.replace("+00:00", "Z")
