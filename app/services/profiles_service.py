# app/services/profiles_service.py

from typing import Optional, Dict, Any, List
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.models.profile import Profile
from app.schemas.profile import ProfileRead, ProfileWrite


class UsernameTakenError(Exception):
    """Raised when a create/update would reuse another profile's username."""


def to_json(profile: Profile) -> Dict[str, Any]:
    """Exact API JSON for a profile (camelCase keys, UTC 'Z' timestamps)."""
    return ProfileRead(
        id=profile.id,
        userId=profile.user_id,
        username=profile.username,
        displayName=profile.display_name,
        bio=profile.bio,
        isPublished=profile.is_published,
        createdAt=profile.created_at,
        updatedAt=profile.updated_at,
    ).model_dump(mode="json")


def list_profiles(db: Session, q: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Published profiles ordered by id.
    `q` filters by a case-insensitive substring of username or display name.
    """
    stmt = select(Profile).where(Profile.is_published.is_(True)).order_by(Profile.id)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(Profile.username.ilike(like), Profile.display_name.ilike(like)))
    if limit:
        stmt = stmt.limit(limit)
    return [to_json(p) for p in db.execute(stmt).scalars()]


def get_profile(db: Session, profile_id: int) -> Optional[Profile]:
    return db.get(Profile, profile_id)


def get_profile_for_user(db: Session, user_id: str) -> Optional[Profile]:
    stmt = select(Profile).where(Profile.user_id == user_id).order_by(Profile.id).limit(1)
    return db.execute(stmt).scalars().first()


def create_profile(db: Session, user_id: str, data: ProfileWrite) -> Profile:
    profile = Profile(
        user_id=user_id,
        username=data.username,
        display_name=data.displayName,
        bio=data.bio,
        is_published=data.isPublished,
    )
    db.add(profile)
    _commit(db)
    db.refresh(profile)
    return profile


def update_profile(db: Session, profile: Profile, data: ProfileWrite) -> Profile:
    profile.username = data.username
    profile.display_name = data.displayName
    profile.bio = data.bio
    profile.is_published = data.isPublished
    _commit(db)
    db.refresh(profile)
    return profile


def delete_profile(db: Session, profile: Profile) -> None:
    db.delete(profile)
    db.commit()


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as ex:
        db.rollback()
        # username is the only unique column besides the PK
        raise UsernameTakenError("username already taken") from ex
