# app/routers/profiles.py

import json
import logging
from pathlib import Path
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from jsonschema import Draft7Validator, FormatChecker
from sqlalchemy.orm import Session

from app.database import get_db
from app.identity import caller_from_request
from app.schemas.profile import ProfileWrite
from app.services import profiles_service as svc
from app.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)

PREFIX = "/api/profiles"

# Load and prepare schema once at import time
schema_path = Path(__file__).resolve().parents[2] / "profile_schema.json"
with schema_path.open("r", encoding="utf-8") as f:
    profile_schema = json.load(f)

json_validator = Draft7Validator(profile_schema, format_checker=FormatChecker())


async def _validated_body(request: Request):
    """Parse and schema-check the body; returns (ProfileWrite, None) or (None, 400 response)."""
    try:
        payload = await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid JSON format")

    validation_errors = sorted(json_validator.iter_errors(payload), key=lambda e: list(e.path))
    if validation_errors:
        return None, JSONResponse(
            status_code=400,
            content={"validationErrors": [e.message for e in validation_errors]},
        )
    return ProfileWrite(**payload), None


def _require_caller(request: Request) -> str:
    caller = caller_from_request(request)
    if not caller:
        raise HTTPException(status_code=401, detail="Caller identity required")
    return caller


def _profile_patterns(request: Request, response: Response, payload) -> list[str]:
    """Listing pages plus every cached view of the touched profile."""
    profile_id = request.path_params["profile_id"]
    return [
        rf"^GET:{PREFIX}[?:]",
        rf"^GET:{PREFIX}/{profile_id}[?:]",
    ]


def _is_public(request: Request, response: Response, payload) -> bool:
    # owners may see their drafts; never share those through the cache
    return bool(payload.get("isPublished"))


def build_router(response_cache: ResponseCache) -> APIRouter:
    router = APIRouter(prefix=PREFIX, tags=["profiles"])

    @router.get("")
    @response_cache.cached(ttl_seconds=60)
    def list_published_profiles(
        request: Request,
        q: Optional[str] = None,
        limit: Optional[int] = Query(None, ge=1, le=100),
        db: Session = Depends(get_db),
    ):
        """
        GET /api/profiles
        Published profiles, optionally filtered by `q` and capped by `limit`.
        """
        return svc.list_profiles(db, q=q, limit=limit)

    @router.get("/me")
    @response_cache.cached(ttl_seconds=30)
    def get_my_profile(request: Request, db: Session = Depends(get_db)):
        """
        GET /api/profiles/me
        The caller's own profile. Cached per caller, since the key carries the caller identity.
        """
        caller = _require_caller(request)
        profile = svc.get_profile_for_user(db, caller)
        if profile is None:
            raise HTTPException(status_code=404, detail="Profile not found")
        return svc.to_json(profile)

    @router.get("/{profile_id}")
    @response_cache.cached(should_cache=_is_public)
    def get_profile(profile_id: int, request: Request, db: Session = Depends(get_db)):
        """
        GET /api/profiles/{profileId}

        Status codes:
          - 200: Found (published, or unpublished and requested by its owner)
          - 404: Not found or not visible to the caller
        """
        profile = svc.get_profile(db, profile_id)
        if profile is None or (not profile.is_published and profile.user_id != caller_from_request(request)):
            raise HTTPException(status_code=404, detail="Profile not found")
        return svc.to_json(profile)

    @router.post("", status_code=201)
    @response_cache.invalidates([PREFIX])
    async def create_profile(request: Request, db: Session = Depends(get_db)):
        """
        POST /api/profiles

        Status codes:
          - 201: Created, returns the stored profile
          - 400: JSON schema validation failed (validationErrors list)
          - 401: No caller identity
          - 409: Username already taken
        """
        caller = _require_caller(request)
        data, error = await _validated_body(request)
        if error is not None:
            return error
        try:
            profile = svc.create_profile(db, caller, data)
        except svc.UsernameTakenError:
            raise HTTPException(status_code=409, detail="Username already taken")
        logger.info("profile created: id=%s user=%s", profile.id, caller)
        return JSONResponse(status_code=201, content=svc.to_json(profile))

    @router.put("/{profile_id}")
    @response_cache.invalidates(_profile_patterns)
    async def replace_profile(profile_id: int, request: Request, db: Session = Depends(get_db)):
        """
        PUT /api/profiles/{profileId}
        Replaces the editable fields of a profile the caller owns.
        """
        caller = _require_caller(request)
        profile = svc.get_profile(db, profile_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Profile not found")
        if profile.user_id != caller:
            raise HTTPException(status_code=403, detail="Not the profile owner")

        data, error = await _validated_body(request)
        if error is not None:
            return error
        try:
            profile = svc.update_profile(db, profile, data)
        except svc.UsernameTakenError:
            raise HTTPException(status_code=409, detail="Username already taken")
        return svc.to_json(profile)

    @router.delete("/{profile_id}", status_code=204)
    @response_cache.invalidates(_profile_patterns)
    def delete_profile(profile_id: int, request: Request, db: Session = Depends(get_db)):
        caller = _require_caller(request)
        profile = svc.get_profile(db, profile_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Profile not found")
        if profile.user_id != caller:
            raise HTTPException(status_code=403, detail="Not the profile owner")
        svc.delete_profile(db, profile)
        return Response(status_code=204)

    return router
