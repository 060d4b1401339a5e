"""Profile endpoints for the signed-in user."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from .. import schemas
from ..deps import get_profile_queries
from ..exceptions import BackendError
from ..queries import ProfileQueries
from ..validation import require_valid, validate_profile_form

router = APIRouter(
    prefix="/profile",
    tags=["Profile"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        422: {"model": schemas.ErrorResponse, "description": "Validation failed"},
    },
)


@router.get("", response_model=schemas.Profile, summary="Get my profile")
def get_profile(queries: ProfileQueries = Depends(get_profile_queries)):
    profile = queries.get_profile()
    if profile is None:
        raise BackendError("Profile not found", code="not_found", status=404)
    return profile


@router.put(
    "",
    response_model=schemas.Profile,
    summary="Update my profile",
    description="Accepts the settings form (first_name, last_name, email, avatar_url).",
)
def update_profile(
    form: Dict[str, Any] = Body(...),
    queries: ProfileQueries = Depends(get_profile_queries),
):
    fields = require_valid(validate_profile_form(form))
    return queries.update_profile(fields)
