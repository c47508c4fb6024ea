"""Shared route dependencies - caller identity."""

from fastapi import Depends, Request

from challenge_picker.config import settings
from challenge_picker.errors import Unauthorized


def get_caller_id(request: Request) -> str | None:
    """User id set by the upstream auth layer, or None for anonymous viewers."""
    value = request.headers.get(settings.USER_ID_HEADER, "").strip()
    return value or None


def require_user(caller_id: str | None = Depends(get_caller_id)) -> str:
    if caller_id is None:
        raise Unauthorized()
    return caller_id
