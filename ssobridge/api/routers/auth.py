"""Auth router — current user."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ssobridge.api.dependencies import get_current_active_user
from ssobridge.models.user import User
from ssobridge.schemas.user import UserOut

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserOut)
async def get_me(
    current_user: Annotated[User, Depends(get_current_active_user)],
) -> User:
    """Return the authenticated user's profile."""
    return current_user
