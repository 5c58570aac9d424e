"""
Current user profile.

- GET   /api/v1/users/me
- PATCH /api/v1/users/me (session login only)
"""
from fastapi import APIRouter, Depends

from nextspark.core.auth import AuthContext, get_current_user_id, require_session
from nextspark.core.errors import NotFoundError
from nextspark.core.responses import api_response
from nextspark.features.users.service import get_user, update_user
from nextspark.models.user import UserUpdateRequest

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
def read_me(user_id: str = Depends(get_current_user_id)):
    user = get_user(user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return api_response(user.to_api())


@router.patch("/me")
def update_me(body: UserUpdateRequest, auth: AuthContext = Depends(require_session)):
    return api_response(update_user(auth.user_id, body.provided()).to_api())
