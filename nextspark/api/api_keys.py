"""
API key management for the active team.

Keys are shown in full only in the POST response. Managing keys needs a
session (or header) login; API-key callers cannot mint or revoke keys.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from nextspark.core.auth import TeamContext, get_team_context
from nextspark.core.database import get_db
from nextspark.core.errors import PermissionError
from nextspark.core.responses import api_response
from nextspark.features.api_keys import service
from nextspark.features.billing.enforcement import enforce_action
from nextspark.features.teams.members import require_team_permission
from nextspark.models.api_key import ApiKeyCreateRequest

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


def _require_session(ctx: TeamContext) -> None:
    if ctx.auth.method == "api_key":
        raise PermissionError("API keys cannot manage API keys", code="SESSION_REQUIRED")


@router.get("")
def list_keys(ctx: TeamContext = Depends(get_team_context), db: Session = Depends(get_db)):
    require_team_permission(ctx.team_id, ctx.user_id, "api_keys.list")
    keys = service.list_api_keys(db, ctx.user_id, team_id=ctx.team_id)
    return api_response([key.to_api() for key in keys], total=len(keys))


@router.post("", status_code=201)
def create_key(body: ApiKeyCreateRequest, ctx: TeamContext = Depends(get_team_context), db: Session = Depends(get_db)):
    _require_session(ctx)
    enforce_action(ctx.user_id, ctx.team_id, "api_keys.create")
    created = service.create_api_key(
        db, ctx.user_id, ctx.team_id, body.name, body.scopes, expires_in_days=body.expires_in_days
    )
    return api_response(created.to_api())


@router.delete("/{key_id}")
def revoke_key(key_id: str, ctx: TeamContext = Depends(get_team_context), db: Session = Depends(get_db)):
    _require_session(ctx)
    require_team_permission(ctx.team_id, ctx.user_id, "api_keys.delete")
    return api_response(service.revoke_api_key(db, key_id, team_id=ctx.team_id).to_api())
