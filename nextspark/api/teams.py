"""
Teams and memberships.

Membership is required for every /teams/{team_id} route; non-members get
404 so team ids are not guessable. Team updates check ownership for
owner-only fields before the generic team.update permission.

API-key callers need teams:read or teams:write and only ever see the team
their key is bound to. Creating a team needs a session login.
"""
from fastapi import APIRouter, Depends

from nextspark.core.auth import AuthContext, get_auth_context, require_scope, require_session
from nextspark.core.errors import PermissionError
from nextspark.core.responses import api_response
from nextspark.features.teams import members, service
from nextspark.models.team import MemberAddRequest, MemberRoleUpdateRequest, TeamCreateRequest, TeamUpdateRequest

router = APIRouter(prefix="/teams", tags=["teams"])

_read = [Depends(require_scope("teams:read"))]
_write = [Depends(require_scope("teams:write"))]


def team_caller(team_id: str, auth: AuthContext = Depends(get_auth_context)) -> str:
    """User id for a /teams/{team_id} route; keys are confined to their own team."""
    if auth.api_key and auth.api_key.team_id != team_id:
        raise PermissionError("API key is not valid for this team")
    return auth.user_id


@router.get("", dependencies=_read)
def list_teams(auth: AuthContext = Depends(get_auth_context)):
    teams = service.list_user_teams(auth.user_id)
    if auth.api_key:
        teams = [team for team in teams if team.id == auth.api_key.team_id]
    return api_response([team.to_api() for team in teams], total=len(teams))


@router.post("", status_code=201)
def create_team(body: TeamCreateRequest, auth: AuthContext = Depends(require_session)):
    team = service.create_team(auth.user_id, body.name, slug=body.slug, description=body.description)
    return api_response(team.to_api())


@router.get("/{team_id}", dependencies=_read)
def get_team(team_id: str, user_id: str = Depends(team_caller)):
    return api_response(service.get_team(team_id, user_id).to_api())


@router.patch("/{team_id}", dependencies=_write)
def update_team(team_id: str, body: TeamUpdateRequest, user_id: str = Depends(team_caller)):
    return api_response(service.update_team(team_id, user_id, body.provided()).to_api())


@router.delete("/{team_id}", dependencies=_write)
def delete_team(team_id: str, user_id: str = Depends(team_caller)):
    service.delete_team(team_id, user_id)
    return api_response({"id": team_id, "deleted": True})


@router.get("/{team_id}/members", dependencies=_read)
def list_members(team_id: str, user_id: str = Depends(team_caller)):
    members.require_team_permission(team_id, user_id, "team.members.view")
    items = members.list_members(team_id)
    return api_response([m.to_api() for m in items], total=len(items))


@router.post("/{team_id}/members", status_code=201, dependencies=_write)
def add_member(team_id: str, body: MemberAddRequest, user_id: str = Depends(team_caller)):
    member = members.add_member(team_id, user_id, body.user_id, body.role)
    return api_response(member.to_api())


@router.patch("/{team_id}/members/{member_user_id}", dependencies=_write)
def update_member(
    team_id: str,
    member_user_id: str,
    body: MemberRoleUpdateRequest,
    user_id: str = Depends(team_caller),
):
    member = members.update_member_role(team_id, user_id, member_user_id, body.role)
    return api_response(member.to_api())


@router.delete("/{team_id}/members/{member_user_id}", dependencies=_write)
def remove_member(team_id: str, member_user_id: str, user_id: str = Depends(team_caller)):
    members.remove_member(team_id, user_id, member_user_id)
    return api_response({"teamId": team_id, "userId": member_user_id, "removed": True})
