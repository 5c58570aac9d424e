"""Team customers."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nextspark.core.auth import TeamContext, get_team_context, require_scope
from nextspark.core.responses import api_response, paginated_response
from nextspark.features.customers import service
from nextspark.features.entities.crud import clamp_pagination
from nextspark.models.customer import CustomerCreateRequest, CustomerUpdateRequest

router = APIRouter(prefix="/customers", tags=["customers"])

_read = [Depends(require_scope("customers:read"))]
_write = [Depends(require_scope("customers:write"))]


@router.get("", dependencies=_read)
def list_customers(
    ctx: TeamContext = Depends(get_team_context),
    account: Optional[str] = Query(None),
    salesperson: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Search name, office, phone and salesperson"),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
):
    limit, offset = clamp_pagination(limit, offset)
    if q:
        items, total = service.search_customers(ctx.team_id, ctx.user_id, q, limit=limit, offset=offset)
    else:
        items, total = service.list_customers(
            ctx.team_id, ctx.user_id, account=account, salesperson=salesperson, limit=limit, offset=offset
        )
    return paginated_response([c.to_api() for c in items], total=total, limit=limit, offset=offset)


@router.post("", status_code=201, dependencies=_write)
def create_customer(body: CustomerCreateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.create_customer(ctx.team_id, ctx.user_id, body.model_dump()).to_api())


@router.get("/{customer_id}", dependencies=_read)
def get_customer(customer_id: str, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.get_customer(ctx.team_id, ctx.user_id, customer_id).to_api())


@router.patch("/{customer_id}", dependencies=_write)
def update_customer(customer_id: str, body: CustomerUpdateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.update_customer(ctx.team_id, ctx.user_id, customer_id, body.provided()).to_api())


@router.delete("/{customer_id}", dependencies=_write)
def delete_customer(customer_id: str, ctx: TeamContext = Depends(get_team_context)):
    service.delete_customer(ctx.team_id, ctx.user_id, customer_id)
    return api_response({"id": customer_id, "deleted": True})
