"""
nextspark/features/customers/service.py

Team customers (CRM records). account and office default to "Main".
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from nextspark.core.database import ensure_utc, customers
from nextspark.core.errors import ValidationError
from nextspark.features.billing.enforcement import enforce_action
from nextspark.features.entities import crud
from nextspark.features.teams.members import require_team_permission
from nextspark.features.usage.service import track_usage
from nextspark.models.customer import Customer


logger = logging.getLogger(__name__)

ENTITY = "customer"
FIELDS = ("name", "account", "office", "phone", "salesperson", "visit_days", "contact_days")
DEFAULT_ACCOUNT = "Main"
DEFAULT_OFFICE = "Main"


def _row_to_customer(row) -> Customer:
    return Customer(
        id=row.id,
        team_id=row.team_id,
        user_id=row.user_id,
        name=row.name,
        account=row.account,
        office=row.office,
        phone=row.phone,
        salesperson=row.salesperson,
        visit_days=row.visit_days,
        contact_days=row.contact_days,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in fields.items() if k in FIELDS}
    if "name" in values and values["name"] is None:
        values.pop("name")
    if "name" in values and not (values["name"] or "").strip():
        raise ValidationError("Customer name is required")
    for key in ("account", "office"):
        if key in values and not values[key]:
            values[key] = DEFAULT_ACCOUNT if key == "account" else DEFAULT_OFFICE
    return values


def list_customers(
    team_id: str,
    user_id: str,
    account: Optional[str] = None,
    salesperson: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[List[Customer], int]:
    require_team_permission(team_id, user_id, "customers.list")
    rows, total = crud.list_rows(
        customers, team_id, filters={"account": account, "salesperson": salesperson}, limit=limit, offset=offset
    )
    return [_row_to_customer(row) for row in rows], total


def search_customers(
    team_id: str, user_id: str, query: str, limit: Optional[int] = None, offset: Optional[int] = None
) -> Tuple[List[Customer], int]:
    require_team_permission(team_id, user_id, "customers.list")
    rows, total = crud.list_rows(
        customers,
        team_id,
        query=query,
        search_columns=("name", "office", "phone", "salesperson"),
        limit=limit,
        offset=offset,
    )
    return [_row_to_customer(row) for row in rows], total


def get_customer(team_id: str, user_id: str, customer_id: str) -> Customer:
    require_team_permission(team_id, user_id, "customers.read")
    return _row_to_customer(crud.get_row(customers, team_id, customer_id, "Customer"))


def create_customer(team_id: str, user_id: str, fields: Dict[str, Any]) -> Customer:
    require_team_permission(team_id, user_id, "customers.create")
    values = _clean(fields)
    if not values.get("name"):
        raise ValidationError("Customer name is required")
    enforce_action(user_id, team_id, "customers.create")

    values.setdefault("account", DEFAULT_ACCOUNT)
    values.setdefault("office", DEFAULT_OFFICE)
    customer = _row_to_customer(crud.insert_row(customers, {**values, "team_id": team_id, "user_id": user_id}))
    track_usage(team_id, "customers", 1)
    crud.emit_entity_event(ENTITY, "created", customer.id, customer.to_api(), team_id)
    return customer


def update_customer(team_id: str, user_id: str, customer_id: str, fields: Dict[str, Any]) -> Customer:
    require_team_permission(team_id, user_id, "customers.update")
    customer = _row_to_customer(crud.update_row(customers, team_id, customer_id, _clean(fields), "Customer"))
    crud.emit_entity_event(ENTITY, "updated", customer.id, customer.to_api(), team_id)
    return customer


def delete_customer(team_id: str, user_id: str, customer_id: str) -> None:
    require_team_permission(team_id, user_id, "customers.delete")
    crud.delete_row(customers, team_id, customer_id, "Customer")
    track_usage(team_id, "customers", -1)
    crud.emit_entity_event(ENTITY, "deleted", customer_id, {"id": customer_id}, team_id)
