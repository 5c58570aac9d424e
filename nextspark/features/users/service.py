"""
User domain service.
- get_or_create_user(user_id, email, name)
- get_user(user_id)
- update_user(user_id, fields)
- get_system_role(user_id)
"""

from typing import Any, Dict, Optional
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from nextspark.core.database import get_db_session, users, ensure_utc, utc_now
from nextspark.core.errors import ConflictError, NotFoundError, ValidationError
from nextspark.models.user import User


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        role=row.role,
        created_at=ensure_utc(row.created_at),
    )


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.id == user_id)).first()
        return _row_to_user(row) if row else None


def get_system_role(user_id: str) -> Optional[str]:
    with get_db_session() as session:
        row = session.execute(select(users.c.role).where(users.c.id == user_id)).first()
        return row[0] if row else None


def get_or_create_user(user_id: str, email: Optional[str] = None, name: Optional[str] = None) -> User:
    existing = get_user(user_id)
    if existing:
        return existing

    now = utc_now()
    try:
        with get_db_session() as session:
            session.execute(
                insert(users).values(id=user_id, email=email, name=name, role="member", created_at=now, updated_at=now)
            )
    except IntegrityError:
        # Lost a race with another request creating the same user
        existing = get_user(user_id)
        if existing:
            return existing
        raise ConflictError("Email already in use")
    return User(id=user_id, email=email, name=name, role="member", created_at=now)


def update_user(user_id: str, fields: Dict[str, Any]) -> User:
    values = {k: v for k, v in fields.items() if k in ("name", "email")}
    if not values:
        raise ValidationError("No fields to update", code="NO_FIELDS")
    try:
        with get_db_session() as session:
            result = session.execute(update(users).where(users.c.id == user_id).values(**values))
            if result.rowcount == 0:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")
    except IntegrityError:
        raise ConflictError("Email already in use")
    return get_user(user_id)
