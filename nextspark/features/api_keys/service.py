"""
API key management service.

Handles creation, validation, listing and revocation of API keys.
Keys follow the format: sk_<env>_<random_urlsafe>

Security properties:
- Only a bcrypt hash and the 12-character prefix are stored
- The full key is returned once, at creation
- Prefix lookup narrows candidates before bcrypt verification
- Scopes are checked on every request (`*` and `<entity>:*` wildcards)
"""
import logging
import secrets
import bcrypt
from datetime import timedelta
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select, insert, update
from sqlalchemy.orm import Session

from nextspark.core.config import settings
from nextspark.core.database import api_keys, ensure_utc, new_id, utc_now
from nextspark.core.errors import NotFoundError, ValidationError
from nextspark.models.api_key import ApiKey, ApiKeyCreated


logger = logging.getLogger(__name__)

KEY_PREFIX_LENGTH = 12

VALID_SCOPES = [
    "tasks:read",
    "tasks:write",
    "customers:read",
    "customers:write",
    "pages:read",
    "pages:write",
    "patterns:read",
    "patterns:write",
    "teams:read",
    "teams:write",
    "billing:read",
    "billing:write",
    "*",
]


def key_environment() -> str:
    return "live" if (settings.ENV or "").lower() == "production" else "test"


def generate_api_key() -> str:
    """Format: sk_<env>_<43 urlsafe chars>"""
    return f"sk_{key_environment()}_{secrets.token_urlsafe(32)}"


def hash_api_key(key: str) -> str:
    """Hash API key with bcrypt."""
    return bcrypt.hashpw(key.encode(), bcrypt.gensalt()).decode("utf-8")


def verify_api_key(key: str, key_hash: str) -> bool:
    """Verify API key against stored hash."""
    try:
        return bcrypt.checkpw(key.encode(), key_hash.encode())
    except ValueError:
        return False


def looks_like_api_key(value: Optional[str]) -> bool:
    return bool(value) and value.startswith("sk_")


def has_scope(scopes: Iterable[str], required: str) -> bool:
    granted = set(scopes or [])
    if "*" in granted or required in granted:
        return True
    entity = required.split(":", 1)[0]
    return f"{entity}:*" in granted


def _row_to_api_key(row) -> ApiKey:
    return ApiKey(
        id=row.id,
        key_prefix=row.key_prefix,
        name=row.name,
        user_id=row.user_id,
        team_id=row.team_id,
        scopes=list(row.scopes or []),
        status=row.status,
        expires_at=ensure_utc(row.expires_at),
        last_used_at=ensure_utc(row.last_used_at),
        created_at=ensure_utc(row.created_at),
    )


def create_api_key(
    db: Session,
    user_id: str,
    team_id: Optional[str],
    name: str,
    scopes: List[str],
    expires_in_days: Optional[int] = None,
) -> ApiKeyCreated:
    """
    Create a new API key.
    Returns the stored metadata plus the full key (only time it is shown).
    """
    if not name or not name.strip():
        raise ValidationError("API key name is required")
    if not scopes:
        raise ValidationError("At least one scope is required")
    invalid_scopes = [
        s for s in scopes
        if s not in VALID_SCOPES and not (s.endswith(":*") and f"{s[:-2]}:read" in VALID_SCOPES)
    ]
    if invalid_scopes:
        raise ValidationError(f"Invalid scopes: {invalid_scopes}", details={"invalid": invalid_scopes})

    full_key = generate_api_key()
    now = utc_now()
    key_id = new_id()
    db.execute(
        insert(api_keys).values(
            id=key_id,
            key_prefix=full_key[:KEY_PREFIX_LENGTH],
            key_hash=hash_api_key(full_key),
            name=name.strip(),
            user_id=user_id,
            team_id=team_id,
            scopes=list(scopes),
            status="active",
            expires_at=now + timedelta(days=expires_in_days) if expires_in_days else None,
            created_at=now,
        )
    )
    db.commit()

    row = db.execute(select(api_keys).where(api_keys.c.id == key_id)).first()
    logger.info("[api_keys] key created", extra={"user_id": user_id, "team_id": team_id})
    return ApiKeyCreated(api_key=_row_to_api_key(row), key=full_key)


def validate_api_key(db: Session, key: str) -> Optional[ApiKey]:
    """
    Validate a presented key.

    Returns the key metadata when it is active, unexpired and matches a
    stored hash; updates last_used_at. Returns None otherwise.
    """
    if not looks_like_api_key(key) or len(key) <= KEY_PREFIX_LENGTH:
        return None

    rows = db.execute(
        select(api_keys)
        .where(api_keys.c.key_prefix == key[:KEY_PREFIX_LENGTH])
        .where(api_keys.c.status == "active")
    ).fetchall()

    now = utc_now()
    for row in rows:
        expires_at = ensure_utc(row.expires_at)
        if expires_at and expires_at <= now:
            continue
        if not verify_api_key(key, row.key_hash):
            continue
        db.execute(update(api_keys).where(api_keys.c.id == row.id).values(last_used_at=now))
        db.commit()
        return _row_to_api_key(row)
    return None


def list_api_keys(db: Session, user_id: str, team_id: Optional[str] = None) -> List[ApiKey]:
    stmt = select(api_keys).where(api_keys.c.user_id == user_id)
    if team_id:
        stmt = stmt.where(api_keys.c.team_id == team_id)
    rows = db.execute(stmt.order_by(api_keys.c.created_at.desc())).fetchall()
    return [_row_to_api_key(row) for row in rows]


def revoke_api_key(db: Session, key_id: str, user_id: Optional[str] = None, team_id: Optional[str] = None) -> ApiKey:
    """Revoke a key owned by the user (or by the team when team_id is given)."""
    stmt = select(api_keys).where(api_keys.c.id == key_id)
    if team_id:
        stmt = stmt.where(api_keys.c.team_id == team_id)
    elif user_id:
        stmt = stmt.where(api_keys.c.user_id == user_id)
    row = db.execute(stmt).first()
    if not row:
        raise NotFoundError("API key not found")

    db.execute(update(api_keys).where(api_keys.c.id == key_id).values(status="revoked"))
    db.commit()
    logger.info("[api_keys] key revoked", extra={"user_id": user_id, "team_id": row.team_id})
    return _row_to_api_key(db.execute(select(api_keys).where(api_keys.c.id == key_id)).first())
