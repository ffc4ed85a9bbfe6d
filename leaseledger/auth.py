# leaseledger/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .models import APP_ROLES, AppUser, UserRole, utcnow


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    role: str  # admin | owner | tenant | ops


def _get_user_by_email(db: Session, email: str) -> AppUser | None:
    return db.scalar(select(AppUser).where(AppUser.email == email))


def _has_role(db: Session, user_id: str, role: str) -> bool:
    return db.scalar(select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role)) is not None


def get_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    """
    Identity comes from two headers (X-User-Email / X-User-Role by default).

    auth_mode:
      - dev:     unknown users and roles are provisioned on first sight
                 (only when dev_auto_provision is on)
      - headers: an upstream gateway has authenticated the caller; the user
                 must exist and hold the claimed role
    """
    email = (request.headers.get(settings.dev_header_user_email) or "").strip().lower()
    role = (request.headers.get(settings.dev_header_user_role) or "tenant").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_email}")
    if role not in APP_ROLES:
        raise HTTPException(status_code=403, detail=f"Unknown role: {role}")

    mode = (settings.auth_mode or "").strip().lower()
    provision = mode == "dev" and bool(settings.dev_auto_provision)

    user = _get_user_by_email(db, email=email)
    if user is None and provision:
        user = AppUser(email=email, full_name=email.split("@")[0], created_at=utcnow())
        db.add(user)
        db.flush()
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")

    if not _has_role(db, user.id, role):
        if not provision:
            raise HTTPException(status_code=403, detail=f"User does not hold role {role}")
        db.add(UserRole(user_id=user.id, role=role, created_at=utcnow()))

    # end the identity transaction so procedures start on a clean boundary
    db.commit()
    return Principal(user_id=str(user.id), email=str(user.email), role=role)


def require_roles(*roles: str) -> Callable[..., Principal]:
    allowed = set(roles)

    def _dep(p: Principal = Depends(get_principal)) -> Principal:
        if p.role not in allowed:
            raise HTTPException(status_code=403, detail=f"Requires role in {sorted(allowed)}")
        return p

    return _dep


require_operator = require_roles("admin", "ops")
require_owner = require_roles("admin", "owner")
