import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import Profile
from ..services.permissions import Capabilities, can_sync, has_role


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, role: Optional[str] = None, tenant_type: Optional[str] = None) -> str:
    return _create_token(user_id, settings.jwt_ttl_seconds, extra={"role": role, "tenant": tenant_type})


def create_refresh_token(user_id: str) -> str:
    return _create_token(user_id, settings.refresh_ttl_seconds, extra={"type": "refresh"})


def tokens_for(profile: Profile) -> dict:
    return {
        "access_token": create_access_token(str(profile.id), role=profile.role, tenant_type=profile.tenant_type),
        "refresh_token": create_refresh_token(str(profile.id)),
    }


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def _load_profile(payload: dict, db: Session) -> Profile:
    if payload.get("type") == "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    user = db.query(Profile).filter(Profile.id == user_uuid).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    return user


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> Profile:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return _load_profile(decode_token(creds.credentials), db)


def get_optional_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> Optional[Profile]:
    """Anonymous callers resolve to None; a bad token is still a 401."""
    if creds is None:
        return None
    return _load_profile(decode_token(creds.credentials), db)


def require_app_roles(*roles: str):
    """Caller must hold one of the given roles."""
    def _dep(user: Profile = Depends(get_current_user)) -> Profile:
        if not has_role(user.role, *roles):
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return _dep


def require_capability(name: str):
    def _dep(user: Profile = Depends(get_current_user)) -> Profile:
        if not getattr(Capabilities.for_role(user.role), name):
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return _dep


def require_tenant(tenant_type: str):
    def _dep(user: Profile = Depends(get_current_user)) -> Profile:
        if user.tenant_type != tenant_type:
            raise HTTPException(status_code=403, detail=f"Only available to {tenant_type} accounts")
        return user

    return _dep


def require_sync_access(user: Profile = Depends(get_current_user)) -> Profile:
    if not can_sync(user.tenant_type, user.role):
        raise HTTPException(status_code=403, detail="Smartsheet sync requires an internal admin or supervisor")
    return user
