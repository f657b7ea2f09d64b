import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..config import settings
from ..models.models import Profile, UserRole, Invitation
from ..schemas.auth import (
    LoginRequest,
    RefreshRequest,
    TokenResponse,
    SignupRequest,
    InvitationRequest,
    InvitationResponse,
    InvitationDetails,
    RegisterRequest,
    MeResponse,
    RouteAccessResponse,
)
from ..services.audit import record_audit
from ..services.demo_seed import seed_demo_data
from ..services.mailer import send_invitation_email
from ..services.permissions import AppRole, TenantType, Capabilities, resolve_route
from .security import (
    get_password_hash,
    verify_password,
    tokens_for,
    decode_token,
    get_current_user,
    get_optional_user,
    require_app_roles,
)
from ..logging import structlog


router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger()


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes; assume UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _create_profile(db: Session, email: str, password: str, full_name: str, tenant_type: str, role: str) -> Profile:
    if db.query(Profile).filter(Profile.email == email).first():
        raise HTTPException(status_code=409, detail="Email already registered")
    profile = Profile(
        email=email,
        full_name=full_name,
        password_hash=get_password_hash(password),
        tenant_type=tenant_type,
        is_active=True,
    )
    profile.role_entry = UserRole(role=role)
    db.add(profile)
    db.flush()
    return profile


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(Profile).filter(Profile.email == req.email).first()
    if not user or not user.is_active or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return TokenResponse(**tokens_for(user))


def _subject(payload: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid subject")


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    user = db.query(Profile).filter(Profile.id == _subject(payload)).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not active")
    return TokenResponse(**tokens_for(user))


@router.post("/signup", response_model=TokenResponse, status_code=201)
def signup(req: SignupRequest, db: Session = Depends(get_db)):
    """Public self-service signup; demo deployments only."""
    if settings.app_mode != "demo":
        raise HTTPException(status_code=403, detail="Public signup is disabled")
    profile = _create_profile(
        db, req.email, req.password, req.full_name, TenantType.demo.value, AppRole.supervisor.value
    )
    db.commit()
    db.refresh(profile)
    seed_demo_data(db, profile)
    log.info("demo_signup", user_id=str(profile.id))
    return TokenResponse(**tokens_for(profile))


@router.get("/me", response_model=MeResponse)
def me(user: Profile = Depends(get_current_user)):
    return MeResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        tenant_type=user.tenant_type,
        capabilities=Capabilities.for_role(user.role).as_dict(),
    )


@router.get("/route-access", response_model=RouteAccessResponse)
def route_access(tenant: TenantType, user: Optional[Profile] = Depends(get_optional_user)):
    decision = resolve_route(tenant.value, user.tenant_type if user else None, settings.entry_mode)
    return RouteAccessResponse(
        allowed=decision.allowed,
        redirect_to=decision.redirect_to,
        capabilities=Capabilities.for_role(user.role if user else None).as_dict(),
    )


# ---------- INVITATIONS ----------

@router.post("/invitations", response_model=InvitationResponse)
def create_invitation(
    req: InvitationRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_app_roles(AppRole.admin.value)),
):
    if db.query(Profile).filter(Profile.email == req.email).first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")
    token = secrets.token_urlsafe(32)
    inv = Invitation(
        email=req.email,
        role=req.role.value,
        token=token,
        invited_by=user.id,
        status="pending",
        created_at=datetime.now(timezone.utc),
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.invitation_ttl_days),
    )
    db.add(inv)
    db.flush()
    record_audit(db, "invitation", inv.id, "INVITE", user.id, {"email": req.email, "role": req.role.value})
    db.commit()
    log.info("invitation_created", invitation_id=str(inv.id), role=req.role.value)

    email_sent = send_invitation_email(req.email, req.role.value, token, request.headers.get("origin"))
    return InvitationResponse(invitation_id=inv.id, message="Invitation sent successfully", email_sent=email_sent)


def _usable_invitation(db: Session, token: str) -> Invitation:
    inv: Optional[Invitation] = db.query(Invitation).filter(Invitation.token == token).first()
    if not inv:
        raise HTTPException(status_code=404, detail="Invalid invitation")
    if inv.status != "pending" or inv.accepted_at is not None:
        raise HTTPException(status_code=400, detail="Invitation has already been used or expired")
    if _aware(inv.expires_at) < datetime.now(timezone.utc):
        inv.status = "expired"
        db.commit()
        raise HTTPException(status_code=400, detail="Invitation has already been used or expired")
    return inv


@router.get("/invitations/{token}", response_model=InvitationDetails)
def validate_invitation(token: str, db: Session = Depends(get_db)):
    inv = _usable_invitation(db, token)
    return InvitationDetails(email=inv.email, role=inv.role, expires_at=_aware(inv.expires_at))


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    inv = _usable_invitation(db, req.invitation_token)
    profile = _create_profile(db, inv.email, req.password, req.full_name, TenantType.internal.value, inv.role)
    inv.status = "accepted"
    inv.accepted_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(profile)
    log.info("invitation_accepted", invitation_id=str(inv.id), user_id=str(profile.id))
    return TokenResponse(**tokens_for(profile))
