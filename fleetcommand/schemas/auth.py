import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator

from ..services.permissions import AppRole, TenantType
from ..services.validation import validate_email, validate_password, validate_text


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class SignupRequest(BaseModel):
    email: str
    password: str
    full_name: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)

    @field_validator("full_name")
    @classmethod
    def check_name(cls, v):
        return validate_text(v, "full_name", "Full name", 100)


class InvitationRequest(BaseModel):
    email: str
    role: AppRole

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class InvitationResponse(BaseModel):
    success: bool = True
    invitation_id: uuid.UUID
    message: str
    email_sent: bool = False


class InvitationDetails(BaseModel):
    email: str
    role: AppRole
    expires_at: datetime


class RegisterRequest(BaseModel):
    invitation_token: str
    full_name: str
    password: str

    @field_validator("full_name")
    @classmethod
    def check_name(cls, v):
        return validate_text(v, "full_name", "Full name", 100)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return validate_password(v)


class MeResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    role: Optional[AppRole] = None
    tenant_type: TenantType
    capabilities: Dict[str, bool]


class RouteAccessResponse(BaseModel):
    allowed: bool
    redirect_to: Optional[str] = None
    capabilities: Optional[dict] = None


class UserSummary(BaseModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    role: Optional[AppRole] = None
    tenant_type: TenantType
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    users: List[UserSummary]
    role_counts: Dict[str, int]
    tenant_counts: Dict[str, int]


class RoleChange(BaseModel):
    role: AppRole
