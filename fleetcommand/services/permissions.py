"""
Role and tenant capability lookups.

These are pure functions over a role/tenant value. They drive which
affordances a client renders; the server-side dependencies in
auth/security.py call into them again on every mutating request.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional


class AppRole(str, Enum):
    admin = "admin"
    supervisor = "supervisor"
    technician = "technician"
    viewer = "viewer"


class TenantType(str, Enum):
    internal = "internal"
    demo = "demo"


class EntryMode(str, Enum):
    landing = "landing"
    internal = "internal"
    demo = "demo"


class AppMode(str, Enum):
    internal = "internal"
    demo = "demo"


EDITOR_ROLES = frozenset({AppRole.admin.value, AppRole.supervisor.value, AppRole.technician.value})
APPROVER_ROLES = frozenset({AppRole.admin.value, AppRole.supervisor.value})
ADMIN_ROLES = frozenset({AppRole.admin.value})
SYNC_ROLES = APPROVER_ROLES


def _value(v) -> Optional[str]:
    if v is None:
        return None
    return v.value if isinstance(v, Enum) else str(v)


def has_role(role: Optional[str], *roles: str) -> bool:
    role = _value(role)
    return bool(role) and role in {_value(r) for r in roles}


@dataclass(frozen=True)
class Capabilities:
    role: Optional[str]
    can_edit_vehicles: bool
    can_approve: bool
    is_admin: bool

    @classmethod
    def for_role(cls, role: Optional[str]) -> "Capabilities":
        role = _value(role)
        return cls(
            role=role,
            can_edit_vehicles=has_role(role, *EDITOR_ROLES),
            can_approve=has_role(role, *APPROVER_ROLES),
            is_admin=has_role(role, *ADMIN_ROLES),
        )

    def as_dict(self) -> dict:
        return {
            "can_edit_vehicles": self.can_edit_vehicles,
            "can_approve": self.can_approve,
            "is_admin": self.is_admin,
        }


def can_sync(tenant_type: Optional[str], role: Optional[str]) -> bool:
    return _value(tenant_type) == TenantType.internal.value and has_role(role, *SYNC_ROLES)


# ---------- Route trees ----------

TENANT_HOME = {
    TenantType.internal.value: "/",
    TenantType.demo.value: "/demo",
}

TENANT_LOGIN = {
    TenantType.internal.value: "/auth",
    TenantType.demo.value: "/demo/login",
}


@dataclass(frozen=True)
class RouteDecision:
    allowed: bool
    redirect_to: Optional[str] = None


def tenants_for_entry_mode(entry_mode: str) -> FrozenSet[str]:
    entry_mode = _value(entry_mode)
    if entry_mode == EntryMode.internal.value:
        return frozenset({TenantType.internal.value})
    if entry_mode == EntryMode.demo.value:
        return frozenset({TenantType.demo.value})
    return frozenset({TenantType.internal.value, TenantType.demo.value})


def entry_home(entry_mode: str) -> str:
    entry_mode = _value(entry_mode)
    if entry_mode == EntryMode.demo.value:
        return TENANT_HOME[TenantType.demo.value]
    return TENANT_HOME[TenantType.internal.value]


def resolve_route(required_tenant: str, tenant_type: Optional[str], entry_mode: str) -> RouteDecision:
    """Decide whether a caller may enter a route tree in this deployment.

    The deployment's entry mode wins over the per-user tenant check: a tree
    the deployment does not expose is never entered, and a redirect never
    points into an unexposed tree.
    """
    required_tenant = _value(required_tenant)
    tenant_type = _value(tenant_type)
    available = tenants_for_entry_mode(entry_mode)

    if required_tenant not in available:
        return RouteDecision(False, entry_home(entry_mode))
    if tenant_type is None:
        return RouteDecision(False, TENANT_LOGIN[required_tenant])
    if tenant_type == required_tenant:
        return RouteDecision(True)

    # Demo routes send other tenants home; internal routes send them to /demo
    if required_tenant == TenantType.demo.value:
        target_tenant = TenantType.internal.value
    else:
        target_tenant = TenantType.demo.value
    if target_tenant not in available:
        return RouteDecision(False, TENANT_LOGIN[required_tenant])
    return RouteDecision(False, TENANT_HOME[target_tenant])
