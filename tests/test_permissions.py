import pytest

from fleetcommand.services.permissions import (
    AppRole,
    Capabilities,
    EntryMode,
    TenantType,
    can_sync,
    entry_home,
    has_role,
    resolve_route,
    tenants_for_entry_mode,
)


class TestCapabilities:
    @pytest.mark.parametrize("role,edit,approve,admin", [
        ("admin", True, True, True),
        ("supervisor", True, True, False),
        ("technician", True, False, False),
        ("viewer", False, False, False),
        (None, False, False, False),
        ("janitor", False, False, False),
    ])
    def test_role_matrix(self, role, edit, approve, admin):
        caps = Capabilities.for_role(role)
        assert caps.can_edit_vehicles is edit
        assert caps.can_approve is approve
        assert caps.is_admin is admin

    def test_accepts_enum_members(self):
        assert Capabilities.for_role(AppRole.supervisor).can_approve is True
        assert has_role(AppRole.admin, "admin", "supervisor")
        assert not has_role(None, "admin")

    def test_as_dict(self):
        assert Capabilities.for_role("technician").as_dict() == {
            "can_edit_vehicles": True,
            "can_approve": False,
            "is_admin": False,
        }

    @pytest.mark.parametrize("tenant,role,expected", [
        ("internal", "admin", True),
        ("internal", "supervisor", True),
        ("internal", "technician", False),
        ("demo", "admin", False),
        ("demo", "supervisor", False),
        (None, "admin", False),
    ])
    def test_sync_is_internal_approvers_only(self, tenant, role, expected):
        assert can_sync(tenant, role) is expected


class TestEntryModes:
    def test_available_tenants(self):
        assert tenants_for_entry_mode("landing") == {"internal", "demo"}
        assert tenants_for_entry_mode(EntryMode.internal) == {"internal"}
        assert tenants_for_entry_mode("demo") == {"demo"}

    def test_home(self):
        assert entry_home("landing") == "/"
        assert entry_home("internal") == "/"
        assert entry_home("demo") == "/demo"


class TestResolveRoute:
    @pytest.mark.parametrize("required", ["internal", "demo"])
    def test_own_tree_is_allowed(self, required):
        decision = resolve_route(required, required, "landing")
        assert decision.allowed is True
        assert decision.redirect_to is None

    def test_demo_user_is_sent_out_of_internal_tree(self):
        decision = resolve_route("internal", "demo", "landing")
        assert decision.allowed is False
        assert decision.redirect_to == "/demo"

    def test_internal_user_is_sent_out_of_demo_tree(self):
        decision = resolve_route(TenantType.demo, TenantType.internal, EntryMode.landing)
        assert decision.allowed is False
        assert decision.redirect_to == "/"

    @pytest.mark.parametrize("required,login", [("internal", "/auth"), ("demo", "/demo/login")])
    def test_anonymous_goes_to_tree_login(self, required, login):
        assert resolve_route(required, None, "landing").redirect_to == login

    def test_unexposed_tree_is_never_entered(self):
        assert resolve_route("demo", "demo", "internal").redirect_to == "/"
        assert resolve_route("internal", "internal", "demo").redirect_to == "/demo"
        assert resolve_route("demo", None, "internal").allowed is False

    def test_redirect_never_points_into_unexposed_tree(self):
        # Only the internal tree exists; a demo user is sent to its login, not to /demo
        assert resolve_route("internal", "demo", "internal").redirect_to == "/auth"
        assert resolve_route("demo", "internal", "demo").redirect_to == "/demo/login"


class TestRouteAccessApi:
    def test_reports_decision_and_capabilities(self, client, technician):
        _, headers = technician
        resp = client.get("/auth/route-access", params={"tenant": "internal"}, headers=headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["allowed"] is True
        assert data["capabilities"]["can_edit_vehicles"] is True
        assert data["capabilities"]["can_approve"] is False

    def test_demo_user_redirected(self, client, demo_user):
        _, headers = demo_user
        data = client.get("/auth/route-access", params={"tenant": "internal"}, headers=headers).json()
        assert data["allowed"] is False
        assert data["redirect_to"] == "/demo"

    def test_anonymous(self, client):
        data = client.get("/auth/route-access", params={"tenant": "demo"}).json()
        assert data["allowed"] is False
        assert data["redirect_to"] == "/demo/login"
