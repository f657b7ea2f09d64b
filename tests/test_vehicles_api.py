from datetime import date, timedelta

import pytest

from fleetcommand.models.models import AuditLog, DemoVehicle, TaskTemplate, Vehicle, VehicleTask
from fleetcommand.services.audit import verify_entry
from conftest import PASSWORD


def vehicle_payload(regions, **overrides):
    body = {
        "vehicle_id": "E450-1",
        "vin": "1fdxe45p84hb12345",
        "plate": "AMB-1",
        "make": "Ford",
        "model": "E-450",
        "year": 2023,
        "type": "ALS",
        "region_id": str(regions["OC"].id),
    }
    body.update(overrides)
    return body


@pytest.fixture
def als_templates(db):
    steps = [
        (1, "Safety check", "Safety", dict(sla_hours=24)),
        (2, "Radio install", "IT", dict(requires_evidence=True, dependent_step_id="1")),
        (3, "Final sign-off", "Admin", dict(requires_approval=True)),
    ]
    for order, name, category, extra in steps:
        db.add(TaskTemplate(
            template_id="ALS-STD",
            name="ALS Standard",
            vehicle_type="ALS",
            step_order=order,
            step_name=name,
            step_category=category,
            **extra,
        ))
    db.commit()


class TestVehicles:
    def test_create_and_fetch(self, client, technician, regions):
        _, headers = technician
        resp = client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        assert resp.status_code == 201
        body = resp.json()
        assert body["vin"] == "1FDXE45P84HB12345"
        assert body["status"] == "Draft"

        fetched = client.get("/vehicles/E450-1", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json()["id"] == body["id"]

    def test_duplicate_code_is_409(self, client, technician, regions):
        _, headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        assert client.post("/vehicles", json=vehicle_payload(regions), headers=headers).status_code == 409

    @pytest.mark.parametrize("field,value", [
        ("vin", "SHORT"),
        ("vin", "1FDXE45P84HB1234O"),
        ("year", 1800),
        ("type", "Tank"),
        ("plate", ""),
    ])
    def test_invalid_fields_are_422(self, client, technician, regions, field, value):
        _, headers = technician
        resp = client.post("/vehicles", json=vehicle_payload(regions, **{field: value}), headers=headers)
        assert resp.status_code == 422

    def test_unknown_region_is_400(self, client, technician, regions):
        _, headers = technician
        body = vehicle_payload(regions, region_id="00000000-0000-0000-0000-000000000000")
        assert client.post("/vehicles", json=body, headers=headers).status_code == 400

    def test_viewer_cannot_write(self, client, viewer, regions):
        _, headers = viewer
        assert client.post("/vehicles", json=vehicle_payload(regions), headers=headers).status_code == 403
        assert client.get("/vehicles", headers=headers).status_code == 200

    def test_anonymous_is_401(self, client):
        assert client.get("/vehicles").status_code == 401

    def test_list_filters(self, client, technician, regions):
        _, headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        client.post(
            "/vehicles",
            json=vehicle_payload(regions, vehicle_id="BLS-7", vin="1FDXE45P84HB54321", type="BLS",
                                 region_id=str(regions["LA"].id), make="Chevrolet"),
            headers=headers,
        )

        def codes(**params):
            return [v["vehicle_id"] for v in client.get("/vehicles", params=params, headers=headers).json()]

        assert codes() == ["BLS-7", "E450-1"]
        assert codes(type="ALS") == ["E450-1"]
        assert codes(region="LA") == ["BLS-7"]
        assert codes(search="chev") == ["BLS-7"]
        assert codes(status="Ready") == []

    def test_update_writes_audit_diff(self, client, db, technician, regions):
        _, headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        resp = client.patch("/vehicles/E450-1", json={"odometer": 1200, "status": "Out-of-Service"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["odometer"] == 1200

        entry = db.query(AuditLog).filter(AuditLog.action == "UPDATE").one()
        assert entry.details["odometer"] == {"before": 0, "after": 1200}
        assert verify_entry(entry)

    def test_required_field_cannot_be_cleared(self, client, technician, regions):
        _, headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        assert client.patch("/vehicles/E450-1", json={"make": None}, headers=headers).status_code == 400

    def test_missing_vehicle_is_404(self, client, technician):
        _, headers = technician
        assert client.get("/vehicles/NOPE", headers=headers).status_code == 404


class TestCommissioningFlow:
    def _commission(self, client, headers, regions):
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        return client.post("/vehicles/E450-1/commission", headers=headers)

    def test_commission_creates_tasks_once(self, client, technician, regions, als_templates):
        _, headers = technician
        resp = self._commission(client, headers, regions)
        assert resp.status_code == 200
        body = resp.json()
        assert body["vehicle"]["status"] == "Commissioning"
        assert body["tasks_created"] == 3
        assert [t["step_name"] for t in body["tasks"]] == ["Safety check", "Radio install", "Final sign-off"]
        assert body["progress"]["total"] == 3

        again = client.post("/vehicles/E450-1/commission", headers=headers).json()
        assert again["tasks_created"] == 0
        assert len(again["tasks"]) == 3

    def test_technician_works_a_task_supervisor_approves(self, client, db, technician, supervisor, regions, als_templates):
        _, tech_headers = technician
        _, sup_headers = supervisor
        tasks = self._commission(client, tech_headers, regions).json()["tasks"]
        task_id = tasks[0]["id"]

        assert client.patch(f"/tasks/{task_id}", json={"status": "In Progress", "percent_complete": 40}, headers=tech_headers).status_code == 200
        submitted = client.patch(f"/tasks/{task_id}", json={"status": "Submitted"}, headers=tech_headers)
        assert submitted.status_code == 200
        assert submitted.json()["percent_complete"] == 100

        assert client.post(f"/tasks/{task_id}/approve", headers=tech_headers).status_code == 403
        assert client.patch(f"/tasks/{task_id}", json={"status": "Approved"}, headers=tech_headers).status_code == 403

        approved = client.post(f"/tasks/{task_id}/approve", json={"notes": "Looks good"}, headers=sup_headers)
        assert approved.status_code == 200
        body = approved.json()
        assert body["status"] == "Approved"
        assert body["approved_by"] is not None
        assert body["notes"] == "Looks good"

        transitions = db.query(AuditLog).filter(AuditLog.action == "TRANSITION").count()
        assert transitions == 3

    def test_terminal_task_only_accepts_notes(self, client, technician, supervisor, regions, als_templates):
        _, tech_headers = technician
        _, sup_headers = supervisor
        task_id = self._commission(client, tech_headers, regions).json()["tasks"][0]["id"]
        client.patch(f"/tasks/{task_id}", json={"status": "In Progress"}, headers=tech_headers)
        client.patch(f"/tasks/{task_id}", json={"status": "Submitted"}, headers=tech_headers)
        client.post(f"/tasks/{task_id}/reject", headers=sup_headers)

        assert client.patch(f"/tasks/{task_id}", json={"notes": "Vendor re-booked"}, headers=tech_headers).status_code == 200
        assert client.patch(f"/tasks/{task_id}", json={"percent_complete": 10}, headers=tech_headers).status_code == 409
        assert client.patch(f"/tasks/{task_id}", json={"status": "In Progress"}, headers=tech_headers).status_code == 409

    def test_evidence_required_to_submit(self, client, technician, regions, als_templates):
        _, headers = technician
        task_id = self._commission(client, headers, regions).json()["tasks"][1]["id"]
        client.patch(f"/tasks/{task_id}", json={"status": "In Progress"}, headers=headers)

        assert client.patch(f"/tasks/{task_id}", json={"status": "Submitted"}, headers=headers).status_code == 409
        resp = client.patch(
            f"/tasks/{task_id}",
            json={"status": "Submitted", "evidence_url": "https://files.example.com/radio.jpg"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["evidence_url"] == "https://files.example.com/radio.jpg"

    def test_illegal_jump_is_409(self, client, technician, regions, als_templates):
        _, headers = technician
        task_id = self._commission(client, headers, regions).json()["tasks"][0]["id"]
        assert client.patch(f"/tasks/{task_id}", json={"status": "Submitted"}, headers=headers).status_code == 409

    def test_unknown_assignee_is_400(self, client, technician, regions, als_templates):
        _, headers = technician
        task_id = self._commission(client, headers, regions).json()["tasks"][0]["id"]
        resp = client.patch(
            f"/tasks/{task_id}", json={"assignee_id": "00000000-0000-0000-0000-000000000000"}, headers=headers
        )
        assert resp.status_code == 400

    def test_progress_endpoint(self, client, technician, regions, als_templates):
        _, headers = technician
        self._commission(client, headers, regions)
        progress = client.get("/vehicles/E450-1/progress", headers=headers).json()
        assert progress["by_status"]["Not Started"] == 3
        assert progress["approved"] == 0


class TestTenantIsolation:
    def test_demo_user_sees_only_demo_rows(self, client, db, technician, demo_user, regions):
        _, internal_headers = technician
        _, demo_headers = demo_user
        client.post("/vehicles", json=vehicle_payload(regions), headers=internal_headers)
        client.post("/vehicles", json=vehicle_payload(regions, vehicle_id="DEMO-X"), headers=demo_headers)

        assert [v["vehicle_id"] for v in client.get("/vehicles", headers=demo_headers).json()] == ["DEMO-X"]
        assert [v["vehicle_id"] for v in client.get("/vehicles", headers=internal_headers).json()] == ["E450-1"]
        assert client.get("/vehicles/E450-1", headers=demo_headers).status_code == 404
        assert db.query(DemoVehicle).count() == 1
        assert db.query(Vehicle).count() == 1

    def test_demo_users_cannot_manage_templates(self, client, demo_user):
        _, headers = demo_user
        body = {
            "template_id": "X", "name": "X", "vehicle_type": "ALS",
            "step_order": 1, "step_name": "X", "step_category": "Safety",
        }
        assert client.post("/templates", json=body, headers=headers).status_code == 403

    def test_seed_demo_data(self, client, db, demo_user):
        profile, headers = demo_user
        resp = client.post("/demo/seed", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["vehicles"] == 3
        codes = sorted(v["vehicle_id"] for v in client.get("/vehicles", headers=headers).json())
        suffix = str(profile.id)[:8].upper()
        assert codes == [f"DEMO-00{n}-{suffix}" for n in (1, 2, 3)]

    def test_seeding_twice_is_409(self, client, db, demo_user):
        _, headers = demo_user
        assert client.post("/demo/seed", headers=headers).status_code == 200
        resp = client.post("/demo/seed", headers=headers)
        assert resp.status_code == 409
        assert "already been seeded" in resp.json()["detail"]
        assert db.query(DemoVehicle).count() == 3

    def test_internal_users_cannot_seed(self, client, supervisor):
        _, headers = supervisor
        assert client.post("/demo/seed", headers=headers).status_code == 403


class TestTemplatesApi:
    def test_create_and_list(self, client, supervisor, regions):
        _, headers = supervisor
        body = {
            "template_id": "BLS-STD", "name": "BLS Standard", "vehicle_type": "BLS",
            "step_order": 2, "step_name": "Branding", "step_category": "Branding",
            "dependent_step_id": "1", "region_id": str(regions["RIV"].id),
        }
        assert client.post("/templates", json=body, headers=headers).status_code == 201
        listed = client.get("/templates", params={"vehicle_type": "BLS"}, headers=headers).json()
        assert [t["step_name"] for t in listed] == ["Branding"]

    def test_self_dependency_is_422(self, client, supervisor):
        _, headers = supervisor
        body = {
            "template_id": "BLS-STD", "name": "BLS Standard", "vehicle_type": "BLS",
            "step_order": 2, "step_name": "Loop", "step_category": "Admin", "dependent_step_id": "2",
        }
        assert client.post("/templates", json=body, headers=headers).status_code == 422

    def test_technician_cannot_create(self, client, technician):
        _, headers = technician
        body = {
            "template_id": "X", "name": "X", "vehicle_type": "ALS",
            "step_order": 1, "step_name": "X", "step_category": "Safety",
        }
        assert client.post("/templates", json=body, headers=headers).status_code == 403


class TestInspectionsAndEquipment:
    def test_inspection_due_list(self, client, technician, regions):
        _, headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        soon = (date.today() + timedelta(days=5)).isoformat()
        later = (date.today() + timedelta(days=90)).isoformat()
        created = client.post("/vehicles/E450-1/inspections", json={"type": "CHP", "scheduled_date": soon}, headers=headers)
        assert created.status_code == 201
        client.post("/vehicles/E450-1/inspections", json={"type": "DMV", "scheduled_date": later}, headers=headers)

        due = client.get("/inspections/due", headers=headers).json()
        assert [i["type"] for i in due] == ["CHP"]

        inspection_id = created.json()["id"]
        passed = client.patch(f"/inspections/{inspection_id}", json={"result": "Pass"}, headers=headers)
        assert passed.json()["result"] == "Pass"
        assert client.get("/inspections/due", headers=headers).json() == []

    def test_equipment_service_schedule(self, client, supervisor, regions):
        _, headers = supervisor
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        catalog = client.post(
            "/equipment/catalog",
            json={"equipment_id": "LUCAS-3", "name": "LUCAS Chest Compression", "service_interval_days": 30},
            headers=headers,
        )
        assert catalog.status_code == 201

        installed_on = date.today() - timedelta(days=10)
        item = client.post(
            "/vehicles/E450-1/equipment",
            json={"equipment_id": catalog.json()["id"], "installed_date": installed_on.isoformat()},
            headers=headers,
        )
        assert item.status_code == 201
        assert item.json()["next_service_date"] == (installed_on + timedelta(days=30)).isoformat()

        due = client.get("/equipment/due", headers=headers).json()
        assert len(due) == 1

        serviced = client.post(
            f"/equipment/installed/{item.json()['id']}/service",
            json={"service_date": date.today().isoformat()},
            headers=headers,
        )
        assert serviced.json()["next_service_date"] == (date.today() + timedelta(days=30)).isoformat()

    def test_unknown_catalog_item_is_404(self, client, technician, regions):
        _, headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        resp = client.post(
            "/vehicles/E450-1/equipment",
            json={"equipment_id": "00000000-0000-0000-0000-000000000000"},
            headers=headers,
        )
        assert resp.status_code == 404


class TestDashboard:
    def test_kpis(self, client, db, technician, regions, als_templates):
        _, headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=headers)
        client.post(
            "/vehicles",
            json=vehicle_payload(regions, vehicle_id="R-1", vin="1FDXE45P84HB54321", status="Ready", region_id=None),
            headers=headers,
        )
        client.post("/vehicles/E450-1/commission", headers=headers)

        data = client.get("/dashboard", headers=headers).json()
        assert data["total_vehicles"] == 2
        assert data["readiness_rate"] == 50.0
        assert data["vehicles_by_status"]["Commissioning"] == 1
        assert data["vehicles_by_region"] == {"OC": 1, "Unassigned": 1}
        assert data["open_tasks"] == 3
        assert data["sla_breaches"] == 0

    def test_empty_fleet(self, client, viewer):
        _, headers = viewer
        data = client.get("/dashboard", headers=headers).json()
        assert data["total_vehicles"] == 0
        assert data["readiness_rate"] == 0.0


class TestUsersAndConfig:
    def test_admin_lists_users_with_counts(self, client, admin, technician, demo_user):
        _, headers = admin
        data = client.get("/users", params={"tenant": "demo"}, headers=headers).json()
        assert len(data["users"]) == 1
        assert data["tenant_counts"] == {"internal": 2, "demo": 1}
        assert data["role_counts"]["technician"] == 1

    def test_role_change_is_audited(self, client, db, admin, technician):
        _, headers = admin
        tech, tech_headers = technician
        resp = client.patch(f"/users/{tech.id}/role", json={"role": "supervisor"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["role"] == "supervisor"

        entry = db.query(AuditLog).filter(AuditLog.action == "ROLE_CHANGE").one()
        assert entry.details == {"from": "technician", "to": "supervisor"}

        # Capabilities follow the stored role, not the role baked into the old token
        me = client.get("/auth/me", headers=tech_headers).json()
        assert me["capabilities"]["can_approve"] is True

    def test_non_admin_cannot_list_users(self, client, supervisor):
        _, headers = supervisor
        assert client.get("/users", headers=headers).status_code == 403

    def test_audit_endpoint_reports_verification(self, client, admin, technician, regions):
        _, admin_headers = admin
        _, tech_headers = technician
        client.post("/vehicles", json=vehicle_payload(regions), headers=tech_headers)
        entries = client.get("/audit", params={"entity": "vehicle"}, headers=admin_headers).json()
        assert [e["action"] for e in entries] == ["CREATE"]
        assert entries[0]["verified"] is True

    def test_client_config(self, client):
        data = client.get("/config").json()
        assert data["app_mode"] == "internal"
        assert data["entry_mode"] == "landing"
        assert data["route_trees"] == ["internal", "demo"]
        assert data["internal"]["enable_public_signup"] is False

    def test_healthz(self, client):
        assert client.get("/healthz").json()["status"] == "ok"

    def test_request_id_is_echoed_or_minted(self, client):
        assert client.get("/healthz", headers={"X-Request-ID": "abc-123"}).headers["X-Request-ID"] == "abc-123"
        assert client.get("/healthz").headers["X-Request-ID"]


class TestDemoSignup:
    body = {"email": "Visitor@Example.com", "password": PASSWORD, "full_name": "Demo Visitor"}

    def test_disabled_outside_demo_mode(self, client):
        assert client.post("/auth/signup", json=self.body).status_code == 403

    def test_signup_seeds_demo_account(self, client, monkeypatch):
        monkeypatch.setattr("fleetcommand.auth.router.settings.app_mode", "demo")
        resp = client.post("/auth/signup", json=self.body)
        assert resp.status_code == 201
        headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

        me = client.get("/auth/me", headers=headers).json()
        assert me["tenant_type"] == "demo"
        assert me["email"] == "visitor@example.com"
        assert len(client.get("/vehicles", headers=headers).json()) == 3
        assert client.post("/demo/seed", headers=headers).status_code == 409

        assert client.post("/auth/signup", json=self.body).status_code == 409
