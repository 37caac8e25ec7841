"""
BonusFlow - HTTP API Tests

End-to-end flows through the Flask test client.
"""

import pytest

from bonusflow.models import Branch, Employee, Role


@pytest.fixture()
def admin(make_employee):
    return make_employee("ADM1", "Ada", "Admin", role=Role.ADMIN)


class TestAuth:
    def test_login_and_me(self, client, make_employee):
        make_employee("E500", "Lou", "Login", password="secret12")

        response = client.post("/auth/login", json={"employee_id": "E500", "password": "secret12"})
        assert response.status_code == 200

        me = client.get("/auth/me")
        assert me.status_code == 200
        assert me.get_json()["user"]["employee_id"] == "E500"

    def test_bad_password(self, client, make_employee):
        make_employee("E500", password="secret12")

        response = client.post("/auth/login", json={"employee_id": "E500", "password": "nope"})

        assert response.status_code == 401

    def test_inactive_account(self, client, make_employee):
        make_employee("E500", password="secret12", is_active=False)

        response = client.post("/auth/login", json={"employee_id": "E500", "password": "secret12"})

        assert response.status_code == 403

    def test_unauthenticated_is_json_401(self, client):
        response = client.get("/api/employees/approvals/my-approvals")

        assert response.status_code == 401
        assert response.get_json()["code"] == "NOT_AUTHORIZED"


class TestBonusApprovalFlow:
    """Supervisor enters a bonus, A approves level 1, B approves level 2."""

    def test_full_flow(self, client, login, chain):
        employee_pk = chain["employee"].id

        login(chain["supervisor"])
        response = client.put(f"/api/employees/{employee_pk}/bonus", json={"bonus_2025": 1500})
        assert response.status_code == 200
        body = response.get_json()["employee"]
        assert body["bonus_2025"] == 1500.0
        assert body["overall_status"]["status"] == "pending"
        assert body["next_level"] == 1

        login(chain["b"])
        response = client.post(f"/api/employees/approvals/{employee_pk}", json={"level": 2, "action": "approve"})
        assert response.status_code == 400
        assert response.get_json()["code"] == "PREVIOUS_LEVEL_PENDING"
        assert response.get_json()["details"] == {"blocking_level": 1}

        eligibility = client.get(f"/api/employees/{employee_pk}/eligibility?level=2").get_json()
        assert eligibility["reason"] == "PREV_LEVEL_PENDING"

        login(chain["a"])
        queue = client.get("/api/employees/approvals/my-approvals").get_json()
        assert [item["employee_id"] for item in queue["employees"]] == ["E001"]

        response = client.post(
            f"/api/employees/approvals/{employee_pk}",
            json={"level": 1, "action": "approve", "comments": "ok"},
        )
        assert response.status_code == 200
        assert response.get_json()["message"] == "Bonus approved successfully at level 1"

        response = client.post(f"/api/employees/approvals/{employee_pk}", json={"level": 1, "action": "reject"})
        assert response.status_code == 400
        assert response.get_json()["code"] == "ALREADY_PROCESSED"

        login(chain["b"])
        assert client.get(f"/api/employees/{employee_pk}/eligibility?level=2").get_json()["can"] is True
        response = client.post(f"/api/employees/approvals/{employee_pk}", json={"level": 2, "action": "approve"})
        assert response.status_code == 200
        assert response.get_json()["employee"]["overall_status"]["status"] == "approved"

    def test_non_supervisor_cannot_enter_bonus(self, client, login, chain):
        login(chain["a"])

        response = client.put(f"/api/employees/{chain['employee'].id}/bonus", json={"bonus_2025": 10})

        assert response.status_code == 403
        assert response.get_json()["code"] == "NOT_AUTHORIZED"

    def test_invalid_bonus_amount(self, client, login, chain):
        login(chain["supervisor"])

        response = client.put(f"/api/employees/{chain['employee'].id}/bonus", json={"bonus_2025": "abc"})

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION"

    def test_approval_before_entry(self, client, login, chain):
        login(chain["a"])

        response = client.post(
            f"/api/employees/approvals/{chain['employee'].id}", json={"level": 1, "action": "approve"}
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "BONUS_NOT_ENTERED"

    @pytest.mark.parametrize("payload", [{"level": 0, "action": "approve"}, {"level": 1, "action": "maybe"}, {}])
    def test_invalid_approval_payload(self, client, login, chain, payload):
        login(chain["a"])

        response = client.post(f"/api/employees/approvals/{chain['employee'].id}", json=payload)

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION"

    def test_unknown_employee(self, client, login, chain):
        login(chain["a"])

        response = client.post("/api/employees/approvals/9999", json={"level": 1, "action": "approve"})

        assert response.status_code == 404

    def test_plain_employee_cannot_approve(self, client, login, chain):
        login(chain["employee"])

        response = client.post(
            f"/api/employees/approvals/{chain['employee'].id}", json={"level": 1, "action": "approve"}
        )

        assert response.status_code == 403

    def test_my_team(self, client, login, chain):
        login(chain["supervisor"])

        team = client.get("/api/employees/supervisor/my-team").get_json()

        assert team["count"] == 1
        assert team["employees"][0]["overall_status"]["status"] == "not_entered"


class TestDirectoryAdministration:
    def test_bulk_import_with_duplicates_is_207(self, client, login, admin):
        login(admin)
        rows = [
            {"employee_id": "E100", "first_name": "Ann", "reporting_1st": "Admin, Ada"},
            {"employee_id": "E100", "first_name": "Ann"},
        ]

        response = client.post("/api/employees/bulk", json={"employees": rows})

        assert response.status_code == 207
        body = response.get_json()
        assert body["count"] == 1
        assert body["approvers_synced"] == 1
        assert body["skipped_duplicates"][0]["employee_id"] == "E100"

    def test_bulk_import_all_new_is_201(self, client, login, admin):
        login(admin)

        response = client.post("/api/employees/bulk", json={"employees": [{"employee_id": "E1", "first_name": "A"}]})

        assert response.status_code == 201

    def test_bulk_import_validation_errors(self, client, login, admin):
        login(admin)

        response = client.post("/api/employees/bulk", json={"employees": [{"first_name": "No Number"}]})

        assert response.status_code == 400
        assert response.get_json()["details"]["errors"][0]["reason"].startswith("Missing required fields")

    def test_bulk_import_requires_hr_or_admin(self, client, login, chain):
        login(chain["a"])

        response = client.post("/api/employees/bulk", json={"employees": []})

        assert response.status_code == 403

    def test_sync_and_reset_endpoints(self, client, login, admin, make_employee):
        make_employee("W001", "Wendy", "Worker", level1_approver_name="Ada Admin", level2_approver_name="Doe, Jane")
        login(admin)

        synced = client.post("/api/employees/sync-approvers").get_json()
        assert synced["updated"] == 1
        assert synced["errors"][0]["approver_name"] == "Doe, Jane"

        reset = client.post("/api/employees/approvals/reset-and-sync").get_json()
        assert reset["cleared"] == 1
        assert reset["synced"] == 1

        debug = client.get("/api/employees/approvals/debug/ADM1").get_json()
        assert debug["counts"]["level1"] == 1

    def test_set_approver_roles(self, client, login, admin, make_employee):
        approver = make_employee("M001", "John", "Smith")
        make_employee("W001", level1_approver_id=approver.id)
        login(admin)

        response = client.post("/api/employees/set-approver-roles")

        assert response.get_json()["promoted"] == 1
        assert Employee.query.filter_by(employee_id="M001").one().role is Role.APPROVER

    def test_resolve_reference(self, client, login, admin, make_employee):
        make_employee("M001", "John", "Smith")
        login(admin)

        found = client.get("/api/employees/resolve", query_string={"reference": "Smith, John"})
        missing = client.get("/api/employees/resolve", query_string={"reference": "Doe, Jane"})

        assert found.get_json()["employee"]["employee_id"] == "M001"
        assert missing.status_code == 404

    def test_create_and_update_employee(self, client, login, admin, make_employee):
        make_employee("M001", "John", "Smith")
        login(admin)

        response = client.post(
            "/api/employees",
            json={"employee_id": "E777", "first_name": "Nia", "last_name": "New", "level1_approver_name": "John Smith"},
        )
        assert response.status_code == 201
        created = response.get_json()["employee"]
        assert created["level1_approver_id"] is not None

        duplicate = client.post("/api/employees", json={"employee_id": "E777", "first_name": "Other"})
        assert duplicate.status_code == 409

        response = client.put(f"/api/employees/{created['id']}", json={"position": "Analyst"})
        assert response.status_code == 200
        assert response.get_json()["employee"]["position"] == "Analyst"
        assert response.get_json()["employee"]["first_name"] == "Nia"

    def test_branch_crud(self, client, login, admin):
        login(admin)

        response = client.post("/api/branches", json={"branch_code": "HQ", "branch_name": "Head Office"})
        assert response.status_code == 201
        assert response.get_json()["branch"]["is_active"] is True

        assert client.post("/api/branches", json={"branch_code": "HQ", "branch_name": "Dup"}).status_code == 409
        assert Branch.query.count() == 1

    def test_clearing_approver_name_clears_link(self, client, login, admin, make_employee):
        approver = make_employee("M001", "John", "Smith")
        worker = make_employee("W001", level1_approver_name="Smith, John", level1_approver_id=approver.id)
        login(admin)

        response = client.put(f"/api/employees/{worker.id}", json={"level1_approver_name": ""})

        assert response.status_code == 200
        body = response.get_json()["employee"]
        assert body["level1_approver_name"] is None
        assert body["level1_approver_id"] is None

    def test_delete_deactivates_and_keeps_links(self, client, login, admin, make_employee):
        approver = make_employee("M001", "John", "Smith")
        worker = make_employee("W001", level1_approver_name="Smith, John", level1_approver_id=approver.id)
        login(admin)

        response = client.delete(f"/api/employees/{approver.id}")

        assert response.status_code == 200
        assert response.get_json()["employee"]["is_active"] is False
        assert Employee.query.filter_by(employee_id="M001").one().is_active is False
        assert worker.level1_approver_id == approver.id
