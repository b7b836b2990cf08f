# (c) Copyright Datacraft, 2026
import pytest
from fastapi.testclient import TestClient

from authz_server.app import create_app


@pytest.fixture
def client(service):
	return TestClient(create_app(service))


def test_check(client):
	response = client.post("/permissions/check", json={
		"user_id": "u-manager",
		"resource_type": "purchase-request",
		"resource_id": "pr-1",
		"action": "approve",
	})

	assert response.status_code == 200
	body = response.json()
	assert body["allowed"] is True
	assert body["decision"]["effect"] == "permit"
	assert body["decision"]["evaluated_policies"]


def test_check_accepts_camel_case(client):
	response = client.post("/permissions/check", json={
		"userId": "u-staff",
		"resourceType": "report",
		"action": "view",
		"context": {"ipAddress": "10.0.0.5", "additionalAttributes": {"threat_level": "low"}},
	})

	assert response.status_code == 200
	assert response.json()["allowed"] is True


def test_check_denied_is_not_an_error(client):
	response = client.post("/permissions/check", json={
		"user_id": "u-ghost", "resource_type": "report", "action": "view",
	})

	assert response.status_code == 200
	assert response.json()["allowed"] is False
	assert response.json()["reason"]


def test_check_validates_body(client):
	response = client.post("/permissions/check", json={"user_id": "u-manager"})
	assert response.status_code == 422


def test_check_bulk(client):
	response = client.post("/permissions/check-bulk", json={
		"user_id": "u-manager",
		"permissions": [
			{"resource_type": "report", "action": "export"},
			{"resource_type": "report", "action": "view"},
		],
	})

	assert response.status_code == 200
	results = response.json()["results"]
	assert [r["action"] for r in results] == ["export", "view"]
	assert [r["allowed"] for r in results] == [False, True]


def test_any_and_all(client):
	body = {
		"user_id": "u-staff",
		"permissions": [
			{"resource_type": "report", "action": "export"},
			{"resource_type": "report", "action": "view"},
		],
	}

	assert client.post("/permissions/any", json=body).json() == {"allowed": True}
	assert client.post("/permissions/all", json=body).json() == {"allowed": False}


def test_resource_permissions(client):
	response = client.get("/permissions/users/u-manager/resources/report")

	assert response.status_code == 200
	assert [(p["action"], p["allowed"]) for p in response.json()] == [
		("view", True), ("export", False)
	]


def test_action_resources(client):
	response = client.get("/permissions/users/u-manager/actions/approve")

	assert response.status_code == 200
	assert response.json() == [
		{"resource_type": "purchase-request", "resource_id": None, "allowed": True}
	]


def test_effective_permissions(client):
	response = client.get("/permissions/users/u-finance/effective")

	assert response.status_code == 200
	pairs = {(p["resource_type"], p["action"]) for p in response.json()}
	assert ("purchase-request", "approve") in pairs


def test_audit_log(client):
	client.post("/permissions/check", json={
		"user_id": "u-staff", "resource_type": "report", "action": "view",
	})
	client.post("/permissions/check", json={
		"user_id": "u-staff", "resource_type": "report", "action": "export",
	})

	response = client.get("/permissions/audit-log", params={"limit": 1})
	assert response.status_code == 200
	assert [e["action"] for e in response.json()] == ["export"]

	response = client.get("/permissions/audit-log", params={"effect": "permit"})
	assert [e["action"] for e in response.json()] == ["view"]

	assert client.get("/permissions/audit-log", params={"limit": 0}).status_code == 422


def test_clear_audit_log_forbidden(client):
	response = client.delete("/permissions/audit-log", params={"requested_by": "u-staff"})

	assert response.status_code == 403
	assert response.json()["detail"]


def test_clear_audit_log(client):
	client.post("/permissions/check", json={
		"user_id": "u-staff", "resource_type": "report", "action": "view",
	})

	response = client.delete("/permissions/audit-log", params={"requested_by": "u-admin"})

	assert response.status_code == 200
	assert response.json()["cleared"] == 2
	assert len(client.get("/permissions/audit-log").json()) == 1


def test_stats(client):
	client.post("/permissions/check", json={
		"user_id": "u-staff", "resource_type": "report", "action": "view",
	})

	stats = client.get("/permissions/stats").json()
	assert stats["total_evaluations"] == 1
	assert stats["permits"] == 1
	assert stats["policy_count"] == 5
