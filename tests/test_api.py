import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from medequip import app
from medequip.core.config import settings
from medequip.db.session import Base, get_db

# Ensure models are registered so metadata tables are created
from medequip.models import equipment as equipment_model  # noqa: F401
from medequip.models import reservation as reservation_model  # noqa: F401

API_KEY = "test-admin-key"
ADMIN = {"X-API-Key": API_KEY}


@pytest.fixture()
def client(monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", API_KEY)
    monkeypatch.setattr(settings, "AUTH_ALLOW_API_KEY", True)
    monkeypatch.setattr(settings, "JWT_SECRET", "test-jwt-secret")
    monkeypatch.setattr(settings, "ADMIN_USERNAME", "admin")
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", "s3cret")
    monkeypatch.setattr(settings, "ADMIN_PASSWORD_HASH", None)
    monkeypatch.setattr(settings, "TZ", "UTC")

    # One shared connection so the threadpool sees the same in-memory database.
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def add_equipment(client, name="Infusion pump", quantity=2, **extra):
    response = client.post("/api/v1/equipment", json={"name": name, "quantity": quantity, **extra}, headers=ADMIN)
    assert response.status_code == 201, response.text
    return response.json()


def reservation_body(equipment_id=None, start="2099-06-03T10:00:00Z", end="2099-06-03T12:00:00Z", **extra):
    body = {
        "equipment_id": equipment_id,
        "department": "Emergency",
        "applicant_name": "Ito",
        "contact_info": "ito@example.org",
        "start_time": start,
        "end_time": end,
        "quantity": 1,
        "purpose": "Transfer",
    }
    body.update(extra)
    return body


def test_equipment_catalog_crud(client):
    category = client.post("/api/v1/equipment/categories", json={"name": "Monitoring"}, headers=ADMIN)
    assert category.status_code == 201
    category_id = category.json()["id"]

    created = add_equipment(client, name="Bedside monitor", quantity=3, category_id=category_id)
    assert created["category"]["name"] == "Monitoring"

    listing = client.get("/api/v1/equipment", params={"search": "bedside"})
    assert listing.status_code == 200
    assert [item["name"] for item in listing.json()["items"]] == ["Bedside monitor"]
    assert listing.json()["pagination"]["total"] == 1

    updated = client.put(f"/api/v1/equipment/{created['id']}", json={"quantity": 4}, headers=ADMIN)
    assert updated.json()["quantity"] == 4

    categories = client.get("/api/v1/equipment/categories").json()
    assert categories[0]["equipment_count"] == 1

    in_use = client.delete(f"/api/v1/equipment/categories/{category_id}", headers=ADMIN)
    assert in_use.status_code == 409
    assert in_use.json()["code"] == "conflict"

    removed = client.delete(f"/api/v1/equipment/{created['id']}", headers=ADMIN)
    assert removed.json() == {"status": "deactivated"}
    assert client.get("/api/v1/equipment").json()["items"] == []
    assert len(client.get("/api/v1/equipment", params={"is_active": "all"}).json()["items"]) == 1


def test_admin_routes_require_credentials(client):
    response = client.post("/api/v1/equipment", json={"name": "Cart", "quantity": 1})
    assert response.status_code == 401
    assert response.json() == {"code": "http_error", "message": "Authorization required"}

    wrong = client.get("/api/v1/reservations", headers={"X-API-Key": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid API key"


def test_login_issues_admin_token(client):
    bad = client.post("/api/v1/auth/login", json={"username": "admin", "password": "wrong"})
    assert bad.status_code == 401

    tokens = client.post("/api/v1/auth/login", json={"username": "admin", "password": "s3cret"}).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}
    assert client.get("/api/v1/reservations", headers=headers).status_code == 200

    refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["access_token"]


def test_booking_flow_and_capacity_conflict(client):
    equipment = add_equipment(client, quantity=1)

    first = client.post("/api/v1/reservations", json=reservation_body(equipment["id"]))
    assert first.status_code == 201
    assert first.json()["status"] == "pending"
    assert first.json()["equipment_name"] == "Infusion pump"
    assert first.json()["start_time"] == "2099-06-03T10:00:00Z"

    clash = client.post(
        "/api/v1/reservations",
        json=reservation_body(equipment["id"], start="2099-06-03T11:00:00Z", end="2099-06-03T13:00:00Z"),
    )
    assert clash.status_code == 409
    assert clash.json()["code"] == "capacity_exceeded"
    assert clash.json()["details"]["remaining"] == 0

    adjacent = client.post(
        "/api/v1/reservations",
        json=reservation_body(equipment["id"], start="2099-06-03T12:00:00Z", end="2099-06-03T14:00:00Z"),
    )
    assert adjacent.status_code == 201


def test_availability_endpoint(client):
    equipment = add_equipment(client, quantity=2)
    booked = client.post("/api/v1/reservations", json=reservation_body(equipment["id"], quantity=2)).json()

    params = {
        "equipment_id": equipment["id"],
        "start_time": "2099-06-03T11:00:00Z",
        "end_time": "2099-06-03T11:30:00Z",
    }
    busy = client.get("/api/v1/reservations/availability", params=params).json()
    assert busy["available"] is False
    assert busy["remaining"] == 0
    assert busy["reserved"] == 2

    own = client.get(
        "/api/v1/reservations/availability",
        params={**params, "quantity": 2, "exclude_reservation_id": booked["id"]},
    ).json()
    assert own["available"] is True
    assert own["remaining"] == 2

    missing = client.get("/api/v1/reservations/availability", params={**params, "equipment_id": 999})
    assert missing.status_code == 404
    assert missing.json()["code"] == "equipment_not_found"

    inverted = client.get(
        "/api/v1/reservations/availability",
        params={**params, "end_time": "2099-06-03T10:00:00Z"},
    )
    assert inverted.status_code == 422
    assert inverted.json()["code"] == "invalid_interval"


def test_ad_hoc_reservation_and_validation(client):
    created = client.post(
        "/api/v1/reservations",
        json=reservation_body(custom_equipment_name="Rental wheelchair", quantity=10),
    )
    assert created.status_code == 201
    assert created.json()["equipment_name"] == "Rental wheelchair"
    assert created.json()["equipment_id"] is None

    missing_target = client.post("/api/v1/reservations", json=reservation_body())
    assert missing_target.status_code == 422
    assert missing_target.json()["code"] == "validation_error"


def test_status_changes_and_cancellation(client):
    equipment = add_equipment(client, quantity=1)
    reservation = client.post("/api/v1/reservations", json=reservation_body(equipment["id"])).json()
    url = f"/api/v1/reservations/{reservation['id']}"

    approved = client.post(f"{url}/status", json={"status": "approved"}, headers=ADMIN)
    assert approved.json()["status"] == "approved"

    backwards = client.post(f"{url}/status", json={"status": "pending"}, headers=ADMIN)
    assert backwards.status_code == 409
    assert backwards.json()["code"] == "invalid_transition"

    cancelled = client.delete(url, headers=ADMIN)
    assert cancelled.status_code == 200
    assert cancelled.json()["reservation"]["status"] == "cancelled"

    again = client.post("/api/v1/reservations", json=reservation_body(equipment["id"]))
    assert again.status_code == 201


def test_edit_keeps_own_capacity(client):
    equipment = add_equipment(client, quantity=1)
    reservation = client.post("/api/v1/reservations", json=reservation_body(equipment["id"])).json()

    moved = client.put(
        f"/api/v1/reservations/{reservation['id']}",
        json={"start_time": "2099-06-03T10:30:00Z", "notes": "Moved by ward"},
        headers=ADMIN,
    )
    assert moved.status_code == 200
    assert moved.json()["start_time"] == "2099-06-03T10:30:00Z"
    assert moved.json()["notes"] == "Moved by ward"


def test_requester_history_and_own_cancel(client):
    equipment = add_equipment(client, quantity=3)
    mine = client.post("/api/v1/reservations", json=reservation_body(equipment["id"])).json()
    client.post(
        "/api/v1/reservations",
        json=reservation_body(equipment["id"], contact_info="other@example.org"),
    )

    history = client.get("/api/v1/reservations/my/history", params={"contact_info": "ito@example.org"}).json()
    assert [item["id"] for item in history["items"]] == [mine["id"]]

    denied = client.post(
        f"/api/v1/reservations/my/cancel/{mine['id']}",
        json={"contact_info": "other@example.org"},
    )
    assert denied.status_code == 403
    assert denied.json()["code"] == "permission_denied"

    ok = client.post(
        f"/api/v1/reservations/my/cancel/{mine['id']}",
        json={"contact_info": "ito@example.org"},
    )
    assert ok.status_code == 200
    assert ok.json()["reservation"]["status"] == "cancelled"


def test_calendar_views_and_export(client):
    equipment = add_equipment(client, name="Ultrasound", quantity=2)
    client.post("/api/v1/reservations", json=reservation_body(equipment["id"]))

    calendar = client.get(
        f"/api/v1/reservations/calendar/{equipment['id']}", params={"year": 2099, "month": 6}
    ).json()
    assert calendar["daily_availability"]["2099-06-03"]["remaining"] == 1

    events = client.get(
        "/api/v1/reservations/events",
        params={"start": "2099-06-01T00:00:00Z", "end": "2099-07-01T00:00:00Z"},
    ).json()
    assert len(events) == 1
    assert events[0]["title"] == "Ultrasound - Emergency"

    available = client.get("/api/v1/reservations/available", params={"date": "2099-06-03"}).json()
    assert available[0]["remaining"] == 1
    assert available[0]["is_available"] is True

    export = client.get("/api/v1/reservations/admin/export", headers=ADMIN)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=\"reservations_" in export.headers["content-disposition"]
    assert export.content.startswith("\ufeff".encode("utf-8"))


def test_responses_carry_request_id_and_security_headers(client):
    response = client.get("/api/v1/equipment", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_dashboard_stats_is_admin_only(client):
    assert client.get("/api/v1/dashboard/stats").status_code == 401

    equipment = add_equipment(client, name="Syringe driver", quantity=2)
    retired = add_equipment(client, name="Old defibrillator", quantity=1)
    client.delete(f"/api/v1/equipment/{retired['id']}", headers=ADMIN)
    assert client.post("/api/v1/reservations", json=reservation_body(equipment["id"])).status_code == 201
    assert (
        client.post(
            "/api/v1/reservations", json=reservation_body(equipment["id"], contact_info="mori@example.org")
        ).status_code
        == 201
    )

    response = client.get("/api/v1/dashboard/stats", headers=ADMIN)
    assert response.status_code == 200
    stats = response.json()
    assert set(stats) == {
        "date",
        "today_reservations",
        "active_equipment",
        "in_use_reservations",
        "active_requesters",
    }
    assert stats["active_equipment"] == 1
    assert stats["in_use_reservations"] == 0
    assert stats["active_requesters"] == 2
