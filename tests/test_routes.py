"""HTTP tests for the FastAPI app (admin sink, bookings, metrics).

The app runs its real lifespan on the in-memory store.
Run with: pytest tests/test_routes.py -v
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from shared.config import settings
from shared.utils.rate_limiter import limiter

TOKEN = "test-admin-token"
AUTH = {"x-admin-token": TOKEN}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "STORE_BACKEND", "memory")
    monkeypatch.setattr(settings, "ADMIN_API_KEY", TOKEN)
    monkeypatch.setattr(settings, "ADMIN_SEED_FILE", "")
    limiter.reset()

    from main import app

    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    """Tests for ping and health endpoints."""

    def test_ping(self, client):
        assert client.get("/api/ping").json() == {"ok": True}

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"


class TestAdminAuth:
    """Admin routes reject missing or wrong tokens."""

    @pytest.mark.parametrize("path", ["/api/data", "/api/users", "/api/menu", "/api/orders", "/api/export/credentials", "/api/metrics"])
    def test_missing_token_is_unauthorized(self, client, path):
        response = client.get(path)

        assert response.status_code == 401
        assert response.json() == {"detail": "unauthorized"}

    def test_wrong_token_is_unauthorized(self, client):
        assert client.get("/api/data", headers={"x-admin-token": "nope"}).status_code == 401

    def test_unset_key_rejects_everything(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_API_KEY", "")

        assert client.get("/api/data", headers={"x-admin-token": ""}).status_code == 401


class TestAdminSink:
    """Tests for the admin CRUD routes."""

    def test_create_user_with_defaults(self, client):
        response = client.post("/api/users", json={"name": "Asha", "email": "asha@x.com", "role": "staff"}, headers=AUTH)

        body = response.json()
        assert body["ok"] is True
        assert body["user"]["status"] == "active"
        assert body["user"]["joinDate"]
        assert client.get("/api/data", headers=AUTH).json()["stats"]["totalUsers"] == 1

    def test_delete_user(self, client):
        user_id = client.post("/api/users", json={"name": "Asha", "email": "asha@x.com"}, headers=AUTH).json()["user"]["id"]

        assert client.delete(f"/api/users/{user_id}", headers=AUTH).json() == {"ok": True}
        assert client.get("/api/users", headers=AUTH).json() == []

    def test_menu_price_is_coerced(self, client):
        body = client.post("/api/menu", json={"name": "Chai", "price": "abc"}, headers=AUTH).json()

        assert body["item"]["price"] == 0
        assert body["item"]["orders"] == 0
        assert body["item"]["photo"] == ""

        item_id = body["item"]["id"]
        client.delete(f"/api/menu/{item_id}", headers=AUTH)
        assert client.get("/api/menu", headers=AUTH).json() == []

    def test_order_defaults_and_revenue(self, client):
        body = client.post("/api/orders", json={"user": "Walk-in", "total": "120.5"}, headers=AUTH).json()

        assert body["order"]["total"] == 120.5
        assert body["order"]["status"] == "completed"
        assert body["order"]["date"]
        assert client.get("/api/data", headers=AUTH).json()["stats"]["revenue"] == 120.5

    def test_credentials_export_quotes_values(self, client):
        client.post("/api/users", json={"name": 'Ana "La Jefa"', "email": "ana@x.com", "joinDate": "2025-01-02"}, headers=AUTH)

        response = client.get("/api/export/credentials", headers=AUTH)

        lines = response.text.splitlines()
        assert lines[0] == "id,name,email,role,joinDate,status"
        assert lines[1].endswith('"Ana ""La Jefa""","ana@x.com","","2025-01-02","active"')
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == 'attachment; filename="credentials_export.csv"'

    def test_payment_intent_stub(self, client):
        body = client.post("/api/payments/create-intent", json={"amount": 499}, headers=AUTH).json()

        assert body["clientSecret"].startswith("pi_demo_client_secret_")
        assert body["mode"] == "demo"

    def test_payment_intent_rejects_invalid_amount(self, client):
        response = client.post("/api/payments/create-intent", json={"amount": -5}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid amount"


class TestBookingRoutes:
    """Tests for the public booking routes."""

    def test_lists_seeded_zones_and_events(self, client):
        zones = client.get("/api/zones").json()
        events = client.get("/api/events").json()

        assert [z["id"] for z in zones] == ["z1", "z2", "z3", "z4"]
        assert events[0]["title"] == "Weekend Wine Tasting"
        assert client.get("/api/bookings").json() == []

    def test_book_zone(self, client):
        response = client.post("/api/bookings/zone", json={
            "zoneId": "z1", "userName": "Alice", "email": "a@x.com",
            "date": "2025-12-01", "time": "18:00", "seats": 2
        })

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["booking"]["total"] == 998
        assert body["booking"]["status"] == "confirmed"

        orders = client.get("/api/orders", headers=AUTH).json()
        assert orders[0]["user"] == "Alice"
        assert orders[0]["source"] == "booking"

    def test_zone_capacity_exceeded(self, client):
        response = client.post("/api/bookings/zone", json={
            "zoneId": "z1", "userName": "Alice", "email": "a@x.com",
            "date": "2025-12-01", "time": "18:00", "seats": 3
        })

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "CAPACITY_EXCEEDED"

    def test_unknown_zone_is_404(self, client):
        response = client.post("/api/bookings/zone", json={
            "zoneId": "z9", "userName": "Alice", "email": "a@x.com",
            "date": "2025-12-01", "time": "18:00", "seats": 1
        })

        assert response.status_code == 404
        assert response.json()["detail"] == {"code": "NOT_FOUND", "error": "Zone not found"}

    def test_seats_must_be_positive(self, client):
        response = client.post("/api/bookings/zone", json={
            "zoneId": "z1", "userName": "Alice", "email": "a@x.com",
            "date": "2025-12-01", "time": "18:00", "seats": 0
        })

        assert response.status_code == 422

    def test_event_full(self, client):
        payload = {"eventId": "e1", "userName": "Alice", "email": "a@x.com", "ticketCount": 20}

        assert client.post("/api/bookings/event", json=payload).status_code == 200
        response = client.post("/api/bookings/event", json={**payload, "ticketCount": 1})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "EVENT_FULL"


class TestMetricsRoutes:
    """Tests for the metrics routes and the admin WebSocket."""

    def test_metrics_snapshot(self, client):
        body = client.get("/api/metrics", headers=AUTH).json()

        assert body["pageViews"] == 1
        assert len(body["peakHours"]) == 24

    def test_error_reports_are_rate_limited(self, client):
        first = client.post("/api/metrics/errors", json={"message": "boom"})
        second = client.post("/api/metrics/errors", json={"message": "boom again"})

        assert first.json() == {"accepted": True}
        assert second.json() == {"accepted": False}

    def test_user_activity(self, client):
        response = client.post("/api/metrics/activity", json={"type": "login", "userId": "u1"})

        assert response.json() == {"accepted": True}

    def test_websocket_requires_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/admin/ws"):
                pass

        assert exc_info.value.code == 1008

    def test_websocket_pushes_metrics(self, client):
        with client.websocket_connect(f"/admin/ws?token={TOKEN}") as ws:
            ws.send_json({"type": "metrics"})
            message = ws.receive_json()

        assert message["type"] == "metricsUpdate"
        assert "pageViews" in message["payload"]
