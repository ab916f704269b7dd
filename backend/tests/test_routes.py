import inspect

import pytest
from fastapi.testclient import TestClient

from barberqueue.database import get_db
from barberqueue.main import app
from barberqueue.routes import queue as queue_routes
from barberqueue.routes import schedule as schedule_routes
from barberqueue.routes.queue import get_gateway
from barberqueue.services import queue_engine

from factories import NOW, RecordingGateway, create_barbershop, create_employee, create_service


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def client(session_factory, gateway, monkeypatch):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(queue_engine, "now_local", lambda: NOW)
    monkeypatch.setattr(schedule_routes, "now_local", lambda: NOW)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def shop(db):
    barbershop = create_barbershop(db, queue_enabled=True)
    service = create_service(db, barbershop)
    create_employee(db, barbershop, [service], employee_id="emp-a", start="14:20", end="14:50")
    return barbershop, service


def _join(client, barbershop, service, phone="+7 (900) 123-45-67", travel=10):
    return client.post("/api/queue/join", json={
        "barbershop_id": barbershop.id,
        "client_name": "Иван",
        "client_phone": phone,
        "service_id": service.id,
        "travel_time_minutes": travel,
    })


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_queue_flow(client, shop, gateway):
    barbershop, service = shop

    response = _join(client, barbershop, service)
    assert response.status_code == 200
    entry_id = response.json()["entry_id"]
    assert response.json()["queue_position"] == 1

    status = client.get(f"/api/queue/entries/{entry_id}").json()
    assert status["status"] == "waiting"
    assert status["queue_position"] == 1

    response = client.post(f"/api/queue/{barbershop.id}/process")
    assert response.status_code == 200
    assert response.json()["notified"] == 1
    assert [n.entry_id for n in gateway.sent] == [entry_id]

    status = client.get(f"/api/queue/entries/{entry_id}").json()
    assert status["status"] == "notified"
    assert status["reserved_slot_start"] == "2026-10-19T14:20:00"

    response = client.post(f"/api/queue/entries/{entry_id}/confirm", params={"phone": "79001234567"})
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    response = client.post(f"/api/queue/entries/{entry_id}/confirm", params={"phone": "79001234567"})
    assert response.status_code == 409
    assert response.json()["code"] == "InvalidState"

    stats = client.get(f"/api/queue/{barbershop.id}/stats").json()
    assert stats["confirmed"] == 1
    assert stats["confirmation_rate"] == 100


def test_duplicate_join(client, shop):
    barbershop, service = shop
    assert _join(client, barbershop, service).status_code == 200

    response = _join(client, barbershop, service, phone="7 900 123 45 67")
    assert response.status_code == 409
    assert response.json()["code"] == "DuplicateEntry"


def test_join_disabled_queue(client, db):
    barbershop = create_barbershop(db)
    service = create_service(db, barbershop)

    response = _join(client, barbershop, service)
    assert response.status_code == 400
    assert response.json()["code"] == "QueueDisabled"


def test_join_rejects_bad_travel_time(client, shop):
    barbershop, service = shop
    assert _join(client, barbershop, service, travel=0).status_code == 422


def test_cancel_with_wrong_phone(client, shop):
    barbershop, service = shop
    entry_id = _join(client, barbershop, service).json()["entry_id"]

    response = client.post(f"/api/queue/entries/{entry_id}/cancel", params={"phone": "79990000000"})
    assert response.status_code == 404

    response = client.post(f"/api/queue/entries/{entry_id}/cancel", params={"phone": "79001234567"})
    assert response.json()["status"] == "cancelled"
    assert client.get(f"/api/queue/{barbershop.id}/entries").json() == []


def test_unknown_entry(client):
    response = client.get("/api/queue/entries/missing")
    assert response.status_code == 404
    assert response.json()["code"] == "NotFound"


def test_process_runs_in_threadpool():
    # Синхронный проход базы не должен выполняться в event loop
    assert not inspect.iscoroutinefunction(queue_routes.process_queue)


def test_cron_secret(client, shop, monkeypatch):
    barbershop, _ = shop
    monkeypatch.setattr(queue_routes.settings, "QUEUE_CRON_SECRET", "s3cret")

    assert client.post(f"/api/queue/{barbershop.id}/process").status_code == 403
    response = client.post(f"/api/queue/{barbershop.id}/process", headers={"X-Cron-Secret": "s3cret"})
    assert response.status_code == 200


def test_settings_endpoints(client, db):
    barbershop = create_barbershop(db)

    assert client.get(f"/api/queue/{barbershop.id}/settings").json()["enabled"] is False

    payload = {"enabled": True, "max_queue_size": 10, "notification_minutes": 20, "buffer_percentage": 50}
    response = client.put(f"/api/queue/{barbershop.id}/settings", json=payload)
    assert response.status_code == 200
    assert response.json()["max_queue_size"] == 10
    assert response.json()["eta_weight"] == 0.6

    assert client.put(f"/api/queue/{barbershop.id}/settings", json={"buffer_percentage": 60}).status_code == 422
    assert client.put("/api/queue/missing/settings", json=payload).status_code == 404


def test_slots(client, shop):
    barbershop, service = shop

    response = client.get(
        f"/api/schedule/{barbershop.id}/slots",
        params={"service_id": service.id, "date": "2026-10-20"}
    )
    assert response.status_code == 200
    assert response.json()["slots"] == [{"time": "14:20", "end_time": "14:50", "employee_id": "emp-a"}]


def test_slots_today_respects_arrival_buffer(client, shop):
    barbershop, service = shop

    # 14:00 + 30 минут на дорогу: слот 14:20 уже недоступен
    response = client.get(
        f"/api/schedule/{barbershop.id}/slots",
        params={"service_id": service.id, "date": "2026-10-19"}
    )
    assert response.json()["slots"] == []


@pytest.mark.parametrize("day, status_code", [("2026-10-18", 400), ("2027-01-01", 400), ("2026-13-40", 400)])
def test_slots_bad_dates(client, shop, day, status_code):
    barbershop, service = shop
    response = client.get(f"/api/schedule/{barbershop.id}/slots", params={"service_id": service.id, "date": day})
    assert response.status_code == status_code


def test_slots_unknown_service(client, shop):
    barbershop, _ = shop
    response = client.get(f"/api/schedule/{barbershop.id}/slots", params={"service_id": "missing", "date": "2026-10-20"})
    assert response.status_code == 404
