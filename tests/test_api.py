import json
from unittest.mock import MagicMock

import pytest

from room_access import create_app
from room_access.config.config_manager import ACTIVE_MEETING_MODE
from room_access.services.calendar_service import CalendarCheckResult, CalendarStatus
from room_access.services.container import ServiceContainer
from room_access.services.device_service import DoorControlResult

from conftest import FIXED_NOW


@pytest.fixture
def calendar():
    mock = MagicMock()
    mock.mode = ACTIVE_MEETING_MODE
    mock.check_access.return_value = CalendarCheckResult(
        CalendarStatus.NO_MATCHING_EVENT, ACTIVE_MEETING_MODE, "No active meeting found"
    )
    mock.test_connection.return_value = {"success": True, "message": "Microsoft Graph connection successful"}
    return mock


@pytest.fixture
def device():
    mock = MagicMock()
    mock.open_door.return_value = DoorControlResult(True, "Door 1 opened successfully", "open")
    mock.close_door.return_value = DoorControlResult(True, "Door 1 closed successfully", "close")
    mock.get_door_status.return_value = DoorControlResult(
        True, "Door 1 status: Close", "status", {"status": "Close"}
    )
    mock.test_connection.return_value = {"success": False, "message": "Dahua connection failed: Timeout"}
    return mock


@pytest.fixture
def services(app_config, device, calendar):
    container = ServiceContainer.build(app_config, device=device, calendar=calendar)
    yield container
    container.db.close_connection()


@pytest.fixture
def client(services):
    app = create_app(services=services, testing=True)
    return app.test_client()


@pytest.fixture
def mapped(client):
    client.post("/api/user-mappings", json={"dahuaUserId": "12345", "email": "aziz@elrace.com"})
    client.post("/api/room-mappings", json={"doorChannel": 1, "roomEmail": "Room1@elrace.com"})


def test_webhook_json_body(client, mapped, calendar):
    body = {"AlarmType": "FaceRecognition", "Action": "Start", "ChannelID": 1,
            "Data": {"UserID": "12345"}}

    response = client.post("/api/dahua-webhook", json=body)

    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["accessGranted"] is False
    assert data["roomEmail"] == "Room1@elrace.com"
    calendar.check_access.assert_called_once_with("aziz@elrace.com", "Room1@elrace.com")


def test_webhook_raw_body_grants_access(client, mapped, calendar, device, services):
    calendar.check_access.return_value = CalendarCheckResult(
        CalendarStatus.AUTHORIZED, ACTIVE_MEETING_MODE, "authorized",
        event_id="evt-1", event_subject="Weekly sync",
        meeting_end=FIXED_NOW.replace(year=2099),
    )
    raw = (
        b"--boundary\r\nContent-Type: application/json\r\n\r\n"
        b'{"code": "FaceRecognition", "action": "Start", "index": 1, "data": {"UserID": "12345"}}'
        b"\r\n--boundary--"
    )

    response = client.post(
        "/api/dahua-webhook", data=raw, content_type="multipart/mixed; boundary=boundary"
    )

    data = response.get_json()
    assert data["accessGranted"] is True
    assert data["eventId"] == "evt-1"
    device.open_door.assert_called_once()
    assert services.access_logs.count() == 1


def test_webhook_garbage_is_logged_as_unmapped(client, services):
    response = client.post("/api/dahua-webhook", data=b"\x00\x01", content_type="application/octet-stream")

    assert response.status_code == 200
    assert response.get_json()["reason"] == "User not mapped"
    assert services.access_logs.get_recent()[0].reason == "user-not-mapped"


def test_webhook_internal_error_is_500(client, services, monkeypatch):
    monkeypatch.setattr(services.decisions, "process_event", MagicMock(side_effect=RuntimeError("bug")))

    response = client.post("/api/dahua-webhook", json={"code": "FaceRecognition"})

    assert response.status_code == 500
    data = response.get_json()
    assert data["success"] is False
    assert "bug" not in data["reason"]


def test_manual_event_runs_full_pipeline(client, mapped, services):
    response = client.post(
        "/api/test/event", json={"code": "FaceRecognition", "action": "Start", "index": 1,
                                 "data": {"UserID": "12345"}}
    )

    data = response.get_json()
    assert data["success"] is True
    assert data["result"]["userEmail"] == "aziz@elrace.com"
    log = services.access_logs.get_recent()[0]
    assert log.reason == "no-active-meeting"
    assert log.metadata["source"] == "test"


def test_manual_event_ignored_when_not_start(client, services, calendar):
    response = client.post("/api/test/event", json={"action": "Stop", "data": {"UserID": "12345"}})

    assert "ignored" in response.get_json()["message"]
    assert services.access_logs.count() == 0
    calendar.check_access.assert_not_called()


def test_manual_event_validates_body(client):
    response = client.post("/api/test/event", json={"index": "one"})

    assert response.status_code == 400


def test_calendar_test_returns_raw_result(client, calendar, services):
    response = client.post(
        "/api/test/calendar", json={"userEmail": "aziz@elrace.com", "roomEmail": "Room1@elrace.com"}
    )

    data = response.get_json()
    assert data["success"] is True
    assert data["result"]["status"] == "no-matching-event"
    assert services.access_logs.count() == 0


def test_door_test_actions(client, device):
    assert client.post("/api/test/door", json={"channel": 1, "action": "close"}).get_json()["success"]
    status = client.post("/api/test/door", json={"channel": 1, "action": "status"}).get_json()
    assert status["status"] == "Close"
    assert client.post("/api/test/door", json={"channel": 1, "action": "jiggle"}).status_code == 400


def test_door_control_enhanced_passes_duration(client, device):
    client.post(
        "/api/test/door-control-enhanced",
        json={"channel": 2, "action": "open", "roomEmail": "Room1@elrace.com", "duration": 30},
    )

    device.open_door.assert_called_once_with(2, "Room1@elrace.com", duration=30)


def test_connection_probe_updates_health(client):
    data = client.post("/api/test/connection").get_json()

    assert data["success"] is False
    assert data["results"]["microsoftGraph"]["success"] is True

    health = {h["service"]: h for h in client.get("/api/system-health").get_json()}
    assert health["dahua"]["status"] == "offline"
    assert health["microsoft-graph"]["status"] == "online"
    assert health["server"]["status"] == "online"


def test_dahua_advanced_capture_requires_user(client):
    response = client.post("/api/test/dahua-advanced", json={"action": "capture"})

    assert response.status_code == 400


def test_dahua_advanced_threshold(client, device):
    device.set_face_threshold.return_value = DoorControlResult(True, "set", "threshold")

    client.post("/api/test/dahua-advanced", json={"action": "threshold", "threshold": 85})

    device.set_face_threshold.assert_called_once_with(85, None)


def test_device_info_by_room(client, device):
    device.get_device_info.return_value = DoorControlResult(True, "ok", "deviceInfo")

    client.get("/api/test/device-info/Room1@elrace.com")

    device.get_device_info.assert_called_once_with("Room1@elrace.com")


def test_mapping_crud(client):
    created = client.post(
        "/api/user-mappings", json={"dahuaUserId": 12345, "email": "aziz@elrace.com", "name": "Aziz"}
    )
    assert created.status_code == 201
    mapping_id = created.get_json()["id"]
    assert created.get_json()["dahuaUserId"] == "12345"

    duplicate = client.post("/api/user-mappings", json={"dahuaUserId": "12345", "email": "x@elrace.com"})
    assert duplicate.status_code == 409

    assert client.post("/api/user-mappings", json={"email": "no-id@elrace.com"}).status_code == 400

    assert client.delete(f"/api/user-mappings/{mapping_id}").get_json() == {"success": True}
    assert client.delete(f"/api/user-mappings/{mapping_id}").status_code == 404

    listed = client.get("/api/user-mappings").get_json()
    assert listed[0]["isActive"] is False


def test_room_mapping_crud(client):
    created = client.post("/api/room-mappings", json={"doorChannel": 1, "roomEmail": "Room1@elrace.com"})
    assert created.status_code == 201
    assert client.post("/api/room-mappings", json={"doorChannel": 0, "roomEmail": "a@b"}).status_code == 400
    assert client.delete("/api/room-mappings/missing").status_code == 404


def test_access_logs_limit(client, mapped):
    for _ in range(3):
        client.post("/api/dahua-webhook", json={"Data": {"UserID": "12345"}})

    assert len(client.get("/api/access-logs").get_json()) == 3
    assert len(client.get("/api/access-logs?limit=2").get_json()) == 2
    assert client.get("/api/access-logs?limit=-1").status_code == 400


def test_dashboard_metrics(client, mapped, services):
    client.post("/api/dahua-webhook", json={"Data": {"UserID": "12345"}})
    client.post("/api/dahua-webhook", json={"Data": {"UserID": "99999"}})

    metrics = client.get("/api/dashboard/metrics").get_json()

    assert metrics["totalAttempts"] == 2
    assert metrics["successfulAccess"] == 0
    assert metrics["deniedAccess"] == 2
    assert metrics["successRate"] == 0
    assert metrics["activeRooms"] == 1
    assert metrics["totalRooms"] == 1


def test_health_endpoint(client):
    data = client.get("/api/health").get_json()

    assert data["status"] == "healthy"
    assert set(data["services"]) == {"dahua", "microsoft-graph", "server"}
    assert data["services"]["dahua"]["details"] == "Not checked yet"


def test_mappings_file_is_seeded(app_config, device, calendar, tmp_path):
    path = tmp_path / "mappings.json"
    path.write_text(
        json.dumps(
            {
                "userMappings": [{"dahuaUserId": "12345", "email": "aziz@elrace.com"}],
                "roomMappings": [{"doorChannel": 1, "roomEmail": "Room1@elrace.com"}],
            }
        )
    )
    config = app_config.__class__(
        device=app_config.device, graph=app_config.graph, mappings_file=str(path)
    )
    container = ServiceContainer.build(config, device=device, calendar=calendar)

    create_app(services=container, testing=True)
    create_app(services=container, testing=True)

    assert len(container.user_mappings.get_all()) == 1
    assert container.room_mappings.get_by_channel(1).room_email == "Room1@elrace.com"
