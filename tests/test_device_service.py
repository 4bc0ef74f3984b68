import pytest
import requests

from room_access.device.digest_auth import compute_response, parse_challenge
from room_access.models import DeviceEndpoint
from room_access.services.device_service import DahuaDeviceService

from conftest import FakeResponse, digest_challenge

pytestmark = pytest.mark.unit

CNONCE = "0a4f113b"


@pytest.fixture
def device(device_config, fake_session):
    return DahuaDeviceService(device_config, session=fake_session, cnonce_factory=lambda: CNONCE)


def test_open_door_answers_digest_challenge(device, fake_session):
    fake_session.queue(digest_challenge(), FakeResponse(200, "OK\r\n"))

    result = device.open_door(1)

    assert result.success is True
    assert result.message == "Door 1 opened successfully"
    first, second = fake_session.calls
    assert "Authorization" not in first["headers"]
    assert first["url"] == (
        "http://10.0.0.5:80/cgi-bin/accessControl.cgi?action=openDoor&channel=1&Type=Remote"
    )

    path = "/cgi-bin/accessControl.cgi?action=openDoor&channel=1&Type=Remote"
    challenge = parse_challenge(digest_challenge().headers["WWW-Authenticate"])
    expected = compute_response("admin", "secret", challenge, "GET", path, cnonce=CNONCE)
    authorization = second["headers"]["Authorization"]
    assert f'response="{expected}"' in authorization
    assert f'uri="{path}"' in authorization
    assert 'opaque="5ccc069c403ebaf9"' in authorization
    assert second["timeout"] == 3.0


def test_every_request_repeats_the_handshake(device, fake_session):
    fake_session.queue(
        digest_challenge(), FakeResponse(200, "OK"),
        digest_challenge(), FakeResponse(200, "OK"),
    )

    assert device.open_door(1).success
    assert device.open_door(1).success
    assert len(fake_session.calls) == 4
    assert "Authorization" not in fake_session.calls[2]["headers"]


def test_close_on_closed_door_still_succeeds(device, fake_session):
    fake_session.queue(digest_challenge(), FakeResponse(200, "OK"))
    fake_session.queue(digest_challenge(), FakeResponse(200, "OK"))

    assert device.close_door(2).success
    assert device.close_door(2).success


def test_open_door_with_duration(device, fake_session):
    fake_session.queue(FakeResponse(200, "OK"))

    result = device.open_door(1, duration=1800)

    assert result.success
    assert fake_session.calls[0]["url"].endswith("&time=1800")
    assert result.message == "Door 1 opened successfully for 1800 seconds"


def test_room_email_routes_to_room_controller(device, fake_session):
    fake_session.queue(digest_challenge(qop=False), FakeResponse(200, "OK"))

    device.open_door(1, room_email="ROOM1@elrace.com")

    assert fake_session.calls[0]["url"].startswith("http://10.0.1.10:8081/")
    assert 'username="admin"' in fake_session.calls[1]["headers"]["Authorization"]
    assert "qop=" not in fake_session.calls[1]["headers"]["Authorization"]


def test_unknown_room_falls_back_to_default(device, fake_session):
    fake_session.queue(FakeResponse(200, "OK"))

    device.open_door(3, room_email="Room9@elrace.com")

    assert fake_session.calls[0]["url"].startswith("http://10.0.0.5:80/")


def test_non_digest_challenge_is_a_failure(device, fake_session):
    fake_session.queue(
        FakeResponse(401, "", headers={"WWW-Authenticate": 'Basic realm="x"'}, reason="Unauthorized")
    )

    result = device.open_door(1)

    assert result.success is False
    assert "Authentication failed" in result.message
    assert len(fake_session.calls) == 1


def test_rejected_credentials_are_a_failure(device, fake_session):
    fake_session.queue(digest_challenge(), FakeResponse(401, "", reason="Unauthorized"))

    result = device.open_door(1)

    assert result.success is False
    assert "Authentication rejected" in result.message


def test_ambiguous_body_is_a_failure(device, fake_session):
    fake_session.queue(FakeResponse(200, "Error\r\nBad Request!"))

    result = device.open_door(1)

    assert result.success is False
    assert "response unclear" in result.message


def test_timeout_is_a_failure(device, fake_session):
    fake_session.queue(requests.exceptions.Timeout("read timed out"))

    result = device.open_door(1)

    assert result.success is False
    assert "Timeout" in result.message


def test_connection_error_is_a_failure(device, fake_session):
    fake_session.queue(requests.exceptions.ConnectionError("refused"))

    result = device.get_door_status(1)

    assert result.success is False
    assert "Network error" in result.message


def test_door_status_is_parsed(device, fake_session):
    fake_session.queue(FakeResponse(200, "Info.status=Close\r\n"))

    result = device.get_door_status(1)

    assert result.success
    assert result.data["status"] == "Close"
    assert result.to_dict()["status"] == "Close"


def test_unlock_records_are_parsed(device, fake_session):
    fake_session.queue(
        FakeResponse(
            200,
            "found=2\r\nrecords[0].UserID=12345\r\nrecords[0].Status=1\r\n"
            "records[1].UserID=67890\r\nrecords[1].Status=0\r\n",
        )
    )

    result = device.get_unlock_records("2025-03-10 08:00:00", count=10)

    assert result.success
    assert [r["UserID"] for r in result.data["records"]] == ["12345", "67890"]
    assert "StartTime=2025-03-10%2008%3A00%3A00" in fake_session.calls[0]["url"]
    assert fake_session.calls[0]["url"].endswith("&count=10")


def test_threshold_out_of_range_makes_no_request(device, fake_session):
    result = device.set_face_threshold(150)

    assert result.success is False
    assert fake_session.calls == []


@pytest.mark.parametrize(
    "call, message",
    [
        (lambda d: d.capture_face("12345"), "Face capture initiated for user 12345"),
        (lambda d: d.set_face_threshold(85), "Face recognition threshold set to 85%"),
        (lambda d: d.enable_liveness_detection(), "Liveness detection enabled successfully"),
    ],
)
def test_enrolment_commands_need_ok_body(device, fake_session, call, message):
    fake_session.queue(FakeResponse(200, "OK\r\n"), FakeResponse(200, "Error\r\nBad Request!"))

    accepted = call(device)
    rejected = call(device)

    assert accepted.success is True
    assert accepted.message == message
    assert rejected.success is False
    assert "response unclear" in rejected.message


def test_add_user_posts_json(device, fake_session):
    fake_session.queue(FakeResponse(200, "OK"))

    result = device.add_user("12345", "Aziz", doors=[0, 1], valid_from="2025-01-01")

    assert result.success
    call = fake_session.calls[0]
    assert call["method"] == "POST"
    assert call["headers"]["Content-Type"] == "application/json"
    assert '"UserID": "12345"' in call["data"]
    assert '"Doors": [0, 1]' in call["data"]


def test_search_users_filters_by_name(device, fake_session):
    fake_session.queue(
        FakeResponse(
            200,
            "Users[0].UserID=1\r\nUsers[0].UserName=Aziz\r\n"
            "Users[1].UserID=2\r\nUsers[1].UserName=Maria\r\n",
        )
    )

    result = device.search_users(user_name="azi")

    assert result.success
    assert result.data["users"] == [{"UserID": "1", "UserName": "Aziz"}]


def test_device_info_succeeds_when_some_endpoints_answer(device, fake_session):
    fake_session.queue(
        FakeResponse(200, "type=ASI7213X"),
        FakeResponse(404, "", reason="Not Found"),
        FakeResponse(200, "version=1.000.0000000.1"),
        FakeResponse(200, "version=1.00"),
    )

    result = device.get_device_info()

    assert result.success
    assert result.data["deviceInfo"]["getDeviceType"] == {"type": "ASI7213X"}
    assert "getSystemInfo" not in result.data["deviceInfo"]
    assert "password" not in result.data["device"]


def test_access_control_config_is_parsed(device, fake_session):
    fake_session.queue(FakeResponse(200, "table.AccessControl[0].DoorHoldTime=5\r\n"))

    result = device.get_access_control_config()

    assert result.data["config"] == {"AccessControl": [{"DoorHoldTime": "5"}]}


def test_test_all_devices_reports_each_room(device, fake_session):
    fake_session.queue(requests.exceptions.ConnectionError("unreachable"))

    result = device.test_all_devices()

    assert result["success"] is False
    assert result["deviceResults"][0]["roomEmail"] == "Room1@elrace.com"
    assert result["deviceResults"][0]["success"] is False


@pytest.mark.parametrize(
    "host,port,expected",
    [
        ("192.168.1.108", 80, "http://192.168.1.108:80/x"),
        ("192.168.1.108", 443, "https://192.168.1.108:443/x"),
        ("device.example.ts.net/room1", 80, "https://device.example.ts.net/room1/x"),
        ("http://proxy.local:9000", 80, "http://proxy.local:9000/x"),
    ],
)
def test_build_url(host, port, expected):
    assert DahuaDeviceService._build_url(DeviceEndpoint(host=host, port=port), "/x") == expected
