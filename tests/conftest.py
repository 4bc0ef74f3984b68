import json
from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from room_access.config.config_manager import (
    ACTIVE_MEETING_MODE,
    AppConfig,
    DeviceConfig,
    GraphConfig,
)
from room_access.database.connection import DatabaseManager
from room_access.models import DeviceEndpoint

FIXED_NOW = datetime(2025, 3, 10, 14, 0, 0, tzinfo=timezone.utc)


class FakeResponse:
    """Just enough of requests.Response for the HTTP clients"""

    def __init__(self, status_code=200, text="", headers=None, json_data=None, reason="OK"):
        self.status_code = status_code
        self.headers = headers or {}
        self.reason = reason
        self._json = json_data
        if json_data is not None and not text:
            text = json.dumps(json_data)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json


class FakeSession:
    """Replays queued responses and records every call"""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


def digest_challenge(qop=True):
    header = 'Digest realm="Login to 4J0123PAZ", nonce="8c4ad7ad5d2c9f", opaque="5ccc069c403ebaf9"'
    if qop:
        header += ', qop="auth"'
    return FakeResponse(401, "", headers={"WWW-Authenticate": header}, reason="Unauthorized")


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def db():
    manager = DatabaseManager(":memory:")
    yield manager
    manager.close_connection()


@pytest.fixture
def default_endpoint():
    return DeviceEndpoint(host="10.0.0.5", port=80, username="admin", password="secret")


@pytest.fixture
def device_config(default_endpoint):
    room1 = DeviceEndpoint(
        host="10.0.1.10", port=8081, username="admin", password="room1pass",
        room_email="Room1@elrace.com",
    )
    return DeviceConfig(
        default=default_endpoint,
        rooms=MappingProxyType({"room1@elrace.com": room1}),
        timeout=3.0,
    )


@pytest.fixture
def graph_config():
    return GraphConfig(
        tenant_id="tenant-id",
        client_id="client-id",
        client_secret="client-secret",
        timeout=3.0,
        auth_mode=ACTIVE_MEETING_MODE,
    )


@pytest.fixture
def app_config(device_config, graph_config):
    return AppConfig(device=device_config, graph=graph_config)
