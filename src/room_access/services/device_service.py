"""
Dahua access controller client.

Every command is a CGI GET (or POST) protected by HTTP digest auth. The
controller answers each unauthenticated request with a fresh nonce, so the
challenge/response handshake is repeated per request. No method raises for
network, authentication or protocol failures; callers get a DoorControlResult.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from room_access.config.config_manager import DeviceConfig
from room_access.device.digest_auth import (
    DigestChallengeError,
    build_authorization_header,
    generate_cnonce,
    parse_challenge,
)
from room_access.device.response_parser import (
    has_success_marker,
    parse_config,
    parse_indexed,
    parse_key_values,
)
from room_access.models import DeviceEndpoint
from room_access.shared.logger import app_logger

DEVICE_INFO_ACTIONS = (
    "getDeviceType",
    "getSystemInfo",
    "getSoftwareVersion",
    "getHardwareVersion",
)


@dataclass
class DeviceResponse:
    """Raw outcome of one authenticated request"""

    success: bool
    status_code: Optional[int] = None
    text: str = ""
    error: Optional[str] = None


@dataclass
class DoorControlResult:
    success: bool
    message: str
    action: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {"success": self.success, "message": self.message}
        if self.action:
            result["action"] = self.action
        result.update(self.data)
        return result


def _format_record_time(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value)


class DahuaDeviceService:
    """Commands for one or more Dahua controllers, routed by room"""

    def __init__(
        self,
        config: DeviceConfig,
        session: Optional[requests.Session] = None,
        cnonce_factory: Callable[[], str] = generate_cnonce,
    ):
        self.config = config
        self.default_endpoint = config.default
        self.timeout = config.timeout
        self.verify_tls = config.verify_tls
        self.session = session or requests.Session()
        self._cnonce_factory = cnonce_factory

    # ------------------------------------------------------------------
    # Routing and transport
    # ------------------------------------------------------------------

    def get_device_by_room(self, room_email: Optional[str]) -> Optional[DeviceEndpoint]:
        """Controller configured for a room, if any"""
        return self.config.endpoint_for_room(room_email)

    def _resolve_endpoint(self, room_email: Optional[str] = None) -> DeviceEndpoint:
        endpoint = self.get_device_by_room(room_email)
        if endpoint:
            app_logger.info(f"Using Dahua device {endpoint.label} for room {room_email}")
            return endpoint
        return self.default_endpoint

    @staticmethod
    def _build_url(endpoint: DeviceEndpoint, path: str) -> str:
        host = endpoint.host.rstrip("/")
        if host.startswith(("http://", "https://")):
            return f"{host}{path}"
        if "/" in host:
            # Tunnel URLs already carry a path prefix and terminate TLS on 443
            return f"https://{host}{path}"

        scheme = "https" if endpoint.port == 443 else "http"
        return f"{scheme}://{host}:{endpoint.port}{path}"

    def _request(
        self,
        path: str,
        method: str = "GET",
        endpoint: Optional[DeviceEndpoint] = None,
        body: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> DeviceResponse:
        """Send a request, answering one digest challenge if the device asks"""
        endpoint = endpoint or self.default_endpoint
        url = self._build_url(endpoint, path)

        headers = {"User-Agent": "Dahua/3.0"}
        if content_type:
            headers["Content-Type"] = content_type

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                data=body,
                timeout=self.timeout,
                verify=self.verify_tls,
            )

            if response.status_code == 401:
                try:
                    challenge = parse_challenge(response.headers.get("WWW-Authenticate"))
                except DigestChallengeError as e:
                    return DeviceResponse(
                        success=False,
                        status_code=401,
                        text=response.text,
                        error=f"Authentication failed: {e}",
                    )

                authorization = build_authorization_header(
                    endpoint.username,
                    endpoint.password,
                    challenge,
                    method,
                    path,
                    cnonce=self._cnonce_factory() if challenge.qop else None,
                )
                response = self.session.request(
                    method,
                    url,
                    headers={**headers, "Authorization": authorization},
                    data=body,
                    timeout=self.timeout,
                    verify=self.verify_tls,
                )

        except requests.exceptions.Timeout as e:
            app_logger.error(f"Timeout talking to Dahua device {endpoint.label}: {e}")
            return DeviceResponse(
                success=False, error=f"Timeout after {self.timeout}s: {e}"
            )
        except requests.exceptions.RequestException as e:
            app_logger.error(f"Failed to connect to Dahua device {endpoint.label}: {e}")
            return DeviceResponse(success=False, error=f"Network error: {e}")

        if response.status_code == 200:
            return DeviceResponse(success=True, status_code=200, text=response.text)

        error = f"HTTP {response.status_code}: {response.reason or ''}".strip()
        if response.status_code == 401:
            error = f"Authentication rejected ({error})"
        return DeviceResponse(
            success=False,
            status_code=response.status_code,
            text=response.text,
            error=error,
        )

    def _command(
        self,
        path: str,
        action: str,
        description: str,
        endpoint: DeviceEndpoint,
    ) -> DoorControlResult:
        """A state-changing call: success needs HTTP 200 and an OK body"""
        result = self._request(path, endpoint=endpoint)

        if not result.success:
            app_logger.error(f"Failed to {description} on {endpoint.label}: {result.error}")
            return DoorControlResult(False, f"Failed to {description}: {result.error}")

        if not has_success_marker(result.text):
            app_logger.warning(
                f"Unexpected response to {description} on {endpoint.label}: {result.text!r}"
            )
            return DoorControlResult(
                False,
                f"Command to {description} sent but response unclear: {result.text.strip()}",
            )

        return DoorControlResult(True, "", action=action)

    # ------------------------------------------------------------------
    # Door control
    # ------------------------------------------------------------------

    def open_door(
        self,
        channel: int,
        room_email: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> DoorControlResult:
        """Open a door, optionally for a number of seconds"""
        endpoint = self._resolve_endpoint(room_email)
        app_logger.info(
            f"Opening door {channel} on Dahua device {endpoint.label} "
            f"for room {room_email or 'default'}"
        )

        path = f"/cgi-bin/accessControl.cgi?action=openDoor&channel={int(channel)}&Type=Remote"
        if duration:
            path += f"&time={int(duration)}"

        result = self._command(path, "open", f"open door {channel}", endpoint)
        if result.success:
            result.message = f"Door {channel} opened successfully" + (
                f" for {int(duration)} seconds" if duration else ""
            )
            app_logger.info(f"✓ {result.message} on {endpoint.label}")
        return result

    def close_door(self, channel: int, room_email: Optional[str] = None) -> DoorControlResult:
        endpoint = self._resolve_endpoint(room_email)
        app_logger.info(f"Closing door {channel} on Dahua device {endpoint.label}")

        result = self._command(
            f"/cgi-bin/accessControl.cgi?action=closeDoor&channel={int(channel)}&Type=Remote",
            "close",
            f"close door {channel}",
            endpoint,
        )
        if result.success:
            result.message = f"Door {channel} closed successfully"
            app_logger.info(f"✓ {result.message} on {endpoint.label}")
        return result

    def get_door_status(self, channel: int, room_email: Optional[str] = None) -> DoorControlResult:
        endpoint = self._resolve_endpoint(room_email)
        result = self._request(
            f"/cgi-bin/accessControl.cgi?action=getDoorStatus&channel={int(channel)}",
            endpoint=endpoint,
        )

        if not result.success:
            return DoorControlResult(
                False, f"Failed to get door {channel} status: {result.error}"
            )

        values = parse_key_values(result.text)
        status = values.get("Info.status") or values.get("status") or result.text.strip()
        return DoorControlResult(
            True,
            f"Door {channel} status: {status}",
            action="status",
            data={"status": status, "raw": values},
        )

    # ------------------------------------------------------------------
    # Records and enrolment
    # ------------------------------------------------------------------

    def get_unlock_records(
        self,
        start_time=None,
        end_time=None,
        count: int = 100,
        room_email: Optional[str] = None,
    ) -> DoorControlResult:
        """Historical unlock records, optionally between two times"""
        endpoint = self._resolve_endpoint(room_email)

        path = "/cgi-bin/recordFinder.cgi?action=find&name=AccessControlCardRec"
        if start_time:
            path += f"&StartTime={quote(_format_record_time(start_time), safe='')}"
        if end_time:
            path += f"&EndTime={quote(_format_record_time(end_time), safe='')}"
        path += f"&count={int(count)}"

        result = self._request(path, endpoint=endpoint)
        if not result.success:
            return DoorControlResult(False, f"Failed to get unlock records: {result.error}")

        records = parse_indexed(result.text, "records")
        app_logger.info(f"✓ Retrieved {len(records)} unlock records from {endpoint.label}")
        return DoorControlResult(
            True,
            f"Retrieved {len(records)} unlock records",
            action="records",
            data={"records": records},
        )

    def capture_face(self, user_id: str, room_email: Optional[str] = None) -> DoorControlResult:
        """Start face enrolment for a user at the controller"""
        endpoint = self._resolve_endpoint(room_email)
        result = self._command(
            "/cgi-bin/accessControl.cgi?action=captureCmd&type=1"
            f"&UserID={quote(str(user_id), safe='')}&heartbeat=5&timeout=10",
            "capture",
            f"capture face for user {user_id}",
            endpoint,
        )
        if result.success:
            result.message = f"Face capture initiated for user {user_id}"
        return result

    def set_face_threshold(
        self, threshold: int = 90, room_email: Optional[str] = None
    ) -> DoorControlResult:
        """Similarity percentage a face must reach to count as recognised"""
        threshold = int(threshold)
        if not 0 <= threshold <= 100:
            return DoorControlResult(False, f"Threshold must be 0-100, got {threshold}")

        endpoint = self._resolve_endpoint(room_email)
        result = self._command(
            f"/cgi-bin/faceRecognitionServer.cgi?action=modifyGroup&groupID=10000&Similarity={threshold}",
            "threshold",
            f"set threshold to {threshold}%",
            endpoint,
        )
        if result.success:
            result.message = f"Face recognition threshold set to {threshold}%"
        return result

    def enable_liveness_detection(self, room_email: Optional[str] = None) -> DoorControlResult:
        """Turn on anti-spoofing"""
        endpoint = self._resolve_endpoint(room_email)
        result = self._command(
            "/cgi-bin/configManager.cgi?action=setConfig&VideoAnalyseRule[0].Enable=true",
            "liveness",
            "enable liveness detection",
            endpoint,
        )
        if result.success:
            result.message = "Liveness detection enabled successfully"
        return result

    def add_user(
        self,
        user_id: str,
        user_name: str,
        doors: Optional[List[int]] = None,
        valid_from: Optional[str] = None,
        valid_to: Optional[str] = None,
        room_email: Optional[str] = None,
    ) -> DoorControlResult:
        endpoint = self._resolve_endpoint(room_email)
        payload = {
            "Users": [
                {
                    "UserID": str(user_id),
                    "UserName": user_name,
                    "UserType": 0,  # Normal user
                    "Doors": doors or [0],
                    "ValidFrom": valid_from or date.today().isoformat(),
                    "ValidTo": valid_to or "2099-12-31",
                }
            ]
        }

        result = self._request(
            "/cgi-bin/AccessUser.cgi?action=insertMulti",
            method="POST",
            endpoint=endpoint,
            body=json.dumps(payload),
            content_type="application/json",
        )
        if not result.success:
            return DoorControlResult(False, f"Failed to add user {user_name}: {result.error}")
        if not has_success_marker(result.text):
            return DoorControlResult(
                False, f"Add user {user_name} sent but response unclear: {result.text.strip()}"
            )

        app_logger.info(f"✓ User {user_name} ({user_id}) added on {endpoint.label}")
        return DoorControlResult(True, f"User {user_name} added successfully", action="addUser")

    def search_users(
        self,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
        room_email: Optional[str] = None,
    ) -> DoorControlResult:
        """Users stored on the controller; the name filter is a substring match"""
        endpoint = self._resolve_endpoint(room_email)
        path = "/cgi-bin/AccessUser.cgi?action=list"
        if user_id:
            path += f"&UserIDList[0]={quote(str(user_id), safe='')}"

        result = self._request(path, endpoint=endpoint)
        if not result.success:
            return DoorControlResult(False, f"Failed to search users: {result.error}")

        users = parse_indexed(result.text, "Users")
        if user_name:
            needle = user_name.casefold()
            users = [u for u in users if needle in u.get("UserName", "").casefold()]
        return DoorControlResult(
            True, f"Found {len(users)} users", action="searchUsers", data={"users": users}
        )

    # ------------------------------------------------------------------
    # Device information and configuration
    # ------------------------------------------------------------------

    def get_device_info(self, room_email: Optional[str] = None) -> DoorControlResult:
        """Identity and version details; succeeds if any endpoint answers"""
        endpoint = self._resolve_endpoint(room_email)
        device_info: Dict[str, Dict[str, str]] = {}

        for action in DEVICE_INFO_ACTIONS:
            result = self._request(f"/cgi-bin/magicBox.cgi?action={action}", endpoint=endpoint)
            if result.success:
                device_info[action] = parse_key_values(result.text)
            else:
                app_logger.warning(f"{action} failed on {endpoint.label}: {result.error}")

        if not device_info:
            return DoorControlResult(False, "Failed to retrieve device information")

        return DoorControlResult(
            True,
            f"Retrieved device information ({len(device_info)}/{len(DEVICE_INFO_ACTIONS)} endpoints)",
            action="deviceInfo",
            data={"deviceInfo": device_info, "device": endpoint.to_dict()},
        )

    def get_access_control_config(self, room_email: Optional[str] = None) -> DoorControlResult:
        endpoint = self._resolve_endpoint(room_email)
        result = self._request(
            "/cgi-bin/configManager.cgi?action=getConfig&name=AccessControl",
            endpoint=endpoint,
        )
        if not result.success:
            return DoorControlResult(False, f"Failed to get configuration: {result.error}")

        return DoorControlResult(
            True,
            "Access control configuration retrieved",
            action="getConfig",
            data={"config": parse_config(result.text)},
        )

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def test_connection(self) -> Dict[str, Any]:
        endpoint = self.default_endpoint
        app_logger.info(f"Testing connection to primary Dahua device at {endpoint.label}")

        result = self._request("/cgi-bin/magicBox.cgi?action=getDeviceType", endpoint=endpoint)
        if result.success:
            return {"success": True, "message": "Dahua connection successful"}
        return {"success": False, "message": f"Dahua connection failed: {result.error}"}

    def test_all_devices(self) -> Dict[str, Any]:
        """Probe every room controller"""
        results = []
        for endpoint in self.config.rooms.values():
            result = self._request(
                "/cgi-bin/magicBox.cgi?action=getDeviceType", endpoint=endpoint
            )
            results.append(
                {
                    "roomEmail": endpoint.room_email,
                    "host": endpoint.host,
                    "port": endpoint.port,
                    "success": result.success,
                    "message": "Connected" if result.success else result.error,
                }
            )

        all_successful = all(item["success"] for item in results)
        if not results:
            message = "No room devices configured"
        elif all_successful:
            message = "All devices connected"
        else:
            message = "Some devices failed"

        return {"success": all_successful, "message": message, "deviceResults": results}
