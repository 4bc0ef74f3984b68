from datetime import datetime
from typing import Any, Callable, Dict

from room_access.repositories.access_log_repository import AccessLogRepository
from room_access.repositories.health_repository import SystemHealthRepository
from room_access.repositories.mapping_repository import RoomMappingRepository
from room_access.services.calendar_service import GraphCalendarService
from room_access.services.device_service import DahuaDeviceService
from room_access.shared.logger import app_logger
from room_access.shared.time_utils import local_now, start_of_day


class HealthService:
    """Connectivity probes and dashboard figures"""

    def __init__(
        self,
        device: DahuaDeviceService,
        calendar: GraphCalendarService,
        health_repo: SystemHealthRepository,
        access_logs: AccessLogRepository,
        room_repo: RoomMappingRepository,
        clock: Callable[[], datetime] = local_now,
    ):
        self.device = device
        self.calendar = calendar
        self.health_repo = health_repo
        self.access_logs = access_logs
        self.room_repo = room_repo
        self._clock = clock

    def run_connection_test(self) -> Dict[str, Any]:
        """Probe the controller and Graph, and record the outcome per service"""
        app_logger.info("Running connectivity test for Dahua device and Graph API")

        dahua = self._probe("Dahua device", self.device.test_connection)
        graph = self._probe("Graph API", self.calendar.test_connection)

        self.health_repo.upsert(
            "dahua", "online" if dahua["success"] else "offline", dahua["message"]
        )
        self.health_repo.upsert(
            "microsoft-graph", "online" if graph["success"] else "offline", graph["message"]
        )
        self.health_repo.upsert("server", "online", "Server operational")

        return {
            "success": dahua["success"] and graph["success"],
            "results": {
                "dahua": dahua,
                "microsoftGraph": graph,
                "server": {"success": True, "message": "Server healthy"},
            },
        }

    @staticmethod
    def _probe(name: str, probe) -> Dict[str, Any]:
        try:
            return probe()
        except Exception as e:
            app_logger.error(f"{name} connectivity probe crashed: {e}", exc_info=True)
            return {"success": False, "message": f"{name} probe failed: {e}"}

    def get_dashboard_metrics(self) -> Dict[str, Any]:
        """Today's access statistics, counted from local midnight"""
        midnight = start_of_day(self._clock())
        logs = self.access_logs.get_since(midnight)

        total = len(logs)
        granted = sum(1 for log in logs if log.access_granted)
        success_rate = round(granted / total * 100, 1) if total else 0

        rooms = self.room_repo.get_all()
        return {
            "totalAttempts": total,
            "successfulAccess": granted,
            "deniedAccess": total - granted,
            "successRate": success_rate,
            "activeRooms": sum(1 for room in rooms if room.is_active),
            "totalRooms": len(rooms),
        }
