"""
Explicitly constructed services for one application instance
"""

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from room_access.config.config_manager import AppConfig
from room_access.database.connection import DatabaseManager
from room_access.repositories.access_log_repository import AccessLogRepository
from room_access.repositories.health_repository import SystemHealthRepository
from room_access.repositories.mapping_repository import (
    RoomMappingRepository,
    UserMappingRepository,
)
from room_access.services.access_decision_service import AccessDecisionService
from room_access.services.calendar_service import GraphCalendarService
from room_access.services.device_service import DahuaDeviceService
from room_access.services.health_service import HealthService
from room_access.services.mapping_resolver import MappingResolver
from room_access.services.scheduler_service import SchedulerService

EXTENSION_KEY = "room_access"


@dataclass
class ServiceContainer:
    config: AppConfig
    db: DatabaseManager
    user_mappings: UserMappingRepository
    room_mappings: RoomMappingRepository
    access_logs: AccessLogRepository
    health: SystemHealthRepository
    device: DahuaDeviceService
    calendar: GraphCalendarService
    resolver: MappingResolver
    decisions: AccessDecisionService
    health_service: HealthService
    scheduler: Optional[SchedulerService] = None

    @classmethod
    def build(
        cls,
        config: AppConfig,
        device: Optional[DahuaDeviceService] = None,
        calendar: Optional[GraphCalendarService] = None,
    ) -> "ServiceContainer":
        """Wire every service from configuration; clients may be swapped in"""
        db = DatabaseManager(config.db_path)
        user_mappings = UserMappingRepository(db)
        room_mappings = RoomMappingRepository(db)
        access_logs = AccessLogRepository(db)
        health = SystemHealthRepository(db)

        device = device or DahuaDeviceService(config.device)
        calendar = calendar or GraphCalendarService(config.graph)
        resolver = MappingResolver(user_mappings, room_mappings)

        health_service = HealthService(device, calendar, health, access_logs, room_mappings)

        return cls(
            config=config,
            db=db,
            user_mappings=user_mappings,
            room_mappings=room_mappings,
            access_logs=access_logs,
            health=health,
            device=device,
            calendar=calendar,
            resolver=resolver,
            decisions=AccessDecisionService(resolver, calendar, device, access_logs),
            health_service=health_service,
            scheduler=SchedulerService(health_service, config.health_check_interval),
        )


def get_services() -> ServiceContainer:
    """Services of the application handling the current request"""
    return current_app.extensions[EXTENSION_KEY]
