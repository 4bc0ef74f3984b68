import atexit
import logging
import os

import sentry_sdk
from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from room_access.api.dashboard import bp as dashboard_blueprint
from room_access.api.mappings import bp as mappings_blueprint
from room_access.api.test_endpoints import bp as test_blueprint
from room_access.api.webhook import bp as webhook_blueprint
from room_access.config.config_manager import AppConfig, load_config, load_mappings_file
from room_access.models import RoomMapping, UserMapping
from room_access.services.container import EXTENSION_KEY, ServiceContainer
from room_access.shared.logger import app_logger, create_log_handler


class EndpointFilter(logging.Filter):
    """Suppress noisy request logs for specific endpoints."""

    def __init__(self, *paths):
        super().__init__()
        self.paths = paths

    def filter(self, record):
        message = record.getMessage()
        return not any(path in message for path in self.paths)


load_dotenv()


def create_app(config: AppConfig = None, services: ServiceContainer = None, testing: bool = False):
    config = config or (services.config if services else load_config())
    init_sentry(config.sentry_dsn)

    app = Flask(__name__)

    CORS(app,
         origins=["*"],
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
         methods=["GET", "POST", "DELETE", "OPTIONS"])

    app.config.from_object("room_access.config.settings")
    app.config["TESTING"] = testing

    handler = create_log_handler()
    app.logger.addHandler(handler)
    app.logger.setLevel(logging.INFO)

    # Dashboards poll the health endpoint every few seconds
    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.addFilter(EndpointFilter("/api/health"))

    services = services or ServiceContainer.build(config)
    app.extensions[EXTENSION_KEY] = services

    app.register_blueprint(webhook_blueprint)
    app.register_blueprint(test_blueprint)
    app.register_blueprint(mappings_blueprint)
    app.register_blueprint(dashboard_blueprint)

    services.health.initialize_defaults()

    if config.mappings_file:
        seed_mappings(services, config.mappings_file)

    app_logger.info(
        f"Room access middleware ready (calendar mode: {config.graph.auth_mode}, "
        f"{len(config.device.rooms)} room devices)"
    )

    # With the reloader enabled only the child process (== "true") runs jobs
    run_main_flag = os.environ.get("WERKZEUG_RUN_MAIN")
    if not testing and services.scheduler and run_main_flag in ("true", None):
        try:
            services.scheduler.start()
        except Exception as e:
            app_logger.error(f"Failed to start scheduler service: {e}")

        def cleanup_services():
            app_logger.info("Shutting down services...")
            services.scheduler.stop()
            services.db.close_connection()
            app_logger.info("Services shutdown completed")

        atexit.register(cleanup_services)

    return app


def seed_mappings(services: ServiceContainer, path: str):
    """Create mappings from a seed file for keys not mapped yet"""
    seed = load_mappings_file(path)
    created = 0

    for item in seed["userMappings"]:
        mapping = UserMapping.from_dict(item)
        if not services.user_mappings.get_by_external_id(mapping.external_user_id):
            services.user_mappings.create(mapping)
            created += 1

    for item in seed["roomMappings"]:
        mapping = RoomMapping.from_dict(item)
        if not services.room_mappings.get_by_channel(mapping.door_channel):
            services.room_mappings.create(mapping)
            created += 1

    app_logger.info(f"Seeded {created} mappings from {path}")


def init_sentry(dsn):
    if not dsn:
        return

    sentry_sdk.init(
        dsn=dsn,
        # Set traces_sample_rate to 1.0 to capture 100%
        # of transactions for performance monitoring.
        traces_sample_rate=1.0,
    )
