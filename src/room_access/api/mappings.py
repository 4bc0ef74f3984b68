"""
User and room mapping endpoints
"""

from flask import Blueprint, jsonify, request

from room_access.models import RoomMapping, UserMapping
from room_access.repositories.mapping_repository import DuplicateMappingError
from room_access.schemas import room_mapping_schema, user_mapping_schema, validate_data
from room_access.services.container import get_services
from room_access.shared.logger import app_logger

bp = Blueprint("mappings", __name__, url_prefix="/api")


@bp.route("/user-mappings", methods=["GET"])
def get_user_mappings():
    try:
        mappings = get_services().user_mappings.get_all()
        return jsonify([mapping.to_dict() for mapping in mappings])
    except Exception as e:
        app_logger.error(f"Error getting user mappings: {e}", exc_info=True)
        return jsonify({"error": "Internal error getting user mappings"}), 500


@bp.route("/user-mappings", methods=["POST"])
def create_user_mapping():
    try:
        data = request.get_json(silent=True) or {}
        error = validate_data(data, user_mapping_schema.schema)
        if error:
            return jsonify({"success": False, "error": error}), 400

        mapping = get_services().user_mappings.create(UserMapping.from_dict(data))
        app_logger.info(f"User {mapping.external_user_id} mapped to {mapping.email}")
        return jsonify(mapping.to_dict()), 201
    except DuplicateMappingError as e:
        return jsonify({"success": False, "error": str(e)}), 409
    except Exception as e:
        app_logger.error(f"Error creating user mapping: {e}", exc_info=True)
        return jsonify({"error": "Internal error creating user mapping"}), 500


@bp.route("/user-mappings/<mapping_id>", methods=["DELETE"])
def delete_user_mapping(mapping_id):
    try:
        if get_services().user_mappings.deactivate(mapping_id):
            return jsonify({"success": True})
        return jsonify({"error": "User mapping not found"}), 404
    except Exception as e:
        app_logger.error(f"Error deleting user mapping {mapping_id}: {e}", exc_info=True)
        return jsonify({"error": "Internal error deleting user mapping"}), 500


@bp.route("/room-mappings", methods=["GET"])
def get_room_mappings():
    try:
        mappings = get_services().room_mappings.get_all()
        return jsonify([mapping.to_dict() for mapping in mappings])
    except Exception as e:
        app_logger.error(f"Error getting room mappings: {e}", exc_info=True)
        return jsonify({"error": "Internal error getting room mappings"}), 500


@bp.route("/room-mappings", methods=["POST"])
def create_room_mapping():
    try:
        data = request.get_json(silent=True) or {}
        error = validate_data(data, room_mapping_schema.schema)
        if error:
            return jsonify({"success": False, "error": error}), 400

        mapping = get_services().room_mappings.create(RoomMapping.from_dict(data))
        app_logger.info(f"Door {mapping.door_channel} mapped to {mapping.room_email}")
        return jsonify(mapping.to_dict()), 201
    except DuplicateMappingError as e:
        return jsonify({"success": False, "error": str(e)}), 409
    except Exception as e:
        app_logger.error(f"Error creating room mapping: {e}", exc_info=True)
        return jsonify({"error": "Internal error creating room mapping"}), 500


@bp.route("/room-mappings/<mapping_id>", methods=["DELETE"])
def delete_room_mapping(mapping_id):
    try:
        if get_services().room_mappings.deactivate(mapping_id):
            return jsonify({"success": True})
        return jsonify({"error": "Room mapping not found"}), 404
    except Exception as e:
        app_logger.error(f"Error deleting room mapping {mapping_id}: {e}", exc_info=True)
        return jsonify({"error": "Internal error deleting room mapping"}), 500
