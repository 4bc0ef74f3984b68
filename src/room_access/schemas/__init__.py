from jsonschema import validate as jsonschema_validate
from jsonschema.exceptions import ValidationError

from room_access.schemas import add_user as add_user_schema
from room_access.schemas import calendar_test as calendar_test_schema
from room_access.schemas import dahua_advanced as dahua_advanced_schema
from room_access.schemas import door_control as door_control_schema
from room_access.schemas import manual_event as manual_event_schema
from room_access.schemas import room_mapping as room_mapping_schema
from room_access.schemas import user_mapping as user_mapping_schema


def validate_data(data, schema):
    """Returns None when valid, else the validation message"""
    try:
        jsonschema_validate(instance=data, schema=schema)
        return None
    except ValidationError as e:
        return e.message


__all__ = [
    "add_user_schema",
    "calendar_test_schema",
    "dahua_advanced_schema",
    "door_control_schema",
    "room_mapping_schema",
    "manual_event_schema",
    "user_mapping_schema",
    "validate_data",
]
