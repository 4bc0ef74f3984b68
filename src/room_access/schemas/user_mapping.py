schema = {
    "type": "object",
    "properties": {
        "dahuaUserId": {"type": ["string", "integer"], "minLength": 1},
        "email": {"type": "string", "pattern": "^[^@\\s]+@[^@\\s]+$"},
        "name": {"type": ["string", "null"]},
        "isActive": {"type": "boolean"},
    },
    "required": ["dahuaUserId", "email"],
}
