schema = {
    "type": "object",
    "properties": {
        "doorChannel": {"type": "integer", "minimum": 1},
        "roomEmail": {"type": "string", "pattern": "^[^@\\s]+@[^@\\s]+$"},
        "roomName": {"type": ["string", "null"]},
        "isActive": {"type": "boolean"},
    },
    "required": ["doorChannel", "roomEmail"],
}
