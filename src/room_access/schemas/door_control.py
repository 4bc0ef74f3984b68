schema = {
    "type": "object",
    "properties": {
        "channel": {"type": "integer", "minimum": 1},
        "action": {"type": "string", "enum": ["open", "close", "status"]},
        "roomEmail": {"type": ["string", "null"]},
        "duration": {"type": ["integer", "null"], "minimum": 1},
    },
    "required": ["channel"],
}
