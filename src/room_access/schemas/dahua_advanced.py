schema = {
    "type": "object",
    "properties": {
        "action": {"type": "string", "enum": ["records", "capture", "threshold", "liveness"]},
        "userId": {"type": ["string", "integer"]},
        "threshold": {"type": "integer", "minimum": 0, "maximum": 100},
        "startTime": {"type": "string"},
        "endTime": {"type": "string"},
        "count": {"type": "integer", "minimum": 1},
        "roomEmail": {"type": "string"},
    },
    "required": ["action"],
}
