# Manual trigger body; mirrors what the controller posts
schema = {
    "type": "object",
    "properties": {
        "code": {"type": "string"},
        "action": {"type": "string"},
        "index": {"type": "integer", "minimum": 0},
        "data": {
            "type": "object",
            "properties": {
                "UserID": {"type": ["string", "integer"]},
                "Door": {"type": ["string", "integer"]},
            },
        },
    },
}
