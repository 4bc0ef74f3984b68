schema = {
    "type": "object",
    "properties": {
        "userID": {"type": ["string", "integer"]},
        "userName": {"type": "string", "minLength": 1},
        "doors": {"type": "array", "items": {"type": "integer", "minimum": 0}},
        "validFrom": {"type": "string"},
        "validTo": {"type": "string"},
        "roomEmail": {"type": "string"},
    },
    "required": ["userID", "userName"],
}
