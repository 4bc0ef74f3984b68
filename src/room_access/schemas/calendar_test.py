schema = {
    "type": "object",
    "properties": {
        "userEmail": {"type": "string", "minLength": 3},
        "roomEmail": {"type": "string", "minLength": 3},
        "mode": {"type": "string", "enum": ["active-meeting", "exact-booking"]},
    },
    "required": ["userEmail", "roomEmail"],
}
