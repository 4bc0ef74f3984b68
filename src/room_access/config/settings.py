import os

def strtobool(val):
    """Convert a string representation of truth to true (1) or false (0)."""
    val = val.lower()
    if val in ('y', 'yes', 't', 'true', 'on', '1'):
        return 1
    elif val in ('n', 'no', 'f', 'false', 'off', '0'):
        return 0
    else:
        raise ValueError(f"invalid truth value {val!r}")

SECRET_KEY = os.getenv("SECRET_KEY", "default-secret-key-for-room-access")
DEBUG = bool(strtobool(os.getenv("FLASK_DEBUG", "false")))

# Raw webhook bodies from controller firmware can carry snapshots
MAX_CONTENT_LENGTH = 50 * 1024 * 1024

LOG_FILE_SIZE = os.getenv("LOG_FILE_SIZE", "10485760")
