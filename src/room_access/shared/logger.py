import logging
import sys
from logging.handlers import RotatingFileHandler
import os


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output"""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    # Special colors for different log types
    WEBHOOK_COLOR = "\033[34m"  # Blue for [WEBHOOK]
    GRAPH_COLOR = "\033[95m"  # Light magenta for calendar calls
    DEVICE_COLOR = "\033[96m"  # Light cyan for device

    def format(self, record):
        log_message = super().format(record)

        levelname = record.levelname
        if levelname in self.COLORS:
            colored_levelname = (
                f"{self.COLORS[levelname]}{self.BOLD}{levelname}{self.RESET}"
            )
            log_message = log_message.replace(levelname, colored_levelname, 1)

        if "[WEBHOOK]" in log_message:
            log_message = log_message.replace(
                "[WEBHOOK]", f"{self.WEBHOOK_COLOR}[WEBHOOK]{self.RESET}"
            )

        if "Graph API" in log_message:
            log_message = log_message.replace(
                "Graph API", f"{self.GRAPH_COLOR}Graph API{self.RESET}"
            )

        if "Dahua device" in log_message:
            log_message = log_message.replace(
                "Dahua device", f"{self.DEVICE_COLOR}Dahua device{self.RESET}"
            )

        return log_message


def get_user_log_dir():
    """Get user-writable directory for log files"""
    override = os.getenv("LOG_DIR")
    if override:
        log_dir = override
    elif os.name == "nt":  # Windows
        appdata = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA")
        log_dir = (
            os.path.join(appdata, "RoomAccess")
            if appdata
            else os.path.join(os.path.expanduser("~"), "RoomAccess")
        )
    else:  # Unix/Linux/macOS
        log_dir = os.path.join(
            os.path.expanduser("~"), ".local", "share", "RoomAccess"
        )
        if not os.access(os.path.dirname(log_dir), os.W_OK):
            log_dir = "/tmp"

    try:
        os.makedirs(log_dir, exist_ok=True)
    except (OSError, PermissionError):
        log_dir = os.path.join(os.path.expanduser("~"), "room_access_logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
        except (OSError, PermissionError):
            # Last resort - current directory
            log_dir = os.getcwd()

    return log_dir


def create_log_handler():
    """Create file handler for logging"""
    log_file_size = int(os.getenv("LOG_FILE_SIZE", 10485760))

    log_dir = get_user_log_dir()
    log_file_path = os.path.join(log_dir, "room_access.log")
    handler = RotatingFileHandler(log_file_path, maxBytes=log_file_size, backupCount=3)

    # No colors for file
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
    )
    handler.setFormatter(formatter)

    return handler


def create_console_handler():
    """Create console handler with colored output"""
    console_handler = logging.StreamHandler(sys.stdout)

    colored_formatter = ColoredFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(colored_formatter)

    return console_handler


# Separate logger instance outside of the Flask app context
app_logger = logging.getLogger("room_access")

# Prevent duplicate handlers on module reload
if not app_logger.handlers:
    app_logger.addHandler(create_log_handler())
    app_logger.addHandler(create_console_handler())

app_logger.setLevel(logging.INFO)
app_logger.propagate = False
