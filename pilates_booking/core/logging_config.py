import os
import re
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional


class SecurityFilter(logging.Filter):
    """Filter to remove sensitive information from logs while preserving context"""

    SENSITIVE_PATTERNS = [
        # JWT tokens (eyJ...)
        (r'eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*', '[JWT_TOKEN]'),
        # Bearer tokens
        (r'Bearer\s+[A-Za-z0-9._-]+', 'Bearer [TOKEN]'),
        # Database URLs with credentials
        (r'://[^:/\s]+:[^@\s]+@', '://[CREDENTIALS]@'),
        # Secret keys
        (r'secret["\s]*[:=]["\s]*[^,}\s]+', 'secret: [HIDDEN]'),
    ]

    def filter(self, record):
        if hasattr(record, 'msg'):
            msg = str(record.msg)
            for pattern, replacement in self.SENSITIVE_PATTERNS:
                msg = re.sub(pattern, replacement, msg, flags=re.IGNORECASE)
            record.msg = msg
        return True


def setup_logging():
    """Configure application logging based on environment variables"""

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    sql_log_level = os.getenv("SQL_LOG_LEVEL", "WARNING").upper()
    log_format = os.getenv("LOG_FORMAT", "text").lower()

    # Resolve default log file within <repo>/logs/app.log regardless of CWD
    default_log_path = Path(__file__).resolve().parents[2] / "logs" / "app.log"
    log_file_path = os.getenv("LOG_FILE_PATH", str(default_log_path))
    booking_log_events = os.getenv("BOOKING_LOG_EVENTS", "true").lower() == "true"
    enable_security_filter = os.getenv("ENABLE_SECURITY_FILTER", "false").lower() == "true"

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    if log_format == "json":
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"module": "%(name)s", "message": "%(message)s", '
            '"line": %(lineno)d, "function": "%(funcName)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level, logging.INFO))
    console_handler.setFormatter(formatter)

    security_filter = SecurityFilter()
    if enable_security_filter:
        console_handler.addFilter(security_filter)

    root_logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path,
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(getattr(logging, log_level, logging.INFO))
    file_handler.setFormatter(formatter)
    if enable_security_filter:
        file_handler.addFilter(security_filter)

    root_logger.addHandler(file_handler)

    sql_logger = logging.getLogger('sqlalchemy.engine')
    sql_logger.setLevel(getattr(logging, sql_log_level, logging.WARN))

    app_logger = logging.getLogger('pilates_booking')
    app_logger.setLevel(getattr(logging, log_level, logging.INFO))

    events_logger = logging.getLogger('pilates_booking.events')
    events_logger.setLevel(logging.INFO if booking_log_events else logging.ERROR)

    root_logger.info(
        "Logging initialized level=%s sql=%s file=%s",
        log_level,
        sql_log_level,
        log_file_path,
    )

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given module name"""
    return logging.getLogger(f"pilates_booking.{name}")


def log_booking_event(event_type: str, user_id: Optional[int] = None,
                      class_id: Optional[int] = None, success: bool = True,
                      detail: str = ""):
    """Log booking audit events (book, cancel, promote, waitlist)"""
    events_logger = get_logger("events")

    if success:
        events_logger.info(
            "Booking %s - user: %s class: %s %s",
            event_type, user_id if user_id is not None else "unknown", class_id, detail
        )
    else:
        events_logger.warning(
            "Booking %s rejected - user: %s class: %s %s",
            event_type, user_id if user_id is not None else "unknown", class_id, detail
        )
