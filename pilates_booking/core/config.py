"""
Runtime configuration for the booking engine, read from environment variables.
"""
import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class Settings:
    database_url: str = "sqlite+aiosqlite:///./pilates_booking.db"
    db_echo: bool = False
    studio_timezone: Optional[str] = None

    # Booking rules
    cancellation_lead_hours: float = 2.0
    waitlist_close_hours: float = 2.0
    reminder_minutes: int = 15
    skip_lapsed_waitlist_entrants: bool = False

    # Infrastructure
    transaction_retries: int = 1
    notification_queue_size: int = 1000
    maintenance_interval_seconds: int = 300
    create_tables: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            db_echo=_env_bool("DB_ECHO"),
            studio_timezone=os.getenv("STUDIO_TIMEZONE") or None,
            cancellation_lead_hours=float(os.getenv("CANCELLATION_LEAD_HOURS", 2)),
            waitlist_close_hours=float(os.getenv("WAITLIST_CLOSE_HOURS", 2)),
            reminder_minutes=int(os.getenv("REMINDER_MINUTES", 15)),
            skip_lapsed_waitlist_entrants=_env_bool("WAITLIST_SKIP_LAPSED"),
            transaction_retries=int(os.getenv("TRANSACTION_RETRIES", 1)),
            notification_queue_size=int(os.getenv("NOTIFICATION_QUEUE_SIZE", 1000)),
            maintenance_interval_seconds=int(os.getenv("MAINTENANCE_INTERVAL_SECONDS", 300)),
            create_tables=_env_bool("CREATE_TABLES", "true"),
        )

    @property
    def tz(self) -> tzinfo:
        """Timezone class dates and times are expressed in."""
        if not self.studio_timezone:
            return timezone.utc
        return ZoneInfo(self.studio_timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
