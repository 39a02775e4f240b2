import os
from typing import Optional


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


class Settings:
    PROJECT_NAME: str = "FieldShare"
    PROJECT_VERSION: str = "1.0.0"

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # DATABASE
    # DATABASE_URL = "postgresql://user:pass@db:5432/fieldshare"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./fieldshare.db")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # PROXIMITY (meters)
    DISCOVERY_RADIUS_M: float = float(os.getenv("DISCOVERY_RADIUS_M", "5000"))
    ADJACENCY_BUFFER_M: float = float(os.getenv("ADJACENCY_BUFFER_M", "10"))
    # Legacy tight centroid cut-off (100 m in the old nearby-finder); unset = disabled
    ADJACENCY_CENTROID_M: Optional[float] = _optional_float("ADJACENCY_CENTROID_M")
    SHARED_BOUNDARY_FALLBACK_RATIO: float = float(os.getenv("SHARED_BOUNDARY_FALLBACK_RATIO", "0.1"))

    # OVERLAP
    OVERLAP_FALLBACK_TOLERANCE_DEG: float = float(os.getenv("OVERLAP_FALLBACK_TOLERANCE_DEG", "0.0001"))

    SCAN_BATCH_SIZE: int = int(os.getenv("SCAN_BATCH_SIZE", "500"))

    # NOTIFICATIONS: log | sms | celery
    NOTIFICATION_BACKEND: str = os.getenv("NOTIFICATION_BACKEND", "log")
    TWILIO_ACCOUNT_SID: Optional[str] = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN: Optional[str] = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER: Optional[str] = os.getenv("TWILIO_PHONE_NUMBER")


settings = Settings()
