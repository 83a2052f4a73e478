import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

class CacheSettings(BaseModel):
    shift_ttl_seconds: int = Field(default=int(os.getenv("SHIFT_CACHE_TTL_SECONDS", "3600")))
    settings_ttl_seconds: int = Field(default=int(os.getenv("SETTINGS_CACHE_TTL_SECONDS", "300")))
    holiday_ttl_seconds: int = Field(default=int(os.getenv("HOLIDAY_CACHE_TTL_SECONDS", "86400")))

class Config(BaseModel):
    app_name: str = "HR Payroll Platform"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = os.getenv("API_PREFIX", "/api")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    # Caching
    cache: CacheSettings = CacheSettings()

    # Payroll processing
    upsert_max_attempts: int = int(os.getenv("UPSERT_MAX_ATTEMPTS", "3"))
    batch_status_stream_timeout_seconds: float = float(os.getenv("BATCH_STATUS_STREAM_TIMEOUT_SECONDS", "30"))

    # Enterprise Architecture
    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"
    caller_header: str = "X-Line-UserId"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("⚠ Using the local SQLite database outside development.")
