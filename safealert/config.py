# config.py
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _async_database_url(raw_db_url: Optional[str]) -> str:
    """Point plain Postgres URLs (Render style) at the asyncpg driver."""
    if not raw_db_url:
        return "sqlite+aiosqlite:///./safealert.db"
    if raw_db_url.startswith("postgres://"):
        return "postgresql+asyncpg://" + raw_db_url[len("postgres://"):]
    if raw_db_url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + raw_db_url[len("postgresql://"):]
    return raw_db_url


@dataclass
class Settings:
    # ------------------ Database ------------------
    database_url: str = "sqlite+aiosqlite:///./safealert.db"

    # ------------------ Security ------------------
    secret_key: Optional[str] = None
    algorithm: str = "HS256"

    # ------------------ Azure Maps ------------------
    azure_maps_key: Optional[str] = None
    azure_maps_endpoint: str = "https://atlas.microsoft.com"
    nearby_search_radius_m: int = 5000

    # ------------------ Azure Vision ------------------
    azure_vision_endpoint: Optional[str] = None
    azure_vision_key: Optional[str] = None

    # ------------------ SendGrid ------------------
    sendgrid_api_key: Optional[str] = None
    sendgrid_from_email: Optional[str] = None  # must be a verified sender
    sendgrid_sandbox: bool = False

    # ------------------ Runtime ------------------
    provider_timeout_seconds: float = 10.0
    log_level: str = "INFO"
    app_name: str = "SafeAlert"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_async_database_url(os.getenv("DATABASE_URL")),
            secret_key=os.getenv("SECRET_KEY"),
            algorithm=os.getenv("ALGORITHM", "HS256"),
            azure_maps_key=os.getenv("AZURE_MAPS_KEY"),
            azure_maps_endpoint=os.getenv("AZURE_MAPS_ENDPOINT", "https://atlas.microsoft.com"),
            nearby_search_radius_m=int(os.getenv("NEARBY_SEARCH_RADIUS", 5000)),
            azure_vision_endpoint=os.getenv("AZURE_VISION_ENDPOINT"),
            azure_vision_key=os.getenv("AZURE_VISION_KEY"),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY"),
            sendgrid_from_email=os.getenv("SENDGRID_FROM_EMAIL"),
            sendgrid_sandbox=_env_bool("SENDGRID_SANDBOX"),
            provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 10)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            app_name=os.getenv("APP_NAME", "SafeAlert"),
        )
