# socialvox/config.py
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Prefer the .env in the project root, fall back to the default lookup
dotenv_path = os.path.join(os.path.dirname(__file__), "..", ".env")
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
else:
    load_dotenv()


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _default_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    sqlite_db_path = os.path.join(os.path.dirname(__file__), "socialvox_fallback.db")
    return f"sqlite+aiosqlite:///{sqlite_db_path}"


FALLBACK_ORIGINS = [
    "http://127.0.0.1:5173",
    "http://localhost:5173",
    "http://localhost:8080",
]


def _allowed_origins() -> List[str]:
    env_origins = os.getenv("BACKEND_ALLOWED_ORIGINS")
    if not env_origins:
        return list(FALLBACK_ORIGINS)
    origins = [origin.strip() for origin in env_origins.split(",") if origin.strip()]
    return origins or list(FALLBACK_ORIGINS)


@dataclass
class Settings:
    database_url: str = field(default_factory=_default_database_url)
    sql_echo: bool = False
    allowed_origins: List[str] = field(default_factory=lambda: list(FALLBACK_ORIGINS))

    log_level: str = "INFO"

    # Session and login
    session_timeout_minutes: int = 480
    max_login_attempts: int = 5
    lockout_minutes: int = 10

    # Offline sync
    sync_debounce_seconds: float = 2.0
    sync_cooldown_seconds: float = 3.0

    # Simulated network
    network_min_delay_ms: int = 300
    network_max_delay_ms: int = 1200
    network_failure_rate: float = 0.0

    require_audio: bool = True
    recording_tick_seconds: Optional[float] = 1.0

    geocoder_url: str = "https://nominatim.openstreetmap.org/reverse"
    geocoder_user_agent: str = "SocialVox/1.0"
    geocoder_timeout_seconds: float = 10.0

    seed_demo_data: bool = True

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            database_url=_default_database_url(),
            sql_echo=_env_bool("SQL_ECHO", False),
            allowed_origins=_allowed_origins(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            session_timeout_minutes=_env_int("SESSION_TIMEOUT_MINUTES", 480),
            max_login_attempts=_env_int("MAX_LOGIN_ATTEMPTS", 5),
            lockout_minutes=_env_int("LOCKOUT_MINUTES", 10),
            sync_debounce_seconds=_env_float("SYNC_DEBOUNCE_SECONDS", 2.0),
            sync_cooldown_seconds=_env_float("SYNC_COOLDOWN_SECONDS", 3.0),
            network_min_delay_ms=_env_int("NETWORK_MIN_DELAY_MS", 300),
            network_max_delay_ms=_env_int("NETWORK_MAX_DELAY_MS", 1200),
            network_failure_rate=_env_float("NETWORK_FAILURE_RATE", 0.0),
            require_audio=_env_bool("REQUIRE_AUDIO", True),
            recording_tick_seconds=_env_float("RECORDING_TICK_SECONDS", 1.0),
            geocoder_url=os.getenv(
                "GEOCODER_URL", "https://nominatim.openstreetmap.org/reverse"
            ),
            geocoder_user_agent=os.getenv("GEOCODER_USER_AGENT", "SocialVox/1.0"),
            geocoder_timeout_seconds=_env_float("GEOCODER_TIMEOUT_SECONDS", 10.0),
            seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        )


# Host and port for the dev server
APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = _env_int("APP_PORT", 8000)
RELOAD_APP = _env_bool("RELOAD_APP", True)
