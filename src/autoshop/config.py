"""Application configuration: loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for operator overrides
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides.

    Shop business settings (tax rate, number prefixes, labor rates) are
    not kept here; they live in the database ``settings`` table.
    """

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "autoshop.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )
    BACKUP_KEEP: int = int(_runtime.get(
        "backup_keep",
        os.getenv("BACKUP_KEEP", "10"),
    ))
    DB_BUSY_TIMEOUT: float = float(os.getenv("DB_BUSY_TIMEOUT", "30"))

    # Runtime environment; anything but "development" redacts
    # internal error messages in error envelopes
    APP_ENV: str = os.getenv("APP_ENV", "production")

    # Authentication
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-me-in-production")
    JWT_EXPIRES_HOURS: int = int(_runtime.get(
        "jwt_expires_hours",
        os.getenv("JWT_EXPIRES_HOURS", "24"),
    ))
    PASSWORD_MIN_LENGTH: int = int(_runtime.get(
        "password_min_length",
        os.getenv("PASSWORD_MIN_LENGTH", "8"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def is_development(cls) -> bool:
        return cls.APP_ENV.lower() == "development"

    @classmethod
    def update_auth_settings(cls, expires_hours: int, password_min: int):
        """Update token lifetime and password policy and persist."""
        cls.JWT_EXPIRES_HOURS = expires_hours
        cls.PASSWORD_MIN_LENGTH = password_min

        settings = _load_settings()
        settings["jwt_expires_hours"] = expires_hours
        settings["password_min_length"] = password_min
        _save_settings(settings)

    @classmethod
    def update_backup_settings(cls, keep: int):
        """Update how many database backups are retained and persist."""
        cls.BACKUP_KEEP = keep
        settings = _load_settings()
        settings["backup_keep"] = keep
        _save_settings(settings)
