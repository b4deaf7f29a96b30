"""Application configuration utilities for the FBAR intake backend.

This module centralises environment-driven configuration so the rest of the
code base does not need to read environment variables directly.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load any variables defined in a local .env file.
load_dotenv()


@dataclass(frozen=True)
class AppConfig:
    """Strongly-typed container for runtime configuration.

    Attributes:
        project_root: Root directory of the project. Used to derive default
            paths so the app works out of the box after cloning the repo.
        database_file: Path to the SQLite file holding the submission and
            draft collections as well as admin accounts and sessions.
        google_maps_key: Optional API key for the Places lookup. Without it
            the form falls back to manual institution entry.
        places_endpoint: Endpoint URL of the Places "find place" API.
        admin_email: Optional bootstrap admin account created at startup.
        admin_password: Password for :attr:`admin_email`.
        cors_origins: Origins allowed to call the API from a browser.
        session_hours: Lifetime of an admin session token.
        max_code_attempts: Upper bound on resume-code collision retries.
        log_level: Root log level name.
        log_format: ``standard`` or ``json``.
    """

    project_root: Path
    database_file: Path
    google_maps_key: Optional[str]
    places_endpoint: str
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    cors_origins: tuple[str, ...] = ("*",)
    session_hours: int = 12
    max_code_attempts: int = 10
    log_level: str = "INFO"
    log_format: str = "standard"


def load_config() -> AppConfig:
    """Create a new :class:`AppConfig` instance based on environment settings.

    Environment variables override the default values, allowing users to
    customise the runtime without touching the source code.
    """

    project_root = Path(__file__).resolve().parent.parent
    database_file = Path(
        getenv_with_default(
            "FBAR_DB_FILE",
            project_root / "fbar_intake.db",
        )
    )

    google_maps_key = getenv_with_default("GOOGLE_MAPS_API_KEY")
    places_endpoint = getenv_with_default(
        "FBAR_PLACES_ENDPOINT",
        "https://maps.googleapis.com/maps/api/place/findplacefromtext/json",
    )
    cors_origins = getenv_with_default("FBAR_CORS_ORIGINS", "*")

    # Ensure the directories exist so later code can safely create files.
    database_file.parent.mkdir(parents=True, exist_ok=True)

    return AppConfig(
        project_root=project_root,
        database_file=database_file,
        google_maps_key=google_maps_key or None,
        places_endpoint=places_endpoint,
        admin_email=getenv_with_default("FBAR_ADMIN_EMAIL"),
        admin_password=getenv_with_default("FBAR_ADMIN_PASSWORD"),
        cors_origins=tuple(origin.strip() for origin in cors_origins.split(",") if origin.strip()),
        session_hours=int(getenv_with_default("FBAR_SESSION_HOURS", "12")),
        max_code_attempts=int(getenv_with_default("FBAR_MAX_CODE_ATTEMPTS", "10")),
        log_level=getenv_with_default("FBAR_LOG_LEVEL", "INFO"),
        log_format=getenv_with_default("FBAR_LOG_FORMAT", "standard"),
    )


def getenv_with_default(name: str, default: Optional[Path | str] = None) -> Optional[str]:
    """Return the value of an environment variable or a sensible default.

    ``None`` values are propagated so callers can make explicit decisions about
    optional configuration values. Paths are converted to strings.
    """

    from os import getenv

    value = getenv(name)
    if value is not None:
        return value
    if default is None:
        return None
    return str(default)
