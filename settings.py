from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Optional


_API_BASE_URL_ENV = "AMBIENT_API_BASE_URL"
_DEVICE_ID_ENV = "AMBIENT_DEVICE_ID"
_API_KEY_ENV = "AMBIENT_API_KEY"
_APP_KEY_ENV = "AMBIENT_APP_KEY"
_SECRETS_PATH_ENV = "AMBIENT_SECRETS_PATH"
_CATALOG_PATH_ENV = "SENSOR_CATALOG_PATH"
_BACKEND_ENV = "SHEETS_BACKEND"
_SPREADSHEET_ID_ENV = "SHEETS_SPREADSHEET_ID"
_CREDENTIALS_PATH_ENV = "SHEETS_CREDENTIALS_PATH"
_MOCK_PATH_ENV = "MOCK_SHEETS_PERSISTENCE_PATH"
_INTERVAL_ENV = "POLL_INTERVAL_MINUTES"
_MAX_RETRIES_ENV = "RETRY_MAX_RETRIES"
_BACKOFF_ENV = "RETRY_BACKOFF_SECONDS"
_TIMEOUT_ENV = "HTTP_TIMEOUT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_API_BASE_URL = "https://api.ambientweather.net/v1/devices/"
BACKENDS = ("google", "mock")


class SecretsError(RuntimeError):
    """Raised when station credentials cannot be resolved."""


@dataclass(frozen=True)
class StationSecrets:
    device_id: str
    api_key: str
    app_key: str


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    device_id: Optional[str]
    api_key: Optional[str]
    app_key: Optional[str]
    secrets_path: Optional[str]
    catalog_path: str
    backend: str
    spreadsheet_id: Optional[str]
    credentials_path: str
    mock_persistence_path: Optional[str]
    interval_minutes: int
    max_retries: int
    backoff_seconds: float
    http_timeout: float
    log_level: str

    def with_overrides(self, **overrides: object) -> "Settings":
        """Return a copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return replace(self, **changes)


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _read_backend(default: str) -> str:
    value = _read_str_env(_BACKEND_ENV, default).lower()
    return value if value in BACKENDS else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        api_base_url=_read_str_env(_API_BASE_URL_ENV, DEFAULT_API_BASE_URL),
        device_id=_read_optional_env(_DEVICE_ID_ENV, None),
        api_key=_read_optional_env(_API_KEY_ENV, None),
        app_key=_read_optional_env(_APP_KEY_ENV, None),
        secrets_path=_read_optional_env(_SECRETS_PATH_ENV, "secrets.txt"),
        catalog_path=_read_str_env(_CATALOG_PATH_ENV, "headers.txt"),
        backend=_read_backend("google"),
        spreadsheet_id=_read_optional_env(_SPREADSHEET_ID_ENV, None),
        credentials_path=_read_str_env(_CREDENTIALS_PATH_ENV, "credentials.json"),
        mock_persistence_path=_read_optional_env(_MOCK_PATH_ENV, "./tmp/mock_sheets.json"),
        interval_minutes=_read_int_env(_INTERVAL_ENV, 5),
        max_retries=_read_int_env(_MAX_RETRIES_ENV, 3, minimum=0),
        backoff_seconds=_read_float_env(_BACKOFF_ENV, 10.0),
        http_timeout=_read_float_env(_TIMEOUT_ENV, 30.0),
        log_level=_read_log_level("INFO"),
    )


def load_station_secrets(settings: Settings) -> StationSecrets:
    """Resolve station credentials from the environment or the secrets file.

    Environment values win. Anything still missing is read from
    ``settings.secrets_path``, a single ``deviceId,apiKey,appKey`` line.
    """
    device_id, api_key, app_key = settings.device_id, settings.api_key, settings.app_key
    if device_id and api_key and app_key:
        return StationSecrets(device_id=device_id, api_key=api_key, app_key=app_key)

    if not settings.secrets_path:
        raise SecretsError("Station credentials are not configured.")

    path = Path(settings.secrets_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SecretsError(f"Unable to read secrets file {path}: {exc}") from exc

    parts = [part.strip() for part in raw.strip().split(",")]
    if len(parts) < 3 or not all(parts[:3]):
        raise SecretsError(
            f"Secrets file {path} must contain 'deviceId,apiKey,appKey'."
        )

    return StationSecrets(
        device_id=device_id or parts[0],
        api_key=api_key or parts[1],
        app_key=app_key or parts[2],
    )
