"""Wires catalog, fetcher, store and scheduler into one explicit context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from services.catalog import SensorCatalog
from services.fetcher import ResilientFetcher, build_fetcher
from services.retry import RetryPolicy
from services.scheduler import Scheduler
from services.sync import SyncEngine
from settings import Settings, load_station_secrets
from storage.mock_sheets import MockSpreadsheet
from storage.tabular import TabularBackend, TabularStore

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Startup configuration is incomplete."""


@dataclass
class PollerContext:
    """Everything one poller process owns, constructed once at startup."""

    settings: Settings
    catalog: SensorCatalog
    store: TabularStore
    fetcher: ResilientFetcher
    engine: SyncEngine
    scheduler: Scheduler

    def close(self) -> None:
        self.fetcher.close()


def retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(max_retries=settings.max_retries, backoff_seconds=settings.backoff_seconds)


def build_backend(settings: Settings) -> TabularBackend:
    if settings.backend == "mock":
        path = Path(settings.mock_persistence_path) if settings.mock_persistence_path else None
        logger.info("Using mock spreadsheet backend (%s)", path or "in-memory")
        return MockSpreadsheet(name="mock", persistence_path=path)

    if not settings.spreadsheet_id:
        raise ConfigurationError("SHEETS_SPREADSHEET_ID is required for the google backend.")

    from google.auth.exceptions import GoogleAuthError

    from storage.google_sheets import GoogleSheetsBackend, build_service

    try:
        service = build_service(settings.credentials_path)
    except (OSError, ValueError, GoogleAuthError) as exc:
        raise ConfigurationError(f"Unable to load Sheets credentials: {exc}") from exc
    logger.info("Successfully initialized Sheets client")
    return GoogleSheetsBackend(service=service, spreadsheet_id=settings.spreadsheet_id)


def build_context(
    settings: Settings,
    backend: Optional[TabularBackend] = None,
    fetcher: Optional[ResilientFetcher] = None,
) -> PollerContext:
    catalog = SensorCatalog.load(settings.catalog_path)
    policy = retry_policy(settings)
    if backend is None:
        backend = build_backend(settings)

    if fetcher is None:
        secrets = load_station_secrets(settings)
        fetcher = build_fetcher(
            settings.api_base_url,
            secrets.device_id,
            secrets.api_key,
            secrets.app_key,
            policy=policy,
            timeout=settings.http_timeout,
        )

    store = TabularStore(backend, policy=policy)
    engine = SyncEngine(store=store, catalog=catalog)
    scheduler = Scheduler(fetcher=fetcher, engine=engine, interval_minutes=settings.interval_minutes)
    return PollerContext(
        settings=settings,
        catalog=catalog,
        store=store,
        fetcher=fetcher,
        engine=engine,
        scheduler=scheduler,
    )
