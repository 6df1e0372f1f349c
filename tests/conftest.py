import pytest

from factories import BASE_URL
from shipsync import catalog_client


@pytest.fixture(autouse=True)
def override_settings(settings):
    settings.SHIP_CATALOG_API_BASE_URL = BASE_URL
    settings.SHIP_CATALOG_MODELS_PATH = '/models'
    settings.SHIP_CATALOG_API_TOKEN = ''
    settings.SHIP_CATALOG_PAGINATION = 'page'
    settings.SHIP_CATALOG_PAGE_SIZE = 10
    settings.SHIP_CATALOG_MAX_PAGES = 10
    settings.SHIP_CATALOG_RATE_LIMIT = 1000
    settings.SHIP_CATALOG_RATE_PERIOD = 1.0
    settings.SHIP_CATALOG_MAX_ATTEMPTS = 3
    settings.SHIP_CATALOG_BACKOFF = (1.0, 2.0, 4.0)
    settings.SHIP_CATALOG_MAX_RETRY_DELAY = 30.0
    settings.SHIP_SYNC_MAX_CONSECUTIVE_FAILURES = 3
    settings.SHIP_SYNC_RUN_TIMEOUT = 600.0
    settings.SHIP_SYNC_LOCK_STALE_AFTER = 3600.0
    settings.SHIP_SYNC_ERROR_LIST_CAP = 50
    settings.SHIP_SYNC_MIN_CATALOG_RATIO = 0.8
    settings.SHIP_SYNC_CRON_SECRET = ''
    settings.SHIP_BATCH_MAX_IDS = 50
    settings.SHIP_LIST_MAX_PAGE_SIZE = 100


@pytest.fixture(autouse=True)
def fresh_rate_limiter(monkeypatch):
    """Each test gets its own process-wide limiter built from the overridden settings."""
    monkeypatch.setattr(catalog_client, '_shared_limiter', None)
