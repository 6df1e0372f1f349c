import logging
import os
from pathlib import Path

from celery.schedules import ParseException, crontab

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ('0', 'false', 'no', 'off', '')


def env_int(name, default):
    return int(os.environ.get(name, default))


def env_float(name, default):
    return float(os.environ.get(name, default))


def env_floats(name, default):
    """Comma-separated floats, e.g. SHIP_CATALOG_BACKOFF=1,2,4."""
    raw = os.environ.get(name)
    if not raw:
        return default
    return tuple(float(part) for part in raw.split(',') if part.strip())


def cron_schedule(expression):
    """
    Build a celery crontab from a five-field cron expression.

    Logs and returns None for a malformed expression; the beat entry is then
    left out.
    """
    fields = (expression or '').split()
    if len(fields) != 5:
        logging.getLogger('shipsync').error("Invalid cron schedule %r – scheduled ship sync disabled.", expression)
        return None
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except (ValueError, ParseException) as exc:
        logging.getLogger('shipsync').error("Invalid cron schedule %r (%s) – scheduled ship sync disabled.", expression, exc)
        return None


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'fleetsync-insecure-dev-key')
DEBUG = env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'shipsync',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
]

ROOT_URLCONF = 'fleetsync.urls'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('FLEETSYNC_DB_PATH', str(BASE_DIR / 'fleetsync.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
USE_TZ = True
TIME_ZONE = 'UTC'

# ---------------------------------------------------------------------------
# Celery
# ---------------------------------------------------------------------------

CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', None)
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TIMEZONE = TIME_ZONE

# ---------------------------------------------------------------------------
# Ship catalog API
# ---------------------------------------------------------------------------

SHIP_CATALOG_API_BASE_URL = os.environ.get('SHIP_CATALOG_API_BASE_URL', 'https://api.fleetyards.net/v1')
SHIP_CATALOG_MODELS_PATH = os.environ.get('SHIP_CATALOG_MODELS_PATH', '/models')
SHIP_CATALOG_API_TOKEN = os.environ.get('SHIP_CATALOG_API_TOKEN', '')
SHIP_CATALOG_PAGINATION = os.environ.get('SHIP_CATALOG_PAGINATION', 'page')  # 'page' or 'offset'
SHIP_CATALOG_PAGE_SIZE = env_int('SHIP_CATALOG_PAGE_SIZE', 200)
SHIP_CATALOG_MAX_PAGES = env_int('SHIP_CATALOG_MAX_PAGES', 25)
SHIP_CATALOG_RATE_LIMIT = env_int('SHIP_CATALOG_RATE_LIMIT', 5)
SHIP_CATALOG_RATE_PERIOD = env_float('SHIP_CATALOG_RATE_PERIOD', 1.0)
SHIP_CATALOG_REQUEST_TIMEOUT = env_float('SHIP_CATALOG_REQUEST_TIMEOUT', 15.0)
SHIP_CATALOG_MAX_ATTEMPTS = env_int('SHIP_CATALOG_MAX_ATTEMPTS', 3)
SHIP_CATALOG_BACKOFF = env_floats('SHIP_CATALOG_BACKOFF', (1.0, 2.0, 4.0))
SHIP_CATALOG_MAX_RETRY_DELAY = env_float('SHIP_CATALOG_MAX_RETRY_DELAY', 30.0)

# ---------------------------------------------------------------------------
# Ship sync engine
# ---------------------------------------------------------------------------

SHIP_SYNC_ENABLED = env_bool('SHIP_SYNC_ENABLED', True)
SHIP_SYNC_CRON_SCHEDULE = os.environ.get('SHIP_SYNC_CRON_SCHEDULE', '0 0 */2 * *')
SHIP_SYNC_CRON_SECRET = os.environ.get('SHIP_SYNC_CRON_SECRET', '')
SHIP_SYNC_MAX_CONSECUTIVE_FAILURES = env_int('SHIP_SYNC_MAX_CONSECUTIVE_FAILURES', 3)
SHIP_SYNC_RUN_TIMEOUT = env_float('SHIP_SYNC_RUN_TIMEOUT', 600.0)
SHIP_SYNC_LOCK_STALE_AFTER = env_float('SHIP_SYNC_LOCK_STALE_AFTER', 3600.0)
SHIP_SYNC_ERROR_LIST_CAP = env_int('SHIP_SYNC_ERROR_LIST_CAP', 50)
SHIP_SYNC_OVERDUE_AFTER_HOURS = env_int('SHIP_SYNC_OVERDUE_AFTER_HOURS', 72)
SHIP_SYNC_MIN_CATALOG_RATIO = env_float('SHIP_SYNC_MIN_CATALOG_RATIO', 0.8)
SHIP_BATCH_MAX_IDS = env_int('SHIP_BATCH_MAX_IDS', 50)
SHIP_LIST_MAX_PAGE_SIZE = env_int('SHIP_LIST_MAX_PAGE_SIZE', 100)

CELERY_BEAT_SCHEDULE = {}
SHIP_SYNC_SCHEDULE = cron_schedule(SHIP_SYNC_CRON_SCHEDULE) if SHIP_SYNC_ENABLED else None
if SHIP_SYNC_SCHEDULE is not None:
    CELERY_BEAT_SCHEDULE['ship-catalog-sync'] = {
        'task': 'shipsync.sync_catalog',
        'schedule': SHIP_SYNC_SCHEDULE,
        'kwargs': {'trigger': 'scheduled'},
    }

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
        },
    },
    'loggers': {
        'shipsync': {
            'handlers': ['console'],
            'level': os.environ.get('SHIP_SYNC_LOG_LEVEL', 'INFO'),
        },
    },
}
