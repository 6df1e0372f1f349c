import pytest
from celery.schedules import crontab

from fleetsync.settings import cron_schedule
from shipsync.checks import check_sync_settings


# ---------------------------------------------------------------------------
# Cron schedule parsing
# ---------------------------------------------------------------------------

def test_five_field_expression_builds_crontab():
    schedule = cron_schedule('0 0 */2 * *')
    assert isinstance(schedule, crontab)
    assert schedule.minute == {0}
    assert schedule.hour == {0}


@pytest.mark.parametrize('expression', ['', 'daily', '0 0 * *', '0 0 * * * *', '99 0 * * *', 'x y z w v'])
def test_malformed_expression_disables_schedule(expression, caplog):
    with caplog.at_level('ERROR', logger='shipsync'):
        assert cron_schedule(expression) is None
    assert 'Invalid cron schedule' in caplog.text


# ---------------------------------------------------------------------------
# System checks
# ---------------------------------------------------------------------------

def test_default_settings_pass_checks():
    assert check_sync_settings(None) == []


def test_lock_must_outlive_run_timeout(settings):
    settings.SHIP_SYNC_RUN_TIMEOUT = 3600.0
    settings.SHIP_SYNC_LOCK_STALE_AFTER = 600.0
    assert [e.id for e in check_sync_settings(None)] == ['shipsync.E001']


def test_retry_delay_longer_than_run_is_warned(settings):
    settings.SHIP_CATALOG_MAX_RETRY_DELAY = 900.0
    assert [e.id for e in check_sync_settings(None)] == ['shipsync.W001']


def test_invalid_cron_is_warned(settings):
    settings.SHIP_SYNC_ENABLED = True
    settings.SHIP_SYNC_CRON_SCHEDULE = 'sometimes'
    settings.SHIP_SYNC_SCHEDULE = None
    assert [e.id for e in check_sync_settings(None)] == ['shipsync.W002']
