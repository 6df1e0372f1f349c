from datetime import timedelta
from unittest.mock import patch

import pytest
import responses as responses_lib
from django.utils import timezone

from factories import add_page, make_ship_payload
from shipsync.lock import RunLock
from shipsync.models import Ship, SyncRunRecord
from shipsync.status import StatusStore, SyncStatusSnapshot
from shipsync.tasks import sync_catalog_if_overdue_task, sync_catalog_task


def publish_snapshot(age):
    StatusStore().publish(SyncStatusSnapshot(
        last_sync_at=timezone.now() - age,
        ship_count=0,
        status='success',
        sync_version=1,
    ))


# ---------------------------------------------------------------------------
# Scheduled sync task
# ---------------------------------------------------------------------------

@pytest.mark.django_db
@responses_lib.activate
def test_sync_task_returns_summary_dict():
    add_page(1, [make_ship_payload(n) for n in range(1, 4)])

    result = sync_catalog_task()

    assert result['status'] == 'success'
    assert result['trigger'] == 'scheduled'
    assert result['newShips'] == 3
    assert result['hasErrors'] is False
    assert Ship.objects.count() == 3
    assert SyncRunRecord.objects.get().trigger == 'scheduled'


@pytest.mark.django_db
@responses_lib.activate
def test_sync_task_accepts_manual_trigger():
    add_page(1, [make_ship_payload(1)])

    result = sync_catalog_task(trigger='manual')

    assert result['trigger'] == 'manual'


@pytest.mark.django_db
@responses_lib.activate
def test_sync_task_skips_when_lock_held():
    RunLock().acquire()

    result = sync_catalog_task()

    assert result['status'] == 'already_running'
    assert len(responses_lib.calls) == 0


@pytest.mark.django_db
@responses_lib.activate
def test_sync_task_reports_failure_without_raising():
    add_page(1, {'error': 'bad token'}, status=401)

    result = sync_catalog_task()

    assert result['status'] == 'failed'
    assert result['errorCount'] == 1


# ---------------------------------------------------------------------------
# Overdue catch-up on worker start
# ---------------------------------------------------------------------------

@pytest.mark.django_db
@responses_lib.activate
def test_overdue_task_runs_when_nothing_published():
    add_page(1, [make_ship_payload(1)])

    result = sync_catalog_if_overdue_task()

    assert result['status'] == 'success'
    assert result['trigger'] == 'scheduled'


@pytest.mark.django_db
@responses_lib.activate
def test_overdue_task_runs_when_snapshot_is_stale(settings):
    settings.SHIP_SYNC_OVERDUE_AFTER_HOURS = 72
    publish_snapshot(timedelta(hours=73))
    add_page(1, [make_ship_payload(1)])

    result = sync_catalog_if_overdue_task()

    assert result['syncVersion'] == 2


@pytest.mark.django_db
def test_overdue_task_noop_when_recent(settings):
    settings.SHIP_SYNC_OVERDUE_AFTER_HOURS = 72
    publish_snapshot(timedelta(hours=1))

    with patch('shipsync.tasks.SyncOrchestrator') as orchestrator:
        assert sync_catalog_if_overdue_task() is None

    orchestrator.assert_not_called()
