import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from .orchestrator import TRIGGER_SCHEDULED, SyncOrchestrator
from .status import StatusStore

logger = logging.getLogger(__name__)


@shared_task(bind=True, name='shipsync.sync_catalog')
def sync_catalog_task(self, trigger=TRIGGER_SCHEDULED):
    """
    Synchronise the external ship catalog into local storage.

    Steps:
      1. Take the run lock (skip if another run holds it).
      2. Page through the catalog API under the shared rate limit.
      3. Hash each valid record and compare with the stored ship.
      4. Write only new or changed ships, bumping their sync version.
      5. Publish the status snapshot unless the run failed.
    """
    logger.info("Ship catalog sync task started (%s).", trigger)
    summary = SyncOrchestrator().run(trigger)
    return summary.as_dict()


@shared_task(name='shipsync.sync_catalog_if_overdue')
def sync_catalog_if_overdue_task():
    """Run a scheduled sync when no snapshot exists or the last one is too old."""
    latest = StatusStore().get_latest()
    threshold = timezone.now() - timedelta(hours=settings.SHIP_SYNC_OVERDUE_AFTER_HOURS)

    if latest is not None and latest.last_sync_at >= threshold:
        logger.info("Ship sync is current (last at %s) – nothing to catch up.", latest.last_sync_at.isoformat())
        return None

    logger.info("Ship sync is overdue – running now.")
    return SyncOrchestrator().run(TRIGGER_SCHEDULED).as_dict()
