import logging
import os

from celery import Celery
from celery.signals import worker_ready

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'fleetsync.settings')

logger = logging.getLogger(__name__)

app = Celery('fleetsync')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()


@worker_ready.connect
def queue_overdue_sync(sender, **kwargs):
    """Catch up on a missed scheduled sync after worker downtime."""
    from django.conf import settings

    if not settings.SHIP_SYNC_ENABLED:
        logger.info("Ship sync disabled – skipping overdue check.")
        return
    sender.app.send_task('shipsync.sync_catalog_if_overdue')
