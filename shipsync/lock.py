import logging
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from .models import SyncLock

logger = logging.getLogger(__name__)

SHIP_SYNC_LOCK = 'ship-catalog-sync'


class RunLock:
    """
    Single-flight guard backed by one database row.

    Acquisition is a single conditional UPDATE, so it is atomic across
    threads and worker processes. A second caller never waits: `acquire()`
    simply returns False. A hold older than `stale_after` seconds is treated
    as left behind by a crashed run and may be taken over.
    """

    def __init__(self, name: str = SHIP_SYNC_LOCK, stale_after: Optional[float] = None):
        self.name = name
        self.stale_after = settings.SHIP_SYNC_LOCK_STALE_AFTER if stale_after is None else stale_after
        self.owner = uuid.uuid4().hex

    def acquire(self) -> bool:
        SyncLock.objects.get_or_create(name=self.name)
        now = timezone.now()
        stale_before = now - timedelta(seconds=self.stale_after)
        taken = (
            SyncLock.objects.filter(name=self.name)
            .filter(Q(acquired_at__isnull=True) | Q(acquired_at__lt=stale_before))
            .update(owner=self.owner, acquired_at=now)
        )
        if taken:
            logger.debug("Lock %s acquired by %s.", self.name, self.owner)
        return bool(taken)

    def release(self) -> bool:
        released = SyncLock.objects.filter(name=self.name, owner=self.owner).update(owner='', acquired_at=None)
        if not released:
            logger.warning("Lock %s was not held by %s at release (taken over as stale?).", self.name, self.owner)
        return bool(released)

    def force_release(self) -> bool:
        released = SyncLock.objects.filter(name=self.name, acquired_at__isnull=False).update(owner='', acquired_at=None)
        if released:
            logger.warning("Lock %s force-released.", self.name)
        return bool(released)

    def is_held(self) -> bool:
        return SyncLock.objects.filter(name=self.name, acquired_at__isnull=False).exists()

    @contextmanager
    def held(self):
        """Yield True while the lock is held, False if it was busy; always releases what it took."""
        if not self.acquire():
            yield False
            return
        try:
            yield True
        finally:
            self.release()
