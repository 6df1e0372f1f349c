import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.db import IntegrityError, transaction

from .models import SyncRunRecord, SyncStatus

logger = logging.getLogger(__name__)

SNAPSHOT_PK = 1


@dataclass(frozen=True)
class SyncStatusSnapshot:
    last_sync_at: datetime
    ship_count: int
    status: str
    sync_version: int

    def as_dict(self) -> dict:
        return {
            'lastSyncAt': self.last_sync_at.isoformat(),
            'shipCount': self.ship_count,
            'status': self.status,
            'syncVersion': self.sync_version,
        }


class StatusStore:
    """Latest published sync snapshot plus the archive of finished runs."""

    def get_latest(self) -> Optional[SyncStatusSnapshot]:
        row = SyncStatus.objects.filter(pk=SNAPSHOT_PK).first()
        if row is None:
            return None
        return SyncStatusSnapshot(
            last_sync_at=row.last_sync_at,
            ship_count=row.ship_count,
            status=row.status,
            sync_version=row.sync_version,
        )

    def publish(self, snapshot: SyncStatusSnapshot) -> bool:
        """
        Store the snapshot if its version is newer than the published one.

        Returns False (and leaves the stored row alone) for stale versions.
        """
        fields = {
            'last_sync_at': snapshot.last_sync_at,
            'ship_count': snapshot.ship_count,
            'status': snapshot.status,
            'sync_version': snapshot.sync_version,
        }
        updated = SyncStatus.objects.filter(
            pk=SNAPSHOT_PK, sync_version__lt=snapshot.sync_version,
        ).update(**fields)
        if not updated:
            if SyncStatus.objects.filter(pk=SNAPSHOT_PK).exists():
                logger.warning(
                    "Not publishing sync snapshot v%d – a newer or equal version is already published.",
                    snapshot.sync_version,
                )
                return False
            try:
                with transaction.atomic():
                    SyncStatus.objects.create(pk=SNAPSHOT_PK, **fields)
            except IntegrityError:
                # Lost a creation race; retry as a conditional update.
                return self.publish(snapshot)

        logger.info(
            "Sync snapshot published: v%d %s, %d ships.",
            snapshot.sync_version, snapshot.status, snapshot.ship_count,
        )
        return True

    def archive(self, run, ship_count: int) -> SyncRunRecord:
        return SyncRunRecord.objects.create(
            run_id=run.id,
            trigger=run.trigger,
            status=run.status,
            sync_version=run.sync_version,
            started_at=run.started_at,
            finished_at=run.finished_at,
            duration_ms=run.duration_ms,
            pages_processed=run.pages_processed,
            ship_count=ship_count,
            new_ships=run.counts['new'],
            updated_ships=run.counts['updated'],
            unchanged_ships=run.counts['unchanged'],
            skipped_ships=run.counts['skipped'],
            error_count=run.error_count,
            errors=run.errors,
        )
