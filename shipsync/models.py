from django.db import models


class Ship(models.Model):
    """A ship mirrored from the external catalog, keyed by its catalog UUID."""

    external_id = models.CharField(max_length=36, unique=True)
    slug = models.SlugField(max_length=200, db_index=True)
    name = models.CharField(max_length=200)
    manufacturer_name = models.CharField(max_length=200, blank=True, default='', db_index=True)
    manufacturer_code = models.CharField(max_length=20, blank=True, default='')
    manufacturer_slug = models.CharField(max_length=200, blank=True, default='')
    classification = models.CharField(max_length=100, blank=True, default='')
    classification_label = models.CharField(max_length=100, blank=True, default='')
    focus = models.CharField(max_length=200, blank=True, default='')
    size = models.CharField(max_length=50, blank=True, default='')
    production_status = models.CharField(max_length=50, blank=True, default='')
    attributes = models.JSONField(default=dict, blank=True)
    images = models.JSONField(default=dict, blank=True)
    extra = models.JSONField(default=dict, blank=True)
    content_hash = models.CharField(max_length=64)
    sync_version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.external_id}, v{self.sync_version})"

    def as_dict(self) -> dict:
        return {
            'id': self.pk,
            'externalId': self.external_id,
            'slug': self.slug,
            'name': self.name,
            'manufacturer': {
                'name': self.manufacturer_name,
                'code': self.manufacturer_code,
                'slug': self.manufacturer_slug,
            },
            'classification': self.classification,
            'classificationLabel': self.classification_label,
            'focus': self.focus,
            'size': self.size,
            'productionStatus': self.production_status,
            **self.attributes,
            'images': self.images,
            'syncVersion': self.sync_version,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class SyncStatus(models.Model):
    """Latest published sync snapshot. Only the row with pk=1 is used."""

    last_sync_at = models.DateTimeField()
    ship_count = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20)
    sync_version = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = 'Sync Status'
        verbose_name_plural = 'Sync Status'

    def __str__(self):
        return f"v{self.sync_version} {self.status} ({self.ship_count} ships)"


class SyncRunRecord(models.Model):
    run_id = models.CharField(max_length=32, unique=True)
    trigger = models.CharField(max_length=20)
    status = models.CharField(max_length=20)
    sync_version = models.PositiveIntegerField()
    started_at = models.DateTimeField()
    finished_at = models.DateTimeField()
    duration_ms = models.PositiveIntegerField(default=0)
    pages_processed = models.PositiveIntegerField(default=0)
    ship_count = models.PositiveIntegerField(default=0)
    new_ships = models.PositiveIntegerField(default=0)
    updated_ships = models.PositiveIntegerField(default=0)
    unchanged_ships = models.PositiveIntegerField(default=0)
    skipped_ships = models.PositiveIntegerField(default=0)
    error_count = models.PositiveIntegerField(default=0)
    errors = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ['-started_at']

    def __str__(self):
        return f"{self.run_id} {self.trigger} {self.status}"


class SyncLock(models.Model):
    name = models.CharField(max_length=100, unique=True)
    owner = models.CharField(max_length=64, blank=True, default='')
    acquired_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        state = f"held by {self.owner} since {self.acquired_at}" if self.acquired_at else 'free'
        return f"{self.name} ({state})"
