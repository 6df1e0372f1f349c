from django.conf import settings
from django.core.checks import Error, Tags, Warning, register


@register(Tags.compatibility)
def check_sync_settings(app_configs, **kwargs):
    errors = []
    if settings.SHIP_SYNC_LOCK_STALE_AFTER <= settings.SHIP_SYNC_RUN_TIMEOUT:
        errors.append(Error(
            'SHIP_SYNC_LOCK_STALE_AFTER must be greater than SHIP_SYNC_RUN_TIMEOUT.',
            hint='A live run could otherwise lose its lock to a second run.',
            id='shipsync.E001',
        ))
    if settings.SHIP_CATALOG_MAX_RETRY_DELAY > settings.SHIP_SYNC_RUN_TIMEOUT:
        errors.append(Warning(
            'SHIP_CATALOG_MAX_RETRY_DELAY is longer than SHIP_SYNC_RUN_TIMEOUT.',
            hint='Retries that would pass the run deadline are abandoned.',
            id='shipsync.W001',
        ))
    if settings.SHIP_SYNC_ENABLED and getattr(settings, 'SHIP_SYNC_SCHEDULE', None) is None:
        errors.append(Warning(
            f'SHIP_SYNC_CRON_SCHEDULE {settings.SHIP_SYNC_CRON_SCHEDULE!r} is not a valid cron expression.',
            hint='Scheduled ship sync is disabled until it is fixed.',
            id='shipsync.W002',
        ))
    return errors
