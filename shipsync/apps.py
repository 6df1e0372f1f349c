from django.apps import AppConfig


class ShipSyncConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'shipsync'
    verbose_name = 'Ship catalog sync'

    def ready(self):
        from . import checks  # noqa: F401
