from django.apps import AppConfig


class LocationsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'stockhub.locations'
    label = 'locations'

    def ready(self):
        """Import signals when app is ready"""
        import stockhub.core.model_cache  # noqa: F401
