from django.apps import AppConfig
from django.core.exceptions import ImproperlyConfigured


class CommentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "comments"

    def ready(self):
        from .registry import missing_backing_models

        missing = missing_backing_models()
        if missing:
            raise ImproperlyConfigured(f"No backing model for entity type(s): {missing}")
