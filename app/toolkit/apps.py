from django.apps import AppConfig


class ToolkitConfig(AppConfig):
    """Operator-editable settings and the email service."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "toolkit"
    verbose_name = "Toolkit"

    def ready(self):
        # AdminSetting saves drop the cached provider values
        from toolkit import signals  # noqa: F401
