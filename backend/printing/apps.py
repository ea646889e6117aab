from django.apps import AppConfig


class PrintingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "printing"

    printer = None

    def ready(self):
        from django.conf import settings
        from notifications.services import EventBus
        from .services import PrinterService

        # One printer service per process; tasks and callers fetch it from here.
        self.printer = PrinterService.from_settings(settings, events=EventBus())
