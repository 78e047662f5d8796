from django.apps import AppConfig


class LotteryConfig(AppConfig):
    name = "lottery"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        """Import signal handlers and set up the push gateway when app is ready."""
        import lottery.signals  # noqa
        from lottery.services.fcm_service import FCMService

        FCMService.initialize()
