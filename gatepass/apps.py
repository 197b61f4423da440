import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class GatepassConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "gatepass"
    verbose_name = "GatePass visitor access"

    # Set in ready(); None when federated login is not configured.
    federation = None

    def ready(self):
        from .federation import FederationClient, FederationConfig

        config = FederationConfig.from_settings(settings.GATEPASS.get("OIDC"))
        if config is None:
            logger.warning("OIDC not configured. Federated login disabled; use local login.")
            self.federation = None
            return
        self.federation = FederationClient(config)
