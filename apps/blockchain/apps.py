from django.apps import AppConfig


class BlockchainConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.blockchain"
    verbose_name = "Blockchain sync"

    _chain_client = None

    def chain_client(self):
        """Process-wide ChainClient, built from settings on first use."""
        if self._chain_client is None:
            from .client import ChainClient

            self._chain_client = ChainClient.from_settings()
        return self._chain_client

    def reset_chain_client(self):
        self._chain_client = None
