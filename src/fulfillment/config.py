"""
Configuration for the fulfillment engine.

Settings are read once from the environment. Channel and role settings can
also live in the Configuration record (id 1); when both MAIN_CHANNEL_ID and
DELIVERY_CHANNEL_ID are set in the environment the configuration is managed
externally and is never written back.
"""

import logging
import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from fulfillment.records.models import Configuration
from fulfillment.records.repository import RecordRepository

logger = logging.getLogger(__name__)

CONFIGURATION_ID = 1


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    return float(value) if value else default


class Settings(BaseModel):
    """
    Process settings.

    Timeouts are in seconds: ``payment_timeout`` bounds PendingPayment,
    ``review_timeout`` bounds DeliveredPendingReview and ``cleanup_delay``
    is the grace period before a ticket channel is deleted.
    """

    model_config = ConfigDict(frozen=True)

    owner_id: str | None = None
    guild_id: str | None = None
    main_channel_id: str | None = None
    delivery_channel_id: str | None = None
    reviews_channel_id: str | None = None
    client_role_id: str | None = None
    base_url: str | None = None

    efi_client_id: str = ""
    efi_client_secret: str = ""
    efi_sandbox: bool = True
    efi_pix_key: str | None = None

    payment_timeout: float = 60.0
    review_timeout: float = 3600.0
    cleanup_delay: float = 5.0
    charge_expiry_seconds: int = 3600

    panel_user: str | None = None
    panel_password: str | None = None
    database: str = "fulfillment.db"
    uploads_dir: str = "uploads"

    @property
    def managed_externally(self) -> bool:
        return bool(self.main_channel_id and self.delivery_channel_id)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        if env is None:
            env = os.environ
        return cls(
            owner_id=env.get("OWNER_ID") or None,
            guild_id=env.get("GUILD_ID") or None,
            main_channel_id=env.get("MAIN_CHANNEL_ID") or None,
            delivery_channel_id=env.get("DELIVERY_CHANNEL_ID") or None,
            reviews_channel_id=env.get("REVIEWS_CHANNEL_ID") or None,
            client_role_id=env.get("CLIENT_ROLE_ID") or None,
            base_url=env.get("BASE_URL") or None,
            efi_client_id=env.get("EFI_CLIENT_ID", ""),
            efi_client_secret=env.get("EFI_CLIENT_SECRET", ""),
            efi_sandbox=env.get("EFI_SANDBOX", "true").lower() != "false",
            efi_pix_key=env.get("EFI_PIX_KEY") or None,
            payment_timeout=_env_float(env, "PAYMENT_TIMEOUT", 60.0),
            review_timeout=_env_float(env, "REVIEW_TIMEOUT", 3600.0),
            cleanup_delay=_env_float(env, "CLEANUP_DELAY", 5.0),
            panel_user=env.get("PANEL_USER") or None,
            panel_password=env.get("PANEL_PASSWORD") or None,
            database=env.get("DATABASE_PATH", "fulfillment.db"),
            uploads_dir=env.get("UPLOADS_DIR", "uploads"),
        )

    def url_for(self, path: str) -> str | None:
        """Join ``path`` onto BASE_URL without doubling slashes."""
        if not self.base_url:
            return None
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


class ConfigurationStore:
    """
    Loads and saves the operator configuration snapshot.

    The engine never reads this store directly; callers pass the snapshot
    from ``load``/``reload`` to ``OrderLifecycleEngine.reconfigure``.
    """

    def __init__(
        self,
        repository: RecordRepository[Configuration],
        settings: Settings,
    ) -> None:
        self._repository = repository
        self._settings = settings
        self._current: Configuration | None = None

    @property
    def managed_externally(self) -> bool:
        return self._settings.managed_externally

    @property
    def current(self) -> Configuration:
        if self._current is None:
            raise RuntimeError("Configuration not loaded; call load() first")
        return self._current

    def _from_settings(self) -> Configuration:
        return Configuration(
            id=CONFIGURATION_ID,
            main_channel_id=self._settings.main_channel_id,
            delivery_channel_id=self._settings.delivery_channel_id,
            reviews_channel_id=self._settings.reviews_channel_id,
            client_role_id=self._settings.client_role_id,
        )

    async def load(self) -> Configuration:
        if self.managed_externally:
            logger.info("Loading configuration from environment variables")
            self._current = self._from_settings()
            return self._current

        logger.info("Loading configuration from the database")
        config = await self._repository.get(CONFIGURATION_ID)
        if config is None:
            config = Configuration(id=CONFIGURATION_ID)
            await self._repository.save(config)
            logger.info("No configuration found, created default entry")
        self._current = config
        return config

    async def reload(self) -> Configuration:
        return await self.load()

    async def save(self, config: Configuration) -> bool:
        """
        Persist ``config`` as the configuration row.

        Returns False (and writes nothing) when managed externally.
        """
        if self.managed_externally:
            logger.info("Configuration is managed by environment variables; save skipped")
            return False
        config.id = CONFIGURATION_ID
        await self._repository.save(config)
        self._current = config
        logger.info("Configuration saved")
        return True


__all__ = ["CONFIGURATION_ID", "ConfigurationStore", "Settings"]
