"""Per-instance configuration registry.

Each configured instance owns one ``Database`` pool and one immutable
``QueryTemplates``. Reconfiguration builds a complete replacement, installs
it, and only then disposes the previous pool.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from scripts.dbdirectory.config import DirectoryConfig
from scripts.dbdirectory.db import Database
from scripts.dbdirectory.errors import ConfigurationError
from scripts.dbdirectory.provider import DirectoryProvider
from scripts.dbdirectory.repository import IdentityRepository

logger = logging.getLogger("dbdirectory.registry")

PROVIDER_ID = "sql-db-user-provider"


@dataclass(frozen=True)
class ConfiguredInstance:
    config: DirectoryConfig
    db: Database
    repository: IdentityRepository


class ProviderRegistry:
    def __init__(
        self, database_factory: Optional[Callable[[DirectoryConfig], Database]] = None
    ) -> None:
        self._instances: dict[str, ConfiguredInstance] = {}
        self._lock = threading.Lock()
        self._database_factory = database_factory or (lambda cfg: Database(cfg.connection))

    def _build(self, config: DirectoryConfig) -> ConfiguredInstance:
        logger.debug(
            "Creating configuration for instance %s",
            config.instance_id,
            extra={"instance_id": config.instance_id},
        )
        db = self._database_factory(config)
        return ConfiguredInstance(config=config, db=db, repository=IdentityRepository(db, config.templates))

    def instance(self, config: DirectoryConfig) -> ConfiguredInstance:
        """Return the installed instance, configuring it on first use."""
        with self._lock:
            existing = self._instances.get(config.instance_id)
            if existing is None:
                existing = self._build(config)
                self._instances[config.instance_id] = existing
            return existing

    def create(self, config: DirectoryConfig, **provider_kwargs: Any) -> DirectoryProvider:
        installed = self.instance(config)
        return DirectoryProvider(config.instance_id, installed.repository, **provider_kwargs)

    def create_from_component(
        self, instance_id: str, name: str, props: Mapping[str, Any], **provider_kwargs: Any
    ) -> DirectoryProvider:
        return self.create(DirectoryConfig.from_component(instance_id, name, props), **provider_kwargs)

    def reconfigure(self, config: DirectoryConfig) -> ConfiguredInstance:
        """Replace an instance's configuration; the old pool is closed afterwards."""
        try:
            replacement = self._build(config)
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ConfigurationError(str(exc)) from exc

        with self._lock:
            old = self._instances.get(config.instance_id)
            self._instances[config.instance_id] = replacement

        if old is not None:
            logger.info(
                "Closing replaced pool for instance %s",
                config.instance_id,
                extra={"instance_id": config.instance_id},
            )
            old.db.close()
        return replacement

    def validate_configuration(self, instance_id: str, name: str, props: Mapping[str, Any]) -> None:
        """Host hook run when an operator saves the component configuration."""
        try:
            config = DirectoryConfig.from_component(instance_id, name, props)
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ConfigurationError(str(exc)) from exc
        self.reconfigure(config)

    def get(self, instance_id: str) -> Optional[ConfiguredInstance]:
        with self._lock:
            return self._instances.get(instance_id)

    def close(self) -> None:
        with self._lock:
            instances = list(self._instances.values())
            self._instances.clear()
        for installed in instances:
            installed.db.close()
