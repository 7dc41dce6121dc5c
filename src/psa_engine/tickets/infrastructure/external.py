"""
Tenant Configuration Provider
==============================

YAML-backed tenant ticketing configuration with hot reload.

File layout:

    tenants:
      - tenant_id: 7f0c...
        default_queue_id: 1b2d...
        statuses: [...]
        priorities: [...]
        sla_policies: [...]

A reload that fails validation keeps the previous configuration in place.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional
from uuid import UUID

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from psa_engine.core import ConfigurationException
from psa_engine.shared.infrastructure.logging import get_logger
from psa_engine.tickets.application.services import ITenantConfigProvider
from psa_engine.tickets.domain import TenantConfiguration

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for tenant config file changes."""

    def __init__(self, config_manager: "TenantConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Tenant config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


def parse_tenant_configs(data: dict) -> Dict[UUID, TenantConfiguration]:
    """
    Validate a parsed YAML document.

    Raises:
        ConfigurationException: document is not a mapping with a tenant list,
            a tenant fails validation, or a tenant id is duplicated
    """
    if not isinstance(data, dict):
        raise ConfigurationException("Tenant config must be a mapping with a 'tenants' list")

    entries = data.get("tenants") or []
    if not isinstance(entries, list):
        raise ConfigurationException("'tenants' must be a list")

    configs: Dict[UUID, TenantConfiguration] = {}
    for index, entry in enumerate(entries):
        try:
            config = TenantConfiguration.model_validate(entry)
        except ValidationError as e:
            raise ConfigurationException(
                "Invalid tenant configuration",
                {"index": index, "errors": e.errors(include_url=False)}
            ) from e
        if config.tenant_id in configs:
            raise ConfigurationException(
                "Duplicate tenant configuration",
                {"tenant_id": str(config.tenant_id)}
            )
        configs[config.tenant_id] = config
    return configs


class TenantConfigManager(ITenantConfigProvider):
    """
    Thread-safe tenant configuration provider with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service.
    """

    def __init__(self, configs: Optional[Dict[UUID, TenantConfiguration]] = None):
        self._configs: Dict[UUID, TenantConfiguration] = dict(configs or {})
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> Dict[UUID, TenantConfiguration]:
        """Initial configuration load. Errors propagate."""
        self._path = Path(path)
        configs = self._load_from_file(self._path)
        with self._lock:
            self._configs = configs
        logger.info("Tenant configuration loaded", extra={"tenants": len(configs), "path": str(self._path)})
        return configs

    def _load_from_file(self, path: Path) -> Dict[UUID, TenantConfiguration]:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning("Tenant config file not found, no tenants configured", extra={"path": str(path)})
            return {}

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Tenant config is not valid YAML: {e}") from e
        except OSError as e:
            raise ConfigurationException(f"Tenant config could not be read: {e}", {"path": str(path)}) from e

        return parse_tenant_configs(data)

    def reload(self) -> bool:
        """Reload configuration from file, keeping the old one on failure."""
        if self._path is None:
            return False

        try:
            new_configs = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload tenant config, keeping previous configuration",
                extra={"error": e.message, "details": e.details}
            )
            return False

        with self._lock:
            self._configs = new_configs
        logger.info("Tenant configuration reloaded", extra={"tenants": len(new_configs)})
        return True

    def start_watching(self) -> None:
        """Start watching the configuration file. Skipped when the file does not exist."""
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Tenant config file doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching tenant config file", extra={"path": str(self._path)})
        except OSError as e:
            # inotify is unavailable in some containers
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    # ========== ITenantConfigProvider ==========

    def get_config(self, tenant_id: UUID) -> TenantConfiguration:
        with self._lock:
            config = self._configs.get(tenant_id)
        if config is None:
            raise ConfigurationException(
                "No configuration for tenant",
                {"tenant_id": str(tenant_id)}
            )
        return config

    def list_tenants(self) -> List[UUID]:
        with self._lock:
            return list(self._configs)
