"""
Configuration -- which store, which ledger, and how strict to be.

Lives at ``<home>/config.yaml``. Every adapter is built from an
explicit config object; there are no process-wide client singletons,
so several isolated vaults can coexist in one process.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from . import ROOTVAULT_HOME
from .errors import ConfigError
from .ledger import LocalPointerLedger, MemoryPointerLedger, PointerLedger
from .store import ContentStore, IpfsContentStore, LocalContentStore, MemoryContentStore

logger = logging.getLogger("rootvault.config")

CONFIG_FILE = "config.yaml"


class StoreBackendType(str, Enum):
    """Supported content store backends."""

    MEMORY = "memory"
    LOCAL = "local"
    IPFS = "ipfs"


class LedgerBackendType(str, Enum):
    """Supported pointer ledger backends."""

    MEMORY = "memory"
    LOCAL = "local"


class StoreConfig(BaseModel):
    """Content store settings."""

    backend: StoreBackendType = StoreBackendType.LOCAL

    # Local filesystem
    local_path: Optional[Path] = None

    # IPFS RPC
    api_url: str = "http://127.0.0.1:5001/api/v0"
    token_env_var: Optional[str] = None
    timeout: float = 60.0


class LedgerConfig(BaseModel):
    """Pointer ledger settings."""

    backend: LedgerBackendType = LedgerBackendType.LOCAL
    local_path: Optional[Path] = None


class RootVaultConfig(BaseModel):
    """Complete configuration for one vault."""

    home: Path = Field(default_factory=lambda: Path(ROOTVAULT_HOME).expanduser())
    store: StoreConfig = Field(default_factory=StoreConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    strict_index_fetch: bool = False


def resolve_home(home: Optional[Path] = None) -> Path:
    """Expand ``home`` or fall back to ``$ROOTVAULT_HOME`` / ``~/.rootvault``."""
    return Path(home or ROOTVAULT_HOME).expanduser()


def validate_config(data: dict, home: Optional[Path] = None) -> RootVaultConfig:
    """Build a config from a mapping.

    Raises:
        ConfigError: If the mapping does not describe a valid config.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")
    data = dict(data)
    data["home"] = resolve_home(home or data.get("home"))
    try:
        return RootVaultConfig(**data)
    except (ValidationError, TypeError) as exc:
        raise ConfigError("Invalid rootvault config", cause=exc) from exc


def load_config(home: Optional[Path] = None) -> RootVaultConfig:
    """Load ``<home>/config.yaml``, falling back to defaults.

    A missing file is normal. An unreadable or invalid one is logged
    and replaced by defaults.
    """
    home_path = resolve_home(home)
    config_file = home_path / CONFIG_FILE
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
            return validate_config(data, home_path)
        except (OSError, yaml.YAMLError, ConfigError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
    return RootVaultConfig(home=home_path)


def save_config(config: RootVaultConfig) -> Path:
    """Write ``config`` to ``<home>/config.yaml``.

    Returns:
        Path of the written file.
    """
    config.home.mkdir(parents=True, exist_ok=True)
    config_file = config.home / CONFIG_FILE
    data = config.model_dump(mode="json", exclude={"home"})
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file


def create_store(config: StoreConfig, home: Path) -> ContentStore:
    """Factory for the configured content store.

    Raises:
        ConfigError: If the backend type is not supported.
    """
    if config.backend == StoreBackendType.MEMORY:
        return MemoryContentStore()
    if config.backend == StoreBackendType.LOCAL:
        return LocalContentStore(Path(config.local_path or home / "store").expanduser())
    if config.backend == StoreBackendType.IPFS:
        token = os.environ.get(config.token_env_var) if config.token_env_var else None
        return IpfsContentStore(config.api_url, token=token, timeout=config.timeout)
    raise ConfigError(f"Unsupported store backend: {config.backend}")


def create_ledger(config: LedgerConfig, home: Path) -> PointerLedger:
    """Factory for the configured pointer ledger.

    Raises:
        ConfigError: If the backend type is not supported.
    """
    factories = {
        LedgerBackendType.MEMORY: lambda: MemoryPointerLedger(),
        LedgerBackendType.LOCAL: lambda: LocalPointerLedger(
            Path(config.local_path or home / "ledger").expanduser()
        ),
    }
    factory = factories.get(config.backend)
    if not factory:
        raise ConfigError(f"Unsupported ledger backend: {config.backend}")
    return factory()
