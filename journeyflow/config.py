from __future__ import annotations

import os
from datetime import timedelta
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from journeyflow.infra.flow.models import StorageAdapter
from journeyflow.infra.flow.persister import Persister
from journeyflow.infra.flow.store import DefaultKeyFormatter, FileStorage, MemoryStorage, SQLStorage


class StorageConfig(BaseModel):
    """Storage backend settings."""

    backend: Literal["memory", "file", "sql"] = "memory"
    folder: str = "./flows"
    database_url: str = "sqlite:///flows.db"
    echo: bool = False


class PersistenceConfig(BaseModel):
    """Persister settings."""

    key_prefix: str = "journeyflow"
    include_variant_in_key: bool = False
    ttl_seconds: Optional[float] = None


class JourneyflowConfig(BaseModel):
    """Top-level configuration model."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> JourneyflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to JOURNEYFLOW_CONFIG env
            variable or 'journeyflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("JOURNEYFLOW_CONFIG", "journeyflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = JourneyflowConfig(**data)
    else:
        config = JourneyflowConfig()

    env_db_url = os.getenv("JOURNEYFLOW_DATABASE_URL")
    if env_db_url:
        config.storage.backend = "sql"
        config.storage.database_url = env_db_url
    return config


def build_storage(config: StorageConfig) -> StorageAdapter:
    """Create the storage backend described by the config (SQL storage is opened)."""
    if config.backend == "file":
        return FileStorage(config.folder)
    if config.backend == "sql":
        storage = SQLStorage(config.database_url, echo=config.echo)
        storage.open()
        return storage
    return MemoryStorage()


def build_persister(config: JourneyflowConfig) -> Persister:
    """Create a Persister from the storage and persistence settings."""
    persistence = config.persistence
    ttl = timedelta(seconds=persistence.ttl_seconds) if persistence.ttl_seconds else None
    return Persister(
        build_storage(config.storage),
        key_formatter=DefaultKeyFormatter(
            prefix=persistence.key_prefix,
            include_variant=persistence.include_variant_in_key,
        ),
        ttl=ttl,
    )
