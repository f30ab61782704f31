"""Storage backends for the catalog and execution history."""

import logging

from synthetic_monitor.config import StorageConfig
from synthetic_monitor.history import HistoryStore, InMemoryHistoryStore
from synthetic_monitor.repository import InMemoryRepository, Repository
from synthetic_monitor.storage.sql import (
    SqlHistoryStore,
    SqlRepository,
    create_database_engine,
)

logger = logging.getLogger(__name__)

__all__ = ["SqlHistoryStore", "SqlRepository", "create_database_engine", "create_storage"]


def create_storage(config: StorageConfig) -> tuple[Repository, HistoryStore]:
    """Create the repository and history store for a storage configuration."""
    if config.backend == "sql":
        engine = create_database_engine(config.url)
        return SqlRepository(engine), SqlHistoryStore(engine)

    logger.debug("Using in-memory storage")
    repository = InMemoryRepository()
    return repository, InMemoryHistoryStore(repository)
