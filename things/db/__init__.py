"""
Database module for thing persistence.

Provides connection management and the thing repository.
"""

from .connection import (
    check_connection,
    close_pool,
    get_connection,
    get_database_url,
    init_pool,
    transaction,
    wait_for_database,
)
from .repositories import PostgresThingRepository, ThingRepository
from .translator import (
    ErrorTranslator,
    PostgresErrorClassifier,
    StoreErrorClassifier,
    StoreErrorCode,
    translate,
)

__all__ = [
    # Connection management
    "init_pool",
    "close_pool",
    "get_connection",
    "get_database_url",
    "transaction",
    "wait_for_database",
    "check_connection",
    # Error translation
    "ErrorTranslator",
    "PostgresErrorClassifier",
    "StoreErrorClassifier",
    "StoreErrorCode",
    "translate",
    # Repositories
    "ThingRepository",
    "PostgresThingRepository",
]
