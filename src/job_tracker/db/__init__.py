"""Persistence layer."""

from .session import Database, create_database_engine
from .tables import (
    Base,
    UserRecord,
    JobRecord,
    ApplicationRecord,
    ApplicationEventRecord,
    ScrapingSessionRecord,
)

__all__ = [
    "Database",
    "create_database_engine",
    "Base",
    "UserRecord",
    "JobRecord",
    "ApplicationRecord",
    "ApplicationEventRecord",
    "ScrapingSessionRecord",
]
