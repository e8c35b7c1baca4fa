"""Database layer for tallybook."""

from tallybook.database.base import Database
from tallybook.database.factories import create_sqlite_database

__all__ = ["Database", "create_sqlite_database"]
