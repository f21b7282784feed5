"""Database proxy shared by the directory and history models."""

import logging
import os
from typing import Optional

from peewee import DatabaseProxy, SqliteDatabase
from playhouse.postgres_ext import PostgresqlExtDatabase

logger = logging.getLogger(__name__)

# Bound to a concrete database by initialize_database()
db = DatabaseProxy()


def initialize_database(config: Optional[dict] = None, database=None):
    """
    Initialize database connection and create tables.

    PostgreSQL is used when DATABASE_URL is set, SQLite
    (``database.sqlite_path``) otherwise.

    Args:
        config: Configuration dictionary
        database: Explicit peewee database (tests pass in-memory SQLite)

    Returns:
        Database proxy
    """
    from chainflow.models import ALL_MODELS

    if database is None:
        db_url = os.environ.get("DATABASE_URL")
        if db_url:
            logger.info("Using PostgreSQL database")
            database = PostgresqlExtDatabase(db_url)
        else:
            sqlite_path = (config or {}).get('database', {}).get('sqlite_path', 'chainflow.db')
            logger.info(f"Using SQLite database: {sqlite_path}")
            database = SqliteDatabase(sqlite_path)

    db.initialize(database)
    db.create_tables(ALL_MODELS, safe=True)
    logger.info("Database tables created/verified")
    return db
