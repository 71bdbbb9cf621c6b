"""
Database engine and session factory configuration.

This module provides:
- Database URL resolution from the environment and settings
- Engine creation with pooling tuned per database type
- Session factory creation for persistence contexts

Both SQLite (development, tests) and PostgreSQL (production) are supported.
"""

import os
import logging
from typing import Optional
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, NullPool, StaticPool
from dotenv import load_dotenv

from bisna.utils.config import Settings, get_settings

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


def get_database_url(settings: Optional[Settings] = None) -> str:
    """
    Get the read-write database URL based on environment.

    Args:
        settings (Settings, optional): Settings to read from. Defaults to cached settings.

    Returns:
        str: Database connection URL
    """
    # For testing, always use in-memory SQLite
    if os.getenv("TESTING", "").lower() == "true":
        logger.info("Using in-memory SQLite database for testing")
        return "sqlite://"

    settings = settings or get_settings()

    # Fix potential newline issues in .env file
    db_url = settings.DATABASE_URL.split('\n')[0].strip()
    db_type = "PostgreSQL" if db_url.startswith("postgresql") else "SQLite"
    logger.info(f"Using {db_type} database for {settings.ENVIRONMENT}")
    return db_url


def get_engine(database_url: Optional[str] = None, settings: Optional[Settings] = None) -> Engine:
    """
    Get SQLAlchemy engine with optimized configuration.

    SQLite engines enable foreign key enforcement. In-memory SQLite uses a
    StaticPool so every session sees the same database; file-based SQLite uses
    NullPool. PostgreSQL uses a QueuePool sized from settings.

    Args:
        database_url (str, optional): Database URL. If None, determined from environment.
        settings (Settings, optional): Settings for pool sizing and SQL echo.

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    settings = settings or get_settings()
    if database_url is None:
        database_url = get_database_url(settings)

    connect_args = {}
    engine_args = {
        "echo": settings.DEBUG,  # Only log SQL in debug mode
        "echo_pool": settings.DEBUG
    }

    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url in IN_MEMORY_SQLITE_URLS:
            engine_args["poolclass"] = StaticPool
            logger.info("Using StaticPool for in-memory SQLite database")
        else:
            engine_args["poolclass"] = NullPool
            logger.info("Using NullPool for SQLite database")

    elif database_url.startswith("postgresql"):
        engine_args.update({
            "poolclass": QueuePool,
            "pool_size": settings.POOL_SIZE,
            "max_overflow": settings.MAX_OVERFLOW,
            "pool_timeout": settings.POOL_TIMEOUT,
            "pool_recycle": settings.POOL_RECYCLE,
            "pool_pre_ping": True  # Verify connections before using them
        })
        logger.info(f"Using QueuePool for PostgreSQL database (size={settings.POOL_SIZE}, max_overflow={settings.MAX_OVERFLOW})")

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        **engine_args
    )

    if engine.dialect.name == "sqlite":
        # Enable foreign key support for SQLite
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Get SQLAlchemy session factory for the given engine.

    Autoflush is disabled: pending changes reach the database only on an
    explicit flush inside a transaction.

    Args:
        engine (Engine): SQLAlchemy engine

    Returns:
        sessionmaker: Configured session factory
    """
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False
    )
