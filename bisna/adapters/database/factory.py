"""
Persistence context factory.

This module builds named persistence contexts from configuration. Each name
maps to one engine (and its connection pool); every ``create_context`` call
opens a new session on that engine, so contexts are never shared between
requests or threads.

By default two names are configured:
- ``"default"``: ``DATABASE_URL``
- ``"read"``: ``DATABASE_READ_URL``, when set (e.g. a read replica)
"""

import logging
from typing import Dict, Optional, Union

from sqlalchemy import MetaData
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from bisna.adapters.database.orm import SQLAlchemyContext
from bisna.exceptions import ProgrammingError
from bisna.utils.config import Settings, get_settings
from bisna.utils.database import create_session_factory, get_database_url, get_engine

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = "default"
READ_CONTEXT = "read"

class PersistenceContextFactory:
    """Factory for creating named persistence contexts."""

    def __init__(self, settings: Optional[Settings] = None, configure_defaults: bool = True):
        """
        Initialize the factory.

        Args:
            settings: Settings to build engines from. Defaults to cached settings.
            configure_defaults: Register the ``default`` and ``read`` contexts from settings.
        """
        self.settings = settings or get_settings()
        self._engines: Dict[str, Engine] = {}
        self._session_factories: Dict[str, sessionmaker] = {}

        if configure_defaults:
            self.register(DEFAULT_CONTEXT, get_database_url(self.settings))
            if self.settings.DATABASE_READ_URL:
                self.register(READ_CONTEXT, self.settings.DATABASE_READ_URL)

    @property
    def names(self):
        return list(self._engines)

    def register(self, name: str, database: Union[str, Engine]) -> Engine:
        """
        Register a named context.

        Args:
            name: Context name
            database: Database URL or an existing engine

        Returns:
            Engine: The engine backing the context
        """
        engine = get_engine(database, self.settings) if isinstance(database, str) else database
        if name in self._engines and self._engines[name] is not engine:
            logger.warning(f"Replacing persistence context {name}")
            self._engines[name].dispose()

        self._engines[name] = engine
        self._session_factories[name] = create_session_factory(engine)
        logger.info(f"Registered persistence context {name} ({engine.dialect.name})")
        return engine

    def get_engine(self, name: Optional[str] = None) -> Engine:
        """Get the engine of a named context."""
        return self._engines[self._resolve(name)]

    def create_context(self, name: Optional[str] = None) -> SQLAlchemyContext:
        """
        Create a new persistence context.

        Args:
            name: Context name. Defaults to ``default``.

        Returns:
            SQLAlchemyContext: A context with its own session

        Raises:
            ProgrammingError: If the name is not registered
        """
        name = self._resolve(name)
        return SQLAlchemyContext(self._session_factories[name](), name=name)

    def create_tables(self, metadata: MetaData, name: Optional[str] = None) -> None:
        """Create the tables of ``metadata`` on a named context's database."""
        try:
            metadata.create_all(self.get_engine(name))
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create database tables: {str(e)}")
            raise

    def dispose(self) -> None:
        """Close the connection pools of all engines."""
        for name, engine in self._engines.items():
            engine.dispose()
            logger.info(f"Closed database connections of persistence context {name}")
        self._engines.clear()
        self._session_factories.clear()

    def _resolve(self, name: Optional[str]) -> str:
        name = name or DEFAULT_CONTEXT
        # Read traffic falls back to the default database when no replica is configured
        if name == READ_CONTEXT and name not in self._engines and DEFAULT_CONTEXT in self._engines:
            return DEFAULT_CONTEXT
        if name not in self._engines:
            raise ProgrammingError(f'Unknown persistence context "{name}".')
        return name
