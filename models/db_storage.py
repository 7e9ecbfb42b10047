"""
DBStorage: the one handle to the relational store.

Constructed once per application (see api.create_app) and passed explicitly to
each service. Lifecycle:
- reload()   create tables and open the scoped session factory
- close()    release the current thread's session (called on request teardown)
- dispose()  release the engine's connection pool at shutdown
"""
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker

from models.base_model import Base
# Imported so every table is registered on Base.metadata before create_all
from models.user import User  # noqa: F401
from models.refresh_token import RefreshToken  # noqa: F401
from models.application import Application  # noqa: F401
from models.validator_action import ValidatorAction  # noqa: F401


class DBStorage:
    __engine = None
    __session = None

    def __init__(self, database_url: str, echo: bool = False):
        """Initialize engine for the given URL"""
        self.__engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
        # Enable SQLite foreign keys (needed for ON DELETE CASCADE / SET NULL)
        if self.__engine.url.get_backend_name() == "sqlite":
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

    def reload(self):
        """Create tables and start session"""
        Base.metadata.create_all(self.__engine)
        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)

    def count(self, cls):
        return self.__session.query(cls).count()

    @contextmanager
    def transaction(self):
        """
        Unit of work: everything done with the yielded session commits together,
        or rolls back together if anything raises.
        """
        session = self.__session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise

    def close(self):
        """Remove session (for API teardown)"""
        if self.__session is not None:
            self.__session.remove()

    def dispose(self):
        """Release pooled connections at process shutdown"""
        self.close()
        self.__engine.dispose()

    # expose the SQLAlchemy session for advanced querying (joins, filters, etc.)
    def get_session(self):
        return self.__session
