"""Database connection management utilities."""
import logging
import os
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from config.settings import settings

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine = None
_session_factory = None

def get_engine():
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        is_production = os.getenv('APP_ENV') == 'production'
        db_url = settings.agent.database_url

        engine_kwargs = {"echo": False}  # Set to True for SQL debugging

        if 'sqlite' in db_url:
            # SQLite doesn't support pool_size/max_overflow parameters
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            db_path = db_url.replace('sqlite:///', '', 1)
            db_dir = os.path.dirname(db_path)
            if db_path != db_url and db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir, exist_ok=True)
        elif is_production:
            engine_kwargs.update({
                "pool_size": 3,
                "max_overflow": 2,
                "pool_pre_ping": True,  # Verify connections before using
                "pool_recycle": 300,
                "pool_timeout": 10,
            })
        else:
            engine_kwargs.update({
                "pool_size": 5,
                "max_overflow": 10,
                "pool_pre_ping": True,
                "pool_recycle": 3600
            })

        _engine = create_engine(db_url, **engine_kwargs)
        logger.info(f"Database engine initialized (production={is_production})")
    return _engine

def get_session_factory():
    """Get or create the global session factory."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine()
        _session_factory = scoped_session(sessionmaker(bind=engine))
    return _session_factory

def get_session():
    """Get a new database session."""
    factory = get_session_factory()
    return factory()

def close_session(session):
    """Close a database session properly."""
    try:
        session.close()
    except Exception as e:
        logger.warning(f"Error closing session: {e}")

@contextmanager
def session_scope(session_factory=None):
    """Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            # use session here
            # automatically commits on success, rolls back on error

    Args:
        session_factory: Optional callable returning a session. Defaults to
            the global factory; tests pass their own in-memory factory.
    """
    session = session_factory() if session_factory is not None else get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        close_session(session)

def init_database(engine=None):
    """Initialize database tables."""
    try:
        engine = engine or get_engine()

        # Import all models to ensure they're registered
        from project_engine.models import Base, Project, Task  # noqa: F401

        Base.metadata.create_all(engine)
        logger.info("Database tables created/verified")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False

def cleanup_connections():
    """Clean up database connections (useful for worker shutdown)."""
    global _engine, _session_factory

    if _session_factory is not None:
        try:
            _session_factory.remove()
            logger.info("Session factory cleaned up successfully")
        except Exception as e:
            logger.warning(f"Error cleaning up session factory: {e}")
        finally:
            _session_factory = None

    if _engine is not None:
        try:
            _engine.dispose()
            logger.info("Database engine disposed successfully")
        except Exception as e:
            logger.warning(f"Error disposing database engine: {e}")
        finally:
            _engine = None
