"""Database access for the profile store and worker self-tests."""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Callable, Tuple, Type

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .exceptions import DatabaseError

logger = logging.getLogger(__name__)

TRANSIENT_DB_ERRORS: Tuple[Type[Exception], ...] = (OperationalError, DBAPIError)


def retry_on_db_error(max_retries: int = 3, retry_delay: float = 1.0,
                      exceptions: Tuple[Type[Exception], ...] = TRANSIENT_DB_ERRORS) -> Callable:
    """Retry a query on transient driver errors, doubling the pause each time.

    The last failure is re-raised as ``DatabaseError``.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        logger.error(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise DatabaseError(f"{func.__name__} failed after {attempt} attempts") from e
                    pause = retry_delay * 2 ** (attempt - 1)
                    logger.warning(f"{func.__name__} failed (attempt {attempt}/{max_retries}), retrying in {pause}s: {e}")
                    time.sleep(pause)
                    attempt += 1
        return wrapper
    return decorator


def get_engine(database_url: str, pool_size: int = 5, max_overflow: int = 10,
               pool_recycle: int = 1800, echo: bool = False):
    if database_url.startswith('sqlite'):
        # One shared connection so an in-memory database outlives each session
        engine = create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={'check_same_thread': False},
            echo=echo
        )
    else:
        engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo
        )

    @event.listens_for(engine, 'connect')
    def on_connect(dbapi_connection, connection_record):
        logger.info(f"Opened database connection to {engine.url.render_as_string(hide_password=True)}")

    return engine


def create_session_factory(database_url: str, **engine_options):
    return sessionmaker(bind=get_engine(database_url, **engine_options))


@contextmanager
def session_scope(session_factory):
    """Yield a session; roll back on error and always close it.

    A session that cannot be closed raises ``DatabaseError``, unless the
    block already failed: that error is the one the caller sees.
    """
    session = session_factory()
    failed = False
    try:
        yield session
    except Exception as e:
        failed = True
        session.rollback()
        logger.error(f"Rolled back database session after {type(e).__name__}: {e}")
        raise
    finally:
        _release(session, failed)


def _release(session, failed: bool) -> None:
    try:
        session.close()
    except Exception as e:
        if failed:
            logger.error(f"Failed to release database session: {e}")
            return
        raise DatabaseError("Failed to release database session") from e


def check_database(session_factory) -> bool:
    """Run ``SELECT 1``; raises when the database cannot be reached."""
    with session_scope(session_factory) as session:
        session.execute(text('SELECT 1'))
    return True
