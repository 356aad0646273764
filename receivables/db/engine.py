# receivables/db/engine.py

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from receivables.config import settings
from receivables.services.errors import RetryableConflict

logger = logging.getLogger(__name__)

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _use_immediate_transactions(engine: Engine) -> None:
    """
    Make pysqlite start every transaction with BEGIN IMMEDIATE so the write
    lock is taken before the first read of a read-validate-write sequence.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@lru_cache(maxsize=None)
def get_engine() -> Engine:
    url = settings.database_url
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": settings.lock_timeout}

    # RECEIVABLES_SQL_ECHO=true if you want to see SQL printed in the terminal
    engine = create_engine(
        url,
        future=True,
        echo=settings.sql_echo,
        connect_args=connect_args,
    )
    if engine.dialect.name == "sqlite":
        _use_immediate_transactions(engine)
    return engine


def is_retryable(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


@contextmanager
def transaction() -> Iterator[Connection]:
    """
    Run a block of reads and writes as one atomic unit.

    Commits when the block finishes, rolls back on any exception. Lock and
    serialization failures from the backend surface as RetryableConflict.
    """
    engine = get_engine()
    try:
        with engine.begin() as conn:
            yield conn
    except OperationalError as exc:
        if is_retryable(exc):
            logger.warning("Transaction conflict, caller may retry: %s", exc.orig)
            raise RetryableConflict(
                "The records were changed by another request; retry the same request."
            ) from exc
        raise
