import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import settings
from app.core.errors import ConflictError, DomainError, TransientStoreError
from app.request_context import current_actor_id, current_endpoint


def _connect_args(database_url: str) -> dict:
    if database_url.startswith('sqlite'):
        return {'check_same_thread': False}
    return {}


engine = create_engine(settings.database_url, connect_args=_connect_args(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

_SLOW_QUERY_MS = settings.db_slow_query_ms
_slow_logger = logging.getLogger('app.db.slow_query')
logger = logging.getLogger(__name__)


@event.listens_for(engine, 'before_cursor_execute')
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._query_start_time = time.perf_counter()


@event.listens_for(engine, 'after_cursor_execute')
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = getattr(context, '_query_start_time', None)
    if start is None:
        return
    duration_ms = (time.perf_counter() - start) * 1000.0
    if duration_ms >= _SLOW_QUERY_MS:
        endpoint = current_endpoint.get()
        sql_text = (statement or '').replace('\n', ' ').strip()
        _slow_logger.warning(
            'slow_query duration_ms=%.2f endpoint=%s actor_id=%s sql=%s',
            duration_ms,
            endpoint,
            current_actor_id.get(),
            sql_text,
        )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run one unit of work: commit on success, roll back and re-raise otherwise.

    Domain errors pass through unchanged. Constraint violations surface as
    ``ConflictError`` and other driver failures as ``TransientStoreError`` so
    callers can decide whether a single retry is worthwhile.
    """
    try:
        yield db
        db.commit()
    except DomainError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning('transaction_integrity_conflict', extra={'error': str(exc.orig)})
        raise ConflictError('Concurrent modification detected') from exc
    except DBAPIError as exc:
        db.rollback()
        logger.error('transaction_store_failure', extra={'error': str(exc.orig)})
        raise TransientStoreError('Store unavailable, retry later') from exc
    except BaseException:
        db.rollback()
        raise
