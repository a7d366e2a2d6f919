# Overview: Service-layer concurrency helpers; per-product stock locks and DB retry handling.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, PersistenceError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The in-process ProductLocks below cover SQLite deployments.
    """
    return query.with_for_update()


class ProductLocks:
    """
    Registry of per-product re-entrant locks.

    Writers of a product's stock hold its lock from the balance re-read until
    the DB commit. Several products are always locked in ascending id order so
    that two batches sharing products cannot deadlock. Re-entrant so a sale
    that already holds its products' locks can call into the ledger.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}

    def _lock_for(self, product_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_ids: Iterable[int], timeout: float):
        acquired: list[threading.RLock] = []
        try:
            for product_id in sorted(set(product_ids)):
                lock = self._lock_for(product_id)
                if not lock.acquire(timeout=timeout):
                    raise ConflictError(
                        "Product is busy; another stock operation is in progress",
                        details={"product_id": product_id, "timeout_seconds": timeout},
                    )
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


product_locks = ProductLocks()


def _lock_timeout() -> float:
    return float(current_app.config.get("STOCK_LOCK_TIMEOUT_SECONDS", 5))


@contextmanager
def hold_product_locks(product_ids: Iterable[int]):
    with product_locks.hold(product_ids, _lock_timeout()):
        yield


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts); when attempts run out they surface as
    ConflictError. Any other failure rolls the session back and propagates:
    business errors unchanged, other SQLAlchemy errors as PersistenceError.
    """
    if attempts is None:
        attempts = int(current_app.config.get("DB_RETRY_ATTEMPTS", 3))

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise ConflictError("Concurrent update conflict; please retry") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError("Write conflicts with existing data") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Database failure")
            raise PersistenceError("Database error") from exc
        except Exception:
            db.session.rollback()
            raise
