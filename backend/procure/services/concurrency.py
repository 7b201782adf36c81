# Overview: Service-layer helpers for concurrency; atomic conditional updates and retry.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from ..extensions import db


def compare_and_set(model, row_id: int, *, expected: dict, values: dict, extra_conditions=()) -> bool:
    """
    Single-statement conditional update:

        UPDATE <table> SET <values> WHERE id = :row_id AND <col> = <expected>...

    A tuple/list/set expected value becomes <col> IN (...). extra_conditions are
    SQL expressions ANDed into the WHERE clause.
    Returns True when exactly one row matched. The check and the write happen
    in one statement, so two concurrent callers can never both succeed.
    Does not commit.
    """
    conditions = [model.id == row_id]
    for column_name, expected_value in expected.items():
        column = getattr(model, column_name)
        if isinstance(expected_value, (tuple, list, set, frozenset)):
            conditions.append(column.in_(list(expected_value)))
        else:
            conditions.append(column == expected_value)
    conditions.extend(extra_conditions)

    stmt = (
        update(model)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock contention.

    Retries on OperationalError ("database is locked", deadlocks).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


