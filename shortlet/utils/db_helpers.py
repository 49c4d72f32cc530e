"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Row locks that degrade to plain reads on SQLite
- Compare-and-set claims for sweep workers
"""

import logging
from typing import Optional, TypeVar, Type, Dict, Any
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar('T')


def dialect_name(db: Session) -> Optional[str]:
    bind = db.get_bind()
    return bind.dialect.name if bind is not None else None


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    return dialect_name(db) == 'postgresql'


def is_sqlite(db: Session) -> bool:
    """Check if the database is SQLite"""
    return dialect_name(db) == 'sqlite'


def acquire_row_lock(
    db: Session,
    model: Type[T],
    filter_condition,
    nowait: bool = False,
    skip_locked: bool = False
) -> Optional[T]:
    """
    Acquire a row-level lock on a database record.

    FOR UPDATE is only applied on PostgreSQL; SQLite serializes writers
    at the database level and gets a plain SELECT.

    Example:
        listing = acquire_row_lock(db, ShortletListing, ShortletListing.id == listing_id)
    """
    query = db.query(model).filter(filter_condition)
    if not is_postgres(db):
        return query.first()

    if skip_locked:
        lock_options = {"skip_locked": True}
    elif nowait:
        lock_options = {"nowait": True}
    else:
        lock_options = {}
    return query.with_for_update(**lock_options).first()


def get_pending_with_skip_locked(
    db: Session,
    model: Type[T],
    filter_condition,
    order_by=None,
    limit: int = 50
) -> list:
    """
    Fetch sweep candidates; on PostgreSQL rows held by another worker are skipped.
    """
    query = db.query(model).filter(filter_condition)

    if order_by is not None:
        query = query.order_by(order_by)

    if is_postgres(db):
        query = query.with_for_update(skip_locked=True)

    return query.limit(limit).all()


def compare_and_set(
    db: Session,
    model: Type[T],
    filter_condition,
    values: Dict[str, Any],
) -> bool:
    """
    Single guarded UPDATE. True only when this call changed the row,
    so two workers racing on the same claim cannot both win.
    """
    count = db.query(model).filter(filter_condition).update(values, synchronize_session=False)
    db.commit()
    if not count:
        logger.debug(f"Claim on {model.__name__} lost")
    return bool(count)
