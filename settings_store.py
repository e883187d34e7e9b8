"""
Flat key/value settings kept in ``app_configs``.

Values are free-form strings; nothing validates key names or value shapes.
A few keys are read back as numbers by the store itself (``tax_rate``,
``max_cart_items``).
"""

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import config
from errors import NotFound
from logger import get_logger
from models import AppConfig

_logger = get_logger(__name__)

TAX_RATE_KEY = "tax_rate"
MAX_CART_ITEMS_KEY = "max_cart_items"


def all_values(db: Session) -> Dict[str, str]:
    rows = db.scalars(select(AppConfig).order_by(AppConfig.key)).all()
    return {row.key: row.value for row in rows}


def get_value(db: Session, key: str) -> Optional[str]:
    row = db.scalar(select(AppConfig).where(AppConfig.key == key))
    return row.value if row else None


def set_value(db: Session, key: str, value: str, description: Optional[str] = None) -> AppConfig:
    """Create or update one key. Caller commits."""
    row = db.scalar(select(AppConfig).where(AppConfig.key == key))
    if row is None:
        row = AppConfig(key=key, value=value, description=description)
        db.add(row)
        _logger.info(f"Config key '{key}' created")
    else:
        row.value = value
        if description is not None:
            row.description = description
        _logger.info(f"Config key '{key}' updated")
    db.flush()
    return row


def delete_value(db: Session, key: str) -> None:
    row = db.scalar(select(AppConfig).where(AppConfig.key == key))
    if row is None:
        raise NotFound(f"Config key '{key}' not found")
    db.delete(row)
    db.commit()
    _logger.info(f"Config key '{key}' deleted")


def get_tax_rate(db: Session) -> Decimal:
    """The ``tax_rate`` key is the single source of truth; falls back to the default."""
    raw = get_value(db, TAX_RATE_KEY)
    if raw is not None:
        try:
            rate = Decimal(raw.strip())
            if rate >= 0:
                return rate
        except InvalidOperation:
            pass
        _logger.warning(f"Ignoring unusable {TAX_RATE_KEY} value {raw!r}")
    return Decimal(config.DEFAULT_TAX_RATE)


def get_max_cart_items(db: Session) -> Optional[int]:
    raw = get_value(db, MAX_CART_ITEMS_KEY)
    if raw is None:
        return None
    try:
        limit = int(raw.strip())
    except ValueError:
        _logger.warning(f"Ignoring unusable {MAX_CART_ITEMS_KEY} value {raw!r}")
        return None
    return limit if limit > 0 else None
