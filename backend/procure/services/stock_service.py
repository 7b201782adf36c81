# Overview: Service-layer operations for product stock; the only writer of Product.current_stock.

"""
Stock Service

INVARIANTS:
- current_stock is changed by exactly one SQL statement per adjustment
  (UPDATE products SET current_stock = <expr> WHERE id = :id). No
  read-modify-write in Python, so concurrent verifies and sweeps never lose
  an update.
- current_stock never goes below zero. Decrements are clamped at zero in
  the same statement; the caller learns how much was actually removed.
- Nothing here commits. Callers own the transaction so a stock change and
  the status/batch write that justifies it land together.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import case, select, update

from ..extensions import db
from ..models import Product
from ..errors import NotFoundError, ValidationError


@dataclass(frozen=True)
class StockChange:
    product_id: int
    requested: int
    applied: int
    stock_after: int
    min_qty: int

    @property
    def clamped(self) -> bool:
        return self.applied != self.requested

    @property
    def is_low_stock(self) -> bool:
        return self.stock_after < self.min_qty


def _read_levels(product_id: int) -> tuple[int, int]:
    row = db.session.execute(
        select(Product.current_stock, Product.min_qty).where(Product.id == product_id)
    ).one_or_none()
    if row is None:
        raise NotFoundError(f"Product {product_id} not found")
    return row.current_stock, row.min_qty


def increment_stock(product_id: int, quantity: int) -> StockChange:
    """Atomically add quantity to a product's stock."""
    if quantity <= 0:
        raise ValidationError("Stock increment must be positive")

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(current_stock=Product.current_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise NotFoundError(f"Product {product_id} not found")

    stock_after, min_qty = _read_levels(product_id)
    return StockChange(product_id, quantity, quantity, stock_after, min_qty)


def decrement_stock_clamped(product_id: int, quantity: int) -> StockChange:
    """
    Atomically remove up to quantity from a product's stock, flooring at zero.

    The amount actually removed is computed from the pre-update level read in
    the same transaction; the floor itself is enforced by the UPDATE.
    """
    if quantity <= 0:
        raise ValidationError("Stock decrement must be positive")

    stock_before, _ = _read_levels(product_id)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            current_stock=case(
                (Product.current_stock >= quantity, Product.current_stock - quantity),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise NotFoundError(f"Product {product_id} not found")

    stock_after, min_qty = _read_levels(product_id)
    applied = min(quantity, stock_before)
    return StockChange(product_id, quantity, applied, stock_after, min_qty)

