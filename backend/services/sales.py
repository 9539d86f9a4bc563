# backend/services/sales.py
"""Sales side of stock tracking.

Supplies sales velocity to the alert engine and books the ledger entries
caused by sales: OUT entries on confirmation, IN entries when a completed
sale is cancelled. Each operation commits all of its lines or none.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import utcnow
from models.product import Product
from models.sale import Sale, SaleItem, SaleStatus
from models.stock import MovementType
from services import errors, ledger
from utils.cache import alert_cache

logger = logging.getLogger(__name__)


def sales_velocity(db: Session, *, since: datetime) -> Dict[int, Tuple[int, int]]:
    """Units sold and distinct sale days per product in COMPLETED sales since ``since``."""
    rows = (
        db.query(
            SaleItem.product_id,
            func.sum(SaleItem.quantity),
            func.count(func.distinct(func.date(Sale.sale_date))),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.status == SaleStatus.COMPLETED.value, Sale.sale_date >= since)
        .group_by(SaleItem.product_id)
        .all()
    )
    return {product_id: (int(units or 0), int(days or 0)) for product_id, units, days in rows}


def get_sale(db: Session, sale_id: int) -> Sale:
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise errors.SaleNotFoundError("Sale not found", sale_id=sale_id)
    return sale


def create_sale(
    db: Session,
    *,
    items: Iterable,
    user_id: Optional[int] = None,
    customer_name: Optional[str] = None,
) -> Sale:
    """Register a PENDING sale. Stock is untouched until confirmation."""
    lines = []
    for item in items:
        product_id, quantity = (
            (item["product_id"], item["quantity"]) if isinstance(item, dict)
            else (item.product_id, item.quantity)
        )
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise errors.InvalidQuantityError(
                "Quantity must be greater than zero", product_id=product_id, quantity=quantity
            )
        if db.get(Product, product_id) is None:
            raise errors.ProductNotFoundError("Product not found", product_id=product_id)
        lines.append(SaleItem(product_id=product_id, quantity=quantity))
    if not lines:
        raise errors.ValidationError("A sale needs at least one item")

    sale = Sale(user_id=user_id, customer_name=customer_name, status=SaleStatus.PENDING.value, items=lines)
    db.add(sale)
    db.commit()
    db.refresh(sale)
    return sale


def _transition(db: Session, sale: Sale, source: SaleStatus, target: SaleStatus, **values) -> None:
    # Conditional update: a second concurrent transition of the same sale matches no row
    result = db.execute(
        update(Sale)
        .where(Sale.id == sale.id, Sale.status == source.value)
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise errors.SaleStateError(
            f"Sale is no longer {source.value}", sale_id=sale.id, status=sale.status
        )


def confirm_sale(db: Session, sale_id: int, *, user_id: Optional[int] = None) -> Sale:
    """Complete a PENDING sale, booking one OUT entry per line.

    An InsufficientStockError on any line rolls back the whole sale; the
    caller should ask the user to review the cart and retry.
    """
    sale = get_sale(db, sale_id)
    if sale.status != SaleStatus.PENDING.value:
        raise errors.SaleStateError(
            "Only pending sales can be confirmed", sale_id=sale_id, status=sale.status
        )

    # Stable product order keeps row locks acquired in the same order across sales
    lines = sorted(sale.items, key=lambda it: (it.product_id, it.id))
    try:
        _transition(db, sale, SaleStatus.PENDING, SaleStatus.COMPLETED, sale_date=utcnow())
        for item in lines:
            ledger.append(
                db,
                product_id=item.product_id,
                type=MovementType.OUT,
                quantity=item.quantity,
                reason=f"Sale #{sale.id}",
                user_id=user_id,
                sale_id=sale.id,
                commit=False,
            )
        db.commit()
    except errors.InventoryError as exc:
        db.rollback()
        raise exc.with_context(sale_id=sale_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Sale confirmation failed sale_id=%s", sale_id)
        raise errors.StorageError(sale_id=sale_id, operation="CONFIRM_SALE") from exc

    alert_cache.clear()
    db.refresh(sale)
    logger.info("Sale #%s confirmed with %d line(s) by user_id=%s", sale.id, len(lines), user_id)
    return sale


def cancel_sale(
    db: Session, sale_id: int, *, user_id: Optional[int] = None, reason: Optional[str] = None
) -> Sale:
    """Cancel a sale. A COMPLETED sale returns its stock through IN entries."""
    sale = get_sale(db, sale_id)
    returned = 0
    try:
        if sale.status == SaleStatus.PENDING.value:
            _transition(db, sale, SaleStatus.PENDING, SaleStatus.CANCELLED)
        elif sale.status == SaleStatus.COMPLETED.value:
            note = ledger.validate_reason(reason, required=False) or f"Sale #{sale.id} cancelled"
            _transition(db, sale, SaleStatus.COMPLETED, SaleStatus.CANCELLED)
            for item in sorted(sale.items, key=lambda it: (it.product_id, it.id)):
                ledger.append(
                    db,
                    product_id=item.product_id,
                    type=MovementType.IN,
                    quantity=item.quantity,
                    reason=note,
                    user_id=user_id,
                    sale_id=sale.id,
                    commit=False,
                )
                returned += 1
        else:
            raise errors.SaleStateError(
                "Sale is already cancelled", sale_id=sale_id, status=sale.status
            )
        db.commit()
    except errors.InventoryError as exc:
        db.rollback()
        raise exc.with_context(sale_id=sale_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Sale cancellation failed sale_id=%s", sale_id)
        raise errors.StorageError(sale_id=sale_id, operation="CANCEL_SALE") from exc

    if returned:
        alert_cache.clear()
    db.refresh(sale)
    logger.info("Sale #%s cancelled, %d line(s) returned to stock", sale.id, returned)
    return sale
