# backend/services/ledger.py
"""Append-only movement ledger, the source of truth for stock quantities.

Every stock change is one immutable ``StockMovement`` row. Appending an entry
and updating the product's stock record happen in the same transaction, so
replaying a product's entries always reconstructs its cached quantity.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, List, Tuple, Union

from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.inventory import StockRecord
from models.stock import StockMovement, MovementType
from services import errors, stock_record
from utils.cache import alert_cache

logger = logging.getLogger(__name__)

REASON_MIN_LENGTH = 3
REASON_MAX_LENGTH = 500

DateLike = Union[date, datetime]


def movement_type(value) -> MovementType:
    if isinstance(value, MovementType):
        return value
    try:
        return MovementType((value or "").upper())
    except (AttributeError, ValueError):
        raise errors.InvalidMovementTypeError(
            "Movement type must be IN, OUT or ADJUSTMENT", type=value
        ) from None


def signed_effect(kind: MovementType, quantity: int) -> int:
    return -quantity if kind is MovementType.OUT else quantity


def validate_reason(reason: Optional[str], *, required: bool) -> Optional[str]:
    if reason is not None and not isinstance(reason, str):
        raise errors.InvalidReasonError("Reason must be text", reason=reason)
    if reason is None or not reason.strip():
        if required:
            raise errors.InvalidReasonError("A reason is required for stock adjustments")
        return None
    reason = reason.strip()
    if not REASON_MIN_LENGTH <= len(reason) <= REASON_MAX_LENGTH:
        raise errors.InvalidReasonError(
            f"Reason must have between {REASON_MIN_LENGTH} and {REASON_MAX_LENGTH} characters",
            reason_length=len(reason),
        )
    return reason


def validate_quantity(kind: MovementType, quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise errors.InvalidQuantityError("Quantity must be an integer", quantity=quantity)
    if kind is MovementType.ADJUSTMENT:
        if quantity == 0:
            raise errors.InvalidQuantityError("Adjustment quantity cannot be zero", quantity=quantity)
    elif quantity <= 0:
        raise errors.InvalidQuantityError("Quantity must be greater than zero", quantity=quantity)
    return quantity


def append(
    db: Session,
    *,
    product_id: int,
    type,
    quantity: int,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
    sale_id: Optional[int] = None,
    expected_quantity: Optional[int] = None,
    commit: bool = True,
) -> StockMovement:
    """Record a stock movement and apply it to the product's stock record.

    With ``commit=False`` the caller owns the transaction and must commit or
    roll back (sale confirmation books several lines atomically this way).
    """
    kind = movement_type(type)
    validate_quantity(kind, quantity)
    reason = validate_reason(reason, required=kind is MovementType.ADJUSTMENT)
    delta = signed_effect(kind, quantity)

    try:
        stock_record.apply_delta(db, product_id, delta, expected_quantity=expected_quantity)
        movement = StockMovement(
            product_id=product_id,
            type=kind.value,
            qty=quantity,
            reason=reason,
            user_id=user_id,
            sale_id=sale_id,
        )
        db.add(movement)
        db.flush()
        if commit:
            db.commit()
    except errors.InventoryError as exc:
        if commit:
            db.rollback()
        logger.info(
            "Stock movement rejected product_id=%s type=%s delta=%s: %s",
            product_id, kind.value, delta, exc.message,
        )
        raise exc.with_context(product_id=product_id, delta=delta, operation=kind.value)
    except SQLAlchemyError as exc:
        if commit:
            db.rollback()
        logger.exception(
            "Stock movement failed product_id=%s type=%s delta=%s user_id=%s sale_id=%s",
            product_id, kind.value, delta, user_id, sale_id,
        )
        raise errors.StorageError(
            product_id=product_id, delta=delta, operation=kind.value
        ) from exc

    if commit:
        alert_cache.clear()
        logger.info(
            "Stock movement #%s product_id=%s type=%s qty=%s user_id=%s sale_id=%s",
            movement.id, product_id, kind.value, quantity, user_id, sale_id,
        )
    return movement


def open_stock_record(
    db: Session,
    *,
    product_id: int,
    initial_quantity: int = 0,
    min_stock: Optional[int] = None,
    max_stock: Optional[int] = None,
    location: Optional[str] = None,
    user_id: Optional[int] = None,
) -> StockRecord:
    """Start stock tracking for a product, booking any initial quantity as an IN entry."""
    if isinstance(initial_quantity, bool) or not isinstance(initial_quantity, int) or initial_quantity < 0:
        raise errors.InvalidQuantityError(
            "Initial quantity cannot be negative", quantity=initial_quantity
        )

    try:
        record = stock_record.create_stock_record(
            db, product_id=product_id, min_stock=min_stock, max_stock=max_stock, location=location
        )
        if initial_quantity > 0:
            append(
                db,
                product_id=product_id,
                type=MovementType.IN,
                quantity=initial_quantity,
                reason="Initial stock",
                user_id=user_id,
                commit=False,
            )
        db.commit()
    except errors.InventoryError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise errors.StockRecordExistsError(
            "Stock record already exists for this product", product_id=product_id
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Opening stock record failed product_id=%s", product_id)
        raise errors.StorageError(product_id=product_id, operation="CREATE") from exc

    alert_cache.clear()
    db.refresh(record)
    logger.info(
        "Stock record opened product_id=%s initial_quantity=%s", product_id, initial_quantity
    )
    return record


def _day_start(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def list_movements(
    db: Session,
    *,
    product_id: Optional[int] = None,
    type=None,
    user_id: Optional[int] = None,
    sale_id: Optional[int] = None,
    reason: Optional[str] = None,
    date_from: Optional[DateLike] = None,
    date_to: Optional[DateLike] = None,
    order: str = "desc",
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[StockMovement], int]:
    query = db.query(StockMovement)

    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if type:
        query = query.filter(StockMovement.type == movement_type(type).value)
    if user_id is not None:
        query = query.filter(StockMovement.user_id == user_id)
    if sale_id is not None:
        query = query.filter(StockMovement.sale_id == sale_id)
    if reason:
        query = query.filter(StockMovement.reason.ilike(f"%{reason}%"))
    if date_from is not None:
        query = query.filter(StockMovement.created_at >= _day_start(date_from))
    if date_to is not None:
        if isinstance(date_to, datetime):
            query = query.filter(StockMovement.created_at <= date_to)
        else:
            # A bare date covers the whole day
            query = query.filter(StockMovement.created_at < _day_start(date_to + timedelta(days=1)))

    # Ids follow commit order, which created_at does not guarantee
    query = query.order_by(StockMovement.id.asc() if order == "asc" else StockMovement.id.desc())

    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, total


def list_by_product(db: Session, product_id: int, **filters) -> Tuple[List[StockMovement], int]:
    stock_record.get_stock_record(db, product_id)
    return list_movements(db, product_id=product_id, **filters)


def _signed_qty():
    return case(
        (StockMovement.type == MovementType.OUT.value, -StockMovement.qty),
        else_=StockMovement.qty,
    )


def signed_total(db: Session, product_id: int, up_to_id: Optional[int] = None) -> int:
    """Replay a product's entries (optionally up to and including ``up_to_id``)."""
    stmt = select(func.coalesce(func.sum(_signed_qty()), 0)).where(
        StockMovement.product_id == product_id
    )
    if up_to_id is not None:
        stmt = stmt.where(StockMovement.id <= up_to_id)
    return int(db.execute(stmt).scalar_one())


def find_drift(db: Session) -> List[dict]:
    """Stock records whose cached quantity differs from the ledger replay."""
    totals = (
        select(
            StockMovement.product_id.label("product_id"),
            func.sum(_signed_qty()).label("ledger_total"),
        )
        .group_by(StockMovement.product_id)
        .subquery()
    )
    ledger_total = func.coalesce(totals.c.ledger_total, 0)
    rows = db.execute(
        select(StockRecord.product_id, StockRecord.quantity, ledger_total)
        .outerjoin(totals, totals.c.product_id == StockRecord.product_id)
        .where(StockRecord.quantity != ledger_total)
        .order_by(StockRecord.product_id)
    ).all()

    drift = [
        {"product_id": product_id, "cached_quantity": cached, "ledger_quantity": int(total)}
        for product_id, cached, total in rows
    ]
    if drift:
        logger.error("Stock drift detected for %d product(s): %s", len(drift), drift)
    return drift
