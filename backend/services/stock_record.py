# backend/services/stock_record.py
"""Per-product stock record: the cached quantity of record.

Reads and metadata updates are public. Quantity changes go exclusively
through :func:`apply_delta`, which the movement ledger calls inside the
transaction that inserts the matching ledger entry.
"""
import logging
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from config import settings
from database import utcnow
from models.inventory import StockRecord
from models.product import Product
from models.stock import StockMovement
from services import errors
from utils.cache import alert_cache

logger = logging.getLogger(__name__)

LOCATION_MIN_LENGTH = 2
LOCATION_MAX_LENGTH = 100

SORT_COLUMNS = {
    "product_name": Product.name,
    "quantity": StockRecord.quantity,
    "min_stock": StockRecord.min_stock,
    "location": StockRecord.location,
    "last_update": StockRecord.last_update,
}


def _load(db: Session, product_id: int, *, refresh: bool = False) -> Optional[StockRecord]:
    stmt = select(StockRecord).where(StockRecord.product_id == product_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def get_stock_record(db: Session, product_id: int) -> StockRecord:
    record = _load(db, product_id)
    if record is None:
        raise errors.StockRecordNotFoundError(
            "Stock record not found for this product", product_id=product_id
        )
    return record


def validate_thresholds(min_stock: int, max_stock: Optional[int]) -> None:
    if min_stock is None or min_stock < 0:
        raise errors.InvalidThresholdsError(
            "Minimum stock cannot be negative", min_stock=min_stock
        )
    if max_stock is not None and max_stock <= min_stock:
        raise errors.InvalidThresholdsError(
            "Maximum stock must be greater than minimum stock",
            min_stock=min_stock, max_stock=max_stock,
        )


def normalize_location(location: Optional[str]) -> Optional[str]:
    if location is None:
        return None
    location = location.strip()
    if not location:
        return None
    if not LOCATION_MIN_LENGTH <= len(location) <= LOCATION_MAX_LENGTH:
        raise errors.ValidationError(
            f"Location must have between {LOCATION_MIN_LENGTH} and {LOCATION_MAX_LENGTH} characters",
            location=location,
        )
    return location


def create_stock_record(
    db: Session,
    *,
    product_id: int,
    min_stock: Optional[int] = None,
    max_stock: Optional[int] = None,
    location: Optional[str] = None,
) -> StockRecord:
    """Add an empty stock record for an active product (flushed, not committed).

    Initial quantity is never written here: it is booked as an IN movement by
    ``ledger.open_stock_record`` so the record starts consistent with the ledger.
    """
    product = db.get(Product, product_id)
    if product is None:
        raise errors.ProductNotFoundError("Product not found", product_id=product_id)
    if not product.is_active:
        raise errors.InactiveProductError(
            "Inactive product cannot have stock tracking", product_id=product_id
        )
    if _load(db, product_id) is not None:
        raise errors.StockRecordExistsError(
            "Stock record already exists for this product", product_id=product_id
        )

    if min_stock is None:
        min_stock = settings.DEFAULT_MIN_STOCK
    validate_thresholds(min_stock, max_stock)

    record = StockRecord(
        product_id=product_id,
        quantity=0,
        min_stock=min_stock,
        max_stock=max_stock,
        location=normalize_location(location),
    )
    db.add(record)
    db.flush()
    return record


def apply_delta(
    db: Session, product_id: int, delta: int, *, expected_quantity: Optional[int] = None
) -> StockRecord:
    """Change the cached quantity by ``delta``. Only the movement ledger calls this.

    The change is a single conditional UPDATE, so the database row lock (write
    lock on SQLite) serializes concurrent writers of one product. A writer that
    would drive the quantity below zero matches no row and gets
    InsufficientStockError; the quantity is never clamped.

    ``expected_quantity`` turns the update into a compare-and-set: if the
    quantity is no longer the expected one, ConcurrencyConflictError is raised.
    """
    conditions = [
        StockRecord.product_id == product_id,
        StockRecord.quantity + delta >= 0,
    ]
    if expected_quantity is not None:
        conditions.append(StockRecord.quantity == expected_quantity)

    stmt = (
        update(StockRecord)
        .where(*conditions)
        .values(
            quantity=StockRecord.quantity + delta,
            version=StockRecord.version + 1,
            last_update=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    record = _load(db, product_id, refresh=True)

    if result.rowcount == 1:
        return record

    if record is None:
        raise errors.StockRecordNotFoundError(
            "Stock record not found for this product", product_id=product_id
        )
    if expected_quantity is not None and record.quantity != expected_quantity:
        raise errors.ConcurrencyConflictError(
            "Stock quantity changed since it was read, please review and retry",
            product_id=product_id,
            expected_quantity=expected_quantity,
            current_quantity=record.quantity,
        )
    raise errors.InsufficientStockError(
        product_id=product_id,
        requested=-delta,
        available=record.quantity,
    )


def set_thresholds(
    db: Session,
    product_id: int,
    min_stock: int,
    max_stock: Optional[int] = None,
    *,
    expected_version: Optional[int] = None,
) -> StockRecord:
    """Update reorder thresholds. Metadata only, the quantity is untouched."""
    record = get_stock_record(db, product_id)
    validate_thresholds(min_stock, max_stock)

    conditions = [StockRecord.id == record.id]
    if expected_version is not None:
        conditions.append(StockRecord.version == expected_version)

    result = db.execute(
        update(StockRecord)
        .where(*conditions)
        .values(
            min_stock=min_stock,
            max_stock=max_stock,
            version=StockRecord.version + 1,
            last_update=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise errors.ConcurrencyConflictError(
            "Stock record was modified by another user, reload and retry",
            product_id=product_id,
            expected_version=expected_version,
        )
    db.commit()
    alert_cache.clear()
    logger.info(
        "Thresholds updated product_id=%s min_stock=%s max_stock=%s",
        product_id, min_stock, max_stock,
    )
    return _load(db, product_id, refresh=True)


def set_location(db: Session, product_id: int, location: Optional[str]) -> StockRecord:
    record = get_stock_record(db, product_id)
    record.location = normalize_location(location)
    record.version = record.version + 1
    record.last_update = utcnow()
    db.commit()
    db.refresh(record)
    return record


def stock_status(record: StockRecord) -> str:
    if record.quantity == 0:
        return "OUT"
    if record.quantity <= record.min_stock:
        return "LOW"
    if record.max_stock is not None and record.quantity > record.max_stock:
        return "OVERSTOCK"
    return "OK"


def check_stock(db: Session, product_id: int) -> dict:
    record = _load(db, product_id)
    if record is None:
        return {"product_id": product_id, "available": False, "quantity": 0, "is_low_stock": True}
    return {
        "product_id": product_id,
        "available": record.quantity > 0,
        "quantity": record.quantity,
        "is_low_stock": record.quantity <= record.min_stock,
    }


def list_stock_records(
    db: Session,
    *,
    q: Optional[str] = None,
    category: Optional[str] = None,
    location: Optional[str] = None,
    low_stock: Optional[bool] = None,
    out_of_stock: Optional[bool] = None,
    sort_by: str = "product_name",
    order: str = "asc",
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[StockRecord], int]:
    query = db.query(StockRecord).join(Product, Product.id == StockRecord.product_id)

    if q:
        like = f"%{q}%"
        query = query.filter((Product.name.ilike(like)) | (Product.code.ilike(like)))
    if category:
        query = query.filter(Product.category.ilike(f"%{category}%"))
    if location:
        query = query.filter(StockRecord.location.ilike(f"%{location}%"))
    if low_stock:
        query = query.filter(StockRecord.quantity <= StockRecord.min_stock)
    if out_of_stock:
        query = query.filter(StockRecord.quantity == 0)

    col = SORT_COLUMNS.get(sort_by, Product.name)
    query = query.order_by(col.desc() if order == "desc" else col.asc(), StockRecord.id.asc())

    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, total


def inventory_statistics(db: Session) -> dict:
    total_products, total_units, average_stock = db.query(
        func.count(StockRecord.id),
        func.coalesce(func.sum(StockRecord.quantity), 0),
        func.coalesce(func.avg(StockRecord.quantity), 0),
    ).one()

    low_stock_count = db.query(StockRecord).filter(
        StockRecord.quantity > 0, StockRecord.quantity <= StockRecord.min_stock
    ).count()
    out_of_stock_count = db.query(StockRecord).filter(StockRecord.quantity == 0).count()

    recent_movements = (
        db.query(StockMovement).order_by(StockMovement.id.desc()).limit(10).all()
    )

    return {
        "total_products": int(total_products),
        "total_units": int(total_units),
        "low_stock_count": low_stock_count,
        "out_of_stock_count": out_of_stock_count,
        "average_stock": round(float(average_stock), 2),
        "recent_movements": recent_movements,
    }
