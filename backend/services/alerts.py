# backend/services/alerts.py
"""Low-stock and out-of-stock alerts with reorder urgency.

Alerts are derived on demand from the stock records and the trailing-window
sales velocity; nothing is persisted. Safe to poll.
"""
import enum
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from config import settings
from database import utcnow
from models.inventory import StockRecord
from models.product import Product
from services import sales
from utils.cache import alert_cache

logger = logging.getLogger(__name__)

LOW_STOCK = "low-stock"
OUT_OF_STOCK = "out-of-stock"
SCOPES = (LOW_STOCK, OUT_OF_STOCK)

CRITICAL_DAYS = 3
HIGH_DAYS = 7


class UrgencyLevel(str, enum.Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


URGENCY_RANK = {
    UrgencyLevel.CRITICAL: 0,
    UrgencyLevel.HIGH: 1,
    UrgencyLevel.MEDIUM: 2,
    UrgencyLevel.LOW: 3,
}


@dataclass
class StockAlert:
    product_id: int
    product_name: str
    product_code: str
    category_name: Optional[str]
    current_stock: int
    min_stock: int
    max_stock: Optional[int]
    sales_last_30_days: int
    sales_days: int
    average_daily_sales: float
    # None when there is no sales velocity ("not applicable")
    days_until_out_of_stock: Optional[float]
    urgency_level: UrgencyLevel
    is_out_of_stock: bool
    suggested_reorder_quantity: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StockAlert":
        return cls(**{**data, "urgency_level": UrgencyLevel(data["urgency_level"])})


def days_until_out_of_stock(current_stock: int, average_daily_sales: float) -> Optional[float]:
    if not average_daily_sales or average_daily_sales <= 0:
        return None
    return current_stock / average_daily_sales


def classify(
    current_stock: int,
    min_stock: int,
    days: Optional[float],
    *,
    buffer_ratio: float = 1.2,
) -> Optional[UrgencyLevel]:
    """Urgency of a product, or None when it needs no alert. First match wins."""
    if current_stock == 0:
        return UrgencyLevel.CRITICAL
    if days is not None and days <= CRITICAL_DAYS:
        return UrgencyLevel.CRITICAL

    if current_stock <= min_stock:
        if days is not None and days <= HIGH_DAYS:
            return UrgencyLevel.HIGH
        return UrgencyLevel.MEDIUM

    if current_stock <= min_stock * buffer_ratio:
        return UrgencyLevel.LOW
    return None


def suggested_reorder_quantity(min_stock: int, max_stock: Optional[int]) -> int:
    return max_stock if max_stock is not None else 2 * min_stock


def _velocity(totals: Dict[int, Tuple[int, int]], product_id: int) -> Tuple[int, int]:
    try:
        units, days = totals.get(product_id) or (0, 0)
        return int(units or 0), int(days or 0)
    except (TypeError, ValueError):
        logger.warning("Unusable sales velocity for product_id=%s: %r", product_id, totals.get(product_id))
        return 0, 0


def _build_alerts(
    db: Session,
    scope: str,
    window_days: int,
    buffer_ratio: float,
    now: datetime,
    sales_totals: Optional[Dict[int, Tuple[int, int]]],
) -> List[StockAlert]:
    if sales_totals is None:
        sales_totals = sales.sales_velocity(db, since=now - timedelta(days=window_days))

    rows = (
        db.query(StockRecord, Product)
        .join(Product, Product.id == StockRecord.product_id)
        .filter(Product.is_active.is_(True))
        .all()
    )

    alerts = []
    for record, product in rows:
        if scope == OUT_OF_STOCK and record.quantity != 0:
            continue
        if scope == LOW_STOCK and record.quantity == 0:
            continue

        units, sale_days = _velocity(sales_totals, product.id)
        average = units / window_days
        days = days_until_out_of_stock(record.quantity, average)
        urgency = classify(record.quantity, record.min_stock, days, buffer_ratio=buffer_ratio)
        if urgency is None:
            continue

        alerts.append(StockAlert(
            product_id=product.id,
            product_name=product.name,
            product_code=product.code,
            category_name=product.category,
            current_stock=record.quantity,
            min_stock=record.min_stock,
            max_stock=record.max_stock,
            sales_last_30_days=units,
            sales_days=sale_days,
            average_daily_sales=round(average, 2),
            days_until_out_of_stock=round(days, 1) if days is not None else None,
            urgency_level=urgency,
            is_out_of_stock=record.quantity == 0,
            suggested_reorder_quantity=(
                suggested_reorder_quantity(record.min_stock, record.max_stock)
                if scope == OUT_OF_STOCK else None
            ),
        ))

    alerts.sort(key=lambda a: (
        URGENCY_RANK[a.urgency_level],
        a.days_until_out_of_stock is None,
        a.days_until_out_of_stock or 0,
        a.product_name,
    ))
    return alerts


def compute_alerts(
    db: Session,
    scope: str = LOW_STOCK,
    *,
    window_days: Optional[int] = None,
    buffer_ratio: Optional[float] = None,
    now: Optional[datetime] = None,
    sales_totals: Optional[Dict[int, Tuple[int, int]]] = None,
    use_cache: bool = False,
) -> List[StockAlert]:
    """Alerts for ``scope``: 'low-stock' (classified, in stock) or 'out-of-stock'.

    ``sales_totals`` maps product id to (units sold, days with sales) in the
    window; it is read from completed sales when omitted.
    """
    if scope not in SCOPES:
        raise ValueError(f"Unknown alert scope: {scope}")
    window_days = window_days or settings.SALES_WINDOW_DAYS
    buffer_ratio = buffer_ratio if buffer_ratio is not None else settings.LOW_STOCK_BUFFER_RATIO
    now = now or utcnow()

    if not use_cache or sales_totals is not None:
        return _build_alerts(db, scope, window_days, buffer_ratio, now, sales_totals)
    return alert_cache.get_or_compute(
        f"{scope}:{window_days}:{buffer_ratio}",
        lambda: _build_alerts(db, scope, window_days, buffer_ratio, now, None),
        encode=lambda items: [asdict(a) for a in items],
        decode=lambda rows: [StockAlert.from_dict(row) for row in rows],
    )


def alert_summary(db: Session, *, use_cache: bool = False) -> dict:
    """Badge counts per urgency level across both scopes."""
    low = compute_alerts(db, LOW_STOCK, use_cache=use_cache)
    out = compute_alerts(db, OUT_OF_STOCK, use_cache=use_cache)

    counts = {level: 0 for level in UrgencyLevel}
    for alert in low + out:
        counts[alert.urgency_level] += 1
    return {
        "critical": counts[UrgencyLevel.CRITICAL],
        "high": counts[UrgencyLevel.HIGH],
        "medium": counts[UrgencyLevel.MEDIUM],
        "low": counts[UrgencyLevel.LOW],
        "out_of_stock": len(out),
        "total": len(low) + len(out),
    }
