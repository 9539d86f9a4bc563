# backend/services/validator.py
"""Advisory stock check for the sales checkout.

Read-only: nothing is reserved or written. The authoritative check happens
again when the sale is confirmed and each OUT movement is applied.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.inventory import StockRecord
from models.product import Product
from services import errors

NOT_FOUND_MESSAGE = "Product not found or inactive"
NO_TRACKING_MESSAGE = "Product has no inventory tracking"
INSUFFICIENT_MESSAGE = "Insufficient stock"


@dataclass
class ItemValidation:
    product_id: int
    requested_quantity: int
    available_quantity: int
    is_valid: bool
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    error: Optional[str] = None
    shortfall: Optional[int] = None


@dataclass
class StockValidationResult:
    is_valid: bool
    total_items: int
    valid_items: int
    invalid_items: int
    results: List[ItemValidation] = field(default_factory=list)
    can_proceed: bool = False
    message: str = ""

    @property
    def summary(self) -> dict:
        return {"can_proceed": self.can_proceed, "message": self.message}


def validate_items(db: Session, items: Iterable) -> StockValidationResult:
    """Check each ``(product_id, quantity)`` demand against the current stock.

    ``items`` holds objects or dicts with ``product_id`` and ``quantity``.
    Lines for the same product draw on the same available quantity in order.
    A quantity that is not a positive integer raises InvalidQuantityError.
    """
    demands = [_as_pair(item) for item in items]
    product_ids = {product_id for product_id, _ in demands}

    rows = db.execute(
        select(Product, StockRecord)
        .outerjoin(StockRecord, StockRecord.product_id == Product.id)
        .where(Product.id.in_(product_ids), Product.is_active.is_(True))
    ).all() if product_ids else []
    found: Dict[int, tuple] = {product.id: (product, record) for product, record in rows}

    # Quantity still unclaimed by earlier lines, per product
    remaining: Dict[int, int] = {}
    results = []
    for product_id, requested in demands:
        product, record = found.get(product_id, (None, None))
        if product is None:
            results.append(ItemValidation(
                product_id=product_id, requested_quantity=requested,
                available_quantity=0, is_valid=False, error=NOT_FOUND_MESSAGE,
            ))
            continue
        if record is None:
            results.append(ItemValidation(
                product_id=product_id, product_name=product.name, product_code=product.code,
                requested_quantity=requested, available_quantity=0, is_valid=False,
                error=NO_TRACKING_MESSAGE,
            ))
            continue

        available = remaining.get(product_id, record.quantity)
        is_valid = available >= requested
        results.append(ItemValidation(
            product_id=product_id, product_name=product.name, product_code=product.code,
            requested_quantity=requested, available_quantity=available, is_valid=is_valid,
            error=None if is_valid else INSUFFICIENT_MESSAGE,
            shortfall=None if is_valid else requested - available,
        ))
        remaining[product_id] = max(available - requested, 0)

    invalid = sum(1 for r in results if not r.is_valid)
    all_valid = invalid == 0
    return StockValidationResult(
        is_valid=all_valid,
        total_items=len(results),
        valid_items=len(results) - invalid,
        invalid_items=invalid,
        results=results,
        can_proceed=all_valid,
        message=(
            "All items have sufficient stock" if all_valid
            else f"{invalid} item(s) cannot be fulfilled, sale blocked"
        ),
    )


def _as_pair(item):
    if isinstance(item, dict):
        product_id, quantity = item["product_id"], item["quantity"]
    else:
        product_id, quantity = item.product_id, item.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise errors.InvalidQuantityError(
            "Quantity must be greater than zero", product_id=product_id, quantity=quantity
        )
    return int(product_id), quantity
