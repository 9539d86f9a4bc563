# backend/services/adjustments.py
"""User initiated stock corrections (inventory counts, damage, expiry, ...).

Adjustments are two-step at the API: ``preview`` computes what would change,
``adjust`` is the confirmed and atomic step that books an ADJUSTMENT entry.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from models.stock import StockMovement, MovementType
from services import errors, ledger, stock_record

logger = logging.getLogger(__name__)


class AdjustmentReason(str, enum.Enum):
    INVENTORY_COUNT = "INVENTORY_COUNT"
    DAMAGE = "DAMAGE"
    EXPIRY = "EXPIRY"
    RETURN = "RETURN"
    CORRECTION = "CORRECTION"
    OTHER = "OTHER"


@dataclass(frozen=True)
class AdjustmentPreview:
    product_id: int
    current_quantity: int
    new_quantity: int
    delta: int
    reason: str


def reason_code(value) -> AdjustmentReason:
    if isinstance(value, AdjustmentReason):
        return value
    try:
        return AdjustmentReason((value or "").upper())
    except (AttributeError, ValueError):
        allowed = ", ".join(r.value for r in AdjustmentReason)
        raise errors.InvalidReasonError(
            f"Reason code must be one of: {allowed}", reason_code=value
        ) from None


def reason_text(code, notes: Optional[str] = None) -> str:
    code = reason_code(code)
    notes = (notes or "").strip()
    text = f"{code.value}: {notes}" if notes else code.value
    return ledger.validate_reason(text, required=True)


def preview(
    db: Session,
    product_id: int,
    new_quantity: int,
    reason: AdjustmentReason,
    notes: Optional[str] = None,
) -> AdjustmentPreview:
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
        raise errors.InvalidQuantityError(
            "New quantity cannot be negative", product_id=product_id, new_quantity=new_quantity
        )
    text = reason_text(reason, notes)
    record = stock_record.get_stock_record(db, product_id)

    delta = new_quantity - record.quantity
    if delta == 0:
        raise errors.NoOpAdjustmentError(
            "New quantity equals the current quantity, nothing to adjust",
            product_id=product_id,
            current_quantity=record.quantity,
        )
    return AdjustmentPreview(
        product_id=product_id,
        current_quantity=record.quantity,
        new_quantity=new_quantity,
        delta=delta,
        reason=text,
    )


def adjust(
    db: Session,
    product_id: int,
    new_quantity: int,
    reason: AdjustmentReason,
    notes: Optional[str] = None,
    *,
    user_id: Optional[int] = None,
    expected_quantity: Optional[int] = None,
) -> StockMovement:
    """Set the product's quantity to ``new_quantity`` through an ADJUSTMENT entry.

    The delta is computed against the quantity read here and applied as a
    compare-and-set, so a sale slipping in between read and write yields
    ConcurrencyConflictError instead of a wrong final quantity. Pass
    ``expected_quantity`` (the previewed current quantity) to also detect
    changes made between preview and confirmation.
    """
    planned = preview(db, product_id, new_quantity, reason, notes)
    if expected_quantity is not None and planned.current_quantity != expected_quantity:
        raise errors.ConcurrencyConflictError(
            "Stock quantity changed since the preview, please review and retry",
            product_id=product_id,
            expected_quantity=expected_quantity,
            current_quantity=planned.current_quantity,
        )

    movement = ledger.append(
        db,
        product_id=product_id,
        type=MovementType.ADJUSTMENT,
        quantity=planned.delta,
        reason=planned.reason,
        user_id=user_id,
        expected_quantity=planned.current_quantity,
    )
    logger.info(
        "Stock adjusted product_id=%s %s -> %s (%+d) reason=%s user_id=%s",
        product_id, planned.current_quantity, new_quantity, planned.delta, planned.reason, user_id,
    )
    return movement
