import pytest

from models.stock import StockMovement
from services import adjustments, errors, ledger, stock_record
from services.adjustments import AdjustmentReason


def test_inventory_count_books_positive_delta(db, make_product, users):
    product = make_product(quantity=42)

    entry = adjustments.adjust(db, product.id, 50, AdjustmentReason.INVENTORY_COUNT, user_id=users["WAREHOUSE"].id)

    assert entry.type == "ADJUSTMENT"
    assert entry.qty == 8
    assert entry.reason == "INVENTORY_COUNT"
    assert entry.user_id == users["WAREHOUSE"].id
    db.expire_all()
    assert stock_record.get_stock_record(db, product.id).quantity == 50
    adjustment_entries = db.query(StockMovement).filter(
        StockMovement.product_id == product.id, StockMovement.type == "ADJUSTMENT"
    ).all()
    assert len(adjustment_entries) == 1


def test_damage_books_negative_delta_with_notes(db, make_product):
    product = make_product(quantity=20)

    entry = adjustments.adjust(db, product.id, 17, "damage", "Forklift accident")

    assert entry.qty == -3
    assert entry.reason == "DAMAGE: Forklift accident"
    assert ledger.signed_total(db, product.id) == 17


def test_adjust_to_zero(db, make_product):
    product = make_product(quantity=6)

    adjustments.adjust(db, product.id, 0, AdjustmentReason.EXPIRY)

    db.expire_all()
    assert stock_record.get_stock_record(db, product.id).quantity == 0


def test_preview_does_not_touch_stock(db, make_product):
    product = make_product(quantity=42)

    planned = adjustments.preview(db, product.id, 40, AdjustmentReason.CORRECTION, "recount")

    assert planned.current_quantity == 42
    assert planned.new_quantity == 40
    assert planned.delta == -2
    assert planned.reason == "CORRECTION: recount"
    assert db.query(StockMovement).filter(StockMovement.product_id == product.id).count() == 1


def test_no_op_adjustment_is_rejected(db, make_product):
    product = make_product(quantity=42)

    with pytest.raises(errors.NoOpAdjustmentError):
        adjustments.preview(db, product.id, 42, AdjustmentReason.INVENTORY_COUNT)
    with pytest.raises(errors.NoOpAdjustmentError):
        adjustments.adjust(db, product.id, 42, AdjustmentReason.INVENTORY_COUNT)
    assert db.query(StockMovement).filter(StockMovement.type == "ADJUSTMENT").count() == 0


def test_negative_target_is_rejected(db, make_product):
    product = make_product(quantity=5)

    with pytest.raises(errors.InvalidQuantityError):
        adjustments.adjust(db, product.id, -1, AdjustmentReason.CORRECTION)


@pytest.mark.parametrize("code", ["MISPLACED", 7, None])
def test_unknown_reason_code(db, make_product, code):
    product = make_product(quantity=5)

    with pytest.raises(errors.InvalidReasonError):
        adjustments.adjust(db, product.id, 3, code)
    with pytest.raises(errors.InvalidReasonError):
        adjustments.preview(db, product.id, 3, code)


def test_adjusting_untracked_product(db, make_product):
    product = make_product(track=False)

    with pytest.raises(errors.StockRecordNotFoundError):
        adjustments.adjust(db, product.id, 3, AdjustmentReason.CORRECTION)


def test_stale_preview_is_a_conflict(db, make_product):
    product = make_product(quantity=42)
    planned = adjustments.preview(db, product.id, 50, AdjustmentReason.INVENTORY_COUNT)

    # A sale lands between preview and confirmation
    ledger.append(db, product_id=product.id, type="OUT", quantity=2)

    with pytest.raises(errors.ConcurrencyConflictError):
        adjustments.adjust(db, product.id, 50, AdjustmentReason.INVENTORY_COUNT,
                           expected_quantity=planned.current_quantity)
    db.expire_all()
    assert stock_record.get_stock_record(db, product.id).quantity == 40


def test_reason_text():
    assert adjustments.reason_text("return") == "RETURN"
    assert adjustments.reason_text(AdjustmentReason.OTHER, "  found behind rack ") == "OTHER: found behind rack"
    with pytest.raises(errors.InvalidReasonError):
        adjustments.reason_text(AdjustmentReason.OTHER, "x" * 500)
