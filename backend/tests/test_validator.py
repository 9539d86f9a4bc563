import pytest

from models.stock import StockMovement
from services import errors, stock_record, validator


def test_insufficient_stock_blocks_sale(db, make_product):
    product = make_product(quantity=3)

    result = validator.validate_items(db, [{"product_id": product.id, "quantity": 5}])

    assert result.is_valid is False
    assert result.invalid_items == 1
    line = result.results[0]
    assert line.is_valid is False
    assert line.available_quantity == 3
    assert line.shortfall == 2
    assert line.error == "Insufficient stock"
    assert result.summary["can_proceed"] is False
    assert result.summary["message"] == "1 item(s) cannot be fulfilled, sale blocked"


def test_sufficient_stock(db, make_product):
    first = make_product(quantity=3)
    second = make_product(quantity=10)

    result = validator.validate_items(db, [
        {"product_id": first.id, "quantity": 3},
        {"product_id": second.id, "quantity": 1},
    ])

    assert result.is_valid is True
    assert result.total_items == 2
    assert result.valid_items == 2
    assert all(r.shortfall is None for r in result.results)
    assert result.summary == {"can_proceed": True, "message": "All items have sufficient stock"}
    assert result.results[0].product_name == first.name


def test_validation_is_read_only(db, make_product):
    product = make_product(quantity=3)
    before = db.query(StockMovement).count()

    validator.validate_items(db, [{"product_id": product.id, "quantity": 2}])
    validator.validate_items(db, [{"product_id": product.id, "quantity": 20}])

    db.expire_all()
    assert db.query(StockMovement).count() == before
    assert stock_record.get_stock_record(db, product.id).quantity == 3


def test_unknown_inactive_and_untracked_products(db, make_product):
    inactive = make_product(quantity=50, is_active=False)
    untracked = make_product(track=False)

    result = validator.validate_items(db, [
        {"product_id": 9999, "quantity": 1},
        {"product_id": inactive.id, "quantity": 1},
        {"product_id": untracked.id, "quantity": 1},
    ])

    errors_by_product = {r.product_id: r.error for r in result.results}
    assert errors_by_product[9999] == "Product not found or inactive"
    assert errors_by_product[inactive.id] == "Product not found or inactive"
    assert errors_by_product[untracked.id] == "Product has no inventory tracking"
    assert result.invalid_items == 3
    assert result.summary["message"] == "3 item(s) cannot be fulfilled, sale blocked"


def test_lines_for_same_product_share_available_quantity(db, make_product):
    product = make_product(quantity=5)

    result = validator.validate_items(db, [
        {"product_id": product.id, "quantity": 3},
        {"product_id": product.id, "quantity": 3},
    ])

    assert [r.is_valid for r in result.results] == [True, False]
    assert result.results[1].available_quantity == 2
    assert result.results[1].shortfall == 1
    assert result.is_valid is False


def test_accepts_objects_with_attributes(db, make_product):
    class Line:
        def __init__(self, product_id, quantity):
            self.product_id = product_id
            self.quantity = quantity

    product = make_product(quantity=2)

    result = validator.validate_items(db, [Line(product.id, 2)])

    assert result.is_valid is True


@pytest.mark.parametrize("quantity", [0, -5, 2.5, "3", True])
def test_non_positive_or_non_integer_quantity_is_rejected(db, make_product, quantity):
    product = make_product(quantity=5)

    with pytest.raises(errors.InvalidQuantityError):
        validator.validate_items(db, [{"product_id": product.id, "quantity": quantity}])


def test_negative_line_cannot_free_stock_for_later_lines(db, make_product):
    product = make_product(quantity=5)

    with pytest.raises(errors.InvalidQuantityError):
        validator.validate_items(db, [
            {"product_id": product.id, "quantity": -5},
            {"product_id": product.id, "quantity": 8},
        ])
