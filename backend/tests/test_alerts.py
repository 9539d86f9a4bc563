from datetime import timedelta

import pytest

from database import utcnow
from models.sale import Sale, SaleItem, SaleStatus
from services import alerts, ledger
from services.alerts import UrgencyLevel


@pytest.mark.parametrize(
    "current, minimum, days, expected",
    [
        (0, 5, None, UrgencyLevel.CRITICAL),
        (0, 5, 10.0, UrgencyLevel.CRITICAL),
        (40, 5, 2.5, UrgencyLevel.CRITICAL),
        (4, 5, 3.0, UrgencyLevel.CRITICAL),
        (4, 5, 5.0, UrgencyLevel.HIGH),
        (5, 5, 7.0, UrgencyLevel.HIGH),
        (4, 5, 7.1, UrgencyLevel.MEDIUM),
        (4, 5, None, UrgencyLevel.MEDIUM),
        (12, 10, None, UrgencyLevel.LOW),
        (12, 10, 30.0, UrgencyLevel.LOW),
        (13, 10, None, None),
        (100, 10, 50.0, None),
    ],
)
def test_classify(current, minimum, days, expected):
    assert alerts.classify(current, minimum, days) == expected


def test_days_until_out_of_stock():
    assert alerts.days_until_out_of_stock(10, 0) is None
    assert alerts.days_until_out_of_stock(10, 2.0) == 5.0


def test_suggested_reorder_quantity():
    assert alerts.suggested_reorder_quantity(10, 80) == 80
    assert alerts.suggested_reorder_quantity(10, None) == 20


def test_below_minimum_without_sales_is_medium(db, make_product):
    product = make_product(quantity=4, min_stock=5)

    result = alerts.compute_alerts(db, alerts.LOW_STOCK)

    assert len(result) == 1
    alert = result[0]
    assert alert.product_id == product.id
    assert alert.urgency_level == UrgencyLevel.MEDIUM
    assert alert.average_daily_sales == 0
    assert alert.days_until_out_of_stock is None
    assert alert.is_out_of_stock is False
    assert alert.suggested_reorder_quantity is None


def test_above_minimum_without_sales_is_not_alerted(db, make_product):
    make_product(quantity=10, min_stock=5)

    assert alerts.compute_alerts(db, alerts.LOW_STOCK) == []


def test_out_of_stock_is_critical_with_reorder_suggestion(db, make_product):
    with_max = make_product(quantity=0, min_stock=5, max_stock=40, name="Anchor bolts")
    without_max = make_product(quantity=0, min_stock=5, name="Brackets")
    make_product(quantity=3, min_stock=5)

    result = alerts.compute_alerts(db, alerts.OUT_OF_STOCK, sales_totals={with_max.id: (300, 20)})

    assert [a.product_id for a in result] == [with_max.id, without_max.id]
    assert all(a.urgency_level == UrgencyLevel.CRITICAL for a in result)
    assert all(a.is_out_of_stock for a in result)
    assert result[0].suggested_reorder_quantity == 40
    assert result[1].suggested_reorder_quantity == 10


def test_low_stock_scope_excludes_out_of_stock(db, make_product):
    make_product(quantity=0, min_stock=5)

    assert alerts.compute_alerts(db, alerts.LOW_STOCK) == []


def test_velocity_drives_urgency_and_ordering(db, make_product):
    high = make_product(quantity=8, min_stock=10, name="Cement")
    critical = make_product(quantity=20, min_stock=5, name="Sand")
    medium = make_product(quantity=9, min_stock=10, name="Gravel")
    low = make_product(quantity=11, min_stock=10, name="Lime")

    result = alerts.compute_alerts(db, alerts.LOW_STOCK, sales_totals={
        high.id: (45, 12),       # 1.5/day -> 5.3 days
        critical.id: (300, 30),  # 10/day -> 2 days
    })

    assert [a.product_id for a in result] == [critical.id, high.id, medium.id, low.id]
    by_id = {a.product_id: a for a in result}
    assert by_id[critical.id].urgency_level == UrgencyLevel.CRITICAL
    assert by_id[critical.id].days_until_out_of_stock == 2.0
    assert by_id[high.id].urgency_level == UrgencyLevel.HIGH
    assert by_id[high.id].days_until_out_of_stock == 5.3
    assert by_id[high.id].average_daily_sales == 1.5
    assert by_id[high.id].sales_last_30_days == 45
    assert by_id[high.id].sales_days == 12
    assert by_id[medium.id].urgency_level == UrgencyLevel.MEDIUM
    assert by_id[low.id].urgency_level == UrgencyLevel.LOW


def test_unusable_velocity_counts_as_no_sales(db, make_product):
    product = make_product(quantity=4, min_stock=5)

    result = alerts.compute_alerts(db, alerts.LOW_STOCK, sales_totals={product.id: ("n/a", None)})

    assert result[0].urgency_level == UrgencyLevel.MEDIUM
    assert result[0].days_until_out_of_stock is None


def test_inactive_products_are_not_alerted(db, make_product):
    make_product(quantity=0, min_stock=5, is_active=False)
    make_product(quantity=1, min_stock=5, is_active=False)

    assert alerts.compute_alerts(db, alerts.OUT_OF_STOCK) == []
    assert alerts.compute_alerts(db, alerts.LOW_STOCK) == []


def test_sales_velocity_counts_completed_sales_in_window(db, make_product):
    product = make_product(quantity=8, min_stock=10)
    now = utcnow()

    def add_sale(status, days_ago, quantity):
        db.add(Sale(
            status=status.value,
            sale_date=now - timedelta(days=days_ago),
            items=[SaleItem(product_id=product.id, quantity=quantity)],
        ))

    add_sale(SaleStatus.COMPLETED, 1, 20)
    add_sale(SaleStatus.COMPLETED, 1, 5)
    add_sale(SaleStatus.COMPLETED, 10, 20)
    add_sale(SaleStatus.CANCELLED, 2, 100)
    add_sale(SaleStatus.COMPLETED, 45, 100)
    db.commit()

    result = alerts.compute_alerts(db, alerts.LOW_STOCK, now=now)

    alert = result[0]
    assert alert.sales_last_30_days == 45
    assert alert.sales_days == 2
    assert alert.average_daily_sales == 1.5
    assert alert.urgency_level == UrgencyLevel.HIGH


def test_unknown_scope():
    with pytest.raises(ValueError):
        alerts.compute_alerts(None, "overstock")


def test_alert_summary(db, make_product):
    make_product(quantity=0, min_stock=5)
    make_product(quantity=4, min_stock=5)
    make_product(quantity=11, min_stock=10)
    make_product(quantity=100, min_stock=10)

    assert alerts.alert_summary(db) == {
        "critical": 1,
        "high": 0,
        "medium": 1,
        "low": 1,
        "out_of_stock": 1,
        "total": 3,
    }


def test_cached_alerts_are_invalidated_by_movements(db, make_product):
    product = make_product(quantity=20, min_stock=5)

    assert alerts.compute_alerts(db, alerts.LOW_STOCK, use_cache=True) == []

    ledger.append(db, product_id=product.id, type="OUT", quantity=17)

    result = alerts.compute_alerts(db, alerts.LOW_STOCK, use_cache=True)
    assert [a.product_id for a in result] == [product.id]
    assert result[0].current_stock == 3
