from datetime import datetime, timedelta, timezone

import pytest

from brimasouk.errors import ConflictError, ValidationError
from brimasouk.orders.aggregate import OrderAggregate, OrderLine, shipping_cost_for

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
ADDRESS = {"full_name": "Amira", "address": "1 Rue de Tunis", "city": "Tunis", "postal_code": "1000"}


def order(*lines: tuple[float, int], payment_method="card") -> OrderAggregate:
    items = [OrderLine(product_id=f"p-{i}", quantity=q, price=p) for i, (p, q) in enumerate(lines)]
    return OrderAggregate.create("o-1", "u-1", items, ADDRESS, payment_method, NOW)


def assert_total_invariant(agg: OrderAggregate) -> None:
    assert agg.total_amount == round(agg.subtotal + agg.shipping_cost - agg.discount, 2)


def test_shipping_threshold():
    assert shipping_cost_for(80) == 7.99
    assert shipping_cost_for(100) == 7.99
    assert shipping_cost_for(120) == 0


def test_totals_for_small_order():
    agg = order((40, 2))
    assert agg.items[0].total_price == 80
    assert agg.subtotal == 80
    assert agg.shipping_cost == 7.99
    assert agg.total_amount == 87.99
    assert_total_invariant(agg)


def test_totals_with_discount_and_free_shipping():
    agg = order((60, 1), (30, 2))
    agg.apply_discount("SUMMER10", 12)
    assert agg.subtotal == 120
    assert agg.shipping_cost == 0
    assert agg.discount_code == "SUMMER10"
    assert agg.total_amount == 108
    assert_total_invariant(agg)


def test_estimated_delivery_is_ten_days_out():
    assert order((10, 1)).estimated_delivery == NOW + timedelta(days=10)


def test_create_requires_items_and_address():
    with pytest.raises(ValidationError):
        OrderAggregate.create("o-1", "u-1", [], ADDRESS, "card", NOW)
    with pytest.raises(ValidationError):
        OrderAggregate.create(
            "o-1", "u-1", [OrderLine(product_id="p", quantity=1, price=1)], {}, "card", NOW
        )


def test_create_rejects_unknown_payment_method():
    with pytest.raises(ValidationError):
        order((10, 1), payment_method="bitcoin")


@pytest.mark.parametrize("status", ["pending", "processing"])
def test_cancel_from_open_states(status):
    agg = order((10, 1))
    agg.order_status = status
    agg.cancel("Changed my mind")
    assert agg.order_status == "cancelled"
    assert agg.payment_status == "cancelled"
    assert "Cancellation reason: Changed my mind" in agg.order_notes
    assert_total_invariant(agg)


@pytest.mark.parametrize("status", ["shipped", "delivered", "cancelled"])
def test_cancel_from_closed_states_conflicts(status):
    agg = order((10, 1))
    agg.order_status = status
    with pytest.raises(ConflictError):
        agg.cancel()


def test_cancel_keeps_paid_payment_status():
    agg = order((10, 1))
    agg.mark_paid("tx-1")
    agg.cancel()
    assert agg.payment_status == "paid"


def test_mark_paid_advances_pending_only():
    agg = order((10, 1))
    agg.mark_paid("tx-1")
    assert agg.payment_status == "paid"
    assert agg.transaction_id == "tx-1"
    assert agg.order_status == "processing"

    shipped = order((10, 1))
    shipped.order_status = "shipped"
    shipped.mark_paid("tx-2")
    assert shipped.order_status == "shipped"


def test_update_status_appends_notes():
    agg = order((10, 1))
    agg.update_status("shipped", "Sent with Aramex")
    agg.update_status("delivered")
    assert agg.order_status == "delivered"
    assert agg.order_notes == "Status update: Sent with Aramex"

    with pytest.raises(ValidationError):
        agg.update_status("lost")
