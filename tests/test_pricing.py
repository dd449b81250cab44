from datetime import datetime, timedelta, timezone

import pytest

from brimasouk.catalog import pricing
from brimasouk.catalog.aggregate import ProductAggregate
from brimasouk.errors import ConflictError, ValidationError

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def new_product(price=100.0, stock=5) -> ProductAggregate:
    return ProductAggregate.create("p-1", "artisan-1", "Rug", "Kilim rug", "Home", price, stock)


def test_compute_approved_price_rounds_to_cents():
    assert pricing.compute_approved_price(100, 20) == 120.0
    assert pricing.compute_approved_price(19.99, 30) == 25.99
    assert pricing.compute_approved_price(10, 0) == 10.0


def test_create_starts_unapproved_at_original_price():
    agg = new_product()
    assert agg.is_approved is False
    assert agg.price == 100.0
    assert agg.promotional_status == "new_collection"


@pytest.mark.parametrize("field", ["name", "description", "category"])
def test_create_requires_fields(field):
    kwargs = {"name": "Rug", "description": "Kilim", "category": "Home"}
    kwargs[field] = ""
    with pytest.raises(ValidationError):
        ProductAggregate.create(
            "p-1", "a-1", kwargs["name"], kwargs["description"], kwargs["category"], 10
        )


def test_create_rejects_unknown_category():
    with pytest.raises(ValidationError):
        ProductAggregate.create("p-1", "a-1", "Rug", "Kilim", "Cars", 10)


def test_approve_applies_markup():
    agg = new_product()
    agg.approve("admin-1", NOW, markup_percentage=20)
    assert agg.is_approved
    assert agg.price == 120.0
    assert agg.markup_percentage == 20
    assert agg.promotional_status == "new_collection"
    assert agg.approval_date == NOW


def test_approve_keeps_default_markup():
    agg = new_product(price=50)
    agg.approve("admin-1", NOW)
    assert agg.price == 65.0


def test_approve_twice_conflicts():
    agg = new_product()
    agg.approve("admin-1", NOW)
    with pytest.raises(ConflictError):
        agg.approve("admin-1", NOW)


def test_approve_rejects_markup_out_of_range():
    with pytest.raises(ValidationError):
        new_product().approve("admin-1", NOW, markup_percentage=150)


def test_reject_requires_reason():
    agg = new_product()
    with pytest.raises(ValidationError):
        agg.reject("  ")
    agg.reject("Blurry photos")
    assert agg.rejection_reason == "Blurry photos"
    assert not agg.is_approved


def test_artisan_price_edit_on_approved_product_recomputes_then_resets_approval():
    agg = new_product()
    agg.approve("admin-1", NOW, markup_percentage=20)

    changed = agg.apply_update({"price": 200}, by_admin=False)

    assert changed == ["price"]
    assert agg.original_price == 200
    assert agg.price == 240.0
    assert agg.is_approved is False


def test_admin_edit_keeps_approval():
    agg = new_product()
    agg.approve("admin-1", NOW)
    agg.apply_update({"name": "Big rug", "stock": 3}, by_admin=True)
    assert agg.is_approved
    assert agg.name == "Big rug"
    assert agg.stock == 3


def test_price_edit_before_approval_tracks_original():
    agg = new_product()
    agg.apply_update({"price": 80}, by_admin=False)
    assert agg.price == 80


def test_flash_sale_discount_applies_inside_window():
    agg = new_product()
    agg.approve("admin-1", NOW, markup_percentage=0)
    agg.setup_flash_sale(25, NOW - timedelta(days=1), NOW + timedelta(days=1))

    assert agg.effective_promotion(NOW) == ("flash_sale", 25)
    assert agg.discounted_price(NOW) == 75.0
    assert agg.is_promotion_active(NOW)


def test_expired_flash_sale_reads_as_no_promotion():
    agg = new_product()
    agg.approve("admin-1", NOW, markup_percentage=0)
    agg.setup_flash_sale(25, NOW - timedelta(days=3), NOW - timedelta(days=1))

    assert agg.effective_promotion(NOW) == ("none", 0.0)
    assert agg.discounted_price(NOW) == 100.0
    assert not agg.is_promotion_active(NOW)


def test_flash_sale_must_end_after_start():
    with pytest.raises(ValidationError):
        new_product().setup_flash_sale(10, NOW, NOW - timedelta(hours=1))


def test_visibility_of_unapproved_product():
    from brimasouk.auth import CurrentUser

    agg = new_product()
    assert not agg.is_visible_to(None)
    assert not agg.is_visible_to(CurrentUser(id="someone"))
    assert agg.is_visible_to(CurrentUser(id="artisan-1", role="artisan"))
    assert agg.is_visible_to(CurrentUser(id="x", role="admin"))
