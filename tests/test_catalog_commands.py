from datetime import datetime, timedelta, timezone

import pytest

from brimasouk.catalog import commands, queries
from brimasouk.errors import AuthorizationError, ConflictError, NotFoundError
from brimasouk import event_store


async def test_only_approved_artisans_create_products(session, make_artisan, customer):
    pending = await make_artisan(approved=False)
    with pytest.raises(AuthorizationError):
        await commands.create_product(session, pending, "Vase", "Clay", "Home", 10)
    with pytest.raises(AuthorizationError):
        await commands.create_product(session, customer, "Vase", "Clay", "Home", 10)


async def test_approval_sets_price_and_records_history(session, admin, make_product):
    product = await make_product(price=100, markup=20)
    assert product.price == 120.0
    assert product.promotional_status == "new_collection"

    reloaded = await commands.load_product(session, product.id)
    assert reloaded.is_approved
    assert reloaded.price == 120.0
    assert reloaded.approved_by == admin.id

    history = await event_store.load_events(session, product.id)
    assert [e["event_type"] for e in history] == ["ProductCreated", "ProductApproved"]
    assert [e["version"] for e in history] == [1, 2]


async def test_non_owner_cannot_edit_or_delete(session, make_product, make_artisan):
    product = await make_product()
    other = await make_artisan()
    with pytest.raises(AuthorizationError):
        await commands.update_product(session, other, product.id, {"name": "Mine"})
    with pytest.raises(AuthorizationError):
        await commands.delete_product(session, other, product.id)


async def test_artisan_edit_sends_product_back_to_review(session, artisan, make_product):
    product = await make_product(price=100, markup=20)
    updated = await commands.update_product(session, artisan, product.id, {"price": 50})

    assert updated.original_price == 50
    assert updated.price == 60.0
    assert not updated.is_approved
    pending = await queries.list_pending_products(session)
    assert [p["id"] for p in pending] == [product.id]


async def test_unapproved_products_hidden_from_public(session, artisan, admin, make_product):
    product = await make_product(approve=False)
    with pytest.raises(NotFoundError):
        await queries.get_product(session, product.id, None)
    assert (await queries.get_product(session, product.id, artisan))["id"] == product.id
    assert (await queries.get_product(session, product.id, admin))["id"] == product.id


async def test_listing_filters_and_sorts(session, make_product):
    cheap = await make_product(price=10, markup=0, category="Home")
    dear = await make_product(price=90, markup=0, category="Home")
    await make_product(price=50, markup=0, category="Beauty")
    await make_product(price=30, approve=False)

    listing = await queries.list_products(session, category="Home", sort="priceAsc")
    assert [p["id"] for p in listing["products"]] == [cheap.id, dear.id]
    assert listing["pagination"]["total"] == 2

    ranged = await queries.list_products(session, min_price=20, max_price=60)
    assert [p["price"] for p in ranged["products"]] == [50.0]

    paged = await queries.list_products(session, sort="priceDesc", page=2, limit=2)
    assert [p["price"] for p in paged["products"]] == [10.0]
    assert paged["pagination"]["pages"] == 2


async def test_adjust_stock_never_goes_negative(session, make_product):
    product = await make_product(stock=2)

    await commands.adjust_stock(session, product.id, -2, reason="test")
    await session.commit()
    with pytest.raises(ConflictError):
        await commands.adjust_stock(session, product.id, -1, reason="test")
    await session.rollback()

    assert (await commands.load_product(session, product.id)).stock == 0


async def test_adjust_stock_of_missing_product(session):
    with pytest.raises(NotFoundError):
        await commands.adjust_stock(session, "nope", 1, reason="test")


async def test_update_stock_requires_owner(session, artisan, make_product, make_artisan):
    product = await make_product(stock=1)
    other = await make_artisan()
    with pytest.raises(AuthorizationError):
        await commands.update_stock(session, other, product.id, 5)

    updated = await commands.update_stock(session, artisan, product.id, 5)
    assert updated.stock == 6


async def test_flash_sale_and_best_seller(session, make_product):
    product = await make_product(price=100, markup=0)
    now = datetime.now(timezone.utc)

    sale = await commands.setup_flash_sale(
        session, product.id, 20, now - timedelta(hours=1), now + timedelta(days=1)
    )
    assert queries.serialize(sale)["discounted_price"] == 80.0

    best = await commands.mark_best_seller(session, product.id)
    assert best.promotional_status == "best_seller"


async def test_delete_removes_product(session, artisan, make_product):
    product = await make_product()
    await commands.delete_product(session, artisan, product.id)
    with pytest.raises(NotFoundError):
        await commands.load_product(session, product.id)


async def test_ended_flash_sale_filters_as_none(session, make_product):
    ended = await make_product(price=100, markup=0)
    running = await make_product(price=100, markup=0)
    plain = await make_product(price=100, markup=0)
    await commands.mark_best_seller(session, plain.id, False)
    now = datetime.now(timezone.utc)

    await commands.setup_flash_sale(
        session, ended.id, 20, now - timedelta(days=3), now - timedelta(days=1)
    )
    await commands.setup_flash_sale(
        session, running.id, 20, now - timedelta(hours=1), now + timedelta(days=1)
    )

    sales = await queries.list_products(session, promotional_status="flash_sale")
    assert [p["id"] for p in sales["products"]] == [running.id]

    regular = await queries.list_products(session, promotional_status="none")
    assert {p["id"] for p in regular["products"]} == {ended.id, plain.id}
    assert all(p["promotional_status"] == "none" for p in regular["products"])


async def test_pricing_details_only_for_owner_and_admin(session, artisan, admin, make_product, make_artisan):
    product = await make_product(price=100, markup=20)
    other = await make_artisan()

    for viewer in (None, other):
        detail = await queries.get_product(session, product.id, viewer)
        assert "original_price" not in detail
        assert "markup_percentage" not in detail
        listed = (await queries.list_products(session, user=viewer))["products"][0]
        assert "original_price" not in listed

    for viewer in (artisan, admin):
        detail = await queries.get_product(session, product.id, viewer)
        assert detail["original_price"] == 100.0
        assert detail["markup_percentage"] == 20.0


async def test_own_products_include_pending_and_rejected(session, admin, artisan, make_product, make_artisan):
    live = await make_product()
    pending = await make_product(approve=False)
    rejected = await make_product(approve=False)
    await commands.reject_product(session, admin, rejected.id, "Blurry photos")
    other = await make_artisan()
    await make_product(owner=other)

    mine = await queries.list_own_products(session, artisan)
    by_id = {p["id"]: p for p in mine["products"]}
    assert set(by_id) == {live.id, pending.id, rejected.id}
    assert by_id[rejected.id]["rejection_reason"] == "Blurry photos"
    assert by_id[pending.id]["original_price"] == 100.0

    public = await queries.list_products(session, artisan_id=artisan.id)
    assert [p["id"] for p in public["products"]] == [live.id]
