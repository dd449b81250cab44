from datetime import datetime, timedelta, timezone

import pytest

from brimasouk.cart import commands, queries
from brimasouk.catalog import commands as catalog_commands
from brimasouk.errors import ConflictError, NotFoundError, ValidationError

ADDRESS = {"full_name": "Amira", "address": "1 Rue de Tunis", "city": "Tunis", "postal_code": "1000"}


async def test_adding_same_product_increments_quantity(session, customer, make_product):
    product = await make_product(price=25, markup=0, stock=10)

    await commands.add_item(session, customer, product.id, 2)
    await commands.add_item(session, customer, product.id, 3)

    cart = await queries.get_cart(session, customer)
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5
    assert cart["items"][0]["line_total"] == 125
    assert cart["total_items"] == 5
    assert cart["subtotal"] == 125


async def test_add_checks_stock_against_cart_total(session, customer, make_product):
    product = await make_product(stock=3)
    await commands.add_item(session, customer, product.id, 2)

    with pytest.raises(ConflictError):
        await commands.add_item(session, customer, product.id, 2)
    with pytest.raises(ValidationError):
        await commands.add_item(session, customer, product.id, 0)
    with pytest.raises(NotFoundError):
        await commands.add_item(session, customer, "missing", 1)


async def test_update_and_remove(session, customer, make_product):
    vase = await make_product(stock=5)
    rug = await make_product(stock=5)
    await commands.add_item(session, customer, vase.id, 1)
    await commands.add_item(session, customer, rug.id, 1)

    await commands.update_item(session, customer, vase.id, 4)
    with pytest.raises(ConflictError):
        await commands.update_item(session, customer, vase.id, 6)
    with pytest.raises(NotFoundError):
        await commands.update_item(session, customer, "missing", 1)

    await commands.remove_item(session, customer, rug.id)
    with pytest.raises(NotFoundError):
        await commands.remove_item(session, customer, rug.id)

    cart = await queries.get_cart(session, customer)
    assert [(i["product_id"], i["quantity"]) for i in cart["items"]] == [(vase.id, 4)]


async def test_cart_reflects_current_price(session, customer, make_product):
    product = await make_product(price=100, markup=0)
    await commands.add_item(session, customer, product.id, 2)
    now = datetime.now(timezone.utc)
    await catalog_commands.setup_flash_sale(
        session, product.id, 25, now - timedelta(hours=1), now + timedelta(hours=1)
    )

    cart = await queries.get_cart(session, customer)
    assert cart["items"][0]["price"] == 75.0
    assert cart["subtotal"] == 150.0
    assert cart["items"][0]["is_available"]


async def test_checkout_creates_order_and_empties_cart(session, customer, make_product, payments):
    product = await make_product(price=40, markup=0, stock=5)
    await commands.add_item(session, customer, product.id, 2)

    order, payment = await commands.checkout(session, customer, ADDRESS, payments=payments)

    assert order.subtotal == 80
    assert [(line.product_id, line.quantity) for line in order.items] == [(product.id, 2)]
    assert payment.success
    assert (await queries.get_cart(session, customer))["items"] == []


async def test_checkout_of_empty_cart(session, customer):
    with pytest.raises(ValidationError):
        await commands.checkout(session, customer, ADDRESS)


async def test_clear(session, customer, make_product):
    product = await make_product()
    await commands.add_item(session, customer, product.id, 1)
    await commands.clear(session, customer)
    assert (await queries.get_cart(session, customer))["total_items"] == 0
