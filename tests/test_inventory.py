import pytest
from sqlalchemy import update
from storefront.common.custom_exceptions import IntegrityFailure, StateConflict
from storefront.inventory.repository import (can_restore_stock, decrement_stock, restore_order_stock,
                                             stock_restoration_summary)
from storefront.schema.full_schema import OrderItem, Orders, PaymentStatus, Product
from helpers import new_order, stock_of, variant_stock_of


@pytest.mark.asyncio
async def test_decrement_stock_moves_product_and_variant_counters(seed, db_session):
    lines = [
        {"product_id": seed["cream_id"], "quantity": 4},
        {"product_id": seed["lipstick_id"], "variant_id": seed["red_id"], "quantity": 2},
    ]
    await decrement_stock(db_session, lines)
    await db_session.commit()

    assert await stock_of(seed["cream_id"]) == 6
    assert await variant_stock_of(seed["red_id"]) == 1
    # variant lines leave the parent counter alone
    assert await stock_of(seed["lipstick_id"]) == 5


@pytest.mark.asyncio
async def test_decrement_stock_to_zero_clears_in_stock_flag(seed, db_session):
    await decrement_stock(db_session, [{"product_id": seed["lipstick_id"], "quantity": 5}])
    await db_session.commit()

    product = await db_session.get(Product, seed["lipstick_id"], populate_existing=True)
    assert product.stock_quantity == 0
    assert product.is_in_stock is False


@pytest.mark.asyncio
async def test_decrement_stock_rejects_oversell(seed, db_session):
    with pytest.raises(StateConflict) as exc:
        await decrement_stock(db_session, [{"product_id": seed["cream_id"], "quantity": 11, "sku": "SKN-001"}])
    assert exc.value.code == "INSUFFICIENT_STOCK"
    await db_session.rollback()

    assert await stock_of(seed["cream_id"]) == 10


@pytest.mark.asyncio
async def test_restore_order_stock_adds_quantities_back(seed, db_session):
    order = await new_order(seed["customer_id"], [
        {"product_id": seed["cream_id"], "quantity": 3},
        {"product_id": seed["lipstick_id"], "variant_id": seed["red_id"], "quantity": 1},
    ])
    assert await stock_of(seed["cream_id"]) == 7
    assert await variant_stock_of(seed["red_id"]) == 2

    restored = await restore_order_stock(db_session, order["id"])
    await db_session.commit()

    assert restored == 2
    assert await stock_of(seed["cream_id"]) == 10
    assert await variant_stock_of(seed["red_id"]) == 3


@pytest.mark.asyncio
async def test_restore_skips_items_whose_catalog_entry_is_gone(seed, db_session):
    order = await new_order(seed["customer_id"], [
        {"product_id": seed["cream_id"], "quantity": 2},
        {"product_id": seed["lipstick_id"], "quantity": 1},
    ])
    await db_session.execute(update(OrderItem)
                             .where(OrderItem.order_id == order["id"], OrderItem.product_id == seed["lipstick_id"])
                             .values(product_id=None))
    await db_session.commit()

    restored = await restore_order_stock(db_session, order["id"])
    await db_session.commit()

    assert restored == 1
    assert await stock_of(seed["cream_id"]) == 10
    assert await stock_of(seed["lipstick_id"]) == 4


@pytest.mark.asyncio
async def test_restore_never_moves_product_counter_for_deleted_variant(seed, db_session):
    order = await new_order(seed["customer_id"], [
        {"product_id": seed["lipstick_id"], "variant_id": seed["red_id"], "quantity": 2},
    ])
    assert await stock_of(seed["lipstick_id"]) == 5
    assert await variant_stock_of(seed["red_id"]) == 1

    # variant deleted from the catalog , the fk is nulled but the product link stays
    await db_session.execute(update(OrderItem).where(OrderItem.order_id == order["id"]).values(variant_id=None))
    await db_session.commit()

    restored = await restore_order_stock(db_session, order["id"])
    await db_session.commit()

    assert restored == 0
    assert await stock_of(seed["lipstick_id"]) == 5


@pytest.mark.asyncio
async def test_restore_with_dangling_reference_aborts(seed, db_session):
    order = await new_order(seed["customer_id"], [
        {"product_id": seed["cream_id"], "quantity": 2},
        {"product_id": seed["lipstick_id"], "quantity": 1},
    ])
    await db_session.execute(update(OrderItem)
                             .where(OrderItem.order_id == order["id"], OrderItem.product_id == seed["lipstick_id"])
                             .values(product_id=987654))
    await db_session.commit()

    with pytest.raises(IntegrityFailure):
        await restore_order_stock(db_session, order["id"])
    await db_session.rollback()

    # nothing from the aborted unit of work survives
    assert await stock_of(seed["cream_id"]) == 8


@pytest.mark.asyncio
async def test_can_restore_stock_and_summary(seed, db_session):
    order = await new_order(seed["customer_id"], [{"product_id": seed["cream_id"], "quantity": 2}])
    row = await db_session.get(Orders, order["id"])

    assert can_restore_stock(row)
    row.payment_status = PaymentStatus.PAID.value
    assert not can_restore_stock(row)

    summary = await stock_restoration_summary(db_session, order["id"])
    assert summary["orderId"] == order["id"]
    assert summary["itemCount"] == 1
    assert summary["items"][0]["quantityToRestore"] == 2
    assert summary["items"][0]["sku"] == "SKN-001"
