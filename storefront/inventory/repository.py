from typing import Any, Dict, List
from sqlalchemy import select, update
from storefront.common.custom_exceptions import IntegrityFailure, StateConflict
from storefront.common.utils import now
from storefront.inventory.constants import logger
from storefront.schema.full_schema import OrderItem, Orders, PaymentStatus, Product, ProductVariant


def _stock_target(line: Dict[str, Any]):
    """Variant lines move the variant counter , everything else the product counter."""
    if line.get("variant_id"):
        return ProductVariant, int(line["variant_id"])
    return Product, int(line["product_id"])


async def decrement_stock(session, lines: List[Dict[str, Any]]) -> None:
    """
    Conditional decrement per line , the row only changes while enough stock is left
    so concurrent checkouts can never push stock_quantity below zero.
    Runs in the caller's transaction.
    """
    for line in lines:
        model, target_id = _stock_target(line)
        qty = int(line["quantity"])

        stmt = (
            update(model)
            .where(model.id == target_id, model.stock_quantity >= qty)
            .values(
                stock_quantity=model.stock_quantity - qty,
                is_in_stock=(model.stock_quantity - qty) > 0,
                updated_at=now(),
            )
        )
        res = await session.execute(stmt)
        if res.rowcount == 0:
            logger.info("inventory.decrement.insufficient", extra={
                "target": model.__tablename__,
                "target_id": target_id,
                "requested_qty": qty,
            })
            raise StateConflict(
                "Not enough stock",
                details={"sku": line.get("sku"), "product_id": line.get("product_id"),
                         "variant_id": line.get("variant_id"), "requested": qty},
                code="INSUFFICIENT_STOCK",
            )


async def load_order_items(session, order_id: int):
    stmt = (select(OrderItem.id, OrderItem.product_id, OrderItem.variant_id, OrderItem.name,
                   OrderItem.sku, OrderItem.quantity, OrderItem.is_variant_line)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id))
    res = await session.execute(stmt)
    return res.all()


async def restore_order_stock(session, order_id: int) -> int:
    """
    Add every item's quantity back to its product or variant and mark it in stock.

    Not idempotent: callers gate on the order status they are leaving and run this
    in the same transaction as that status write. Returns the number of items restored.
    """
    items = await load_order_items(session, order_id)
    if not items:
        logger.warning("inventory.restore.no_items", extra={"order_id": order_id})
        return 0

    restored = 0
    for it in items:
        if it.variant_id:
            model, target_id = ProductVariant, it.variant_id
        elif it.product_id and not it.is_variant_line:
            model, target_id = Product, it.product_id
        else:
            # catalog entry deleted after purchase , weak refs were nulled.
            # a variant line whose variant is gone is skipped , its product was never decremented
            logger.warning("inventory.restore.item_unlinked", extra={
                "order_id": order_id,
                "order_item_id": it.id,
                "sku": it.sku,
            })
            continue

        stmt = (
            update(model)
            .where(model.id == target_id)
            .values(
                stock_quantity=model.stock_quantity + it.quantity,
                is_in_stock=(model.stock_quantity + it.quantity) > 0,
                updated_at=now(),
            )
        )
        res = await session.execute(stmt)
        if res.rowcount == 0:
            logger.error("inventory.restore.target_missing", extra={
                "order_id": order_id,
                "order_item_id": it.id,
                "target": model.__tablename__,
                "target_id": target_id,
            })
            raise IntegrityFailure(
                "Order item references a missing catalog entry",
                details={"order_item_id": it.id, "target": model.__tablename__, "target_id": target_id},
            )
        restored += 1

    logger.info("inventory.restore.done", extra={"order_id": order_id, "items_restored": restored})
    return restored


def can_restore_stock(order: Orders) -> bool:
    """Stock is only given back while the payment never completed and nothing left the warehouse."""
    return (
        order.payment_status in (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)
        and order.shipped_at is None
    )


async def stock_restoration_summary(session, order_id: int) -> Dict[str, Any]:
    items = await load_order_items(session, order_id)
    return {
        "orderId": order_id,
        "itemCount": len(items),
        "items": [
            {
                "productId": it.product_id,
                "variantId": it.variant_id,
                "name": it.name,
                "sku": it.sku,
                "quantityToRestore": it.quantity,
            }
            for it in items
        ],
    }
