from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import insert, select, update
from storefront.common.custom_exceptions import StateConflict
from storefront.common.utils import now
from storefront.orders.constants import logger
from storefront.orders.utils import order_contact
from storefront.schema.full_schema import OrderItem, Orders, Product, ProductVariant, Users


async def get_order(session, order_id: int, *, for_update: bool = False) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.id == order_id).execution_options(populate_existing=True)
    if for_update:
        # no-op on sqlite , row lock on postgres
        stmt = stmt.with_for_update()
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def get_order_by_number(session, order_number: str) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.order_number == order_number).execution_options(populate_existing=True)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def get_order_by_payment_id(session, authority: str) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.payment_id == authority).execution_options(populate_existing=True)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def get_order_items(session, order_id: int) -> List[OrderItem]:
    stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def get_order_contact(session, order: Orders) -> Tuple[Optional[str], Dict[str, Any]]:
    user = None
    if order.user_id is not None:
        res = await session.execute(
            select(Users.phone, Users.first_name, Users.last_name).where(Users.id == order.user_id))
        user = res.first()
    if user is None:
        return order_contact(None, order.customer_phone)
    return order_contact(user.phone, order.customer_phone, user.first_name, user.last_name)


async def guarded_update_order(session, order: Orders, **values) -> None:
    """
    Write `values` only if nobody changed the order since it was read.

    The version seen at read time is the guard ; a concurrent writer that committed
    first bumps it and this update matches zero rows.
    """
    seen_version = order.version
    stmt = (
        update(Orders)
        .where(Orders.id == order.id, Orders.version == seen_version)
        .values(**values, version=Orders.version + 1, updated_at=now())
    )
    res = await session.execute(stmt)
    if res.rowcount == 0:
        logger.warning("orders.update.version_conflict", extra={
            "order_id": order.id,
            "seen_version": seen_version,
        })
        raise StateConflict("Order was modified concurrently, retry the request",
                            details={"order_id": order.id}, code="ORDER_CONCURRENT_UPDATE")


async def load_products(session, product_ids: List[int]) -> Dict[int, Product]:
    if not product_ids:
        return {}
    stmt = select(Product).where(Product.id.in_(product_ids))
    res = await session.execute(stmt)
    return {p.id: p for p in res.scalars().all()}


async def load_variants(session, variant_ids: List[int]) -> Dict[int, ProductVariant]:
    if not variant_ids:
        return {}
    stmt = select(ProductVariant).where(ProductVariant.id.in_(variant_ids))
    res = await session.execute(stmt)
    return {v.id: v for v in res.scalars().all()}


async def insert_order_with_items(session, order_values: Dict[str, Any], lines: List[Dict[str, Any]]) -> Orders:
    order = Orders(**order_values)
    session.add(order)
    await session.flush()

    item_rows = [
        {
            "order_id": order.id,
            "product_id": l["product_id"],
            "variant_id": l.get("variant_id"),
            "is_variant_line": bool(l.get("variant_id")),
            "name": l["name"],
            "sku": l["sku"],
            "image": l.get("image"),
            "unit_price": l["unit_price"],
            "quantity": l["quantity"],
            "total_price": l["unit_price"] * l["quantity"],
            "created_at": now(),
        }
        for l in lines
    ]
    await session.execute(insert(OrderItem), item_rows)
    return order
