from typing import List, Optional
from sqlalchemy import func, or_, select, update
from storefront.common.custom_exceptions import StateConflict
from storefront.coupons.constants import RELEASED_ORDER_STATUSES, logger
from storefront.schema.full_schema import Coupon, Orders, Product


async def get_coupon_by_code(session, code: str) -> Optional[Coupon]:
    stmt = select(Coupon).where(Coupon.code == code.strip().upper())
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def count_user_coupon_orders(session, user_id: int, coupon_id: int) -> int:
    stmt = (
        select(func.count(Orders.id))
        .where(Orders.user_id == user_id,
               Orders.coupon_id == coupon_id,
               Orders.status.not_in(RELEASED_ORDER_STATUSES))
    )
    res = await session.execute(stmt)
    return int(res.scalar_one())


async def category_ids_for_products(session, product_ids: List[int]) -> List[int]:
    if not product_ids:
        return []
    stmt = select(Product.category_id).where(Product.id.in_(product_ids))
    res = await session.execute(stmt)
    return [r[0] for r in res.all() if r[0] is not None]


async def increment_usage(session, coupon_id: int) -> None:
    """Guarded increment ; fails when another order took the last use first."""
    stmt = (
        update(Coupon)
        .where(Coupon.id == coupon_id,
               or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit))
        .values(usage_count=Coupon.usage_count + 1)
    )
    res = await session.execute(stmt)
    if res.rowcount == 0:
        logger.info("coupons.usage.increment_rejected", extra={"coupon_id": coupon_id})
        raise StateConflict("Coupon usage limit reached", details={"coupon_id": coupon_id}, code="COUPON_EXHAUSTED")


async def decrement_usage(session, coupon_id: int) -> bool:
    """Give one use back , clamped at zero. Returns False when nothing changed."""
    stmt = (
        update(Coupon)
        .where(Coupon.id == coupon_id, Coupon.usage_count > 0)
        .values(usage_count=Coupon.usage_count - 1)
    )
    res = await session.execute(stmt)
    if res.rowcount == 0:
        logger.warning("coupons.usage.decrement_skipped", extra={"coupon_id": coupon_id})
        return False
    return True
