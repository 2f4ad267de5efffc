from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple
from storefront.common.custom_exceptions import CouponRejected, NotFound, ValidationFailed
from storefront.common.utils import as_utc, now
from storefront.coupons.constants import logger
from storefront.coupons.repository import category_ids_for_products, count_user_coupon_orders, get_coupon_by_code
from storefront.schema.full_schema import Coupon, CouponScope, DiscountType


def compute_discount(coupon: Coupon, subtotal: int) -> int:
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        raw = Decimal(subtotal) * Decimal(coupon.discount_value) / Decimal(100)
    else:
        raw = Decimal(coupon.discount_value)

    if coupon.maximum_discount and raw > coupon.maximum_discount:
        raw = Decimal(coupon.maximum_discount)
    if raw > subtotal:
        raw = Decimal(subtotal)

    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _item_product_ids(items: Optional[List[Dict[str, Any]]]) -> List[int]:
    return [int(it["product_id"]) for it in (items or []) if it.get("product_id")]


async def check_coupon_scope(session, coupon: Coupon, items: Optional[List[Dict[str, Any]]]) -> None:
    if coupon.applicable_to == CouponScope.CATEGORIES.value and coupon.category_ids:
        product_ids = _item_product_ids(items)
        if not product_ids:
            raise CouponRejected("Coupon does not apply to the selected products", code="COUPON_NOT_APPLICABLE")
        item_categories = await category_ids_for_products(session, product_ids)
        if not set(coupon.category_ids) & set(item_categories):
            raise CouponRejected("Coupon does not apply to the selected products", code="COUPON_NOT_APPLICABLE")

    if coupon.applicable_to == CouponScope.PRODUCTS.value and coupon.product_ids:
        if not set(coupon.product_ids) & set(_item_product_ids(items)):
            raise CouponRejected("Coupon does not apply to the selected products", code="COUPON_NOT_APPLICABLE")


async def validate_coupon(session, code: str, subtotal: int,
                          items: Optional[List[Dict[str, Any]]] = None,
                          user_id: Optional[int] = None,
                          at: Optional[datetime] = None) -> Tuple[Coupon, int]:
    """
    Check a coupon against an order-to-be and return it with the discount it grants.

    Rejections raise CouponRejected ; an unknown code raises NotFound. Nothing is
    mutated here , usage is counted by increment_usage inside the order transaction.
    """
    if not code or not code.strip():
        raise ValidationFailed("Coupon code is required")
    if subtotal is None or subtotal <= 0:
        raise ValidationFailed("Subtotal must be positive")

    coupon = await get_coupon_by_code(session, code)
    if coupon is None:
        raise NotFound("Coupon code is not valid", code="COUPON_NOT_FOUND")

    at = at or now()
    if not coupon.is_active:
        raise CouponRejected("Coupon is not active", code="COUPON_INACTIVE")
    if at < as_utc(coupon.valid_from):
        raise CouponRejected("Coupon is not active yet", code="COUPON_NOT_STARTED")
    if at > as_utc(coupon.valid_until):
        raise CouponRejected("Coupon has expired", code="COUPON_EXPIRED")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise CouponRejected("Coupon usage limit reached", code="COUPON_EXHAUSTED")
    if coupon.minimum_amount and subtotal < coupon.minimum_amount:
        raise CouponRejected("Order total is below the coupon minimum",
                             details={"minimum_amount": coupon.minimum_amount},
                             code="COUPON_MINIMUM_NOT_MET")

    await check_coupon_scope(session, coupon, items)

    if user_id is not None:
        used = await count_user_coupon_orders(session, user_id, coupon.id)
        if used >= coupon.user_usage_limit:
            raise CouponRejected("Coupon already used", code="COUPON_USER_LIMIT")

    discount = compute_discount(coupon, subtotal)
    logger.debug("coupons.validate.accepted", extra={
        "coupon_code": coupon.code,
        "subtotal": subtotal,
        "discount": discount,
    })
    return coupon, discount
