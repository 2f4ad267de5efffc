from datetime import timedelta
from typing import Any, Dict, List, Optional
from storefront.auth.dependencies import CurrentUser
from storefront.common.custom_exceptions import Forbidden, NotFound, StateConflict, ValidationFailed
from storefront.common.utils import now
from storefront.coupons.repository import decrement_usage, increment_usage
from storefront.coupons.services import validate_coupon
from storefront.inventory.repository import decrement_stock, restore_order_stock
from storefront.notifications.templates import SmsEvent
from storefront.orders.constants import ORDER_EXPIRY_MINUTES, logger
from storefront.orders.repository import (get_order, get_order_by_number, get_order_contact, get_order_items,
                                          guarded_update_order, insert_order_with_items, load_products,
                                          load_variants)
from storefront.orders.state_machine import REFUND_TARGETS, assert_transition
from storefront.orders.utils import compute_order_totals, generate_order_number, serialize_order
from storefront.schema.full_schema import Orders, OrderStatus, PaymentMethod, PaymentStatus


def _customer_ctx(order: Orders) -> Dict[str, Any]:
    return {"order_number": order.order_number, "amount": order.total_amount}


def _ensure_owner_or_admin(order: Orders, user: CurrentUser) -> None:
    if user.is_admin:
        return
    if order.user_id is None or order.user_id != user.user_id:
        raise Forbidden("Order belongs to another customer")


async def reverse_order(session, order: Orders, *, status: str, payment_status: str, **values) -> Dict[str, Any]:
    """
    Compensate an order inside the caller's transaction: status write, stock back, coupon use back.

    The guarded status write goes first so a concurrent reversal of the same order
    fails here before any counter moves.
    """
    coupon_id = order.coupon_id
    order_id = order.id
    await guarded_update_order(session, order, status=status, payment_status=payment_status, **values)

    items_restored = await restore_order_stock(session, order_id)
    coupon_restored = False
    if coupon_id:
        coupon_restored = await decrement_usage(session, coupon_id)

    return {"itemsRestored": items_restored, "couponRestored": coupon_restored}


async def _build_lines(session, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Merge duplicate lines and snapshot name/sku/price from the live catalog."""
    merged: Dict[tuple, int] = {}
    for it in items:
        qty = int(it["quantity"])
        if qty < 1:
            raise ValidationFailed("Quantity must be at least 1", details={"product_id": it.get("product_id")})
        key = (int(it["product_id"]), int(it["variant_id"]) if it.get("variant_id") else None)
        merged[key] = merged.get(key, 0) + qty

    products = await load_products(session, list({k[0] for k in merged}))
    variants = await load_variants(session, [k[1] for k in merged if k[1] is not None])

    lines = []
    for (product_id, variant_id), qty in merged.items():
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise ValidationFailed("Product is not available", details={"product_id": product_id})

        line = {
            "product_id": product.id,
            "variant_id": None,
            "name": product.name,
            "sku": product.sku,
            "image": product.image,
            "unit_price": int(product.price),
            "quantity": qty,
        }
        if variant_id is not None:
            variant = variants.get(variant_id)
            if variant is None or variant.product_id != product.id:
                raise ValidationFailed("Variant does not belong to product",
                                       details={"product_id": product_id, "variant_id": variant_id})
            line.update({
                "variant_id": variant.id,
                "name": f"{product.name} - {variant.name}",
                "sku": variant.sku,
                "unit_price": int(variant.price if variant.price is not None else product.price),
            })
        lines.append(line)
    return lines


async def place_order(session, user: CurrentUser, items: List[Dict[str, Any]], *,
                      payment_method: str = PaymentMethod.ZARINPAL.value,
                      coupon_code: Optional[str] = None,
                      customer_phone: Optional[str] = None,
                      customer_email: Optional[str] = None,
                      customer_note: Optional[str] = None,
                      notifier=None) -> Dict[str, Any]:
    if not items:
        raise ValidationFailed("Order has no items")

    try:
        lines = await _build_lines(session, items)
        subtotal = sum(l["unit_price"] * l["quantity"] for l in lines)

        coupon = None
        discount = 0
        if coupon_code:
            coupon, discount = await validate_coupon(session, coupon_code, subtotal, lines, user_id=user.user_id)

        totals = compute_order_totals(lines, discount)

        is_cod = payment_method == PaymentMethod.CASH_ON_DELIVERY.value
        order_values = {
            "order_number": generate_order_number(),
            "user_id": user.user_id,
            "status": OrderStatus.CONFIRMED.value if is_cod else OrderStatus.PENDING.value,
            "payment_status": PaymentStatus.PENDING.value,
            "payment_method": payment_method,
            "subtotal": totals["subtotal"],
            "tax_amount": totals["tax"],
            "shipping_amount": totals["shipping"],
            "discount_amount": totals["discount"],
            "total_amount": totals["total"],
            "coupon_id": coupon.id if coupon else None,
            "coupon_code": coupon.code if coupon else None,
            "customer_phone": customer_phone,
            "customer_email": customer_email,
            "customer_note": customer_note,
            # cash orders are not waiting on a gateway , nothing to expire
            "expires_at": None if is_cod else now() + timedelta(minutes=ORDER_EXPIRY_MINUTES),
        }

        # stock , order row and coupon use commit together or not at all
        await decrement_stock(session, lines)
        order = await insert_order_with_items(session, order_values, lines)
        if coupon:
            await increment_usage(session, coupon.id)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("orders.place.done", extra={
        "order_id": order.id,
        "order_number": order.order_number,
        "total_amount": order.total_amount,
        "payment_method": payment_method,
        "coupon_code": order.coupon_code,
    })

    if notifier is not None and is_cod:
        receptor, contact = await get_order_contact(session, order)
        notifier.publish(SmsEvent.ORDER_CONFIRMED, receptor, **contact, **_customer_ctx(order))

    order_items = await get_order_items(session, order.id)
    return serialize_order(order, order_items)


async def get_order_details(session, order_number: str, user: CurrentUser) -> Dict[str, Any]:
    order = await get_order_by_number(session, order_number)
    if order is None:
        raise NotFound("Order not found")
    _ensure_owner_or_admin(order, user)
    order_items = await get_order_items(session, order.id)
    return serialize_order(order, order_items)


async def cancel_order(session, order_id: int, user: CurrentUser, reason: Optional[str] = None,
                       notifier=None) -> Dict[str, Any]:
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None:
            raise NotFound("Order not found")
        _ensure_owner_or_admin(order, user)

        assert_transition(order.status, OrderStatus.CANCELLED.value, order.payment_status)

        restored = await reverse_order(
            session, order,
            status=OrderStatus.CANCELLED.value,
            payment_status=PaymentStatus.FAILED.value,
            cancel_reason=reason or ("cancelled by admin" if user.is_admin else "cancelled by customer"),
        )
        await session.commit()
        await session.refresh(order)
    except Exception:
        await session.rollback()
        raise

    logger.info("orders.cancel.done", extra={
        "order_id": order.id,
        "order_number": order.order_number,
        "by_admin": user.is_admin,
        **restored,
    })
    if notifier is not None:
        receptor, contact = await get_order_contact(session, order)
        notifier.publish(SmsEvent.ORDER_CANCELLED, receptor, **contact, **_customer_ctx(order))

    return {**serialize_order(order), **restored}


_STATUS_SMS = {
    OrderStatus.CONFIRMED.value: SmsEvent.ORDER_CONFIRMED,
    OrderStatus.SHIPPED.value: SmsEvent.ORDER_SHIPPED,
    OrderStatus.DELIVERED.value: SmsEvent.ORDER_DELIVERED,
}


async def update_order_status(session, order_id: int, target: str, admin: CurrentUser,
                              tracking_number: Optional[str] = None, notifier=None) -> Dict[str, Any]:
    if target in REFUND_TARGETS:
        raise ValidationFailed("Refund states are set through the refund endpoint", details={"status": target})
    if target == OrderStatus.CANCELLED.value:
        return await cancel_order(session, order_id, admin, notifier=notifier)

    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None:
            raise NotFound("Order not found")

        assert_transition(order.status, target, order.payment_status)

        values: Dict[str, Any] = {"status": target}
        if target == OrderStatus.CONFIRMED.value:
            # confirmed by hand , no longer waiting on the gateway
            values["expires_at"] = None
        elif target == OrderStatus.SHIPPED.value:
            values["shipped_at"] = now()
            if tracking_number:
                values["tracking_number"] = tracking_number
        elif target == OrderStatus.DELIVERED.value:
            values["delivered_at"] = now()
            if order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value \
                    and order.payment_status == PaymentStatus.PENDING.value:
                # cash collected at the door
                values["payment_status"] = PaymentStatus.PAID.value
                values["payment_date"] = now()

        previous = order.status
        await guarded_update_order(session, order, **values)
        await session.commit()
        await session.refresh(order)
    except Exception:
        await session.rollback()
        raise

    logger.info("orders.status.updated", extra={
        "order_id": order.id,
        "from_status": previous,
        "to_status": target,
        "admin_id": admin.user_id,
    })

    event = _STATUS_SMS.get(target)
    if notifier is not None and event:
        receptor, contact = await get_order_contact(session, order)
        notifier.publish(event, receptor, tracking_number=order.tracking_number, **contact, **_customer_ctx(order))

    return serialize_order(order)


async def refund_order(session, order_id: int, admin: CurrentUser, *,
                       reason: Optional[str] = None,
                       refund_amount: Optional[int] = None,
                       notify_customer: bool = True,
                       notifier=None) -> Dict[str, Any]:
    """
    Refund a paid order: stock and coupon use go back, status becomes REFUNDED
    (full amount) or PARTIALLY_REFUNDED. A second refund is a state conflict and
    touches nothing.
    """
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None:
            raise NotFound("Order not found")

        if order.status == OrderStatus.REFUNDED.value or order.payment_status == PaymentStatus.REFUNDED.value:
            raise StateConflict("Order has already been refunded", code="ALREADY_REFUNDED")
        if order.payment_status != PaymentStatus.PAID.value:
            raise StateConflict("Only paid orders can be refunded",
                                details={"payment_status": order.payment_status}, code="ORDER_NOT_PAID")

        amount = order.total_amount if refund_amount is None else int(refund_amount)
        if amount <= 0 or amount > order.total_amount:
            raise ValidationFailed("Refund amount must be positive and not exceed the order total",
                                   details={"refund_amount": amount, "total_amount": order.total_amount})

        target = OrderStatus.REFUNDED.value if amount == order.total_amount else OrderStatus.PARTIALLY_REFUNDED.value
        assert_transition(order.status, target, order.payment_status)

        restored = await reverse_order(
            session, order,
            status=target,
            payment_status=target,
            refunded_amount=amount,
            cancel_reason=reason,
        )
        await session.commit()
        await session.refresh(order)
    except Exception:
        await session.rollback()
        raise

    logger.info("orders.refund.done", extra={
        "order_id": order.id,
        "order_number": order.order_number,
        "refund_amount": amount,
        "admin_id": admin.user_id,
        **restored,
    })

    notified = False
    if notify_customer and notifier is not None:
        receptor, contact = await get_order_contact(session, order)
        notified = notifier.publish(SmsEvent.ORDER_REFUNDED, receptor,
                                    order_number=order.order_number, amount=amount, **contact)

    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "refundAmount": amount,
        "itemsRestored": restored["itemsRestored"],
        "couponRestored": restored["couponRestored"],
        "customerNotified": notified,
    }
