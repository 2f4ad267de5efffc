import json
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from storefront.auth.dependencies import CurrentUser
from storefront.common.custom_exceptions import Forbidden, GatewayError, NotFound, StateConflict
from storefront.common.utils import as_utc, now
from storefront.config.settings import config_settings
from storefront.notifications.templates import SmsEvent
from storefront.orders.repository import get_order, get_order_by_payment_id, get_order_contact, guarded_update_order
from storefront.orders.services import reverse_order
from storefront.orders.state_machine import assert_transition
from storefront.payments.constants import logger
from storefront.payments.utils import to_gateway_amount, verify_signature
from storefront.payments.zarinpal import ZarinpalGateway
from storefront.schema.full_schema import Orders, OrderStatus, PaymentMethod, PaymentStatus


def _awaiting_payment(order: Orders) -> bool:
    return (order.payment_status == PaymentStatus.PENDING.value
            and order.status == OrderStatus.PENDING.value)


async def request_order_payment(session, order_id: int, user: CurrentUser, gateway: ZarinpalGateway,
                                callback_url: str) -> Dict[str, Any]:
    order = await get_order(session, order_id)
    if order is None:
        raise NotFound("Order not found")
    if order.user_id != user.user_id and not user.is_admin:
        raise Forbidden("Order belongs to another customer")
    if order.payment_method != PaymentMethod.ZARINPAL.value:
        raise StateConflict("Order is not paid through the online gateway", code="PAYMENT_METHOD_MISMATCH")
    if order.payment_status == PaymentStatus.PAID.value:
        raise StateConflict("Order is already paid", code="ORDER_ALREADY_PAID")
    if not _awaiting_payment(order):
        raise StateConflict("Order is not awaiting payment",
                            details={"status": order.status, "payment_status": order.payment_status},
                            code="ORDER_NOT_PAYABLE")
    if order.expires_at is not None and as_utc(order.expires_at) <= now():
        raise StateConflict("Order payment window has expired", code="ORDER_EXPIRED")

    # no row lock across the gateway round trip ; the version guard below catches
    # an expiry or cancel that committed meanwhile
    await session.commit()
    result = await gateway.request_payment(
        amount=to_gateway_amount(order.total_amount),
        description=f"Payment for order {order.order_number}",
        callback_url=callback_url,
        mobile=order.customer_phone,
        email=order.customer_email,
        order_id=order.order_number,
    )

    try:
        await guarded_update_order(session, order, payment_id=result.authority)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("payments.request.done", extra={
        "order_id": order.id,
        "order_number": order.order_number,
        "authority": result.authority,
    })
    return {"paymentUrl": result.payment_url, "authority": result.authority,
            "orderNumber": order.order_number}


async def mark_order_paid(session, order: Orders, ref_id: str) -> None:
    assert_transition(order.status, OrderStatus.CONFIRMED.value, order.payment_status)
    await guarded_update_order(
        session, order,
        status=OrderStatus.CONFIRMED.value,
        payment_status=PaymentStatus.PAID.value,
        payment_ref_id=ref_id,
        payment_date=now(),
    )


async def fail_order_payment(session, order: Orders, reason: str) -> Dict[str, Any]:
    return await reverse_order(
        session, order,
        status=OrderStatus.CANCELLED.value,
        payment_status=PaymentStatus.FAILED.value,
        cancel_reason=reason,
    )


def _paid_ctx(order: Orders) -> Dict[str, Any]:
    return {"order_number": order.order_number, "amount": order.total_amount, "ref_id": order.payment_ref_id}


async def _verify_and_mark_paid(session, order: Orders, authority: str, gateway: ZarinpalGateway,
                                notifier) -> Optional[Orders]:
    """
    Verify with the order's own amount and flip it to PAID/CONFIRMED.
    Returns the paid order, or None when a concurrent writer moved it first.
    """
    amount = to_gateway_amount(order.total_amount)
    order_id = order.id
    await session.commit()
    result = await gateway.verify_payment(authority, amount)

    try:
        await mark_order_paid(session, order, result.ref_id)
        await session.commit()
    except StateConflict:
        await session.rollback()
        logger.warning("payments.mark_paid.lost_race", extra={"order_id": order_id, "authority": authority})
        return None
    except Exception:
        await session.rollback()
        raise

    await session.refresh(order)
    logger.info("payments.mark_paid.done", extra={
        "order_id": order.id,
        "order_number": order.order_number,
        "ref_id": result.ref_id,
    })
    if notifier is not None:
        receptor, contact = await get_order_contact(session, order)
        notifier.publish(SmsEvent.ORDER_PAYMENT_SUCCESS, receptor, **contact, **_paid_ctx(order))
    return order


async def handle_callback(session, authority: Optional[str], status_param: Optional[str],
                          gateway: ZarinpalGateway, notifier=None) -> Dict[str, Any]:
    """
    Customer returns from the gateway. Returns {"success": bool, "orderNumber", "refId", "error"}
    for the redirect ; never trusts an amount from the query string.
    """
    if not authority:
        return {"success": False, "error": "missing_authority"}

    order = await get_order_by_payment_id(session, authority)
    if order is None:
        logger.warning("payments.callback.unknown_authority", extra={"authority": authority})
        return {"success": False, "error": "order_not_found"}

    if order.payment_status == PaymentStatus.PAID.value:
        return {"success": True, "orderNumber": order.order_number, "refId": order.payment_ref_id}

    if not _awaiting_payment(order):
        # expired or cancelled meanwhile ; the gateway reverses unverified payments on its own
        logger.warning("payments.callback.order_not_pending", extra={
            "order_id": order.id, "status": order.status, "payment_status": order.payment_status,
        })
        return {"success": False, "orderNumber": order.order_number, "error": "order_expired"}

    order_id = order.id
    if (status_param or "").upper() != "OK":
        try:
            await fail_order_payment(session, order, "payment cancelled at gateway")
            await session.commit()
        except StateConflict:
            await session.rollback()
            return await _settled_outcome(session, order_id)
        except Exception:
            await session.rollback()
            raise
        logger.info("payments.callback.cancelled", extra={"order_id": order.id, "order_number": order.order_number})
        if notifier is not None:
            receptor, contact = await get_order_contact(session, order)
            notifier.publish(SmsEvent.PAYMENT_FAILED, receptor, order_number=order.order_number,
                             reason="payment was cancelled", **contact)
        return {"success": False, "orderNumber": order.order_number, "error": "payment_cancelled"}

    try:
        paid = await _verify_and_mark_paid(session, order, authority, gateway, notifier)
    except GatewayError as e:
        if e.transient:
            # outcome unknown ; leave the order pending for the webhook or the expiry job
            logger.error("payments.callback.verify_unavailable", extra={"order_id": order.id, "error": e.message})
            return {"success": False, "orderNumber": order.order_number, "error": "verification_pending"}

        logger.warning("payments.callback.verify_failed", extra={
            "order_id": order.id, "error_code": e.code, "error": e.message,
        })
        order = await get_order(session, order_id)
        if order is None or not _awaiting_payment(order):
            # settled by the webhook or the expiry job meanwhile
            return await _settled_outcome(session, order_id)
        try:
            await fail_order_payment(session, order, "payment verification failed")
            await session.commit()
        except StateConflict:
            await session.rollback()
            return await _settled_outcome(session, order_id)
        except Exception:
            await session.rollback()
            raise
        if notifier is not None:
            receptor, contact = await get_order_contact(session, order)
            notifier.publish(SmsEvent.PAYMENT_FAILED, receptor, order_number=order.order_number,
                             reason="payment could not be verified", **contact)
        return {"success": False, "orderNumber": order.order_number, "error": "payment_failed"}

    if paid is None:
        return await _settled_outcome(session, order_id)
    return {"success": True, "orderNumber": paid.order_number, "refId": paid.payment_ref_id}


async def _settled_outcome(session, order_id: int) -> Dict[str, Any]:
    """Someone else settled the order first ; report what they decided."""
    order = await get_order(session, order_id)
    if order is not None and order.payment_status == PaymentStatus.PAID.value:
        return {"success": True, "orderNumber": order.order_number, "refId": order.payment_ref_id}
    return {"success": False, "orderNumber": order.order_number if order else None, "error": "payment_failed"}


async def handle_webhook(session, raw_body: bytes, signature: Optional[str], gateway: ZarinpalGateway,
                         notifier=None) -> Dict[str, Any]:
    secret = config_settings.ZARINPAL_WEBHOOK_SECRET
    if secret:
        if not verify_signature(secret, raw_body, signature):
            logger.error("payments.webhook.invalid_signature")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    else:
        logger.warning("payments.webhook.unsigned", extra={"note": "ZARINPAL_WEBHOOK_SECRET not set"})

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    authority = payload.get("authority")
    gw_status = payload.get("status")
    amount = payload.get("amount")
    if not authority or not gw_status:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="authority and status are required")

    order = await get_order_by_payment_id(session, str(authority))
    if order is None:
        logger.warning("payments.webhook.unknown_authority", extra={"authority": authority})
        raise NotFound("Order not found for authority")

    if order.payment_status == PaymentStatus.PAID.value:
        return {"status": "already_processed", "orderNumber": order.order_number}

    if str(gw_status).upper() != "OK":
        # failures are settled by the callback or the expiry job
        logger.info("payments.webhook.not_ok", extra={"order_id": order.id, "gateway_status": gw_status})
        return {"status": "acknowledged", "orderNumber": order.order_number}

    if not _awaiting_payment(order):
        logger.warning("payments.webhook.order_not_pending", extra={
            "order_id": order.id, "status": order.status, "payment_status": order.payment_status,
        })
        return {"status": "order_not_pending", "orderNumber": order.order_number}

    expected = to_gateway_amount(order.total_amount)
    try:
        amount_matches = amount is not None and int(amount) == expected
    except (TypeError, ValueError):
        amount_matches = False
    if not amount_matches:
        logger.error("payments.webhook.amount_mismatch", extra={
            "order_id": order.id, "expected_amount": expected, "received_amount": amount,
        })
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Amount mismatch")

    try:
        paid = await _verify_and_mark_paid(session, order, str(authority), gateway, notifier)
    except GatewayError as e:
        if e.transient:
            raise
        logger.warning("payments.webhook.verify_failed", extra={"order_id": order.id, "error": e.message})
        return {"status": "verification_failed", "orderNumber": order.order_number}

    if paid is None:
        outcome = await _settled_outcome(session, order.id)
        return {"status": "already_processed" if outcome["success"] else "order_not_pending",
                "orderNumber": order.order_number}
    return {"status": "processed", "orderNumber": paid.order_number, "refId": paid.payment_ref_id}
