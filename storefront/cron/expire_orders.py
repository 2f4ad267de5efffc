import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import func, select
from storefront.common.utils import as_utc, now
from storefront.config.settings import config_settings
from storefront.cron.constants import EXPIRED_CANCEL_REASON, EXPIRING_SOON_MINUTES, EXPIRY_BATCH_SIZE, logger
from storefront.notifications.templates import SmsEvent
from storefront.orders.repository import get_order
from storefront.orders.services import reverse_order
from storefront.orders.state_machine import assert_transition
from storefront.orders.utils import order_contact
from storefront.schema.full_schema import Orders, OrderStatus, PaymentStatus, Users


def expiry_candidates_filter(at: datetime):
    """payment still pending , deadline passed , nothing shipped"""
    return (
        Orders.payment_status == PaymentStatus.PENDING.value,
        Orders.expires_at.is_not(None),
        Orders.expires_at < at,
        Orders.shipped_at.is_(None),
    )


def is_expiry_candidate(order: Orders, at: datetime) -> bool:
    return (
        order.payment_status == PaymentStatus.PENDING.value
        and order.expires_at is not None
        and as_utc(order.expires_at) < at
        and order.shipped_at is None
    )


async def select_expired_orders(session, at: datetime, limit: int = EXPIRY_BATCH_SIZE):
    stmt = (
        select(Orders.id, Orders.order_number, Orders.customer_phone,
               Users.phone.label("user_phone"), Users.first_name, Users.last_name)
        .outerjoin(Users, Users.id == Orders.user_id)
        .where(*expiry_candidates_filter(at))
        .order_by(Orders.expires_at, Orders.id)
        .limit(limit)
    )
    res = await session.execute(stmt)
    return res.all()


async def expire_one(session, order_id: int, at: datetime) -> Optional[Dict[str, Any]]:
    """Cancel one expired order in its own transaction ; None when it stopped being a candidate."""
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None or not is_expiry_candidate(order, at):
            await session.rollback()
            return None

        assert_transition(order.status, OrderStatus.CANCELLED.value, order.payment_status)
        restored = await reverse_order(
            session, order,
            status=OrderStatus.CANCELLED.value,
            payment_status=PaymentStatus.FAILED.value,
            cancel_reason=EXPIRED_CANCEL_REASON,
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return restored


async def expire_pending_orders(session_factory, notifier=None, at: Optional[datetime] = None,
                                batch_size: int = EXPIRY_BATCH_SIZE) -> Dict[str, Any]:
    """
    Cancel up to `batch_size` orders whose payment window closed, oldest deadline first.

    Orders are handled one after another, each in its own transaction , so a failing
    order is reported in `errors` and the rest of the batch still runs.
    """
    started = time.monotonic()
    at = at or now()

    async with session_factory() as session:
        candidates = await select_expired_orders(session, at, batch_size)

    logger.info("cron.expire.start", extra={"candidates": len(candidates), "batch_size": batch_size})

    expired_count = 0
    skipped_count = 0
    errors: List[Dict[str, Any]] = []

    for row in candidates:
        async with session_factory() as session:
            try:
                restored = await expire_one(session, row.id, at)
            except Exception as e:
                logger.exception("cron.expire.order_failed", extra={"order_id": row.id, "order_number": row.order_number})
                errors.append({"orderId": row.id, "orderNumber": row.order_number, "error": str(e)})
                continue

        if restored is None:
            skipped_count += 1
            continue

        expired_count += 1
        logger.info("cron.expire.order_done", extra={"order_id": row.id, "order_number": row.order_number, **restored})

        if notifier is not None:
            receptor, contact = order_contact(row.user_phone, row.customer_phone, row.first_name, row.last_name)
            notifier.publish(SmsEvent.ORDER_EXPIRED, receptor, order_number=row.order_number,
                             expiry_minutes=config_settings.ORDER_EXPIRY_MINUTES, **contact)

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("cron.expire.done", extra={
        "expired_count": expired_count,
        "error_count": len(errors),
        "skipped_count": skipped_count,
        "duration_ms": duration_ms,
    })
    return {
        "success": not errors,
        "expiredCount": expired_count,
        "errorCount": len(errors),
        "skippedCount": skipped_count,
        "errors": errors,
        "durationMs": duration_ms,
    }


async def get_order_expiry_stats(session, at: Optional[datetime] = None) -> Dict[str, int]:
    at = at or now()
    soon = at + timedelta(minutes=EXPIRING_SOON_MINUTES)
    pending = (Orders.payment_status == PaymentStatus.PENDING.value, Orders.shipped_at.is_(None))

    total_pending = (await session.execute(
        select(func.count(Orders.id)).where(*pending))).scalar_one()
    expired_not_processed = (await session.execute(
        select(func.count(Orders.id)).where(*expiry_candidates_filter(at)))).scalar_one()
    expiring_soon = (await session.execute(
        select(func.count(Orders.id)).where(*pending, Orders.expires_at >= at, Orders.expires_at <= soon))).scalar_one()

    rows = (await session.execute(
        select(Orders.expires_at).where(*pending, Orders.expires_at >= at))).scalars().all()
    average = 0
    if rows:
        total_minutes = sum((as_utc(e) - at).total_seconds() / 60 for e in rows)
        average = int(total_minutes // len(rows))

    return {
        "totalPending": int(total_pending),
        "expiredNotProcessed": int(expired_not_processed),
        "expiringSoon": int(expiring_soon),
        "averageTimeToExpiry": average,
    }
