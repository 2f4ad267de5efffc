from typing import Optional
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from metrics.custom_instrumentator import record_refund
from storefront.auth.dependencies import CurrentUser, require_admin
from storefront.common.constants import request_id_ctx
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.notifications.dependencies import get_notifier
from storefront.orders.models import OrderRefundIn, OrderStatusUpdateIn
from storefront.orders.services import refund_order, update_order_status


orders_admin_router=APIRouter()


@orders_admin_router.post("/{order_id}/refund")
async def refund(order_id: int, payload: Optional[OrderRefundIn] = Body(None),
                 admin: CurrentUser = Depends(require_admin),
                 notifier=Depends(get_notifier),
                 session: AsyncSession = Depends(get_session)):

    payload = payload or OrderRefundIn()
    data = await refund_order(
        session, order_id, admin,
        reason=payload.reason,
        refund_amount=payload.refund_amount,
        notify_customer=payload.notify_customer,
        notifier=notifier,
    )
    record_refund(data["status"])
    return success_response(data, request_id=request_id_ctx.get())


@orders_admin_router.patch("/{order_id}/status")
async def change_status(order_id: int, payload: OrderStatusUpdateIn,
                        admin: CurrentUser = Depends(require_admin),
                        notifier=Depends(get_notifier),
                        session: AsyncSession = Depends(get_session)):

    data = await update_order_status(session, order_id, payload.status.value, admin,
                                     tracking_number=payload.tracking_number, notifier=notifier)
    return success_response(data, request_id=request_id_ctx.get())
