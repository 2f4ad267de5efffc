from typing import Optional
from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import CurrentUser, get_current_user
from storefront.common.constants import request_id_ctx
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.notifications.dependencies import get_notifier
from storefront.orders.models import OrderCancelIn, OrderCreateIn
from storefront.orders.services import cancel_order, get_order_details, place_order


orders_router=APIRouter()


@orders_router.post("")
async def create_order(payload: OrderCreateIn,
                       user: CurrentUser = Depends(get_current_user),
                       notifier=Depends(get_notifier),
                       session: AsyncSession = Depends(get_session)):

    items = [{"product_id": it.product_id, "variant_id": it.variant_id, "quantity": it.quantity}
             for it in payload.items]
    data = await place_order(
        session, user, items,
        payment_method=payload.payment_method.value,
        coupon_code=payload.coupon_code,
        customer_phone=payload.customer_phone,
        customer_email=payload.customer_email,
        customer_note=payload.customer_note,
        notifier=notifier,
    )
    return success_response(data, status_code=status.HTTP_201_CREATED, request_id=request_id_ctx.get())


@orders_router.get("/{order_number}")
async def read_order(order_number: str,
                     user: CurrentUser = Depends(get_current_user),
                     session: AsyncSession = Depends(get_session)):

    data = await get_order_details(session, order_number, user)
    return success_response(data, request_id=request_id_ctx.get())


@orders_router.post("/{order_id}/cancel")
async def cancel_own_order(order_id: int,
                           payload: Optional[OrderCancelIn] = Body(None),
                           user: CurrentUser = Depends(get_current_user),
                           notifier=Depends(get_notifier),
                           session: AsyncSession = Depends(get_session)):

    data = await cancel_order(session, order_id, user, reason=payload.reason if payload else None,
                              notifier=notifier)
    return success_response(data, request_id=request_id_ctx.get())
