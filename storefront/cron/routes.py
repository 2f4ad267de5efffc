from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.constants import request_id_ctx
from storefront.common.utils import success_response
from storefront.cron.dependencies import verify_cron_secret
from storefront.cron.expire_orders import expire_pending_orders, get_order_expiry_stats
from storefront.db.dependencies import get_session, get_session_factory
from metrics.custom_instrumentator import record_expired_orders
from storefront.notifications.dependencies import get_notifier

cron_router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@cron_router.post("/expire-orders")
async def run_expire_orders(session_factory=Depends(get_session_factory),
                            notifier=Depends(get_notifier)):

    result = await expire_pending_orders(session_factory, notifier)
    record_expired_orders(result["expiredCount"], result["errorCount"])
    return success_response(result, request_id=request_id_ctx.get())


@cron_router.get("/expire-orders")
async def expiry_stats(session: AsyncSession = Depends(get_session)):

    data = await get_order_expiry_stats(session)
    return success_response(data, request_id=request_id_ctx.get())
