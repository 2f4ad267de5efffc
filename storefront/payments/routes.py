from typing import Optional
from urllib.parse import urlencode
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from metrics.custom_instrumentator import record_payment_outcome
from storefront.auth.dependencies import CurrentUser, get_current_user
from storefront.common.constants import request_id_ctx
from storefront.common.utils import success_response
from storefront.config.settings import config_settings
from storefront.db.dependencies import get_session
from storefront.notifications.dependencies import get_notifier
from storefront.payments.constants import SIGNATURE_HEADER
from storefront.payments.dependencies import get_gateway
from storefront.payments.models import PaymentRequestIn
from storefront.payments.services import handle_callback, handle_webhook, request_order_payment
from storefront.payments.zarinpal import ZarinpalGateway

payments_router = APIRouter()


def _checkout_redirect(outcome: dict) -> RedirectResponse:
    base = config_settings.APP_URL.rstrip("/")
    if outcome.get("success"):
        params = {"orderNumber": outcome.get("orderNumber"), "refId": outcome.get("refId")}
        url = f"{base}/fa/checkout/success?{urlencode({k: v for k, v in params.items() if v})}"
    else:
        params = {"error": outcome.get("error"), "orderNumber": outcome.get("orderNumber")}
        url = f"{base}/fa/checkout?{urlencode({k: v for k, v in params.items() if v})}"
    return RedirectResponse(url, status_code=303)


@payments_router.post("/zarinpal/request")
async def zarinpal_request(request: Request, payload: PaymentRequestIn,
                           user: CurrentUser = Depends(get_current_user),
                           gateway: ZarinpalGateway = Depends(get_gateway),
                           session: AsyncSession = Depends(get_session)):

    callback_url = config_settings.ZARINPAL_CALLBACK_URL or str(request.url_for("zarinpal_callback"))
    data = await request_order_payment(session, payload.order_id, user, gateway, callback_url)
    return success_response(data, request_id=request_id_ctx.get())


@payments_router.get("/zarinpal/callback", name="zarinpal_callback")
async def zarinpal_callback(authority: Optional[str] = Query(None, alias="Authority"),
                            status_param: Optional[str] = Query(None, alias="Status"),
                            gateway: ZarinpalGateway = Depends(get_gateway),
                            notifier=Depends(get_notifier),
                            session: AsyncSession = Depends(get_session)):

    outcome = await handle_callback(session, authority, status_param, gateway, notifier)
    record_payment_outcome("callback", "success" if outcome.get("success") else outcome.get("error", "unknown"))
    return _checkout_redirect(outcome)


@payments_router.post("/zarinpal/webhook")
async def zarinpal_webhook(request: Request,
                           gateway: ZarinpalGateway = Depends(get_gateway),
                           notifier=Depends(get_notifier),
                           session: AsyncSession = Depends(get_session)):

    body = await request.body()
    data = await handle_webhook(session, body, request.headers.get(SIGNATURE_HEADER), gateway, notifier)
    record_payment_outcome("webhook", data["status"])
    return success_response(data, request_id=request_id_ctx.get())
