from dataclasses import dataclass
from typing import Any, Dict, Optional
import httpx
from storefront.common.custom_exceptions import GatewayConfigError, GatewayError, ValidationFailed
from storefront.common.retries import TRANSIENT_EXCEPTIONS, retry_async
from storefront.common.utils import normalize_mobile
from storefront.config.settings import config_settings
from storefront.payments.constants import (CODE_ALREADY_VERIFIED, CODE_SUCCESS, DESCRIPTION_MAX_LENGTH,
                                           GATEWAY_MIN_AMOUNT, MERCHANT_ID_MIN_LENGTH, REQUEST_PATH, VERIFY_PATH,
                                           ZARINPAL_API_BASE, ZARINPAL_SANDBOX_API_BASE,
                                           ZARINPAL_SANDBOX_STARTPAY_BASE, ZARINPAL_STARTPAY_BASE, logger)
from storefront.payments.utils import is_absolute_http_url, valid_authority, valid_email


@dataclass
class PaymentRequestResult:
    authority: str
    payment_url: str
    fee: Optional[int] = None


@dataclass
class PaymentVerifyResult:
    ref_id: str
    code: int
    card_pan: Optional[str] = None
    fee: Optional[int] = None


def _first_error(body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # zarinpal sends `errors: []` on success and an object (sometimes a list) on failure
    errors = body.get("errors")
    if not errors:
        return None
    if isinstance(errors, list):
        return errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
    if isinstance(errors, dict):
        return errors
    return {"message": str(errors)}


class ZarinpalGateway:
    """
    ZarinPal v4 REST adapter.

    Amounts passed in are already in gateway units (toman). Transport failures and 5xx
    answers are retried with backoff ; error bodies and non-success codes are not.
    """

    def __init__(self, merchant_id: Optional[str] = None, sandbox: Optional[bool] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None,
                 max_retries: Optional[int] = None, backoff_base: Optional[float] = None):
        self.merchant_id = (merchant_id if merchant_id is not None else config_settings.ZARINPAL_MERCHANT_ID) or ""
        self.sandbox = config_settings.ZARINPAL_SANDBOX if sandbox is None else sandbox
        self.timeout = timeout or config_settings.ZARINPAL_TIMEOUT_SECONDS
        self.transport = transport
        self.base_url = ZARINPAL_SANDBOX_API_BASE if self.sandbox else ZARINPAL_API_BASE
        self.startpay_base = ZARINPAL_SANDBOX_STARTPAY_BASE if self.sandbox else ZARINPAL_STARTPAY_BASE
        attempts = max_retries or config_settings.GATEWAY_MAX_RETRIES
        base_delay = config_settings.GATEWAY_BACKOFF_BASE if backoff_base is None else backoff_base
        self._post = retry_async(attempts=attempts, base_delay=base_delay)(self._post_once)

    def validate_merchant(self) -> None:
        merchant = self.merchant_id.strip()
        if not merchant:
            raise GatewayConfigError("ZARINPAL_MERCHANT_ID is not configured", code="MERCHANT_ID_MISSING")
        if len(merchant) < MERCHANT_ID_MIN_LENGTH:
            logger.error("payments.zarinpal.merchant_invalid", extra={
                "merchant_length": len(merchant), "required": MERCHANT_ID_MIN_LENGTH,
            })
            raise GatewayConfigError(f"Merchant id must be at least {MERCHANT_ID_MIN_LENGTH} characters",
                                     code="MERCHANT_ID_INVALID")

    def payment_url(self, authority: str) -> str:
        return f"{self.startpay_base}/{authority}"

    async def _post_once(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                     transport=self.transport) as client:
            resp = await client.post(path, json=payload, headers={"Accept": "application/json"})
        if resp.status_code >= 500:
            resp.raise_for_status()
        try:
            body = resp.json()
        except ValueError:
            raise GatewayError("Gateway returned a non-json response",
                               details={"http_status": resp.status_code}, code="GATEWAY_BAD_RESPONSE")

        err = _first_error(body)
        if err is not None or resp.status_code >= 400:
            err = err or {}
            raise GatewayError(err.get("message") or "Gateway rejected the request",
                               details={"http_status": resp.status_code, "gateway_code": err.get("code")},
                               code="GATEWAY_REJECTED")
        return body.get("data") or {}

    async def _call(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self._post(path, payload)
        except TRANSIENT_EXCEPTIONS as e:
            logger.error("payments.zarinpal.unreachable", extra={"path": path, "error": str(e)})
            raise GatewayError("Payment gateway is unreachable", details={"error": str(e)},
                               code="GATEWAY_UNAVAILABLE", transient=True)
        except httpx.HTTPStatusError as e:
            logger.error("payments.zarinpal.http_error", extra={"path": path, "http_status": e.response.status_code})
            raise GatewayError("Payment gateway failed", details={"http_status": e.response.status_code},
                               code="GATEWAY_UNAVAILABLE", transient=True)

    async def request_payment(self, amount: int, description: str, callback_url: str,
                              mobile: Optional[str] = None, email: Optional[str] = None,
                              order_id: Optional[str] = None) -> PaymentRequestResult:
        self.validate_merchant()

        amount = int(amount)
        if amount < GATEWAY_MIN_AMOUNT:
            raise ValidationFailed(f"Amount must be at least {GATEWAY_MIN_AMOUNT} toman",
                                   details={"amount": amount}, code="AMOUNT_TOO_LOW")
        if not is_absolute_http_url(callback_url):
            raise ValidationFailed("Callback url must be an absolute http(s) url", code="CALLBACK_URL_INVALID")

        payload: Dict[str, Any] = {
            "merchant_id": self.merchant_id.strip(),
            "amount": amount,
            "description": (description or "")[:DESCRIPTION_MAX_LENGTH],
            "callback_url": callback_url,
        }
        metadata: Dict[str, Any] = {}
        mobile = normalize_mobile(mobile)
        if mobile:
            metadata["mobile"] = mobile
        email = valid_email(email)
        if email:
            metadata["email"] = email
        if order_id:
            metadata["order_id"] = str(order_id)
        if metadata:
            payload["metadata"] = metadata

        data = await self._call(REQUEST_PATH, payload)
        code = data.get("code")
        authority = data.get("authority")
        if code != CODE_SUCCESS:
            raise GatewayError(data.get("message") or "Payment request failed",
                               details={"gateway_code": code}, code="GATEWAY_REJECTED")
        if not valid_authority(authority):
            logger.error("payments.zarinpal.bad_authority", extra={"authority": authority})
            raise GatewayError("Gateway returned an invalid authority", code="GATEWAY_BAD_RESPONSE")

        logger.info("payments.zarinpal.requested", extra={"authority": authority, "amount": amount,
                                                          "sandbox": self.sandbox})
        return PaymentRequestResult(authority=authority, payment_url=self.payment_url(authority),
                                    fee=data.get("fee"))

    async def verify_payment(self, authority: str, amount: int) -> PaymentVerifyResult:
        """Confirm the payment for `authority` was made for exactly `amount` ; 100 and 101 count as paid."""
        self.validate_merchant()
        if not valid_authority(authority):
            raise ValidationFailed("Invalid authority", code="AUTHORITY_INVALID")

        payload = {"merchant_id": self.merchant_id.strip(), "authority": authority, "amount": int(amount)}
        data = await self._call(VERIFY_PATH, payload)
        code = data.get("code")
        if code not in (CODE_SUCCESS, CODE_ALREADY_VERIFIED):
            raise GatewayError(data.get("message") or "Payment verification failed",
                               details={"gateway_code": code}, code="GATEWAY_VERIFY_FAILED")

        logger.info("payments.zarinpal.verified", extra={"authority": authority, "gateway_code": code,
                                                         "ref_id": data.get("ref_id")})
        return PaymentVerifyResult(ref_id=str(data.get("ref_id")), code=code,
                                   card_pan=data.get("card_pan"), fee=data.get("fee"))
