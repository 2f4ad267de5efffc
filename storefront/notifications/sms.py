from typing import Any, Awaitable, Callable, Dict, Optional
import httpx
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings
from storefront.common.utils import normalize_mobile
from storefront.notifications.constants import KAVENEGAR_OK, KAVENEGAR_TRANSIENT_STATUSES, logger


class SmsError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.status = status
        self.transient = transient


class KavenegarClient:
    """Thin async client for the Kavenegar REST api (`/{api_key}/sms/send.json`)."""

    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None,
                 base_url: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else config_settings.KAVENEGAR_API_KEY
        self.sender = sender or config_settings.KAVENEGAR_SENDER
        self.base_url = (base_url or config_settings.KAVENEGAR_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, receptor: str, message: str) -> Dict[str, Any]:
        if not self.configured:
            raise SmsError("KAVENEGAR_API_KEY is not configured")

        url = f"{self.base_url}/{self.api_key}/sms/send.json"
        form = {"receptor": receptor, "sender": self.sender, "message": message}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(url, data=form)

        if resp.status_code >= 500:
            resp.raise_for_status()

        try:
            body = resp.json()
        except ValueError:
            raise SmsError(f"non-json response from sms provider (http {resp.status_code})", status=resp.status_code)

        ret = body.get("return") or {}
        status = ret.get("status", resp.status_code)
        if status != KAVENEGAR_OK:
            raise SmsError(ret.get("message") or "sms rejected by provider", status=status,
                           transient=status in KAVENEGAR_TRANSIENT_STATUSES)

        entries = body.get("entries") or []
        return entries[0] if entries else {}


def sms_skipped() -> bool:
    return config_settings.SKIP_SMS_IN_DEV and admin_config.ENV == "dev"


async def send_sms_safe(client: KavenegarClient, receptor: Optional[str], message: str,
                        context: Optional[str] = None,
                        send: Optional[Callable[[str, str], Awaitable[Dict[str, Any]]]] = None) -> bool:
    """
    Best-effort single send ; logs and returns False instead of raising.

    `send` replaces `client.send` , the worker passes its retrying wrapper.
    """
    send = send or client.send
    if sms_skipped():
        logger.info("notifications.sms.skipped_dev", extra={"receptor": receptor, "sms_context": context,
                                                            "length": len(message)})
        return True

    mobile = normalize_mobile(receptor)
    if mobile is None:
        logger.warning("notifications.sms.invalid_receptor", extra={"receptor": receptor, "sms_context": context})
        return False

    try:
        entry = await send(mobile, message)
    except SmsError as e:
        logger.error("notifications.sms.rejected", extra={"receptor": mobile, "sms_context": context,
                                                         "provider_status": e.status, "error": str(e)})
        return False
    except httpx.HTTPError as e:
        logger.error("notifications.sms.transport_failed", extra={"receptor": mobile, "sms_context": context,
                                                                 "error": str(e)})
        return False

    logger.info("notifications.sms.sent", extra={"receptor": mobile, "sms_context": context,
                                                 "message_id": entry.get("messageid")})
    return True
