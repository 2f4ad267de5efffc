import hmac
from typing import Optional
from fastapi import Header, HTTPException, Request, status
from storefront.config.settings import config_settings
from storefront.cron.constants import logger


async def verify_cron_secret(request: Request, authorization: Optional[str] = Header(None)) -> None:
    secret = config_settings.CRON_SECRET
    if not secret:
        logger.warning("cron.auth.unprotected", extra={"path": request.url.path, "note": "CRON_SECRET not set"})
        return

    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("cron.auth.rejected", extra={"path": request.url.path})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
