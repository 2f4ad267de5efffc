import hashlib
import hmac
import re
from typing import Optional
from urllib.parse import urlparse
from storefront.payments.constants import GATEWAY_UNIT_DIVISOR

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
AUTHORITY_RE = re.compile(r"^[A-Za-z0-9]+$")


def to_gateway_amount(amount_rial: int, divisor: int = GATEWAY_UNIT_DIVISOR) -> int:
    """Internal amounts are rial ; the gateway takes toman. Truncates , never rounds up."""
    return int(amount_rial) // int(divisor)


def valid_email(email: Optional[str]) -> Optional[str]:
    if email and EMAIL_RE.match(email.strip()):
        return email.strip()
    return None


def valid_authority(authority: Optional[str]) -> bool:
    return bool(authority) and bool(AUTHORITY_RE.match(authority))


def is_absolute_http_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature.strip().lower())
