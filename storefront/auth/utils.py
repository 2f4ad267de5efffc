from datetime import datetime, timedelta, timezone
import secrets
from jose import jwt, JWTError
from storefront.config.settings import config_settings

JWT_SECRET = config_settings.JWT_SECRET
JWT_ALGO = config_settings.JWT_ALGO

ACCESS_TOKEN_EXPIRE_MINUTES = int(config_settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_access_token(user_id, user_roles, expires_dur=ACCESS_TOKEN_EXPIRE_MINUTES):
    """Issue an access token ; login lives in the identity service, this is for tooling and tests."""
    now=datetime.now(timezone.utc)
    expiry= now + (timedelta(minutes=expires_dur))

    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(expiry.timestamp()),
        "jti": secrets.token_hex(16),
        "roles": list(user_roles or []),
    }
    token=jwt.encode(claims=payload,key=config_settings.JWT_SECRET,algorithm=config_settings.JWT_ALGO)
    return token


def decode_token(token:str):
    """To verify the signature , expiration and user claims of token"""
    try:
        token_data=jwt.decode(
        token,
        key=config_settings.JWT_SECRET,
        algorithms=[config_settings.JWT_ALGO]
        )
        return token_data
    except JWTError:
        return None
