from dataclasses import dataclass, field
from typing import List, Optional
from fastapi import Depends, Request,HTTPException,status
from fastapi.security import HTTPBearer , http
from storefront.auth.constants import ADMIN_ROLES, logger
from storefront.auth.utils import decode_token


@dataclass
class CurrentUser:
    user_id: int
    roles: List[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return any(r in ADMIN_ROLES for r in self.roles)


class Authentication(HTTPBearer):
    def __init__(self,auto_error=True):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request:Request) -> Optional[dict]:
        auth_creds: Optional[http.HTTPAuthorizationCredentials] = await super().__call__(request)
        if auth_creds is None:
            # only reachable with auto_error=False
            return None
        token=auth_creds.credentials

        decoded_token=decode_token(token)

        if not decoded_token:
            logger.warning("auth.token.invalid", extra={"path": request.url.path, "method": request.method})
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,detail="Invalid or expired token provided.")

        return decoded_token


def _user_from_claims(token_data: dict) -> CurrentUser:
    sub = token_data.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token subject is not a user id")

    roles = token_data.get("roles") or []
    return CurrentUser(user_id=user_id, roles=list(roles))


async def get_current_user(token_data: dict = Depends(Authentication())) -> CurrentUser:
    return _user_from_claims(token_data)


async def get_optional_user(token_data: Optional[dict] = Depends(Authentication(auto_error=False))) -> Optional[CurrentUser]:
    if token_data is None:
        return None
    return _user_from_claims(token_data)


async def require_admin(request: Request, user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        logger.warning("auth.authorization.denied", extra={
            "path": request.url.path,
            "user_id": user.user_id,
        })
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return user
