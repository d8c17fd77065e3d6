"""FastAPI dependencies for caller identity.

Usage in any protected router:
    from src.cm_gateway.auth.dependencies import get_current_user_id

    @router.get("/protected")
    async def protected(user_id: str = Depends(get_current_user_id)):
        ...
"""

import hmac

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from config.settings import settings
from src.cm_common.errors import InvalidCredentialsError, UnauthorizedActionError
from src.cm_gateway.auth.jwt_handler import decode_access_token

# auto_error=False so a missing header maps to the same 401 as a bad token
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user_id(token: str | None = Depends(oauth2_scheme)) -> str:
    """Extract and validate the Bearer token, return the caller's user id.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    if not token:
        raise _CREDENTIALS_EXCEPTION
    try:
        payload = decode_access_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None
    return str(payload["sub"])


async def require_internal_caller(
    x_internal_key: str | None = Header(default=None, alias="X-Internal-Key"),
) -> None:
    """Guard for service-to-service endpoints (settlement webhooks, sweeps, ops).

    Raises HTTP 403 (AppError 3001) when the shared internal key is missing or wrong.
    """
    if x_internal_key is None or not hmac.compare_digest(
        x_internal_key, settings.INTERNAL_API_KEY
    ):
        raise UnauthorizedActionError("internal service key required")
