"""JWT verification for caller identity.

Tokens are issued by the external identity provider and signed with the
shared JWT_SECRET (HS256). This service only verifies them: it never issues
tokens, stores credentials, or authenticates users itself.
"""

from jose import JWTError, jwt

from config.settings import settings
from src.cm_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"


def decode_access_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Returns:
        Decoded payload dict with at minimum {"sub": ...}.

    Raises:
        InvalidCredentialsError: signature invalid, token expired, wrong
        token type, or missing subject.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    # Identity providers that do not tag tokens are accepted; refresh tokens are not
    if payload.get("type", "access") != "access":
        raise InvalidCredentialsError()
    if not payload.get("sub"):
        raise InvalidCredentialsError()
    return payload
