"""
Bearer JWT validation OR dev-mode bypass. Controlled by FF_USE_AUTH flag.

Tokens are issued by the login service; this module only verifies them.
"""

import logging
from dataclasses import dataclass

from jose import jwt, JWTError, ExpiredSignatureError

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedUser:
    user_id: str
    email: str = ""
    name: str = ""


# Dev-mode user, returned when FF_USE_AUTH=false
DEV_USER = AuthenticatedUser(
    user_id="dev-user",
    email="dev@local",
    name="Dev User",
)


def decode_token(token: str) -> AuthenticatedUser:
    """Verify signature + expiry and map claims onto an AuthenticatedUser."""
    settings = get_settings()
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

    user_id = payload.get("sub") or payload.get("userId") or ""
    if not user_id:
        raise JWTError("Token missing subject")

    return AuthenticatedUser(
        user_id=str(user_id),
        email=payload.get("email", ""),
        name=payload.get("name", ""),
    )


async def get_current_user(authorization: str = "") -> AuthenticatedUser:
    """
    Resolve the current user from the Authorization header.
    If FF_USE_AUTH is false, returns a dev user.
    """
    flags = get_flags()

    if not flags.use_auth:
        return DEV_USER

    if not authorization:
        raise PermissionError("Access token required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise PermissionError("Invalid Authorization header. Use: Bearer <token>")

    try:
        return decode_token(token)
    except ExpiredSignatureError:
        raise PermissionError("Your token has expired. Please log in again.")
    except JWTError as e:
        logger.debug("Rejected token: %s", e)
        raise PermissionError("Invalid token. Please log in again.")
