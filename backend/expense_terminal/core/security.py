"""Security utilities: bearer token validation.

Sessions and sign-in live with the external auth provider; this module only
verifies the access token it issues and extracts the user id from ``sub``.
"""

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from expense_terminal.config import settings
from expense_terminal.core.exceptions import UnauthorizedError

logger = structlog.get_logger()


def decode_access_token(token: str) -> dict:
    """Decode and validate an access token."""
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as e:
        logger.info("access_token_rejected", error=str(e))
        raise UnauthorizedError("Invalid or expired token") from e


# ── Auth Dependencies ─────────────────────────────
security_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme),
) -> str:
    """FastAPI dependency: return the authenticated user's id."""
    if credentials is None:
        raise UnauthorizedError()

    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Token missing subject")
    return str(user_id)
