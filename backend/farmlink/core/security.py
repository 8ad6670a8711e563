"""Bearer-token authentication against the external identity service.

Sessions are owned by the identity service; this module only verifies the
HS256 JWT it issues and resolves the ``sub`` claim to a local profile.
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.config import settings
from farmlink.core.deps import get_db
from farmlink.core.errors import UnauthorizedError
from farmlink.models.profile import Profile
from farmlink.services.profile import get_profile_by_id

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    """Decode and validate a JWT access token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """FastAPI dependency: the profile behind the Bearer token."""
    if credentials is None:
        raise UnauthorizedError()

    payload = decode_access_token(credentials.credentials)
    subject = payload.get("sub")
    if subject is None:
        raise UnauthorizedError("Token payload missing subject")

    try:
        profile_id = int(subject)
    except (ValueError, TypeError) as exc:
        raise UnauthorizedError("Invalid token subject") from exc

    profile = await get_profile_by_id(db, profile_id)
    if profile is None:
        raise UnauthorizedError("Profile not found")
    return profile
