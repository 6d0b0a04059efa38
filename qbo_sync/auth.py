import logging
from typing import Optional

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from .config import IDENTITY_PROVIDER_API_KEY, IDENTITY_PROVIDER_URL, QBO_HTTP_TIMEOUT
from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Tests swap this for an httpx.MockTransport
identity_transport: Optional[httpx.AsyncBaseTransport] = None


class CallerIdentity(BaseModel):
    """Validated caller"""

    user_id: str
    email: Optional[str] = None


async def verify_bearer_token(token: str) -> CallerIdentity:
    """
    Validate a caller token against the identity provider's user endpoint.
    Raises AuthenticationError for missing, rejected or unreadable tokens.
    """
    if not token:
        raise AuthenticationError("No authorization header")

    try:
        async with httpx.AsyncClient(timeout=QBO_HTTP_TIMEOUT, transport=identity_transport) as client:
            response = await client.get(
                f"{IDENTITY_PROVIDER_URL.rstrip('/')}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": IDENTITY_PROVIDER_API_KEY,
                    "Accept": "application/json",
                },
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Identity provider unreachable: {e}")
        raise AuthenticationError("Invalid token") from e

    if response.status_code != 200:
        logger.warning(f"⚠️ Token rejected by identity provider: HTTP {response.status_code}")
        raise AuthenticationError("Invalid token")

    try:
        user = response.json()
    except ValueError as e:
        raise AuthenticationError("Invalid token") from e

    user_id = user.get("id") if isinstance(user, dict) else None
    if not user_id:
        logger.warning("⚠️ Identity provider response missing user id")
        raise AuthenticationError("Invalid token")

    logger.debug(f"✅ Caller authenticated: {user_id}")
    return CallerIdentity(user_id=str(user_id), email=user.get("email"))


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CallerIdentity:
    """FastAPI dependency resolving the Authorization header to a caller"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("No authorization header")
    return await verify_bearer_token(credentials.credentials)
