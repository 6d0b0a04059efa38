"""
QuickBooks OAuth token refresh
Refresh tokens rotate on every use, so a failed refresh is never retried
"""

import base64
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from ....config import (
    QBO_HTTP_TIMEOUT,
    QUICKBOOKS_CLIENT_ID,
    QUICKBOOKS_CLIENT_SECRET,
    QUICKBOOKS_TOKEN_URL,
)
from ....exceptions import TokenRefreshError
from .repository import TokenStoreRepository
from .schemas import TokenRecord

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def get_basic_auth_header(client_id: Optional[str], client_secret: Optional[str]) -> str:
    """Generate Basic Auth header value for QuickBooks"""
    credentials = f"{client_id}:{client_secret}"
    return base64.b64encode(credentials.encode()).decode()


class TokenRefresher:
    """Exchanges a refresh token for a new access/refresh pair and stores it"""

    def __init__(
        self,
        client_id: Optional[str] = QUICKBOOKS_CLIENT_ID,
        client_secret: Optional[str] = QUICKBOOKS_CLIENT_SECRET,
        token_url: str = QUICKBOOKS_TOKEN_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.transport = transport
        self.now = now

    async def refresh(
        self,
        db: Session,
        company_id: str,
        tokens: TokenRecord,
        user_id: Optional[str] = None,
    ) -> str:
        """Refresh and persist; returns the new access token"""
        if not self.client_id or not self.client_secret:
            logger.error("❌ QuickBooks client credentials are not configured")
            raise TokenRefreshError("QuickBooks not configured. Please contact support.")

        try:
            async with httpx.AsyncClient(timeout=QBO_HTTP_TIMEOUT, transport=self.transport) as client:
                response = await client.post(
                    self.token_url,
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Authorization": f"Basic {get_basic_auth_header(self.client_id, self.client_secret)}",
                    },
                    data={"grant_type": "refresh_token", "refresh_token": tokens.refresh_token},
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token refresh request failed for company {company_id}: {e}")
            raise TokenRefreshError() from e

        if not response.is_success:
            logger.error(f"❌ Token refresh failed ({response.status_code}): {response.text}")
            raise TokenRefreshError()

        try:
            token_data = response.json()
        except ValueError as e:
            logger.error(f"❌ Token refresh returned a non-JSON body: {response.text[:200]}")
            raise TokenRefreshError() from e

        new_access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
        if not new_access_token:
            logger.error("❌ Token refresh response did not include an access token")
            raise TokenRefreshError()

        new_refresh_token = token_data.get("refresh_token") or tokens.refresh_token
        # The provider has already rotated the pair; it must be stored whatever expires_in says
        try:
            expires_in = int(token_data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            logger.warning(
                f"⚠️ Unreadable expires_in {token_data.get('expires_in')!r}, assuming {DEFAULT_EXPIRES_IN}s"
            )
            expires_in = DEFAULT_EXPIRES_IN
        expires_at = self.now() + timedelta(seconds=expires_in)

        TokenStoreRepository.update_tokens(
            db, company_id, new_access_token, new_refresh_token, expires_at, user_id=user_id
        )
        logger.info(f"✅ QuickBooks token refreshed for company {company_id}, expires at {expires_at}")

        return new_access_token
