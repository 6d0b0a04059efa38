"""
QuickBooks Online accounting API client
Thin async wrapper over the company-scoped query and report endpoints
"""

import asyncio
import logging
from datetime import date
from typing import Any, Optional

import httpx

from ....config import (
    QBO_HTTP_TIMEOUT,
    QBO_MAX_RETRIES,
    QBO_RETRY_BACKOFF_SECONDS,
    QUICKBOOKS_API_BASE_URL,
    QUICKBOOKS_MINOR_VERSION,
)
from ....exceptions import RemoteApiError

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class QuickBooksClient:
    """Issues authenticated requests for one realm (QuickBooks company)"""

    def __init__(
        self,
        access_token: str,
        realm_id: str,
        base_url: str = QUICKBOOKS_API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = QBO_MAX_RETRIES,
        backoff_seconds: float = QBO_RETRY_BACKOFF_SECONDS,
        timeout: float = QBO_HTTP_TIMEOUT,
    ):
        self.realm_id = realm_id
        self.company_url = f"{base_url.rstrip('/')}/company/{realm_id}"
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        self.transport = transport
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.timeout = timeout

    async def _get(self, path: str, params: dict, operation: str) -> dict[str, Any]:
        """GET with bounded exponential backoff on transport errors, 429 and 5xx"""
        url = f"{self.company_url}/{path}"
        params = {**params, "minorversion": QUICKBOOKS_MINOR_VERSION}

        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(
                    headers=self.headers, timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.get(url, params=params)
            except httpx.HTTPError as e:
                if attempt >= self.max_retries:
                    logger.error(f"❌ QuickBooks {operation} failed after {attempt + 1} attempts: {e}")
                    raise RemoteApiError(None, str(e), operation) from e
                logger.warning(f"⚠️ QuickBooks {operation} transport error (attempt {attempt + 1}): {e}")
            else:
                if response.is_success:
                    return response.json()
                if response.status_code not in RETRYABLE_STATUS_CODES or attempt >= self.max_retries:
                    logger.error(f"❌ QuickBooks {operation} failed ({response.status_code}): {response.text}")
                    raise RemoteApiError(response.status_code, response.text, operation)
                logger.warning(
                    f"⚠️ QuickBooks {operation} returned {response.status_code} (attempt {attempt + 1}), retrying"
                )

            await asyncio.sleep(self.backoff_seconds * (2**attempt))
            attempt += 1

    async def _query_all(self, entity: str, where: str = "") -> list[dict]:
        """Run a QBO SQL query, following STARTPOSITION pages"""
        records: list[dict] = []
        start = 1
        while True:
            statement = f"select * from {entity}{where} STARTPOSITION {start} MAXRESULTS {PAGE_SIZE}"
            data = await self._get("query", {"query": statement}, f"{entity.lower()} query")
            page = data.get("QueryResponse", {}).get(entity, [])
            records.extend(page)
            if len(page) < PAGE_SIZE:
                return records
            start += PAGE_SIZE

    async def query_items(self) -> list[dict]:
        """All items (products and services)"""
        return await self._query_all("Item")

    async def query_accounts(self, include_inactive: bool = False) -> list[dict]:
        """Chart of accounts; QBO hides inactive rows unless asked"""
        where = " where Active IN (true, false)" if include_inactive else ""
        return await self._query_all("Account", where)

    async def fetch_profit_and_loss(self, start_date: date, end_date: date) -> dict[str, Any]:
        return await self._get(
            "reports/ProfitAndLoss",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            "profit and loss report",
        )

    async def fetch_trial_balance(self, start_date: date, end_date: date) -> dict[str, Any]:
        return await self._get(
            "reports/TrialBalance",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            "trial balance report",
        )
