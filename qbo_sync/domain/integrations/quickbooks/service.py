"""QuickBooks sync service - Orchestrates token handling and reconciliation"""

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ....auth import CallerIdentity
from ....config import QBO_SYNC_TIMEOUT_SECONDS
from ....exceptions import ConnectionNotFoundError, SyncError, SyncTimeoutError
from .client import QuickBooksClient
from .oauth import TokenRefresher
from .profit_loss import ProfitLossReconciler
from .reconcilers import AccountReconciler, ItemReconciler
from .repository import SyncLogRepository, TokenStoreRepository
from .schemas import ConnectionStatus, SyncResponse, TokenRecord

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], QuickBooksClient]


class QuickBooksSyncService:
    """Service layer for the QuickBooks sync"""

    def __init__(
        self,
        db: Session,
        refresher: Optional[TokenRefresher] = None,
        client_factory: ClientFactory = QuickBooksClient,
        now: Callable[[], datetime] = datetime.utcnow,
        timeout: float = QBO_SYNC_TIMEOUT_SECONDS,
    ):
        self.db = db
        self.refresher = refresher or TokenRefresher(now=now)
        self.client_factory = client_factory
        self.now = now
        self.timeout = timeout

    def get_status(self, company_id: str, caller: CallerIdentity) -> Optional[ConnectionStatus]:
        """Connection status for the caller's company, or None when not connected"""
        return TokenStoreRepository.get_connection_status(self.db, company_id, user_id=caller.user_id)

    async def sync(self, company_id: str, caller: CallerIdentity) -> SyncResponse:
        """
        Run a full sync for one company.

        Items, accounts and P&L run in that order because P&L rows resolve
        account types against the freshly synced chart of accounts. Upserted
        items/accounts stay committed even if a later step fails.
        """
        tokens = TokenStoreRepository.get_tokens(self.db, company_id, user_id=caller.user_id)
        if tokens is None:
            logger.warning(f"⚠️ No active QuickBooks connection for company {company_id}")
            raise ConnectionNotFoundError()

        status = TokenStoreRepository.get_connection_status(self.db, company_id, user_id=caller.user_id)
        if status is None:
            raise ConnectionNotFoundError()

        logger.info(f"🔄 Starting QuickBooks sync for company {company_id}")
        sync_log = SyncLogRepository.start(self.db, company_id, connection_id=status.id)
        progress: dict = {}

        try:
            result = await asyncio.wait_for(self._run(company_id, caller, tokens, progress), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"❌ QuickBooks sync timed out for company {company_id} after {self.timeout}s")
            error = SyncTimeoutError()
            self.db.rollback()
            self._finish_log(sync_log, "failed", progress, error.message)
            raise error from e
        except SyncError as e:
            logger.error(f"❌ QuickBooks sync failed for company {company_id}: {e.message}")
            self.db.rollback()
            self._finish_log(sync_log, "failed", progress, e.message)
            raise
        except Exception as e:
            logger.error(f"❌ QuickBooks sync error for company {company_id}: {e}")
            self.db.rollback()
            self._finish_log(sync_log, "failed", progress, str(e))
            raise

        self._finish_log(sync_log, "success", progress)
        logger.info(f"✅ QuickBooks sync completed for company {company_id}")
        return result

    def _finish_log(self, sync_log, status: str, progress: dict, error_message: Optional[str] = None) -> None:
        SyncLogRepository.finish(
            self.db,
            sync_log,
            status,
            items_count=progress.get("items", 0),
            accounts_count=progress.get("accounts", 0),
            pl_count=progress.get("pl", 0),
            pl_source=progress.get("pl_source"),
            error_message=error_message,
        )

    async def _run(
        self, company_id: str, caller: CallerIdentity, tokens: TokenRecord, progress: dict
    ) -> SyncResponse:
        access_token = tokens.access_token
        # Expiry equal to now counts as expired
        if tokens.token_expires_at <= self.now():
            logger.info(f"🔑 Refreshing expired QuickBooks token for company {company_id}")
            access_token = await self.refresher.refresh(self.db, company_id, tokens, user_id=caller.user_id)

        client = self.client_factory(access_token, tokens.external_company_id)

        items_count, items_found = await ItemReconciler(self.db, company_id).reconcile(client)
        progress["items"] = items_count

        accounts_count, accounts_found = await AccountReconciler(self.db, company_id).reconcile(client)
        progress["accounts"] = accounts_count

        today: date = self.now().date()
        pl_count, pl_source = await ProfitLossReconciler(self.db, company_id, today=today).reconcile(client)
        progress["pl"] = pl_count
        progress["pl_source"] = pl_source

        TokenStoreRepository.update_last_sync(self.db, company_id, user_id=caller.user_id)

        return SyncResponse(
            success=True,
            itemsCount=items_count,
            accountsCount=accounts_count,
            plDataCount=pl_count,
            plDataSource=pl_source,
            message=(
                f"Successfully synced {items_count} items, {accounts_count} accounts "
                f"and {pl_count} P&L entries from QuickBooks"
            ),
            itemsFound=items_found,
            accountsFound=accounts_found,
        )
