"""QuickBooks repository - Database operations for tokens and synced records"""

import base64
import hashlib
import logging
from datetime import datetime
from typing import Optional

from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from ....config import SECRET_KEY, TOKEN_ENCRYPTION_KEY
from ....models import ChartOfAccount, Product, ProfitLossEntry
from ....models_quickbooks import QuickBooksConnection, QuickBooksSyncLog
from .schemas import (
    AccountRecord,
    ConnectionStatus,
    ProductRecord,
    ProfitLossRecord,
    TokenRecord,
    UpsertResult,
)

logger = logging.getLogger(__name__)


# Generate encryption key from SECRET_KEY when no dedicated key is configured
def get_fernet_key() -> bytes:
    if TOKEN_ENCRYPTION_KEY:
        return TOKEN_ENCRYPTION_KEY.encode()
    key = hashlib.sha256(SECRET_KEY.encode()).digest()
    return base64.urlsafe_b64encode(key)


cipher_suite = Fernet(get_fernet_key())


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return cipher_suite.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token"""
    return cipher_suite.decrypt(encrypted_token.encode()).decode()


class TokenStoreRepository:
    """Reads and writes OAuth token material for a company connection"""

    @staticmethod
    def get_connection(
        db: Session, company_id: str, user_id: Optional[str] = None
    ) -> Optional[QuickBooksConnection]:
        """Get the active connection for a company, optionally scoped to one user"""
        query = db.query(QuickBooksConnection).filter(
            QuickBooksConnection.company_id == company_id,
            QuickBooksConnection.is_active == True,  # noqa: E712
        )
        if user_id is not None:
            query = query.filter(QuickBooksConnection.user_id == user_id)
        return query.order_by(QuickBooksConnection.id.desc()).first()

    @staticmethod
    def get_tokens(db: Session, company_id: str, user_id: Optional[str] = None) -> Optional[TokenRecord]:
        """Get decrypted tokens for the active connection"""
        connection = TokenStoreRepository.get_connection(db, company_id, user_id)
        if not connection:
            return None
        return TokenRecord(
            access_token=decrypt_token(connection.access_token),
            refresh_token=decrypt_token(connection.refresh_token),
            token_expires_at=connection.token_expires_at,
            external_company_id=connection.realm_id,
        )

    @staticmethod
    def get_connection_status(
        db: Session, company_id: str, user_id: Optional[str] = None
    ) -> Optional[ConnectionStatus]:
        """Get non-sensitive connection fields"""
        connection = TokenStoreRepository.get_connection(db, company_id, user_id)
        if not connection:
            return None
        return ConnectionStatus(
            id=connection.id,
            is_active=connection.is_active,
            last_sync_at=connection.last_sync_at,
            token_expires_at=connection.token_expires_at,
            created_at=connection.created_at,
        )

    @staticmethod
    def update_tokens(
        db: Session,
        company_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        user_id: Optional[str] = None,
    ) -> None:
        """Persist a refreshed token pair"""
        connection = TokenStoreRepository.get_connection(db, company_id, user_id)
        if not connection:
            logger.warning(f"⚠️ No active QuickBooks connection to update tokens for company {company_id}")
            return

        connection.access_token = encrypt_token(access_token)
        connection.refresh_token = encrypt_token(refresh_token)
        connection.token_expires_at = expires_at
        connection.updated_at = datetime.utcnow()
        db.commit()

    @staticmethod
    def update_last_sync(db: Session, company_id: str, user_id: Optional[str] = None) -> None:
        """Stamp the connection with the current sync time"""
        connection = TokenStoreRepository.get_connection(db, company_id, user_id)
        if not connection:
            return
        connection.last_sync_at = datetime.utcnow()
        db.commit()

    @staticmethod
    def create_connection(
        db: Session,
        company_id: str,
        user_id: str,
        realm_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> QuickBooksConnection:
        """Store a connection; used by the connect flow and by tests"""
        connection = QuickBooksConnection(
            company_id=company_id,
            user_id=user_id,
            realm_id=realm_id,
            access_token=encrypt_token(access_token),
            refresh_token=encrypt_token(refresh_token),
            token_expires_at=expires_at,
            is_active=True,
        )
        db.add(connection)
        db.commit()
        db.refresh(connection)
        return connection


class ProductRepository:
    """Upserts products keyed by (company_id, external_id)"""

    @staticmethod
    def get_by_external_id(db: Session, company_id: str, external_id: str) -> Optional[Product]:
        return (
            db.query(Product)
            .filter(Product.company_id == company_id, Product.external_id == external_id)
            .first()
        )

    @staticmethod
    def upsert_many(db: Session, records: list[ProductRecord]) -> list[UpsertResult]:
        """
        Insert or overwrite every record in one batch.
        Each row runs in its own savepoint so one bad row does not sink the rest.
        """
        results = []
        for record in records:
            try:
                with db.begin_nested():
                    product = ProductRepository.get_by_external_id(db, record.company_id, record.external_id)
                    if product is None:
                        product = Product(company_id=record.company_id, external_id=record.external_id)
                        db.add(product)
                    product.name = record.name
                    product.description = record.description
                    product.product_type = record.product_type
                    product.unit_price = record.unit_price
                    product.is_active = record.is_active
                    db.flush()
                results.append(UpsertResult(external_id=record.external_id, ok=True))
            except Exception as e:
                logger.error(f"❌ Error syncing item {record.name} ({record.external_id}): {e}")
                results.append(UpsertResult(external_id=record.external_id, ok=False, error=str(e)))
        db.commit()
        return results

    @staticmethod
    def list_for_company(db: Session, company_id: str) -> list[Product]:
        return db.query(Product).filter(Product.company_id == company_id).order_by(Product.id).all()


class AccountRepository:
    """Upserts chart-of-accounts rows keyed by (company_id, external_id)"""

    @staticmethod
    def get_by_external_id(db: Session, company_id: str, external_id: str) -> Optional[ChartOfAccount]:
        return (
            db.query(ChartOfAccount)
            .filter(ChartOfAccount.company_id == company_id, ChartOfAccount.external_id == external_id)
            .first()
        )

    @staticmethod
    def upsert_many(db: Session, records: list[AccountRecord]) -> list[UpsertResult]:
        """Same per-row isolation as ProductRepository.upsert_many"""
        results = []
        for record in records:
            try:
                with db.begin_nested():
                    account = AccountRepository.get_by_external_id(db, record.company_id, record.external_id)
                    if account is None:
                        account = ChartOfAccount(company_id=record.company_id, external_id=record.external_id)
                        db.add(account)
                    account.account_code = record.account_code
                    account.account_name = record.account_name
                    account.account_type = record.account_type
                    account.remote_account_type = record.remote_account_type
                    account.is_active = record.is_active
                    db.flush()
                results.append(UpsertResult(external_id=record.external_id, ok=True))
            except Exception as e:
                logger.error(f"❌ Error syncing account {record.account_name} ({record.external_id}): {e}")
                results.append(UpsertResult(external_id=record.external_id, ok=False, error=str(e)))
        db.commit()
        return results

    @staticmethod
    def list_for_company(db: Session, company_id: str) -> list[ChartOfAccount]:
        return (
            db.query(ChartOfAccount)
            .filter(ChartOfAccount.company_id == company_id)
            .order_by(ChartOfAccount.id)
            .all()
        )


class ProfitLossRepository:
    """Full-replace storage for P&L rows of one fiscal year"""

    @staticmethod
    def delete_for_year(db: Session, company_id: str, fiscal_year: int) -> int:
        deleted = (
            db.query(ProfitLossEntry)
            .filter(ProfitLossEntry.company_id == company_id, ProfitLossEntry.fiscal_year == fiscal_year)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    @staticmethod
    def insert_many(db: Session, records: list[ProfitLossRecord]) -> int:
        db.add_all([ProfitLossEntry(**record.model_dump()) for record in records])
        db.commit()
        return len(records)

    @staticmethod
    def list_for_year(db: Session, company_id: str, fiscal_year: int) -> list[ProfitLossEntry]:
        return (
            db.query(ProfitLossEntry)
            .filter(ProfitLossEntry.company_id == company_id, ProfitLossEntry.fiscal_year == fiscal_year)
            .order_by(ProfitLossEntry.account_type, ProfitLossEntry.account_name)
            .all()
        )


class SyncLogRepository:
    """Records one row per sync run"""

    @staticmethod
    def start(db: Session, company_id: str, connection_id: Optional[int] = None) -> QuickBooksSyncLog:
        log = QuickBooksSyncLog(
            company_id=company_id,
            connection_id=connection_id,
            status="running",
            started_at=datetime.utcnow(),
        )
        db.add(log)
        db.commit()
        db.refresh(log)
        return log

    @staticmethod
    def finish(
        db: Session,
        log: QuickBooksSyncLog,
        status: str,
        items_count: int = 0,
        accounts_count: int = 0,
        pl_count: int = 0,
        pl_source: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> QuickBooksSyncLog:
        log.status = status
        log.items_count = items_count
        log.accounts_count = accounts_count
        log.pl_count = pl_count
        log.pl_source = pl_source
        log.error_message = error_message
        log.finished_at = datetime.utcnow()
        db.commit()
        return log
