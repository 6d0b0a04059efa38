"""Item and chart-of-accounts reconciliation"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from .client import QuickBooksClient
from .repository import AccountRepository, ProductRepository
from .schemas import AccountRecord, FoundRecord, ProductRecord, UpsertResult

logger = logging.getLogger(__name__)

# QuickBooks Item.Type -> local product_type
ITEM_TYPE_MAP = {
    "Inventory": "product",
    "NonInventory": "product",
    "Service": "service",
}
DEFAULT_PRODUCT_TYPE = "service"

# QuickBooks Account.AccountType -> local account_type
ACCOUNT_TYPE_MAP = {
    "Asset": "asset",
    "Liability": "liability",
    "Equity": "equity",
    "Income": "revenue",
    "Revenue": "revenue",
    "Expense": "expense",
    "Cost of Goods Sold": "expense",
    # Detailed types as returned by the Account entity
    "Bank": "asset",
    "Accounts Receivable": "asset",
    "Other Current Asset": "asset",
    "Fixed Asset": "asset",
    "Other Asset": "asset",
    "Accounts Payable": "liability",
    "Credit Card": "liability",
    "Other Current Liability": "liability",
    "Long Term Liability": "liability",
    "Other Income": "revenue",
    "Other Expense": "expense",
}
DEFAULT_ACCOUNT_TYPE = "asset"


def map_item_type(remote_type: Optional[str]) -> str:
    return ITEM_TYPE_MAP.get(remote_type or "", DEFAULT_PRODUCT_TYPE)


def map_account_type(remote_type: Optional[str]) -> str:
    return ACCOUNT_TYPE_MAP.get(remote_type or "", DEFAULT_ACCOUNT_TYPE)


def _to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _count_ok(results: list[UpsertResult]) -> int:
    return sum(1 for r in results if r.ok)


class ItemReconciler:
    """Maps remote items to products and upserts them"""

    def __init__(self, db: Session, company_id: str):
        self.db = db
        self.company_id = company_id

    def to_record(self, item: dict) -> ProductRecord:
        return ProductRecord(
            company_id=self.company_id,
            name=item.get("Name") or f"Item {item.get('Id')}",
            description=item.get("Description") or None,
            product_type=map_item_type(item.get("Type")),
            unit_price=_to_decimal(item.get("UnitPrice")),
            is_active=bool(item.get("Active", True)),
            external_id=str(item["Id"]),
        )

    async def reconcile(self, client: QuickBooksClient) -> tuple[int, list[FoundRecord]]:
        """Fetch and upsert; returns (remote item count, items found)"""
        logger.info(f"📦 Syncing items from QuickBooks for company {self.company_id}")
        items = await client.query_items()

        records = []
        found = []
        for item in items:
            try:
                records.append(self.to_record(item))
            except (KeyError, ValueError) as e:
                logger.error(f"❌ Skipping malformed item {item.get('Name')}: {e}")
                continue
            found.append(FoundRecord(name=item.get("Name") or "", id=str(item.get("Id")), type=item.get("Type")))

        results = ProductRepository.upsert_many(self.db, records)
        logger.info(f"✅ Upserted {_count_ok(results)}/{len(items)} items for company {self.company_id}")
        return len(items), found


class AccountReconciler:
    """Maps remote accounts to chart-of-accounts rows and upserts them"""

    def __init__(self, db: Session, company_id: str, include_inactive: bool = True):
        self.db = db
        self.company_id = company_id
        self.include_inactive = include_inactive

    def to_record(self, account: dict) -> AccountRecord:
        external_id = str(account["Id"])
        return AccountRecord(
            company_id=self.company_id,
            account_code=account.get("AcctNum") or external_id,
            account_name=account.get("Name") or f"Account {external_id}",
            account_type=map_account_type(account.get("AccountType")),
            remote_account_type=account.get("AccountType"),
            is_active=bool(account.get("Active", True)),
            external_id=external_id,
        )

    async def reconcile(self, client: QuickBooksClient) -> tuple[int, list[FoundRecord]]:
        """Fetch and upsert; returns (remote account count, accounts found)"""
        logger.info(f"📒 Syncing chart of accounts from QuickBooks for company {self.company_id}")
        accounts = await client.query_accounts(include_inactive=self.include_inactive)

        records = []
        found = []
        for account in accounts:
            try:
                records.append(self.to_record(account))
            except (KeyError, ValueError) as e:
                logger.error(f"❌ Skipping malformed account {account.get('Name')}: {e}")
                continue
            found.append(
                FoundRecord(name=account.get("Name") or "", id=str(account.get("Id")), type=account.get("AccountType"))
            )

        results = AccountRepository.upsert_many(self.db, records)
        logger.info(f"✅ Upserted {_count_ok(results)}/{len(accounts)} accounts for company {self.company_id}")
        return len(accounts), found
