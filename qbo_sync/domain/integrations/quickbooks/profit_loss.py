"""
Profit & Loss reconciliation

Produces one qbo_profit_loss row per account for the current fiscal year from
the best source available, trying in order:

1. the ProfitAndLoss report tree
2. the TrialBalance report (when the P&L yields nothing)
3. flagged zero-amount estimates for every synced P&L account
4. a fixed sample set, only when the P&L request itself fails

Rows for the fiscal year are deleted before any tier runs, so each sync fully
replaces the year regardless of which tier fires.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ....exceptions import ReportUnavailableError, SyncError
from ....models import ChartOfAccount
from .client import QuickBooksClient
from .report_tree import Section, iter_data_rows, parse_report, walk
from .repository import AccountRepository, ProfitLossRepository
from .schemas import ProfitLossRecord

logger = logging.getLogger(__name__)

SOURCE_PROFIT_AND_LOSS = "profit_and_loss"
SOURCE_TRIAL_BALANCE = "trial_balance"
SOURCE_ESTIMATED = "estimated"
SOURCE_SAMPLE = "sample"

REVENUE = "revenue"
COST_OF_GOODS_SOLD = "cost_of_goods_sold"
EXPENSE = "expense"

# Report section group -> P&L account type
SECTION_TYPES = {
    "Income": REVENUE,
    "OtherIncome": REVENUE,
    "COGS": COST_OF_GOODS_SOLD,
    "CostOfGoodsSold": COST_OF_GOODS_SOLD,
    "Expenses": EXPENSE,
    "OtherExpenses": EXPENSE,
    "OtherExpense": EXPENSE,
}

# Remote AccountType values that belong on a P&L
REMOTE_PL_TYPES = {
    "Income": REVENUE,
    "Other Income": REVENUE,
    "Cost of Goods Sold": COST_OF_GOODS_SOLD,
    "Expense": EXPENSE,
    "Other Expense": EXPENSE,
}

# Fixed allocation of the year-to-date figure; the report carries no per-period breakdown
MONTH_FRACTION = Decimal(1) / Decimal(12)
QUARTER_FRACTION = Decimal("0.25")
CENTS = Decimal("0.01")

SAMPLE_LINES = [
    ("Sales Revenue", REVENUE, Decimal("50000.00")),
    ("Service Revenue", REVENUE, Decimal("25000.00")),
    ("Cost of Goods Sold", COST_OF_GOODS_SOLD, Decimal("20000.00")),
    ("Payroll Expenses", EXPENSE, Decimal("30000.00")),
    ("Rent Expense", EXPENSE, Decimal("12000.00")),
    ("Utilities", EXPENSE, Decimal("3600.00")),
]


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def is_subtotal_label(label: str) -> bool:
    """Subtotal and grand-total lines are not account lines"""
    return "Total" in label or "NET" in label


@dataclass(slots=True)
class FiscalPeriod:
    year: int
    quarter: int
    month: int
    start_date: date
    end_date: date

    @classmethod
    def for_date(cls, today: date) -> "FiscalPeriod":
        return cls(
            year=today.year,
            quarter=(today.month - 1) // 3 + 1,
            month=today.month,
            start_date=date(today.year, 1, 1),
            end_date=today,
        )


class AccountLookup:
    """Resolves report account cells against the synced chart of accounts"""

    def __init__(self, accounts: list[ChartOfAccount]):
        self.by_external_id = {a.external_id: a for a in accounts}
        self.by_name: dict[str, ChartOfAccount] = {}
        for account in accounts:
            self.by_name.setdefault(account.account_name.strip().lower(), account)

    def find(self, external_id: Optional[str], name: str) -> Optional[ChartOfAccount]:
        if external_id and external_id in self.by_external_id:
            return self.by_external_id[external_id]
        return self.by_name.get(name.strip().lower())


def resolve_pl_type(section_type: Optional[str], account: Optional[ChartOfAccount]) -> Optional[str]:
    """
    The chart of accounts is authoritative when it carries a P&L type.
    Its taxonomy folds COGS into expense, so a COGS section keeps its own type.
    """
    if account is None:
        return section_type
    if account.remote_account_type in REMOTE_PL_TYPES:
        return REMOTE_PL_TYPES[account.remote_account_type]
    if account.account_type in (REVENUE, EXPENSE):
        if section_type == COST_OF_GOODS_SOLD and account.account_type == EXPENSE:
            return COST_OF_GOODS_SOLD
        return account.account_type
    return section_type


class ProfitLossReconciler:
    """Builds and stores the fiscal-year P&L for one company"""

    def __init__(self, db: Session, company_id: str, today: Optional[date] = None):
        self.db = db
        self.company_id = company_id
        self.period = FiscalPeriod.for_date(today or date.today())

    def _entry(
        self,
        account_name: str,
        account_type: str,
        year_to_date: Decimal,
        data_source: str,
        account: Optional[ChartOfAccount] = None,
        external_account_id: Optional[str] = None,
        is_estimated: bool = False,
    ) -> ProfitLossRecord:
        ytd = abs(year_to_date)
        return ProfitLossRecord(
            company_id=self.company_id,
            account_id=account.id if account is not None else None,
            account_name=account_name,
            account_type=account_type,
            external_account_id=external_account_id or (account.external_id if account is not None else None),
            report_date=self.period.end_date,
            fiscal_year=self.period.year,
            fiscal_quarter=self.period.quarter,
            fiscal_month=self.period.month,
            current_month=_money(ytd * MONTH_FRACTION),
            quarter_to_date=_money(ytd * QUARTER_FRACTION),
            year_to_date=_money(ytd),
            data_source=data_source,
            is_estimated=is_estimated,
        )

    # Tier 1

    def entries_from_profit_and_loss(self, root: Section, lookup: AccountLookup) -> list[ProfitLossRecord]:
        entries = []
        for section_type, row in walk(root, SECTION_TYPES):
            if not row.label or is_subtotal_label(row.label):
                continue
            amount = row.amount()
            if amount is None or amount == 0:
                continue

            account = lookup.find(row.account_id, row.label)
            account_type = resolve_pl_type(section_type, account)
            if account_type is None:
                logger.debug(f"Skipping P&L row outside any income/expense section: {row.label}")
                continue

            entries.append(
                self._entry(
                    row.label,
                    account_type,
                    amount,
                    SOURCE_PROFIT_AND_LOSS,
                    account=account,
                    external_account_id=row.account_id,
                )
            )
        return entries

    # Tier 2

    def entries_from_trial_balance(self, root: Section, lookup: AccountLookup) -> list[ProfitLossRecord]:
        entries = []
        for row in iter_data_rows(root):
            if not row.label or is_subtotal_label(row.label):
                continue
            debit = row.amount(0) or Decimal("0")
            credit = row.amount(1) or Decimal("0")
            balance = debit - credit
            if balance == 0:
                continue

            account = lookup.find(row.account_id, row.label)
            if account is None:
                continue
            account_type = resolve_pl_type(None, account)
            if account_type not in (REVENUE, COST_OF_GOODS_SOLD, EXPENSE):
                continue

            entries.append(
                self._entry(
                    row.label,
                    account_type,
                    balance,
                    SOURCE_TRIAL_BALANCE,
                    account=account,
                    external_account_id=row.account_id,
                )
            )
        return entries

    # Tier 3

    def estimated_entries(self, accounts: list[ChartOfAccount]) -> list[ProfitLossRecord]:
        """Zero-amount rows flagged as estimates so consumers can show 'insufficient data'"""
        entries = []
        for account in accounts:
            if account.remote_account_type:
                account_type = REMOTE_PL_TYPES.get(account.remote_account_type)
            else:
                account_type = account.account_type if account.account_type in (REVENUE, EXPENSE) else None
            if account_type is None:
                continue
            entries.append(
                self._entry(
                    account.account_name,
                    account_type,
                    Decimal("0"),
                    SOURCE_ESTIMATED,
                    account=account,
                    is_estimated=True,
                )
            )
        return entries

    # Tier 4

    def sample_entries(self) -> list[ProfitLossRecord]:
        return [
            self._entry(name, account_type, amount, SOURCE_SAMPLE, is_estimated=True)
            for name, account_type, amount in SAMPLE_LINES
        ]

    async def _fetch_report(self, fetch, label: str) -> Section:
        try:
            payload = await fetch(self.period.start_date, self.period.end_date)
        except ReportUnavailableError:
            raise
        except (SyncError, ValueError) as e:
            raise ReportUnavailableError(f"{label} unavailable: {e}") from e

        try:
            return parse_report(payload)
        except ReportUnavailableError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ReportUnavailableError(f"{label} is malformed: {e!r}") from e

    async def build_entries(self, client: QuickBooksClient) -> tuple[list[ProfitLossRecord], Optional[str]]:
        """Run the tiers in order; exactly one produces the returned rows"""
        try:
            root = await self._fetch_report(client.fetch_profit_and_loss, "Profit and loss report")
        except ReportUnavailableError as e:
            logger.warning(f"⚠️ {e.message}; inserting sample P&L data for company {self.company_id}")
            return self.sample_entries(), SOURCE_SAMPLE

        accounts = AccountRepository.list_for_company(self.db, self.company_id)
        lookup = AccountLookup(accounts)

        entries = self.entries_from_profit_and_loss(root, lookup)
        if entries:
            return entries, SOURCE_PROFIT_AND_LOSS

        logger.info(f"📊 Profit and loss report empty for company {self.company_id}, trying trial balance")
        try:
            tb_root = await self._fetch_report(client.fetch_trial_balance, "Trial balance report")
        except ReportUnavailableError as e:
            logger.warning(f"⚠️ {e.message}")
        else:
            entries = self.entries_from_trial_balance(tb_root, lookup)
            if entries:
                return entries, SOURCE_TRIAL_BALANCE

        logger.info(f"📊 No report data for company {self.company_id}, recording flagged estimates")
        entries = self.estimated_entries(accounts)
        return entries, (SOURCE_ESTIMATED if entries else None)

    async def reconcile(self, client: QuickBooksClient) -> tuple[int, Optional[str]]:
        """Replace the fiscal year's rows; returns (rows inserted, source tier)"""
        deleted = ProfitLossRepository.delete_for_year(self.db, self.company_id, self.period.year)
        logger.info(f"🧹 Cleared {deleted} P&L rows for company {self.company_id}, year {self.period.year}")

        entries, source = await self.build_entries(client)
        count = ProfitLossRepository.insert_many(self.db, entries)
        logger.info(f"✅ Stored {count} P&L rows for company {self.company_id} from {source}")
        return count, source
