"""QuickBooks domain schemas - Pydantic models for validation and transfer"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

# Token store views


class TokenRecord(BaseModel):
    """Decrypted OAuth material for one company connection"""

    access_token: str
    refresh_token: str
    token_expires_at: datetime
    external_company_id: str


class ConnectionStatus(BaseModel):
    """Non-sensitive connection fields"""

    id: int
    is_active: bool
    last_sync_at: Optional[datetime] = None
    token_expires_at: datetime
    created_at: Optional[datetime] = None


# Reconciled records handed to repositories


class ProductRecord(BaseModel):
    company_id: str
    name: str
    description: Optional[str] = None
    product_type: str  # product, service
    unit_price: Optional[Decimal] = None
    is_active: bool = True
    external_id: str


class AccountRecord(BaseModel):
    company_id: str
    account_code: str
    account_name: str
    account_type: str  # asset, liability, equity, revenue, expense
    remote_account_type: Optional[str] = None
    is_active: bool = True
    external_id: str


class ProfitLossRecord(BaseModel):
    company_id: str
    account_id: Optional[int] = None
    account_name: str
    account_type: str  # revenue, cost_of_goods_sold, expense
    external_account_id: Optional[str] = None
    report_date: date
    fiscal_year: int
    fiscal_quarter: int
    fiscal_month: int
    current_month: Decimal = Decimal("0")
    quarter_to_date: Decimal = Decimal("0")
    year_to_date: Decimal = Decimal("0")
    budget_current_month: Decimal = Decimal("0")
    budget_quarter_to_date: Decimal = Decimal("0")
    budget_year_to_date: Decimal = Decimal("0")
    variance_current_month: Decimal = Decimal("0")
    variance_quarter_to_date: Decimal = Decimal("0")
    variance_year_to_date: Decimal = Decimal("0")
    data_source: str
    is_estimated: bool = False


class UpsertResult(BaseModel):
    """Per-row outcome of a batch upsert"""

    external_id: str
    ok: bool
    error: Optional[str] = None


# HTTP request / response


class SyncRequest(BaseModel):
    companyId: str = Field(..., min_length=1)


class FoundRecord(BaseModel):
    name: str
    id: str
    type: Optional[str] = None


class SyncResponse(BaseModel):
    success: bool = True
    itemsCount: int
    accountsCount: int
    plDataCount: int
    plDataSource: Optional[str] = None
    message: str
    itemsFound: list[FoundRecord] = []
    accountsFound: list[FoundRecord] = []


class ConnectionStatusResponse(BaseModel):
    connected: bool
    id: Optional[int] = None
    isActive: Optional[bool] = None
    lastSyncAt: Optional[datetime] = None
    tokenExpiresAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
