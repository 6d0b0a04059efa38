from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base

MONEY = Numeric(14, 2)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    product_type = Column(String(20), nullable=False)  # product, service
    unit_price = Column(MONEY, nullable=True)
    is_active = Column(Boolean, default=True)
    external_id = Column(String(64), nullable=False)  # QuickBooks Item Id
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("company_id", "external_id", name="uq_products_company_external"),)


class ChartOfAccount(Base):
    __tablename__ = "chart_of_accounts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    account_code = Column(String(64), nullable=False)
    account_name = Column(String(255), nullable=False)
    account_type = Column(String(20), nullable=False)  # asset, liability, equity, revenue, expense
    remote_account_type = Column(String(100), nullable=True)  # raw QuickBooks AccountType
    is_active = Column(Boolean, default=True)
    external_id = Column(String(64), nullable=False)  # QuickBooks Account Id
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("company_id", "external_id", name="uq_coa_company_external"),)


class ProfitLossEntry(Base):
    """One row per account per fiscal period; replaced wholesale on every sync"""
    __tablename__ = "qbo_profit_loss"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False)
    account_id = Column(Integer, ForeignKey("chart_of_accounts.id", ondelete="SET NULL"), nullable=True)
    account_name = Column(String(255), nullable=False)
    account_type = Column(String(30), nullable=False)  # revenue, cost_of_goods_sold, expense
    external_account_id = Column(String(64), nullable=True)

    report_date = Column(Date, nullable=False)
    fiscal_year = Column(Integer, nullable=False)
    fiscal_quarter = Column(Integer, nullable=False)
    fiscal_month = Column(Integer, nullable=False)

    current_month = Column(MONEY, default=0, nullable=False)
    quarter_to_date = Column(MONEY, default=0, nullable=False)
    year_to_date = Column(MONEY, default=0, nullable=False)
    budget_current_month = Column(MONEY, default=0, nullable=False)
    budget_quarter_to_date = Column(MONEY, default=0, nullable=False)
    budget_year_to_date = Column(MONEY, default=0, nullable=False)
    variance_current_month = Column(MONEY, default=0, nullable=False)
    variance_quarter_to_date = Column(MONEY, default=0, nullable=False)
    variance_year_to_date = Column(MONEY, default=0, nullable=False)

    data_source = Column(String(30), nullable=False)  # profit_and_loss, trial_balance, estimated, sample
    is_estimated = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("ix_qbo_pl_company_year", "company_id", "fiscal_year"),)
