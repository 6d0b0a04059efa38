"""
QuickBooks Integration Models
Database models for storing QuickBooks OAuth tokens and sync runs
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class QuickBooksConnection(Base):
    """Store QuickBooks OAuth tokens per company"""
    __tablename__ = "quickbooks_connections"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)

    # QuickBooks company ID
    realm_id = Column(String(255), nullable=False)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    token_expires_at = Column(DateTime, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    sync_logs = relationship("QuickBooksSyncLog", back_populates="connection")

    __table_args__ = (UniqueConstraint("company_id", "user_id", name="uq_qbo_connection_company_user"),)


class QuickBooksSyncLog(Base):
    """Track QuickBooks sync runs"""
    __tablename__ = "quickbooks_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    connection_id = Column(Integer, ForeignKey("quickbooks_connections.id"), nullable=True)

    status = Column(String(50), nullable=False)  # success, failed
    items_count = Column(Integer, default=0, nullable=False)
    accounts_count = Column(Integer, default=0, nullable=False)
    pl_count = Column(Integer, default=0, nullable=False)
    pl_source = Column(String(50), nullable=True)  # profit_and_loss, trial_balance, estimated, sample
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=True)

    connection = relationship("QuickBooksConnection", back_populates="sync_logs")
