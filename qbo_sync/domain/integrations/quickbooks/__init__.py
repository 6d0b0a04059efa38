"""QuickBooks Online integration - token refresh, reconciliation and P&L sync"""

from .router import router

__all__ = ["router"]
