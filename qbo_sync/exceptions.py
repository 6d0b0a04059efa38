"""
Sync error taxonomy
Every error carries a message that is safe to return to the caller
"""

from typing import Optional


class SyncError(Exception):
    """Base class for errors surfaced to sync callers"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(SyncError):
    """Missing or invalid caller bearer token"""


class ConnectionNotFoundError(SyncError):
    """No active QuickBooks connection stored for the company"""

    def __init__(
        self,
        message: str = "No active QuickBooks connection found for this company. Please reconnect QuickBooks.",
    ):
        super().__init__(message)


class TokenRefreshError(SyncError):
    """OAuth refresh failed; refresh tokens rotate so the caller must reconnect"""

    def __init__(
        self,
        message: str = "Failed to refresh QuickBooks token. Please reconnect QuickBooks.",
    ):
        super().__init__(message)


class RemoteApiError(SyncError):
    """Non-2xx response (or transport failure) from the accounting API"""

    def __init__(self, status_code: Optional[int], body: str, operation: str = "request"):
        self.status_code = status_code
        self.body = body
        self.operation = operation
        status = status_code if status_code is not None else "network error"
        super().__init__(f"QuickBooks {operation} failed ({status}): {body[:500]}")


class ReportUnavailableError(SyncError):
    """Financial report could not be fetched or parsed"""


class SyncTimeoutError(SyncError):
    """The sync did not finish inside its deadline"""

    def __init__(self, message: str = "QuickBooks sync timed out. Please retry later."):
        super().__init__(message)
