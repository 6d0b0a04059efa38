"""Fake QuickBooks endpoints and sample payloads for tests"""

import re
from typing import Optional

import httpx

from qbo_sync.domain.integrations.quickbooks.client import QuickBooksClient

REALM_ID = "9130350000000001"


def data_row(label: str, *amounts: str, account_id: Optional[str] = None) -> dict:
    first = {"value": label}
    if account_id is not None:
        first["id"] = account_id
    return {"type": "Data", "ColData": [first] + [{"value": a} for a in amounts]}


def section(group: Optional[str], title: str, *rows: dict, total: str = "") -> dict:
    node = {
        "type": "Section",
        "Header": {"ColData": [{"value": title}, {"value": ""}]},
        "Rows": {"Row": list(rows)},
        "Summary": {"ColData": [{"value": f"Total {title}"}, {"value": total}]},
    }
    if group is not None:
        node["group"] = group
    return node


def report(*rows: dict, name: str = "ProfitAndLoss") -> dict:
    return {
        "Header": {"ReportName": name, "StartPeriod": "2026-01-01", "EndPeriod": "2026-05-15"},
        "Columns": {"Column": [{"ColTitle": ""}, {"ColTitle": "Total"}]},
        "Rows": {"Row": list(rows)},
    }


SAMPLE_ITEMS = [
    {"Id": "1", "Name": "Widget", "Type": "Inventory", "UnitPrice": 25, "Active": True},
    {"Id": "2", "Name": "Gadget", "Type": "Inventory", "UnitPrice": 40.5, "Active": False},
    {"Id": "3", "Name": "Consulting", "Type": "Service", "Description": "Hourly", "UnitPrice": 150, "Active": True},
]

SAMPLE_ACCOUNTS = [
    {"Id": "10", "Name": "Checking", "AccountType": "Bank", "Active": True},
    {"Id": "40", "Name": "Sales", "AccountType": "Income", "AcctNum": "4000", "Active": True},
    {"Id": "50", "Name": "Cost of Goods Sold", "AccountType": "Cost of Goods Sold", "Active": True},
    {"Id": "60", "Name": "Office Rent", "AccountType": "Expense", "Active": True},
    {"Id": "61", "Name": "Utilities", "AccountType": "Expense", "Active": True},
]

SAMPLE_PROFIT_AND_LOSS = report(
    section(
        "Income",
        "Income",
        data_row("Sales", "12,000.00", account_id="40"),
        total="12,000.00",
    ),
    section(
        "COGS",
        "Cost of Goods Sold",
        data_row("Cost of Goods Sold", "3,000.00", account_id="50"),
        total="3,000.00",
    ),
    section(
        "Expenses",
        "Expenses",
        data_row("Office Rent", "(1200.00)", account_id="60"),
        data_row("Utilities", "0.00", account_id="61"),
        total="1,200.00",
    ),
    section("NetIncome", "Net Income", total="7,800.00"),
)

SAMPLE_TRIAL_BALANCE = report(
    data_row("Checking", "5,000.00", "", account_id="10"),
    data_row("Sales", "", "8,000.00", account_id="40"),
    data_row("Office Rent", "900.00", "", account_id="60"),
    data_row("Utilities", "", "", account_id="61"),
    data_row("TOTAL", "5,900.00", "8,000.00"),
    name="TrialBalance",
)

EMPTY_REPORT = report()

# HTTP 200 payloads whose nested fields have the wrong JSON types
MALFORMED_REPORTS = {
    "header_is_string": {"Header": "oops", "Rows": {"Row": []}},
    "section_header_is_list": {
        "Rows": {"Row": [{"type": "Section", "group": "Income", "Header": ["x"], "Rows": {"Row": []}}]}
    },
    "col_data_is_dict": {"Rows": {"Row": [{"type": "Data", "ColData": {"value": "x"}}]}},
}

_START = re.compile(r"STARTPOSITION (\d+)")
_MAX = re.compile(r"MAXRESULTS (\d+)")


class FakeQuickBooks:
    """
    In-memory stand-in for the QBO accounting API.
    Set ``failures[key]`` to an HTTP status code or "network" to make an endpoint fail.
    Keys: item, account, profit_and_loss, trial_balance.
    """

    def __init__(
        self,
        items: Optional[list] = None,
        accounts: Optional[list] = None,
        profit_and_loss: Optional[dict] = None,
        trial_balance: Optional[dict] = None,
    ):
        self.items = list(items or [])
        self.accounts = list(accounts or [])
        self.profit_and_loss = profit_and_loss if profit_and_loss is not None else EMPTY_REPORT
        self.trial_balance = trial_balance if trial_balance is not None else EMPTY_REPORT
        self.failures: dict = {}
        self.requests: list[httpx.Request] = []

    def _fail(self, key: str, request: httpx.Request) -> Optional[httpx.Response]:
        failure = self.failures.get(key)
        if failure is None:
            return None
        if failure == "network":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(failure, text=f"{key} failed")

    def _query(self, request: httpx.Request) -> httpx.Response:
        statement = request.url.params["query"]
        entity = "Item" if " from Item" in statement else "Account"
        failed = self._fail(entity.lower(), request)
        if failed is not None:
            return failed

        rows = self.items if entity == "Item" else self.accounts
        start = int(_START.search(statement).group(1)) if _START.search(statement) else 1
        limit = int(_MAX.search(statement).group(1)) if _MAX.search(statement) else len(rows)
        page = rows[start - 1 : start - 1 + limit]
        return httpx.Response(200, json={"QueryResponse": {entity: page, "startPosition": start}})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/query"):
            return self._query(request)
        if path.endswith("/reports/ProfitAndLoss"):
            return self._fail("profit_and_loss", request) or httpx.Response(200, json=self.profit_and_loss)
        if path.endswith("/reports/TrialBalance"):
            return self._fail("trial_balance", request) or httpx.Response(200, json=self.trial_balance)
        return httpx.Response(404, text="not found")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self, access_token: str = "access-token", realm_id: str = REALM_ID) -> QuickBooksClient:
        return QuickBooksClient(access_token, realm_id, transport=self.transport(), backoff_seconds=0)

    def client_factory(self):
        """Callable matching QuickBooksSyncService's client_factory signature"""
        self.tokens_used: list[str] = []

        def factory(access_token: str, realm_id: str) -> QuickBooksClient:
            self.tokens_used.append(access_token)
            return self.client(access_token, realm_id)

        return factory

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


class FakeTokenEndpoint:
    """Stand-in for the OAuth token endpoint"""

    def __init__(self, status_code: int = 200, payload: Optional[dict] = None, network_error: bool = False):
        self.status_code = status_code
        self.payload = payload if payload is not None else {
            "access_token": "new-access-token",
            "refresh_token": "new-refresh-token",
            "expires_in": 3600,
        }
        self.network_error = network_error
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.network_error:
            raise httpx.ConnectError("connection refused", request=request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"error": "invalid_grant"})
        return httpx.Response(self.status_code, json=self.payload)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)
