import asyncio
from datetime import datetime, timedelta

import pytest

from qbo_sync.auth import CallerIdentity
from qbo_sync.domain.integrations.quickbooks.oauth import TokenRefresher
from qbo_sync.domain.integrations.quickbooks.repository import ProfitLossRepository, TokenStoreRepository
from qbo_sync.domain.integrations.quickbooks.service import QuickBooksSyncService
from qbo_sync.exceptions import ConnectionNotFoundError, RemoteApiError, SyncTimeoutError, TokenRefreshError
from qbo_sync.models import ChartOfAccount, Product, ProfitLossEntry
from qbo_sync.models_quickbooks import QuickBooksSyncLog
from tests.fixtures.mocks import (
    MALFORMED_REPORTS,
    REALM_ID,
    SAMPLE_ACCOUNTS,
    SAMPLE_ITEMS,
    SAMPLE_PROFIT_AND_LOSS,
    FakeQuickBooks,
    FakeTokenEndpoint,
)

COMPANY_ID = "company-1"
CALLER = CallerIdentity(user_id="user-1", email="owner@example.com")
NOW = datetime(2026, 5, 15, 12, 0, 0)


def _connect(db, expires_at=NOW + timedelta(hours=1), user_id=CALLER.user_id):
    return TokenStoreRepository.create_connection(
        db, COMPANY_ID, user_id, REALM_ID, "stored-access", "stored-refresh", expires_at
    )


def _service(db, fake, endpoint=None, timeout=30):
    endpoint = endpoint or FakeTokenEndpoint()
    refresher = TokenRefresher(
        client_id="client-id",
        client_secret="client-secret",
        token_url="https://oauth.example.test/tokens/bearer",
        transport=endpoint.transport(),
        now=lambda: NOW,
    )
    return QuickBooksSyncService(
        db,
        refresher=refresher,
        client_factory=fake.client_factory(),
        now=lambda: NOW,
        timeout=timeout,
    )


@pytest.fixture
def fake():
    return FakeQuickBooks(items=SAMPLE_ITEMS, accounts=SAMPLE_ACCOUNTS, profit_and_loss=SAMPLE_PROFIT_AND_LOSS)


def test_full_sync(db, fake):
    _connect(db)

    result = asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    assert result.success is True
    assert (result.itemsCount, result.accountsCount, result.plDataCount) == (3, 5, 3)
    assert result.plDataSource == "profit_and_loss"
    assert result.message == "Successfully synced 3 items, 5 accounts and 3 P&L entries from QuickBooks"
    assert [f.id for f in result.itemsFound] == ["1", "2", "3"]
    assert result.accountsFound[0].name == "Checking"

    assert db.query(Product).count() == 3
    assert db.query(ChartOfAccount).count() == 5
    assert db.query(ProfitLossEntry).count() == 3
    assert fake.tokens_used == ["stored-access"]


def test_sync_order_is_items_accounts_then_reports(db, fake):
    _connect(db)

    asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    kinds = []
    for request in fake.requests:
        if request.url.path.endswith("/query"):
            kinds.append(request.url.params["query"].split(" ")[3])
        else:
            kinds.append(request.url.path.rsplit("/", 1)[-1])
    assert kinds == ["Item", "Account", "ProfitAndLoss"]


def test_valid_token_is_not_refreshed(db, fake):
    _connect(db, expires_at=NOW + timedelta(seconds=1))
    endpoint = FakeTokenEndpoint()

    asyncio.run(_service(db, fake, endpoint).sync(COMPANY_ID, CALLER))

    assert endpoint.requests == []


def test_token_expiring_exactly_now_is_refreshed(db, fake):
    _connect(db, expires_at=NOW)
    endpoint = FakeTokenEndpoint(payload={"access_token": "fresh-access", "refresh_token": "fresh-refresh"})

    asyncio.run(_service(db, fake, endpoint).sync(COMPANY_ID, CALLER))

    assert len(endpoint.requests) == 1
    assert fake.tokens_used == ["fresh-access"]
    tokens = TokenStoreRepository.get_tokens(db, COMPANY_ID)
    assert tokens.refresh_token == "fresh-refresh"
    assert tokens.token_expires_at == NOW + timedelta(hours=1)


def test_refresh_failure_stops_sync(db, fake):
    _connect(db, expires_at=NOW - timedelta(minutes=1))

    with pytest.raises(TokenRefreshError):
        asyncio.run(_service(db, fake, FakeTokenEndpoint(status_code=401)).sync(COMPANY_ID, CALLER))

    assert fake.requests == []
    assert db.query(Product).count() == 0
    log = db.query(QuickBooksSyncLog).one()
    assert log.status == "failed"
    assert "reconnect" in log.error_message


def test_missing_connection(db, fake):
    with pytest.raises(ConnectionNotFoundError):
        asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    assert fake.requests == []
    assert db.query(QuickBooksSyncLog).count() == 0


def test_connection_of_another_user_is_not_used(db, fake):
    _connect(db, user_id="someone-else")

    with pytest.raises(ConnectionNotFoundError):
        asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))


def test_inactive_connection_is_not_used(db, fake):
    connection = _connect(db)
    connection.is_active = False
    db.commit()

    with pytest.raises(ConnectionNotFoundError):
        asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))


def test_sync_twice_is_idempotent(db, fake):
    _connect(db)
    service = _service(db, fake)

    first = asyncio.run(service.sync(COMPANY_ID, CALLER))
    second = asyncio.run(service.sync(COMPANY_ID, CALLER))

    assert first.model_dump(exclude={"message"}) == second.model_dump(exclude={"message"})
    assert db.query(Product).count() == 3
    assert db.query(ChartOfAccount).count() == 5
    assert len(ProfitLossRepository.list_for_year(db, COMPANY_ID, 2026)) == 3


def test_report_outage_still_succeeds_with_sample_rows(db, fake):
    _connect(db)
    fake.failures["profit_and_loss"] = "network"

    result = asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    assert result.success is True
    assert result.plDataSource == "sample"
    assert result.plDataCount > 0


@pytest.mark.parametrize("payload", list(MALFORMED_REPORTS.values()), ids=list(MALFORMED_REPORTS))
def test_misshapen_report_still_succeeds_with_sample_rows(db, fake, payload):
    _connect(db)
    fake.profit_and_loss = payload

    result = asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    assert result.success is True
    assert result.plDataSource == "sample"
    assert result.plDataCount > 0
    assert db.query(QuickBooksSyncLog).one().status == "success"


def test_item_fetch_failure_fails_sync(db, fake):
    _connect(db)
    fake.failures["item"] = 401

    with pytest.raises(RemoteApiError) as exc_info:
        asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    assert exc_info.value.status_code == 401
    log = db.query(QuickBooksSyncLog).one()
    assert log.status == "failed"
    assert log.finished_at is not None


def test_items_stay_committed_when_accounts_fail(db, fake):
    _connect(db)
    fake.failures["account"] = 400

    with pytest.raises(RemoteApiError):
        asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    assert db.query(Product).count() == 3
    log = db.query(QuickBooksSyncLog).one()
    assert log.items_count == 3
    assert log.accounts_count == 0


def test_successful_sync_is_logged_and_stamped(db, fake):
    connection = _connect(db)

    asyncio.run(_service(db, fake).sync(COMPANY_ID, CALLER))

    log = db.query(QuickBooksSyncLog).one()
    assert log.status == "success"
    assert (log.items_count, log.accounts_count, log.pl_count) == (3, 5, 3)
    assert log.pl_source == "profit_and_loss"
    assert log.connection_id == connection.id
    assert log.error_message is None

    status = TokenStoreRepository.get_connection_status(db, COMPANY_ID)
    assert status.last_sync_at is not None


def test_sync_deadline(db):
    _connect(db)

    class SlowClient:
        async def query_items(self):
            await asyncio.sleep(5)
            return []

    service = QuickBooksSyncService(
        db,
        refresher=TokenRefresher(client_id="id", client_secret="secret"),
        client_factory=lambda access_token, realm_id: SlowClient(),
        now=lambda: NOW,
        timeout=0.05,
    )

    with pytest.raises(SyncTimeoutError):
        asyncio.run(service.sync(COMPANY_ID, CALLER))

    log = db.query(QuickBooksSyncLog).one()
    assert log.status == "failed"
    assert log.error_message == "QuickBooks sync timed out. Please retry later."


def test_status_for_caller(db, fake):
    service = _service(db, fake)
    assert service.get_status(COMPANY_ID, CALLER) is None

    connection = _connect(db)
    status = service.get_status(COMPANY_ID, CALLER)
    assert status.id == connection.id
    assert status.is_active is True
    assert status.last_sync_at is None
