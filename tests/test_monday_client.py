"""Tests for the Monday.com GraphQL client."""

import json

import httpx
import pytest

from formula_trigger.config import LoggingConfig, MondayConfig, RetryConfig
from formula_trigger.errors import MondayApiError, RateLimitExceeded
from formula_trigger.monday.client import MondayClient, calculate_backoff_delay

API_URL = "https://api.monday.test/v2"


class FakeMonday:
    """Serves a scripted list of responses and records the requests."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        template = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        # Fresh object per request; the last response repeats
        return httpx.Response(
            template.status_code, headers=template.headers, content=template.content
        )

    def body(self, n: int = -1) -> dict:
        return json.loads(self.requests[n].content)


@pytest.fixture
def sleeps(monkeypatch):
    delays: list[float] = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("formula_trigger.monday.client.asyncio.sleep", fake_sleep)
    return delays


@pytest.fixture
async def make_client():
    """Builds clients over a mock transport and closes them on teardown."""
    clients: list[MondayClient] = []

    def _make(handler, retry: RetryConfig | None = None) -> MondayClient:
        client = MondayClient(
            MondayConfig(api_token="tok-123", api_url=API_URL, api_version="2024-01"),
            retry or RetryConfig(),
            LoggingConfig(),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.close()


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------

class TestBackoff:
    def test_delay_sequence(self):
        retry = RetryConfig(initial_delay_ms=1000, backoff_multiplier=2, max_delay_ms=10000)
        delays = [calculate_backoff_delay(retry, n) for n in range(6)]
        assert delays == [1000, 2000, 4000, 8000, 10000, 10000]

    def test_zero_initial_delay(self):
        assert calculate_backoff_delay(RetryConfig(initial_delay_ms=0), 3) == 0


# ---------------------------------------------------------------------------
# execute_query
# ---------------------------------------------------------------------------

class TestExecuteQuery:
    async def test_success_returns_data(self, make_client):
        fake = FakeMonday(httpx.Response(200, json={"data": {"me": {"id": 1}}}))
        client = make_client(fake)
        data = await client.execute_query("query { me { id } }", {"x": 1})
        assert data == {"me": {"id": 1}}

        request = fake.requests[0]
        assert str(request.url) == API_URL
        assert request.headers["Authorization"] == "tok-123"
        assert request.headers["API-Version"] == "2024-01"
        assert fake.body() == {"query": "query { me { id } }", "variables": {"x": 1}}

    async def test_retries_rate_limit_then_succeeds(self, make_client, sleeps):
        fake = FakeMonday(
            httpx.Response(429, json={"error_message": "slow down"}),
            httpx.Response(429),
            httpx.Response(200, json={"data": {"ok": True}}),
        )
        client = make_client(fake)
        assert await client.execute_query("query { ok }") == {"ok": True}
        assert len(fake.requests) == 3
        assert sleeps == [1.0, 2.0]

    async def test_rate_limit_exhausted(self, make_client, sleeps):
        fake = FakeMonday(httpx.Response(429))
        client = make_client(fake, RetryConfig(max_retries=3))
        with pytest.raises(RateLimitExceeded) as exc_info:
            await client.execute_query("query { ok }")
        assert exc_info.value.status == 429
        assert len(fake.requests) == 4
        assert sleeps == [1.0, 2.0, 4.0]

    async def test_no_retries_configured(self, make_client, sleeps):
        fake = FakeMonday(httpx.Response(429))
        client = make_client(fake, RetryConfig(max_retries=0))
        with pytest.raises(RateLimitExceeded):
            await client.execute_query("query { ok }")
        assert len(fake.requests) == 1
        assert sleeps == []

    async def test_graphql_errors_not_retried(self, make_client, sleeps):
        errors = [{"message": "Column not found"}]
        fake = FakeMonday(httpx.Response(200, json={"data": None, "errors": errors}))
        client = make_client(fake)
        with pytest.raises(MondayApiError) as exc_info:
            await client.execute_query("mutation { x }")
        assert exc_info.value.errors == errors
        assert "Column not found" in str(exc_info.value)
        assert len(fake.requests) == 1
        assert sleeps == []

    async def test_http_error_not_retried(self, make_client, sleeps):
        fake = FakeMonday(httpx.Response(500, text="boom"))
        client = make_client(fake)
        with pytest.raises(MondayApiError) as exc_info:
            await client.execute_query("query { ok }")
        assert exc_info.value.status == 500
        assert not isinstance(exc_info.value, RateLimitExceeded)
        assert len(fake.requests) == 1

    async def test_transport_error_wrapped(self, make_client):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(MondayApiError, match="refused"):
            await client.execute_query("query { ok }")


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

class TestOperations:
    async def test_update_status_column(self, make_client):
        fake = FakeMonday(
            httpx.Response(200, json={"data": {"change_column_value": {"id": "123"}}})
        )
        client = make_client(fake)
        data = await client.update_status_column(456, 123, "status", 2)
        assert data == {"change_column_value": {"id": "123"}}

        body = fake.body()
        assert "change_column_value" in body["query"]
        assert body["variables"]["boardId"] == "456"
        assert body["variables"]["itemId"] == "123"
        assert body["variables"]["columnId"] == "status"
        assert json.loads(body["variables"]["value"]) == {"index": 2}

    async def test_get_item(self, make_client):
        item = {"id": "5", "name": "Task", "board": {"id": "1"}, "column_values": []}
        fake = FakeMonday(httpx.Response(200, json={"data": {"items": [item]}}))
        client = make_client(fake)
        assert await client.get_item(5) == item
        assert fake.body()["variables"] == {"itemId": "5"}

    async def test_get_item_missing(self, make_client):
        fake = FakeMonday(httpx.Response(200, json={"data": {"items": []}}))
        assert await make_client(fake).get_item("5") is None

    async def test_get_board_columns(self, make_client):
        columns = [
            {"id": "formula", "title": "Score", "type": "formula"},
            {"id": "status", "title": "Status", "type": "status"},
        ]
        fake = FakeMonday(
            httpx.Response(200, json={"data": {"boards": [{"columns": columns}]}})
        )
        client = make_client(fake)
        assert await client.get_board_columns("9") == columns
        assert fake.body()["variables"] == {"boardId": "9"}

    async def test_get_board_columns_unknown_board(self, make_client):
        fake = FakeMonday(httpx.Response(200, json={"data": {"boards": []}}))
        assert await make_client(fake).get_board_columns("9") == []
