"""Tests for dialogue_loop.store: HttpQueueStore and MemoryQueueStore."""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import scenario_doc
from dialogue_loop.store import (
    PENDING_FILTER,
    PENDING_SORT,
    HttpQueueStore,
    MemoryQueueStore,
    StoreError,
    parse_documents,
)


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


# ---------------------------------------------------------------------------
# parse_documents
# ---------------------------------------------------------------------------

class TestParseDocuments:
    def test_orders_and_dedups(self) -> None:
        out = parse_documents([
            scenario_doc("b", "2024-01-02T00:00:00Z"),
            scenario_doc("a", "2024-01-01T00:00:00Z"),
            scenario_doc("b", "2024-01-03T00:00:00Z"),
        ])
        assert [s.id for s in out] == ["a", "b"]

    def test_skips_documents_without_id(self) -> None:
        out = parse_documents([{"topic": "orphan"}, scenario_doc("a")])
        assert [s.id for s in out] == ["a"]


# ---------------------------------------------------------------------------
# HttpQueueStore
# ---------------------------------------------------------------------------

class TestHttpQueueStore:
    @pytest.fixture
    def store(self) -> HttpQueueStore:
        return HttpQueueStore(
            base_url="http://store.local/data/v1/",
            api_key="secret",
            data_source="Cluster0",
        )

    async def test_fetch_posts_filter_and_sort(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"documents": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            await store.fetch_pending()
        assert mock_post.call_args[0][0] == "http://store.local/data/v1/action/find"
        body = mock_post.call_args.kwargs["json"]
        assert body["filter"] == PENDING_FILTER
        assert body["sort"] == PENDING_SORT
        assert body["dataSource"] == "Cluster0"
        assert body["database"] == "SCENARIO"
        assert body["collection"] == "generated_scenario"

    async def test_api_key_header(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"documents": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            await store.fetch_pending()
        assert mock_post.call_args.kwargs["headers"]["api-key"] == "secret"

    async def test_no_api_key_header_when_unset(self) -> None:
        store = HttpQueueStore(base_url="http://store.local")
        mock_post = AsyncMock(return_value=_mock_response({"documents": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            await store.fetch_pending()
        assert "api-key" not in mock_post.call_args.kwargs["headers"]
        assert "dataSource" not in mock_post.call_args.kwargs["json"]

    async def test_fetch_returns_ordered_scenarios(self, store: HttpQueueStore) -> None:
        docs = [scenario_doc("late", "2024-01-02T00:00:00Z"), scenario_doc("early")]
        mock_post = AsyncMock(return_value=_mock_response({"documents": docs}))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await store.fetch_pending()
        assert [s.id for s in result] == ["early", "late"]

    @pytest.mark.parametrize("error", [
        httpx.ConnectError("refused"),
        httpx.TimeoutException("timeout"),
        httpx.ReadError("reset by peer"),
        httpx.RemoteProtocolError("server disconnected"),
    ])
    async def test_fetch_transport_errors_yield_empty(self, store, error) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(side_effect=error)):
            assert await store.fetch_pending() == []

    @pytest.mark.parametrize("error", [
        httpx.ReadError("reset by peer"),
        httpx.WriteError("broken pipe"),
        httpx.RemoteProtocolError("server disconnected"),
    ])
    async def test_dropped_connection_raises_store_error(self, store, error) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(side_effect=error)):
            with pytest.raises(StoreError, match="request failed"):
                await store.mark_processed("abc")
            with pytest.raises(StoreError, match="request failed"):
                await store.is_processed("abc")

    async def test_fetch_http_error_yields_empty(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await store.fetch_pending() == []

    async def test_fetch_malformed_body_yields_empty(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"documents": "nope"}))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await store.fetch_pending() == []

    async def test_mark_processed_sets_flag_by_object_id(self, store: HttpQueueStore) -> None:
        oid = "65a1f0c2e4b0a1b2c3d4e5f6"
        mock_post = AsyncMock(return_value=_mock_response({"matchedCount": 1, "modifiedCount": 1}))
        with patch("httpx.AsyncClient.post", mock_post):
            await store.mark_processed(oid)
        assert mock_post.call_args[0][0].endswith("/action/updateOne")
        body = mock_post.call_args.kwargs["json"]
        assert body["filter"] == {"_id": {"$oid": oid}}
        assert body["update"] == {"$set": {"processed": True}}

    async def test_plain_string_id_filter(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"matchedCount": 1}))
        with patch("httpx.AsyncClient.post", mock_post):
            await store.mark_processed("scenario-7")
        assert mock_post.call_args.kwargs["json"]["filter"] == {"_id": "scenario-7"}

    async def test_mark_processed_raises_store_error(self, store: HttpQueueStore) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(side_effect=httpx.ConnectError("x"))):
            with pytest.raises(StoreError, match="Cannot connect"):
                await store.mark_processed("a")

    async def test_is_processed(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"document": {"_id": "a", "processed": True}}))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await store.is_processed("a") is True
        assert mock_post.call_args[0][0].endswith("/action/findOne")

    async def test_is_processed_missing_document(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"document": None}))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await store.is_processed("a") is False

    async def test_is_processed_http_error(self, store: HttpQueueStore) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=500))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(StoreError, match="HTTP 500"):
                await store.is_processed("a")


# ---------------------------------------------------------------------------
# MemoryQueueStore
# ---------------------------------------------------------------------------

class TestMemoryQueueStore:
    async def test_filters_pending_and_unloaded(self) -> None:
        store = MemoryQueueStore([
            scenario_doc("ready"),
            scenario_doc("done", processed=True),
            scenario_doc("held", unload=False),
        ])
        result = await store.fetch_pending()
        assert [s.id for s in result] == ["ready"]

    async def test_mark_is_idempotent(self) -> None:
        store = MemoryQueueStore([scenario_doc("a")])
        await store.mark_processed("a")
        await store.mark_processed("a")
        assert await store.is_processed("a") is True
        assert await store.fetch_pending() == []

    async def test_read_lag(self) -> None:
        store = MemoryQueueStore([scenario_doc("a")], read_lag=2)
        await store.mark_processed("a")
        assert [await store.is_processed("a") for _ in range(3)] == [False, False, True]

    async def test_object_id_documents(self) -> None:
        store = MemoryQueueStore([scenario_doc("x", _id={"$oid": "65a1f0c2e4b0a1b2c3d4e5f6"})])
        await store.mark_processed("65a1f0c2e4b0a1b2c3d4e5f6")
        assert await store.is_processed("65a1f0c2e4b0a1b2c3d4e5f6") is True

    async def test_documents_are_copied(self) -> None:
        doc = scenario_doc("a")
        store = MemoryQueueStore([doc])
        await store.mark_processed("a")
        assert doc["processed"] is False

    async def test_bad_generation_time_keeps_documents(self) -> None:
        store = MemoryQueueStore([
            scenario_doc("b", "2024-01-02T00:00:00Z"),
            scenario_doc("a", 1e20),
            scenario_doc("c", {"$date": {"$numberLong": "oops"}}),
        ])
        result = await store.fetch_pending()
        # unreadable times sort first, in document order
        assert [s.id for s in result] == ["a", "c", "b"]
