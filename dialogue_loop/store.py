"""Queue store client: the remote collection scenarios are pulled from.

The controller talks to the store through this protocol:

    async def fetch_pending(self) -> list[Scenario]: ...
    async def mark_processed(self, scenario_id: str) -> None: ...
    async def is_processed(self, scenario_id: str) -> bool: ...

`fetch_pending` never raises: a failed query is logged and reported as an
empty queue, because the polling phase already retries. The two other calls
raise StoreError and leave retrying to the caller.

Two implementations are provided:

    HttpQueueStore   JSON data API over HTTP (find / findOne / updateOne
                     actions against one collection).
    MemoryQueueStore documents held in-process. Can lag reads behind writes
                     to mimic a replica that has not caught up yet. Used
                     by demo mode and by the tests.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from dialogue_loop.models import Scenario, order_scenarios

logger = logging.getLogger(__name__)

PENDING_FILTER: dict[str, Any] = {"processed": False, "unload": True}
PENDING_SORT: dict[str, int] = {"generation_time": 1}

_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class QueueStore(Protocol):
    async def fetch_pending(self) -> list[Scenario]: ...

    async def mark_processed(self, scenario_id: str) -> None: ...

    async def is_processed(self, scenario_id: str) -> bool: ...


def parse_documents(documents: list[Any]) -> list[Scenario]:
    """Validate raw documents into an ordered, de-duplicated scenario list.

    Documents without a usable id are skipped; every other field falls back
    to its default.
    """
    scenarios: list[Scenario] = []
    for doc in documents:
        try:
            scenarios.append(Scenario.model_validate(doc))
        except ValidationError as e:
            logger.warning("Skipping unreadable scenario document: %s", e.errors()[0]["msg"])
    return order_scenarios(scenarios)


# ---------------------------------------------------------------------------
# HttpQueueStore
# ---------------------------------------------------------------------------

class HttpQueueStore:
    """Async client for a JSON document data API.

    Every request is `POST {base_url}/action/<name>` with a body naming the
    data source, database and collection:

      find       {"filter": ..., "sort": ...}        → {"documents": [...]}
      findOne    {"filter": ...}                     → {"document": {...}|null}
      updateOne  {"filter": ..., "update": ...}      → {"matchedCount": n, ...}

    Args:
        base_url:    Endpoint root, e.g. "https://data.example.net/app/x/endpoint/data/v1".
        api_key:     Sent as the `api-key` header, or empty string if not required.
        data_source: Cluster / data source name.
        database:    Database name. Defaults to "SCENARIO".
        collection:  Collection name. Defaults to "generated_scenario".
        timeout:     HTTP timeout in seconds. Defaults to 30.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        data_source: str = "",
        database: str = "SCENARIO",
        collection: str = "generated_scenario",
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._data_source = data_source
        self._database = database
        self._collection = collection
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["api-key"] = self._api_key
        return headers

    def _body(self, **fields: Any) -> dict[str, Any]:
        body: dict[str, Any] = {
            "database": self._database,
            "collection": self._collection,
        }
        if self._data_source:
            body["dataSource"] = self._data_source
        body.update(fields)
        return body

    @staticmethod
    def _id_filter(scenario_id: str) -> dict[str, Any]:
        if _OBJECT_ID.match(scenario_id):
            return {"_id": {"$oid": scenario_id}}
        return {"_id": scenario_id}

    async def _action(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/action/{name}"
        logger.debug("store call action=%s collection=%s", name, self._collection)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise StoreError(f"Cannot connect to queue store at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Queue store returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise StoreError(f"Queue store timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise StoreError(f"Queue store request failed: {e!r}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise StoreError(f"Queue store returned invalid JSON for {name}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Unexpected response format from queue store for {name}")
        return data

    async def fetch_pending(self) -> list[Scenario]:
        try:
            data = await self._action(
                "find", self._body(filter=PENDING_FILTER, sort=PENDING_SORT)
            )
            documents = data.get("documents")
            if not isinstance(documents, list):
                raise StoreError("Unexpected response format from queue store for find")
        except StoreError as e:
            logger.error("Failed to load scenarios from queue store: %s", e)
            return []

        scenarios = parse_documents(documents)
        if not scenarios:
            logger.warning("No scenarios found, or all have already been processed")
        return scenarios

    async def mark_processed(self, scenario_id: str) -> None:
        data = await self._action(
            "updateOne",
            self._body(
                filter=self._id_filter(scenario_id),
                update={"$set": {"processed": True}},
            ),
        )
        if not data.get("matchedCount"):
            logger.warning("mark_processed matched no document for id=%s", scenario_id)

    async def is_processed(self, scenario_id: str) -> bool:
        data = await self._action("findOne", self._body(filter=self._id_filter(scenario_id)))
        doc = data.get("document")
        return isinstance(doc, dict) and doc.get("processed") is True


# ---------------------------------------------------------------------------
# MemoryQueueStore
# ---------------------------------------------------------------------------

class MemoryQueueStore:
    """In-process queue store.

    Args:
        documents: Raw scenario documents, as the data API would return them.
        read_lag:  Number of `is_processed` reads that still see the old value
                   after each `mark_processed`.
    """

    def __init__(self, documents: list[dict[str, Any]] | None = None, read_lag: int = 0) -> None:
        self._docs: list[dict[str, Any]] = [copy.deepcopy(d) for d in documents or []]
        self._read_lag = read_lag
        self._stale_reads: dict[str, int] = {}
        self.fetch_count = 0
        self.mark_calls: list[str] = []

    def add(self, document: dict[str, Any]) -> None:
        self._docs.append(copy.deepcopy(document))

    def _find(self, scenario_id: str) -> dict[str, Any] | None:
        for doc in self._docs:
            raw = doc.get("_id")
            if isinstance(raw, dict):
                raw = raw.get("$oid")
            if str(raw) == scenario_id:
                return doc
        return None

    async def fetch_pending(self) -> list[Scenario]:
        self.fetch_count += 1
        pending = [
            d for d in self._docs
            if d.get("processed") is False and d.get("unload") is True
        ]
        scenarios = parse_documents(pending)
        if not scenarios:
            logger.warning("No scenarios found, or all have already been processed")
        return scenarios

    async def mark_processed(self, scenario_id: str) -> None:
        self.mark_calls.append(scenario_id)
        doc = self._find(scenario_id)
        if doc is None:
            logger.warning("mark_processed matched no document for id=%s", scenario_id)
            return
        doc["processed"] = True
        self._stale_reads[scenario_id] = self._read_lag

    async def is_processed(self, scenario_id: str) -> bool:
        stale = self._stale_reads.get(scenario_id, 0)
        if stale > 0:
            self._stale_reads[scenario_id] = stale - 1
            return False
        doc = self._find(scenario_id)
        return doc is not None and doc.get("processed") is True


# ---------------------------------------------------------------------------
# StoreError: raised for all store connection and protocol failures
# ---------------------------------------------------------------------------

class StoreError(RuntimeError):
    """Raised when the queue store cannot be reached or returns an error."""
