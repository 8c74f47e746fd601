"""
Document store contract used by the dashboard.

A store hands out live subscriptions (every change re-delivers the full
matching result set), point reads and merge writes. Records are plain
dicts carrying their document id under ``id``.
"""
import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict]], None]
ErrorCallback = Callable[[Exception], None]


class StoreError(Exception):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class SubscriptionError(StoreError):
    pass


def get_path(doc: dict, path: str) -> Any:
    """Read a dotted path (``status.global``) from a document, None when missing."""
    value: Any = doc
    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            return None
        value = value[key]
    return value


def has_path(doc: dict, path: str) -> bool:
    value: Any = doc
    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            return False
        value = value[key]
    return True


@dataclass
class FieldFilter:
    path: str
    op: str
    value: Any

    def matches(self, doc: dict) -> bool:
        actual = get_path(doc, self.path)
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass
class Query:
    collection: str
    filters: list[FieldFilter] = field(default_factory=list)
    order_by: Optional[str] = None
    descending: bool = False

    def where(self, path: str, op: str, value: Any) -> "Query":
        return Query(self.collection, self.filters + [FieldFilter(path, op, value)], self.order_by, self.descending)

    def order(self, path: str, descending: bool = False) -> "Query":
        return Query(self.collection, list(self.filters), path, descending)


class Subscription(ABC):
    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop deliveries. Safe to call more than once."""


class DocumentStore(ABC):
    @abstractmethod
    async def subscribe(self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Subscription:
        """
        Open a standing subscription.

        The current result set is delivered right away and again after every
        change to it. Connection or permission failures go to ``on_error``.
        """

    @abstractmethod
    async def get_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        """Returns the document or None when it does not exist."""

    @abstractmethod
    async def merge_write(self, collection: str, doc_id: str, fields: dict) -> None:
        """Write ``fields`` onto an existing document, preserving everything else."""


def _sort_key(value: Any):
    if isinstance(value, datetime):
        return (0, value.timestamp(), "")
    if isinstance(value, bool):
        return (1, float(value), "")
    if isinstance(value, (int, float)):
        return (0, float(value), "")
    if isinstance(value, dict) and ("seconds" in value or "_seconds" in value):
        try:
            return (0, float(value.get("seconds", value.get("_seconds", 0))), "")
        except (TypeError, ValueError):
            return (3, 0.0, str(value))
    if isinstance(value, str):
        try:
            return (0, datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp(), "")
        except ValueError:
            return (2, 0.0, value)
    return (3, 0.0, str(value))


def run_query(query: Query, docs: dict[str, dict]) -> list[dict]:
    records = [{**doc, "id": doc_id} for doc_id, doc in docs.items()]
    records = [r for r in records if all(f.matches(r) for f in query.filters)]
    if query.order_by:
        # Documents without the ordering field are left out of ordered queries
        records = [r for r in records if has_path(r, query.order_by)]
        records.sort(key=lambda r: _sort_key(get_path(r, query.order_by)), reverse=query.descending)
    return records


# --- In-memory store ---

class _MemorySubscription(Subscription):
    def __init__(self, store: "MemoryDocumentStore", query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self.store = store
        self.query = query
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.last_delivered: Optional[list[dict]] = None
        self.active = True

    def deliver(self, force: bool = False):
        if not self.active:
            return
        records = run_query(self.query, self.store.collection(self.query.collection))
        if not force and records == self.last_delivered:
            return
        self.last_delivered = records
        self.on_snapshot(copy.deepcopy(records))

    def fail(self, exc: Exception):
        if not self.active:
            return
        self.active = False
        self.store._subscriptions.discard(self)
        self.on_error(exc)

    async def unsubscribe(self) -> None:
        self.active = False
        self.store._subscriptions.discard(self)


class MemoryDocumentStore(DocumentStore):
    """In-process store with Firestore-like delivery semantics."""

    def __init__(self, seed: Optional[dict[str, dict[str, dict]]] = None):
        self._collections: dict[str, dict[str, dict]] = copy.deepcopy(seed) if seed else {}
        self._subscriptions: set[_MemorySubscription] = set()

    def collection(self, name: str) -> dict[str, dict]:
        return self._collections.setdefault(name, {})

    def document(self, collection: str, doc_id: str) -> Optional[dict]:
        doc = self.collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def _notify(self, collection: str):
        for sub in list(self._subscriptions):
            if sub.query.collection == collection:
                sub.deliver()

    async def subscribe(self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Subscription:
        sub = _MemorySubscription(self, query, on_snapshot, on_error)
        self._subscriptions.add(sub)
        sub.deliver(force=True)
        return sub

    async def get_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        doc = self.collection(collection).get(doc_id)
        if doc is None:
            return None
        return {**copy.deepcopy(doc), "id": doc_id}

    async def merge_write(self, collection: str, doc_id: str, fields: dict) -> None:
        docs = self.collection(collection)
        if doc_id not in docs:
            raise StoreWriteError(f"{collection}/{doc_id} does not exist")
        docs[doc_id] = {**docs[doc_id], **copy.deepcopy(fields)}
        self._notify(collection)

    async def put(self, collection: str, doc_id: str, data: dict) -> None:
        self.collection(collection)[doc_id] = copy.deepcopy(data)
        self._notify(collection)

    async def remove(self, collection: str, doc_id: str) -> None:
        self.collection(collection).pop(doc_id, None)
        self._notify(collection)

    def fail_subscriptions(self, collection: str, exc: Exception) -> None:
        """Drop every subscription on ``collection`` with ``exc``, like a lost connection."""
        for sub in list(self._subscriptions):
            if sub.query.collection == collection:
                sub.fail(exc)


# --- Supabase store ---

def _column(path: str) -> str:
    # status.global -> status->>global
    parts = path.split(".")
    if len(parts) == 1:
        return path
    return "->".join(parts[:-1]) + "->>" + parts[-1]


class _SupabaseSubscription(Subscription):
    def __init__(self, store: "SupabaseDocumentStore", query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self.store = store
        self.query = query
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.channel = None
        self.active = True
        self._issued = 0
        self._delivered = 0
        self._tasks: set[asyncio.Task] = set()

    def refresh(self):
        if not self.active:
            return
        self._issued += 1
        task = asyncio.get_running_loop().create_task(self._read(self._issued))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _read(self, seq: int):
        try:
            records = await self.store.fetch(self.query)
        except Exception as e:
            # A newer read already delivered supersedes this failure
            if not self.active or seq <= self._delivered:
                logger.debug(f"Ignoring failed superseded read {seq} of {self.query.collection}: {e}")
                return
            self._delivered = seq
            self.on_error(SubscriptionError(f"Failed to read {self.query.collection}: {e}"))
            return
        # An older read finishing late must not overwrite a newer delivery
        if not self.active or seq <= self._delivered:
            return
        self._delivered = seq
        self.on_snapshot(records)

    def _on_change(self, payload):
        self.refresh()

    def _on_status(self, status, err: Optional[Exception] = None):
        state = getattr(status, "value", status)
        if state in ("CHANNEL_ERROR", "TIMED_OUT") and self.active:
            self.on_error(SubscriptionError(f"Realtime channel {state.lower()}: {err}"))

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        for task in list(self._tasks):
            task.cancel()
        if self.channel is not None:
            try:
                await self.store.client.remove_channel(self.channel)
            except Exception as e:
                logger.warning(f"Failed to remove realtime channel for {self.query.collection}: {e}")


class SupabaseDocumentStore(DocumentStore):
    """Store backed by Supabase tables; Realtime change events trigger full re-reads."""

    def __init__(self, client, schema: str = "public"):
        self.client = client
        self.schema = schema

    async def fetch(self, query: Query) -> list[dict]:
        request = self.client.table(query.collection).select("*")
        for f in query.filters:
            column = _column(f.path)
            if f.op == "==":
                request = request.eq(column, f.value)
            elif f.op == "!=":
                request = request.neq(column, f.value)
            elif f.op == "in":
                request = request.in_(column, list(f.value))
            else:
                raise ValueError(f"Unsupported filter operator: {f.op}")
        if query.order_by:
            request = request.order(_column(query.order_by), desc=query.descending)
        response = await request.execute()
        return list(response.data or [])

    async def subscribe(self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Subscription:
        sub = _SupabaseSubscription(self, query, on_snapshot, on_error)
        try:
            channel = self.client.channel(f"{query.collection}-{uuid.uuid4().hex[:8]}")
            channel.on_postgres_changes("*", schema=self.schema, table=query.collection, callback=sub._on_change)
            await channel.subscribe(sub._on_status)
            sub.channel = channel
        except Exception as e:
            sub.active = False
            on_error(SubscriptionError(f"Failed to subscribe to {query.collection}: {e}"))
            return sub
        sub.refresh()
        return sub

    async def get_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            response = await self.client.table(collection).select("*").eq("id", doc_id).execute()
        except Exception as e:
            raise StoreReadError(f"Failed to read {collection}/{doc_id}: {e}") from e
        return response.data[0] if response.data else None

    async def merge_write(self, collection: str, doc_id: str, fields: dict) -> None:
        try:
            response = await self.client.table(collection).update(fields).eq("id", doc_id).execute()
        except Exception as e:
            raise StoreWriteError(f"Failed to write {collection}/{doc_id}: {e}") from e
        if not response.data:
            raise StoreWriteError(f"{collection}/{doc_id} does not exist")
