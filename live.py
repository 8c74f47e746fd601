"""
Live record sets for one dashboard page.

A LiveView owns exactly one store subscription. Each delivered snapshot is
mapped to typed records, filtered, and handed to the resolver; every
resolution pass carries the generation of the snapshot it started from,
and only the pass for the newest snapshot may publish its records.
"""
import asyncio
import logging
from typing import Callable, Optional, Sequence

from pydantic import BaseModel, ValidationError

from resolver import Resolver
from store import DocumentStore, Subscription
from views import ViewDefinition
import view_models as vm

logger = logging.getLogger(__name__)


def parse_records(definition: ViewDefinition, raws: Sequence[dict]) -> list[BaseModel]:
    records = []
    for raw in raws:
        try:
            records.append(definition.model.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping unreadable {definition.name} record {raw.get('id')}: {e}")
    if definition.include is not None:
        records = [r for r in records if definition.include(r)]
    return records


class LiveView:
    def __init__(self, store: DocumentStore, definition: ViewDefinition):
        self.store = store
        self.definition = definition
        self.resolver = Resolver(store, definition.references)
        self.records: list[BaseModel] = []
        self.loading = True
        self.error: Optional[str] = None
        self.closed = False
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: list[Callable[["LiveView"], None]] = []

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    def add_listener(self, listener: Callable[["LiveView"], None]):
        self._listeners.append(listener)

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"{self.definition.name} listener failed: {e}")

    async def open(self):
        if self.closed:
            raise RuntimeError("LiveView is closed")
        if self.is_open:
            raise RuntimeError(f"{self.definition.name} is already subscribed")
        self.loading = True
        self.error = None
        self._subscription = await self.store.subscribe(self.definition.query, self._on_snapshot, self._on_error)

    def _supersede(self):
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _on_snapshot(self, raws: list[dict]):
        if self.closed:
            return
        self._supersede()
        self._task = asyncio.get_running_loop().create_task(self._resolve(self._generation, raws))

    async def _resolve(self, generation: int, raws: list[dict]):
        try:
            records = parse_records(self.definition, raws)
            resolved = await self.resolver.resolve_all(records)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error processing {self.definition.name} snapshot: {e}")
            if generation == self._generation and not self.closed:
                self.records = []
                self.error = self.definition.error_message
                self.loading = False
                self._notify()
            return

        if self.closed or generation != self._generation:
            logger.debug(f"Discarding superseded {self.definition.name} snapshot {generation}")
            return
        self.records = resolved
        self.error = None
        self.loading = False
        self._notify()

    def _on_error(self, exc: Exception):
        if self.closed:
            return
        logger.error(f"{self.definition.name} subscription error: {exc}")
        self._supersede()
        self.records = []
        self.error = self.definition.error_message
        self.loading = False
        self._notify()

    async def settled(self):
        """Wait until no resolution pass is in flight."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def _unsubscribe(self):
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()

    async def retry(self):
        """Drop the current subscription and open a fresh one."""
        if self.closed:
            raise RuntimeError("LiveView is closed")
        self._supersede()
        await self._unsubscribe()
        self.records = []
        await self.open()
        self._notify()

    async def close(self):
        if self.closed:
            return
        self.closed = True
        self._supersede()
        await self._unsubscribe()
        self._listeners.clear()

    def view_model(self, term: str = "", status: str = vm.ALL) -> list:
        return self.definition.view_model(self.records, term, status)

    def find(self, record_id: str) -> BaseModel:
        for record in self.records:
            if record.id == record_id:
                return record
        raise LookupError(f"{self.definition.name} record {record_id} not found")
