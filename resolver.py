"""
Denormalization of records that reference other entities by id.

Every reference names the embedded snapshots that make a read unnecessary,
the collection to read from otherwise, and an ordered accessor list per
display field. A lookup that fails or finds nothing degrades to the
reference's sentinels; it never fails the record.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from models import PartySummary, Technician, UserProfile
from store import DocumentStore
from utils import Accessor, first_of, pluck

logger = logging.getLogger(__name__)


@dataclass
class EntityReference:
    name: str
    collection: str
    id_field: str
    target_field: str
    model: Type[BaseModel]
    embedded: Sequence[str]
    fields: dict[str, Sequence[Accessor]]
    sentinels: dict[str, object] = field(default_factory=dict)

    def summarize(self, sources: Sequence[object], origin: str) -> PartySummary:
        values = {}
        for name, accessors in self.fields.items():
            value = None
            for source in sources:
                value = first_of(source, accessors)
                if value:
                    break
            values[name] = value if value else self.sentinels.get(name)
        values = {k: v for k, v in values.items() if v is not None}
        return PartySummary(source=origin, **values)

    def missing(self) -> PartySummary:
        return self.summarize([], "missing")


_NAME = [pluck("username"), pluck("name"), pluck("full_name")]

USER = EntityReference(
    name="user",
    collection="users",
    id_field="user_id",
    target_field="user",
    model=UserProfile,
    embedded=["user_info", "user_details"],
    fields={
        "name": _NAME,
        "email": [pluck("email")],
        "phone": [pluck("phone")],
    },
    sentinels={"name": "Unknown", "email": "N/A", "phone": "N/A"},
)

TECHNICIAN = EntityReference(
    name="technician",
    collection="technicians",
    id_field="technician_id",
    target_field="technician",
    model=Technician,
    embedded=["technician_info", "technician_details"],
    fields={
        "name": _NAME,
        "email": [pluck("email")],
        "phone": [pluck("phone")],
        "rating": [pluck("average_rating"), pluck("rating")],
        "experience": [pluck("experience")],
        "shop_name": [pluck("shop_name")],
    },
    sentinels={"name": "Unknown", "email": "N/A", "phone": "N/A", "experience": "N/A", "shop_name": "N/A"},
)


class ResolutionPass:
    """Shares lookups of the same (collection, id) across the records of one snapshot."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self._lookups: dict[tuple[str, str], asyncio.Task] = {}

    def lookup(self, reference: EntityReference, doc_id: str) -> asyncio.Task:
        key = (reference.collection, doc_id)
        if key not in self._lookups:
            self._lookups[key] = asyncio.ensure_future(self._fetch(reference, doc_id))
        return self._lookups[key]

    async def _fetch(self, reference: EntityReference, doc_id: str) -> Optional[BaseModel]:
        try:
            raw = await self.store.get_by_id(reference.collection, doc_id)
        except Exception as e:
            logger.warning(f"Could not fetch {reference.name} {doc_id}: {e}")
            return None
        if raw is None:
            logger.warning(f"{reference.name} {doc_id} not found in {reference.collection}")
            return None
        try:
            return reference.model.model_validate({**raw, "id": doc_id})
        except ValidationError as e:
            logger.warning(f"Unreadable {reference.name} {doc_id}: {e}")
            return None

    def cancel(self):
        for task in self._lookups.values():
            task.cancel()


class Resolver:
    def __init__(self, store: DocumentStore, references: Sequence[EntityReference] = ()):
        self.store = store
        self.references = list(references)

    async def _summary(self, record: BaseModel, reference: EntityReference, resolution: ResolutionPass) -> PartySummary:
        embedded = [getattr(record, name, None) for name in reference.embedded]
        embedded = [snapshot for snapshot in embedded if snapshot is not None]
        if embedded:
            return reference.summarize(embedded, "embedded")

        doc_id = getattr(record, reference.id_field, None)
        if not doc_id:
            return reference.missing()
        entity = await resolution.lookup(reference, doc_id)
        if entity is None:
            return reference.missing()
        return reference.summarize([entity], "fetched")

    async def resolve(self, record: BaseModel, resolution: Optional[ResolutionPass] = None) -> BaseModel:
        """Return a copy of ``record`` with every reference's summary merged in."""
        if not self.references:
            return record
        resolution = resolution or ResolutionPass(self.store)
        summaries = await asyncio.gather(
            *(self._summary(record, reference, resolution) for reference in self.references)
        )
        update = {reference.target_field: summary for reference, summary in zip(self.references, summaries)}
        return record.model_copy(update=update)

    async def resolve_all(self, records: Sequence[BaseModel]) -> list[BaseModel]:
        """Resolve a whole snapshot concurrently; returns only once every record is done."""
        if not self.references or not records:
            return list(records)
        resolution = ResolutionPass(self.store)
        try:
            return list(await asyncio.gather(*(self.resolve(record, resolution) for record in records)))
        finally:
            resolution.cancel()
