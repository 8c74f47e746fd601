from conftest import RecordingStore, seed
from models import Appointment
from resolver import TECHNICIAN, USER, Resolver


def appointment(**data):
    return Appointment.model_validate({"id": "a1", "status": {"global": "Scheduled"}, **data})


async def test_fetches_and_merges_referenced_entities():
    store = RecordingStore(seed())
    resolver = Resolver(store, [USER, TECHNICIAN])

    record = await resolver.resolve(appointment(userId="u1", technicianId="t9"))

    assert record.user.name == "maria"
    assert record.user.email == "maria@example.com"
    assert record.user.source == "fetched"
    assert record.technician.name == "Tech Tom"
    assert record.technician.phone == "9171234567"
    assert record.technician.rating == 4.5
    assert record.technician.shop_name == "Tom's Gadgets"


async def test_embedded_snapshot_skips_the_read():
    store = RecordingStore(seed())
    resolver = Resolver(store, [USER, TECHNICIAN])

    record = await resolver.resolve(appointment(
        userId="u1",
        userDetails={"name": "Embedded Emma"},
        technicianId="t9",
        technicianInfo={"username": "legacy_tech", "email": "legacy@fixel.ph"},
    ))

    assert store.reads == []
    assert record.user.name == "Embedded Emma"
    assert record.user.email == "N/A"
    assert record.user.source == "embedded"
    assert record.technician.name == "legacy_tech"


async def test_missing_entity_gets_sentinels():
    store = RecordingStore(seed())
    resolver = Resolver(store, [USER, TECHNICIAN])

    record = await resolver.resolve(appointment(userId="nobody"))

    assert record.user.name == "Unknown"
    assert record.user.email == "N/A"
    assert record.user.phone == "N/A"
    assert record.user.source == "missing"
    # No technicianId at all: nothing to read
    assert record.technician.name == "Unknown"
    assert record.technician.rating is None
    assert store.reads == [("users", "nobody")]


async def test_read_failure_is_scoped_to_that_entity():
    store = RecordingStore(seed())
    store.failing_reads.add("t9")
    resolver = Resolver(store, [USER, TECHNICIAN])

    record = await resolver.resolve(appointment(userId="u1", technicianId="t9"))

    assert record.user.name == "maria"
    assert record.technician.name == "Unknown"
    assert record.technician.source == "missing"


async def test_lookups_are_shared_within_a_snapshot():
    store = RecordingStore(seed())
    resolver = Resolver(store, [USER])
    records = [appointment(id=f"a{i}", userId="u1") for i in range(5)]

    resolved = await resolver.resolve_all(records)

    assert [r.id for r in resolved] == [r.id for r in records]
    assert all(r.user.name == "maria" for r in resolved)
    assert store.reads == [("users", "u1")]


async def test_resolution_is_idempotent_and_read_only():
    store = RecordingStore(seed())
    before = store.document("users", "u1")
    resolver = Resolver(store, [USER, TECHNICIAN])
    source = appointment(userId="u1", technicianId="t9")

    first = await resolver.resolve(source)
    second = await resolver.resolve(source)

    assert first == second
    assert source.user is None
    assert store.writes == []
    assert store.document("users", "u1") == before


async def test_no_references_returns_records_untouched():
    resolver = Resolver(RecordingStore(), [])
    records = [appointment()]
    assert await resolver.resolve_all(records) == records


async def test_fetched_entity_with_unreadable_timestamp_still_resolves():
    store = RecordingStore(seed())
    await store.put("technicians", "t9", {**store.document("technicians", "t9"),
                                          "createdAt": {"seconds": "soon"}, "deletedAt": 1e20})
    resolver = Resolver(store, [USER, TECHNICIAN])

    resolved = await resolver.resolve_all([appointment(userId="u1", technicianId="t9")])

    assert resolved[0].technician.name == "Tech Tom"
    assert resolved[0].user.name == "maria"
