import asyncio
import os
import sys

import pytest
from fastapi.testclient import TestClient

# Ensure we can import from the parent directory
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep tests away from Supabase; must be set before db is imported
os.environ["DASHBOARD_STORE"] = "memory"

import db
from store import MemoryDocumentStore, StoreReadError, StoreWriteError


def technicians_seed():
    return {
        "t1": {"username": "ana_fixes", "status": "approved", "hasShop": False, "location": "Quezon City",
               "latitude": 14.676041, "longitude": 121.043700, "yearsInService": 4, "skills": ["screens", "batteries"],
               "workingHours": {"startTime": "08:00", "endTime": "17:30"}, "workingDays": ["Mon", "Tue"]},
        "t2": {"username": "shop_sam", "status": "Approved", "hasShop": True},
        "t3": {"fullName": "Pending Pete", "status": "pending", "hasShop": False},
        "t9": {"name": "Tech Tom", "email": "tom@fixel.ph", "phone": 9171234567, "averageRating": 4.5,
               "experience": "5 years", "shopName": "Tom's Gadgets", "status": "approved", "hasShop": True},
    }


def appointments_seed():
    return {
        "a1": {"userId": "u1", "technicianId": "t9", "status": {"global": "Scheduled"},
               "createdAt": "2026-01-02T09:00:00Z", "deviceType": "Laptop", "issue": "Won't boot"},
        "a2": {"userInfo": {"username": "Legacy Larry", "email": "larry@example.com"}, "technicianId": "ghost",
               "status": {"global": "Accepted"}, "createdAt": "2026-01-03T09:00:00Z",
               "diagnosisData": {"category": "Phone", "brand": "iPhone", "issue": "Cracked screen", "estimatedCost": 1800}},
        "a3": {"userId": "u1", "status": {"global": "Repairing"}, "createdAt": "2026-01-01T09:00:00Z",
               "diagnosisId": "d1", "technicianType": "shop",
               "arrivalTime": {"seconds": 1767258000, "nanoseconds": 0}},
    }


def seed():
    return {
        "technicians": technicians_seed(),
        "appointments": appointments_seed(),
        "users": {"u1": {"username": "maria", "email": "maria@example.com", "phone": "0917-000-1111"}},
        "diagnoses": {"d1": {"deviceType": "Tablet", "model": "iPad Air", "issueDescription": "Battery drains",
                             "findings": "Swollen battery", "estimatedCost": 2500}},
    }


class RecordingStore(MemoryDocumentStore):
    """Memory store that records reads and can fail or hold them."""

    def __init__(self, seed=None):
        super().__init__(seed)
        self.reads: list[tuple[str, str]] = []
        self.writes: list[tuple[str, str, dict]] = []
        self.failing_reads: set[str] = set()
        self.fail_writes = False
        self.gates: dict[str, asyncio.Event] = {}

    def gate(self, doc_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[doc_id] = event
        return event

    async def get_by_id(self, collection, doc_id):
        self.reads.append((collection, doc_id))
        if doc_id in self.gates:
            await self.gates[doc_id].wait()
        if doc_id in self.failing_reads:
            raise StoreReadError(f"permission denied for {collection}/{doc_id}")
        return await super().get_by_id(collection, doc_id)

    async def merge_write(self, collection, doc_id, fields):
        self.writes.append((collection, doc_id, fields))
        if self.fail_writes:
            raise StoreWriteError("network unavailable")
        await super().merge_write(collection, doc_id, fields)


@pytest.fixture
def store():
    return RecordingStore(seed())


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(db, "_store", store)
    from main import app
    with TestClient(app) as c:
        yield c
