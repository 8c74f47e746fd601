from datetime import datetime, timezone

import view_models as vm
from models import Appointment, Diagnosis, PartySummary, Technician
from utils import format_time
from views import APPOINTMENTS, FREELANCE, REPAIRS


def appointment(id, status="Scheduled", user=None, technician=None, **data):
    record = Appointment.model_validate({"id": id, "status": {"global": status}, **data})
    return record.model_copy(update={
        "user": user or PartySummary(),
        "technician": technician or PartySummary(),
    })


def sample():
    return [
        appointment("a1", "Scheduled", user=PartySummary(name="Maria", source="fetched"), deviceType="Laptop"),
        appointment("a2", "Accepted", diagnosisData={"category": "Smartphone", "brand": "iPhone", "issue": "Cracked screen"}),
        appointment("a3", "Cancelled", technician=PartySummary(name="Tech Tom", source="fetched"), issue="No power"),
        appointment("a4", "Scheduled", issue="Overheating iPhone charger"),
    ]


def test_all_passes_everything_through_in_order():
    records = sample()
    assert vm.filter_records(records, "", vm.ALL) == records


def test_status_filter_is_exact():
    result = vm.filter_records(sample(), "", "Scheduled")
    assert [r.id for r in result] == ["a1", "a4"]
    assert vm.filter_records(sample(), "", "scheduled") == []


def test_search_matches_brand_when_device_type_is_absent():
    result = vm.filter_records(sample(), "iphone", vm.ALL)
    assert [r.id for r in result] == ["a2", "a4"]


def test_search_is_case_insensitive_over_resolved_names():
    assert [r.id for r in vm.filter_records(sample(), "MARIA")] == ["a1"]
    assert [r.id for r in vm.filter_records(sample(), "tom")] == ["a3"]


def test_sentinels_never_match():
    assert vm.filter_records(sample(), "unknown") == []


def test_search_and_status_combine():
    assert [r.id for r in vm.filter_records(sample(), "iphone", "Scheduled")] == ["a4"]


def test_filter_is_idempotent():
    records = sample()
    once = vm.filter_records(records, "iphone", vm.ALL)
    assert vm.filter_records(once, "iphone", vm.ALL) == once


def test_records_without_status_only_pass_all():
    bare = Appointment.model_validate({"id": "a9"})
    assert vm.filter_records([bare], "", vm.ALL) == [bare]
    assert vm.filter_records([bare], "", "Scheduled") == []
    assert vm.filter_records([bare], "laptop", vm.ALL) == []


def test_freelance_keeps_only_approved_technicians_without_shop():
    techs = [
        Technician.model_validate({"id": "t1", "status": "approved", "hasShop": False}),
        Technician.model_validate({"id": "t2", "status": "approved", "hasShop": True}),
        Technician.model_validate({"id": "t3", "status": "pending"}),
        Technician.model_validate({"id": "t4", "status": "APPROVED", "isDeleted": True}),
    ]
    assert [t.id for t in techs if FREELANCE.include(t)] == ["t1"]


def test_technician_search():
    tech = Technician.model_validate({"id": "t1", "username": "ana", "skills": ["Screens", "Batteries"]})
    assert FREELANCE.view_model([tech], "batter") == [tech]
    assert FREELANCE.view_model([tech], "modem") == []


def test_appointment_card():
    record = appointment(
        "a1b2c3d4e5", "Accepted",
        user=PartySummary(name="Maria", source="fetched"),
        scheduledDate=datetime(2026, 3, 5, tzinfo=timezone.utc),
        scheduledTime="10:00 AM",
        diagnosisData={"brand": "Samsung", "issueDescription": "Dead pixels"},
    )
    card = APPOINTMENTS.card(record)
    assert card.short_id == "a1b2c3d4"
    assert card.user_name == "Maria"
    assert card.technician_name == "Unknown"
    assert card.status_color == "#10b981"
    assert card.scheduled == "Mar 05, 2026 at 10:00 AM"
    assert card.device == "Samsung"
    assert card.issue == "Dead pixels"


def test_repair_card_defaults():
    record = appointment("r1", "Testing")
    card = REPAIRS.card(record)
    assert card.status_color == "#2196F3"
    assert card.device == "N/A"
    assert card.issue == "N/A"
    assert card.technician_type == "freelance"
    assert card.technician_type_icon == "👨‍🔧"


def test_freelance_card_falls_back_to_id():
    card = FREELANCE.card(Technician.model_validate({"id": "abcdef123"}))
    assert card.title == "Freelancer · abcdef"


def test_freelance_detail():
    tech = Technician.model_validate({
        "id": "t1", "fullName": "Ana Cruz", "address": "Makati",
        "latitude": 14.5547, "longitude": 121.0244, "yearsInService": 3,
        "workingHours": {"startTime": "13:05"}, "workingDays": ["Mon", "Wed"],
    })
    detail = FREELANCE.detail(tech)
    rows = {row.label: row.value for section in detail.sections for row in section.rows}

    assert detail.title == "Ana Cruz"
    assert detail.subtitle == "Freelance ID: t1"
    assert rows["Address"] == "Makati"
    assert rows["Coordinates"] == "14.55470, 121.02440"
    assert rows["Years in Service"] == "3 years"
    assert rows["Opening Time"] == "1:05 PM"
    assert rows["Closing Time"] == "Not set"
    assert rows["Working Days"] == "Mon, Wed"


def test_repair_detail_progress():
    record = appointment(
        "r1", "Testing",
        arrivalTime="2026-02-01T08:30:00Z",
        diagnosisData={"estimatedCost": 0},
    )
    detail = REPAIRS.detail(record)
    progress = {row.label: row.value for row in detail.sections[1].rows}
    info = {row.label: row.value for row in detail.sections[0].rows}

    assert progress["Arrival Time"] == "Feb 01, 2026 08:30 AM"
    assert progress["Repair Started"] == "Not started"
    assert progress["Completed"] == "Not completed"
    assert info["Estimated Cost"] == "N/A"


def test_diagnosis_rows_from_document():
    snapshot = Diagnosis.model_validate({
        "id": "d1", "deviceType": "Tablet", "brand": "Apple", "model": "iPad Air",
        "issue": "Battery drains", "findings": "Swollen battery", "estimatedCost": 2500,
    }).to_snapshot()
    rows = {row.label: row.value for row in vm.diagnosis_rows(snapshot)}

    assert rows == {
        "Category": "Tablet",
        "Brand/Model": "Apple iPad Air",
        "Issue": "Battery drains",
        "Diagnosis": "Swollen battery",
        "Estimated Price": "₱2500",
    }


def test_format_time():
    assert format_time("00:15") == "12:15 AM"
    assert format_time("12:00") == "12:00 PM"
    assert format_time("") == "Not set"
    assert format_time("noon") == "noon"


def test_unreadable_timestamps_become_absent():
    record = Appointment.model_validate({
        "id": "x",
        "arrivalTime": {"seconds": "soon"},
        "repairStartedAt": {"seconds": 1767258000, "nanoseconds": 0},
        "testingStartedAt": 1767258000000,
        "completedAt": 1e20,
        "createdAt": "yesterday",
    })

    assert record.arrival_time is None
    assert record.repair_started_at == datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
    assert record.testing_started_at == record.repair_started_at
    assert record.completed_at is None
    assert record.created_at is None
    assert [stage for stage, when in record.progress() if when] == ["repair_started", "testing_started"]
