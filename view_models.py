"""
Display-side derivations: filtering and search over a resolved record set,
plus the cards and detail panels the dashboard pages render.

Everything in this module is pure; nothing here touches the store.
"""
from typing import Any, Callable, Optional, Sequence

from models import (
    Appointment, AppointmentCard, DetailRead, DetailRow, DetailSection, DiagnosisSnapshot,
    FreelanceCard, PartySummary, RepairCard, Technician,
)
from utils import Accessor, dig, first_of, format_date, format_datetime, format_time, pluck, text

ALL = "all"

APPOINTMENT_COLORS = {
    "Scheduled": "#3b82f6",
    "Accepted": "#10b981",
    "Repairing": "#f59e0b",
    "Testing": "#8b5cf6",
    "Completed": "#059669",
    "Rejected": "#ef4444",
    "Cancelled": "#6b7280",
}
APPOINTMENT_DEFAULT_COLOR = "#6b7280"

REPAIR_COLORS = {
    "Completed": "#4CAF50",
    "Repairing": "#FF9800",
    "Testing": "#2196F3",
}
REPAIR_DEFAULT_COLOR = "#666"

TECHNICIAN_TYPE_ICONS = {"freelance": "👨‍🔧", "shop": "🏪"}

PROGRESS_LABELS = {
    "arrival": "Arrival Time",
    "repair_started": "Repair Started",
    "testing_started": "Testing Started",
    "completed": "Completed",
}


def resolved(reference: str, field: str) -> Accessor:
    """Resolved summary field, or None when the resolver fell back to sentinels."""
    def accessor(record):
        summary = getattr(record, reference, None)
        if summary is None or summary.source == "missing":
            return None
        return getattr(summary, field, None)
    return accessor


# Each inner list is one display field; every candidate in it is matched on its own.
APPOINTMENT_SEARCH_FIELDS: list[list[Accessor]] = [
    [resolved("user", "name"), pluck("user_info", "username"), pluck("user_details", "name"), pluck("user_details", "username")],
    [resolved("technician", "name"), pluck("technician_info", "username"), pluck("technician_details", "name"), pluck("technician_details", "username")],
    [pluck("device_type"), pluck("diagnosis_data", "category"), pluck("diagnosis_data", "brand")],
    [pluck("issue"), pluck("diagnosis_data", "issue"), pluck("diagnosis_data", "issue_description"), pluck("diagnosis_data", "diagnosis")],
]

TECHNICIAN_SEARCH_FIELDS: list[list[Accessor]] = [
    [pluck("username"), pluck("full_name"), pluck("name")],
    [pluck("location"), pluck("address")],
    [pluck("skills"), pluck("categories")],
]


def appointment_status(record: Appointment) -> Optional[str]:
    return record.global_status


def technician_status(record: Technician) -> Optional[str]:
    return record.status


def _safe(accessor: Accessor, record: Any) -> str:
    try:
        return text(accessor(record))
    except (AttributeError, KeyError, TypeError):
        return ""


def matches_search(record: Any, term: str, fields: Sequence[Sequence[Accessor]]) -> bool:
    needle = (term or "").strip().lower()
    if not needle:
        return True
    return any(needle in _safe(accessor, record).lower() for candidates in fields for accessor in candidates)


def matches_status(record: Any, status: Optional[str], status_of: Callable[[Any], Optional[str]]) -> bool:
    if not status or status == ALL:
        return True
    return status_of(record) == status


def filter_records(
    records: Sequence[Any],
    term: str = "",
    status: str = ALL,
    fields: Sequence[Sequence[Accessor]] = APPOINTMENT_SEARCH_FIELDS,
    status_of: Callable[[Any], Optional[str]] = appointment_status,
) -> list:
    """Records matching both the search term and the status filter, in input order."""
    return [r for r in records if matches_status(r, status, status_of) and matches_search(r, term, fields)]


def is_freelancer(record: Technician) -> bool:
    status = record.status.lower() if isinstance(record.status, str) else ""
    return not record.is_deleted and status == "approved" and not record.has_shop


# --- Display helpers ---

def _party_name(record: Appointment, reference: str) -> str:
    summary = getattr(record, reference, None)
    return summary.name if summary else "Unknown"


def _device(record: Appointment, with_brand: bool = True) -> str:
    accessors = [pluck("device_type"), pluck("diagnosis_data", "category")]
    if with_brand:
        accessors.append(pluck("diagnosis_data", "brand"))
    return text(first_of(record, accessors, "N/A"))


def _issue(record: Appointment) -> str:
    return text(first_of(record, [pluck("issue"), pluck("diagnosis_data", "issue_description"), pluck("diagnosis_data", "issue")], "N/A"))


def _scheduled(record: Appointment) -> str:
    scheduled = format_date(record.scheduled_date)
    if record.scheduled_time:
        scheduled += f" at {record.scheduled_time}"
    return scheduled


def _cost(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    if float(value).is_integer():
        return f"₱{int(value)}"
    return f"₱{value}"


def _rows(*pairs: tuple[str, Any]) -> list[DetailRow]:
    return [DetailRow(label=label, value=text(value)) for label, value in pairs]


def technician_name(record: Technician) -> Optional[str]:
    return first_of(record, [pluck("username"), pluck("full_name"), pluck("name")])


def technician_type(record: Appointment) -> str:
    return record.technician_type or "freelance"


# --- Cards ---

def freelance_card(record: Technician) -> FreelanceCard:
    return FreelanceCard(id=record.id, title=technician_name(record) or f"Freelancer · {record.id[:6]}")


def appointment_card(record: Appointment) -> AppointmentCard:
    status = record.global_status or "Unknown"
    return AppointmentCard(
        id=record.id,
        short_id=record.id[:8],
        user_name=_party_name(record, "user"),
        technician_name=_party_name(record, "technician"),
        status=status,
        status_color=APPOINTMENT_COLORS.get(status, APPOINTMENT_DEFAULT_COLOR),
        scheduled=_scheduled(record),
        device=_device(record),
        issue=_issue(record),
    )


def repair_card(record: Appointment) -> RepairCard:
    status = record.global_status or "Unknown"
    kind = technician_type(record)
    return RepairCard(
        id=record.id,
        user_name=_party_name(record, "user"),
        technician_name=_party_name(record, "technician"),
        status=status,
        status_color=REPAIR_COLORS.get(status, REPAIR_DEFAULT_COLOR),
        device=_device(record, with_brand=False),
        issue=_issue(record),
        technician_type=kind,
        technician_type_icon=TECHNICIAN_TYPE_ICONS.get(kind, TECHNICIAN_TYPE_ICONS["shop"]),
    )


# --- Detail panels ---

def freelance_detail(record: Technician) -> DetailRead:
    name = technician_name(record)
    details = _rows(
        ("Name", name or "Not set"),
        ("Address", first_of(record, [pluck("location"), pluck("address")], "Not set")),
        ("Coordinates", f"{record.latitude:.5f}, {record.longitude:.5f}" if record.latitude and record.longitude else "Not set"),
    )
    if record.years_in_service is not None:
        details += _rows(("Years in Service", f"{record.years_in_service:g} years"))

    hours = _rows(
        ("Opening Time", format_time(dig(record, "working_hours", "start_time"))),
        ("Closing Time", format_time(dig(record, "working_hours", "end_time"))),
    )
    if record.working_days:
        hours += _rows(("Working Days", ", ".join(record.working_days)))

    return DetailRead(
        id=record.id,
        title=name or f"Freelancer {record.id[:6]}",
        subtitle=f"Freelance ID: {record.id}",
        sections=[
            DetailSection(heading="Freelance Details", rows=details),
            DetailSection(heading="Operating Hours", rows=hours),
        ],
    )


def _user_section(record: Appointment) -> DetailSection:
    user = record.user or PartySummary()
    return DetailSection(heading="User Information", rows=_rows(
        ("Name", user.name),
        ("Email", user.email),
        ("Phone", user.phone),
        ("Address", first_of(record, [pluck("user_location", "address"), pluck("service_location")], "N/A")),
    ))


def _technician_section(record: Appointment) -> DetailSection:
    tech = record.technician or PartySummary()
    return DetailSection(heading="Technician Information", rows=_rows(
        ("Name", tech.name),
        ("Email", tech.email),
        ("Phone", tech.phone),
        ("Rating", f"{tech.rating:g}/5" if tech.rating else "N/A"),
        ("Experience", tech.experience),
        ("Shop Name", tech.shop_name),
    ))


def appointment_detail(record: Appointment) -> DetailRead:
    info = _rows(
        ("Status", record.global_status or "Unknown"),
        ("Scheduled", _scheduled(record)),
        ("Service Type", record.service_type or "N/A"),
        ("Device", _device(record)),
        ("Issue", _issue(record)),
        ("Location", first_of(record, [pluck("location"), pluck("service_location")], "N/A")),
    )
    return DetailRead(
        id=record.id,
        title="Appointment Details",
        subtitle=f"#{record.id[:8]}",
        sections=[
            DetailSection(heading="Appointment Information", rows=info),
            _user_section(record),
            _technician_section(record),
        ],
    )


def repair_detail(record: Appointment) -> DetailRead:
    diagnosis = record.diagnosis_data or DiagnosisSnapshot()
    kind = technician_type(record)
    info = _rows(
        ("Status", record.global_status or "Unknown"),
        ("Device", _device(record, with_brand=False)),
        ("Brand", diagnosis.brand or "N/A"),
        ("Model", diagnosis.model or "N/A"),
        ("Issue", _issue(record)),
        ("Diagnosis", diagnosis.diagnosis or "N/A"),
        ("Estimated Cost", _cost(diagnosis.estimated_cost) if diagnosis.estimated_cost else "N/A"),
        ("Repair Type", f"{TECHNICIAN_TYPE_ICONS.get(kind, TECHNICIAN_TYPE_ICONS['shop'])} {kind}"),
    )
    progress = _rows(("Scheduled Date", format_date(record.scheduled_date)))
    progress += _rows(*(
        (PROGRESS_LABELS[stage], format_datetime(when, "Not completed" if stage == "completed" else "Not started"))
        for stage, when in record.progress()
    ))
    return DetailRead(
        id=record.id,
        title="Repair Details",
        subtitle=f"#{record.id[:8]}",
        sections=[
            DetailSection(heading="Repair Information", rows=info),
            DetailSection(heading="Repair Progress", rows=progress),
            _user_section(record),
            _technician_section(record),
        ],
    )


def diagnosis_rows(diagnosis: DiagnosisSnapshot) -> list[DetailRow]:
    brand_model = " ".join(part for part in (diagnosis.brand, diagnosis.model) if part)
    return _rows(
        ("Category", diagnosis.category or "N/A"),
        ("Brand/Model", brand_model or "N/A"),
        ("Issue", diagnosis.issue or diagnosis.issue_description or "N/A"),
        ("Diagnosis", diagnosis.diagnosis or "N/A"),
        ("Estimated Price", _cost(diagnosis.estimated_cost)),
    )
