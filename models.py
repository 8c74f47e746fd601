from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _epoch(seconds: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _coerce_timestamp(value: Any) -> Optional[datetime]:
    """Firestore/epoch/ISO values to datetime; anything unreadable becomes None."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None or isinstance(seconds, bool):
            return None
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        try:
            return _epoch(float(seconds) + float(nanos) / 1e9)
        except (TypeError, ValueError):
            return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Millisecond epochs are what the JS clients write
        return _epoch(value / 1000 if value > 1e11 else value)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


Timestamp = Annotated[Optional[datetime], BeforeValidator(_coerce_timestamp)]


def _coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return str(value)


# Mobile clients are not consistent about numbers vs strings here
Text = Annotated[Optional[str], BeforeValidator(_coerce_text)]


class GlobalStatus(str, Enum):
    SCHEDULED = "Scheduled"
    ACCEPTED = "Accepted"
    REPAIRING = "Repairing"
    TESTING = "Testing"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


REPAIR_STATUSES = [GlobalStatus.REPAIRING.value, GlobalStatus.TESTING.value, GlobalStatus.COMPLETED.value]


class Document(BaseModel):
    """Stored documents use camelCase names; attributes are snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# --- Stored documents ---

class WorkingHours(Document):
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class Technician(Document):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Text = None
    location: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    skills: Optional[list[str]] = None
    categories: Optional[list[str]] = None
    description: Optional[str] = None
    years_in_service: Optional[float] = None
    status: Optional[str] = None
    has_shop: Optional[bool] = False
    profile_image: Optional[str] = None
    working_hours: Optional[WorkingHours] = None
    working_days: Optional[list[str]] = None
    average_rating: Optional[float] = None
    rating: Optional[float] = None
    experience: Text = None
    shop_name: Optional[str] = None
    is_deleted: Optional[bool] = False
    created_at: Timestamp = None
    submitted: Timestamp = None
    deleted_at: Timestamp = None
    deleted_by: Optional[str] = None


class UserProfile(Document):
    id: str
    username: Optional[str] = None
    name: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Text = None


class StatusRecord(Document):
    global_status: Optional[str] = Field(default=None, alias="global")
    technician: Optional[str] = None
    user_view: Optional[str] = None
    technician_view: Optional[str] = None


class DiagnosisSnapshot(Document):
    category: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    issue: Optional[str] = None
    issue_description: Optional[str] = None
    diagnosis: Optional[str] = None
    estimated_cost: Optional[float] = None
    is_custom_issue: Optional[bool] = None


class Diagnosis(Document):
    id: str
    category: Optional[str] = None
    device_type: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    issue_description: Optional[str] = None
    issue: Optional[str] = None
    diagnosis: Optional[str] = None
    findings: Optional[str] = None
    estimated_cost: Optional[float] = None
    is_custom_issue: Optional[bool] = None

    def to_snapshot(self) -> DiagnosisSnapshot:
        return DiagnosisSnapshot(
            category=self.category or self.device_type or "",
            brand=self.brand or self.model or "",
            model=self.model,
            issue=self.issue_description or self.issue or "",
            diagnosis=self.diagnosis or self.findings or "",
            estimated_cost=self.estimated_cost,
            is_custom_issue=self.is_custom_issue,
        )


class PartyInfo(Document):
    """Legacy userInfo / technicianInfo snapshot."""
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Text = None


class UserDetails(Document):
    name: Optional[str] = None
    username: Optional[str] = None
    phone: Text = None
    email: Optional[str] = None


class TechnicianDetails(Document):
    name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Text = None
    rating: Optional[float] = None
    experience: Text = None
    shop_name: Optional[str] = None
    distance: Optional[float] = None


class UserLocation(Document):
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PartySummary(BaseModel):
    """Display fields merged into a record by the resolver."""
    name: str = "Unknown"
    email: str = "N/A"
    phone: str = "N/A"
    rating: Optional[float] = None
    experience: str = "N/A"
    shop_name: str = "N/A"
    source: Literal["embedded", "fetched", "missing"] = "missing"


class Appointment(Document):
    id: str
    user_id: Optional[str] = None
    technician_id: Optional[str] = None
    service_type: Optional[str] = None
    device_type: Optional[str] = None
    issue: Optional[str] = None
    scheduled_date: Timestamp = None
    scheduled_time: Optional[str] = None
    status: Optional[StatusRecord] = None
    location: Optional[str] = None
    created_at: Timestamp = None
    updated_at: Timestamp = None
    diagnosis_id: Optional[str] = None
    diagnosis_data: Optional[DiagnosisSnapshot] = None
    technician_type: Optional[str] = None
    technician_details: Optional[TechnicianDetails] = None
    user_details: Optional[UserDetails] = None
    service_location: Optional[str] = None
    user_location: Optional[UserLocation] = None
    cancel_deadline: Timestamp = None
    arrival_time: Timestamp = None
    repair_started_at: Timestamp = None
    testing_started_at: Timestamp = None
    completed_at: Timestamp = None
    user_info: Optional[PartyInfo] = None
    technician_info: Optional[PartyInfo] = None

    # Filled in by the resolver
    user: Optional[PartySummary] = Field(default=None, exclude=True)
    technician: Optional[PartySummary] = Field(default=None, exclude=True)

    @property
    def global_status(self) -> Optional[str]:
        return self.status.global_status if self.status else None

    def progress(self) -> list[tuple[str, Optional[datetime]]]:
        """Progress timestamps in pipeline order; skipped stages stay None."""
        return [
            ("arrival", self.arrival_time),
            ("repair_started", self.repair_started_at),
            ("testing_started", self.testing_started_at),
            ("completed", self.completed_at),
        ]


# --- Read/Response Models ---

class FreelanceCard(BaseModel):
    id: str
    title: str


class AppointmentCard(BaseModel):
    id: str
    short_id: str
    user_name: str
    technician_name: str
    status: str
    status_color: str
    scheduled: str
    device: str
    issue: str


class RepairCard(BaseModel):
    id: str
    user_name: str
    technician_name: str
    status: str
    status_color: str
    device: str
    issue: str
    technician_type: str
    technician_type_icon: str


class DetailRow(BaseModel):
    label: str
    value: str


class DetailSection(BaseModel):
    heading: str
    rows: list[DetailRow] = []


class DetailRead(BaseModel):
    id: str
    title: str
    subtitle: Optional[str] = None
    sections: list[DetailSection] = []


class DiagnosisRead(BaseModel):
    state: Literal["idle", "loading", "error", "loaded"] = "idle"
    error: Optional[str] = None
    rows: list[DetailRow] = []


class ActionRead(BaseModel):
    state: Literal["idle", "confirming", "writing"] = "idle"
    deletable: bool = False
    title: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class ViewStateRead(BaseModel):
    session_id: str
    view: str
    title: str
    loading: bool
    error: Optional[str] = None
    search: str = ""
    status: str = "all"
    status_options: list[str] = []
    items: list[dict] = []
    selected: Optional[DetailRead] = None
    action: ActionRead = Field(default_factory=ActionRead)
    diagnosis: DiagnosisRead = Field(default_factory=DiagnosisRead)


class ViewInfo(BaseModel):
    name: str
    title: str
    status_options: list[str]
    deletable: bool
