"""The dashboard pages: what each one subscribes to and how it renders."""
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Type

from pydantic import BaseModel

import view_models as vm
from models import REPAIR_STATUSES, Appointment, DetailRead, GlobalStatus, Technician
from resolver import TECHNICIAN, USER, EntityReference
from store import Query
from utils import Accessor


@dataclass
class ViewDefinition:
    name: str
    title: str
    query: Query
    model: Type[BaseModel]
    card: Callable[[Any], BaseModel]
    detail: Callable[[Any], DetailRead]
    search_fields: Sequence[Sequence[Accessor]]
    status_of: Callable[[Any], Optional[str]]
    status_options: Sequence[str] = (vm.ALL,)
    references: Sequence[EntityReference] = ()
    include: Optional[Callable[[Any], bool]] = None
    error_message: str = "Failed to connect to database"
    has_diagnosis: bool = False
    deletable: bool = False
    delete_title: str = ""
    delete_message: Callable[[Any], str] = field(default=lambda record: "")

    def view_model(self, records: Sequence[Any], term: str = "", status: str = vm.ALL) -> list:
        return vm.filter_records(records, term, status, self.search_fields, self.status_of)


def _freelance_delete_message(record: Technician) -> str:
    name = vm.technician_name(record) or "this freelance technician"
    return (
        f"Are you sure you want to delete {name} permanently? "
        "This will mark the technician as deleted and remove them from the system."
    )


FREELANCE = ViewDefinition(
    name="freelance",
    title="Freelance Technicians",
    query=Query("technicians"),
    model=Technician,
    card=vm.freelance_card,
    detail=vm.freelance_detail,
    search_fields=vm.TECHNICIAN_SEARCH_FIELDS,
    status_of=vm.technician_status,
    include=vm.is_freelancer,
    error_message="Failed to load freelance technicians",
    deletable=True,
    delete_title="Delete Freelance Technician",
    delete_message=_freelance_delete_message,
)

APPOINTMENTS = ViewDefinition(
    name="appointments",
    title="Appointment Management",
    query=Query("appointments").order("createdAt", descending=True),
    model=Appointment,
    card=vm.appointment_card,
    detail=vm.appointment_detail,
    search_fields=vm.APPOINTMENT_SEARCH_FIELDS,
    status_of=vm.appointment_status,
    status_options=(
        vm.ALL,
        GlobalStatus.SCHEDULED.value,
        GlobalStatus.ACCEPTED.value,
        GlobalStatus.REJECTED.value,
        GlobalStatus.CANCELLED.value,
    ),
    references=(USER, TECHNICIAN),
    error_message="Failed to connect to database",
    has_diagnosis=True,
)

REPAIRS = ViewDefinition(
    name="repairs",
    title="Repair Tracking",
    query=Query("appointments").where("status.global", "in", REPAIR_STATUSES).order("createdAt", descending=True),
    model=Appointment,
    card=vm.repair_card,
    detail=vm.repair_detail,
    search_fields=vm.APPOINTMENT_SEARCH_FIELDS,
    status_of=vm.appointment_status,
    status_options=(
        vm.ALL,
        GlobalStatus.COMPLETED.value,
        GlobalStatus.REPAIRING.value,
        GlobalStatus.TESTING.value,
    ),
    references=(USER, TECHNICIAN),
    error_message="Failed to load repairs",
    has_diagnosis=True,
)

VIEWS: dict[str, ViewDefinition] = {view.name: view for view in (FREELANCE, APPOINTMENTS, REPAIRS)}


def get_view(name: str) -> ViewDefinition:
    try:
        return VIEWS[name]
    except KeyError:
        raise KeyError(f"Unknown view: {name}") from None
