"""
Detail panel state for the selected record.

Soft-delete goes through an explicit confirm step:

    idle -> confirming -> writing -> idle (selection cleared)
    confirming -> idle (cancelled, selection kept)
    writing -> idle (write failed, selection kept, error shown)
"""
import logging
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

from models import ActionRead, DetailRead, Diagnosis, DiagnosisRead, DiagnosisSnapshot
from store import DocumentStore
from utils import utcnow_iso
from views import ViewDefinition
import view_models as vm

logger = logging.getLogger(__name__)

DIAGNOSES = "diagnoses"


class ActionState(str, Enum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    WRITING = "writing"


class DiagnosisState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"
    LOADED = "loaded"


class ActionStateError(Exception):
    pass


def soft_delete_fields(actor: str, timestamp: str) -> dict:
    return {"isDeleted": True, "deletedAt": timestamp, "deletedBy": actor}


class DetailSurface:
    def __init__(self, store: DocumentStore, definition: ViewDefinition, clock: Callable[[], str] = utcnow_iso):
        self.store = store
        self.definition = definition
        self.clock = clock
        self.selected: Optional[BaseModel] = None
        self.state = ActionState.IDLE
        self.error: Optional[str] = None
        self.diagnosis_state = DiagnosisState.IDLE
        self.diagnosis: Optional[DiagnosisSnapshot] = None
        self.diagnosis_error: Optional[str] = None
        self._selection = 0

    def select(self, record: BaseModel):
        if self.state == ActionState.WRITING:
            raise ActionStateError("A delete is in progress")
        self.selected = record
        self._selection += 1
        self.state = ActionState.IDLE
        self.error = None
        self._reset_diagnosis()

    def clear(self):
        if self.state == ActionState.WRITING:
            raise ActionStateError("A delete is in progress")
        self.selected = None
        self._selection += 1
        self.state = ActionState.IDLE
        self.error = None
        self._reset_diagnosis()

    def _reset_diagnosis(self):
        self.diagnosis_state = DiagnosisState.IDLE
        self.diagnosis = None
        self.diagnosis_error = None

    def detail(self) -> Optional[DetailRead]:
        return self.definition.detail(self.selected) if self.selected is not None else None

    # --- Diagnosis ---

    async def load_diagnosis(self) -> DiagnosisState:
        if not self.definition.has_diagnosis:
            raise ActionStateError(f"{self.definition.name} records have no diagnosis")
        if self.selected is None:
            raise ActionStateError("Nothing is selected")

        record = self.selected
        token = self._selection
        self.diagnosis = None
        self.diagnosis_error = None

        if record.diagnosis_data is not None:
            self.diagnosis = record.diagnosis_data
            self.diagnosis_state = DiagnosisState.LOADED
            return self.diagnosis_state
        if not record.diagnosis_id:
            self.diagnosis_error = "No diagnosis information available for this appointment."
            self.diagnosis_state = DiagnosisState.ERROR
            return self.diagnosis_state

        self.diagnosis_state = DiagnosisState.LOADING
        snapshot, error = None, None
        try:
            raw = await self.store.get_by_id(DIAGNOSES, record.diagnosis_id)
            if raw is None:
                error = "Diagnosis not found."
            else:
                snapshot = Diagnosis.model_validate({**raw, "id": record.diagnosis_id}).to_snapshot()
        except Exception as e:
            logger.warning(f"Failed to load diagnosis {record.diagnosis_id}: {e}")
            error = "Failed to load diagnosis."

        if token != self._selection:
            # Selection changed while the read was in flight
            return self.diagnosis_state
        self.diagnosis = snapshot
        self.diagnosis_error = error
        self.diagnosis_state = DiagnosisState.ERROR if error else DiagnosisState.LOADED
        return self.diagnosis_state

    def diagnosis_read(self) -> DiagnosisRead:
        rows = vm.diagnosis_rows(self.diagnosis) if self.diagnosis is not None else []
        return DiagnosisRead(state=self.diagnosis_state.value, error=self.diagnosis_error, rows=rows)

    # --- Soft-delete ---

    def request_delete(self):
        if not self.definition.deletable:
            raise ActionStateError(f"{self.definition.name} records cannot be deleted")
        if self.selected is None:
            raise ActionStateError("Nothing is selected")
        if self.state != ActionState.IDLE:
            raise ActionStateError(f"Cannot request delete while {self.state.value}")
        self.error = None
        self.state = ActionState.CONFIRMING

    def cancel_delete(self):
        if self.state != ActionState.CONFIRMING:
            raise ActionStateError(f"Cannot cancel while {self.state.value}")
        self.state = ActionState.IDLE

    async def confirm_delete(self, actor: str) -> bool:
        """Issue the soft-delete write. Returns False when the write failed."""
        if self.state != ActionState.CONFIRMING:
            raise ActionStateError(f"Cannot confirm while {self.state.value}")
        record = self.selected
        self.state = ActionState.WRITING
        try:
            await self.store.merge_write(
                self.definition.query.collection, record.id, soft_delete_fields(actor, self.clock())
            )
        except Exception as e:
            logger.error(f"Failed to delete {self.definition.name} {record.id}: {e}")
            self.state = ActionState.IDLE
            self.error = "Failed to delete. Please try again."
            return False

        logger.info(f"{actor} soft-deleted {self.definition.query.collection}/{record.id}")
        self.state = ActionState.IDLE
        self.clear()
        return True

    def action_read(self) -> ActionRead:
        read = ActionRead(state=self.state.value, deletable=self.definition.deletable, error=self.error)
        if self.state == ActionState.CONFIRMING and self.selected is not None:
            read.title = self.definition.delete_title
            read.message = self.definition.delete_message(self.selected)
        return read
