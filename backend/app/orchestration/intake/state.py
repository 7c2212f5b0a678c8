"""
Intake State Definition

Defines the mutable state of one guided conversation: which flow is active,
where the cursor is, what has been collected so far and the transcript.
The state is owned by a session controller and passed into the step
engines; there is no module-level instance.
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple
import uuid

from app.orchestration.intake.transcript import TranscriptLog


class FlowKind(str, Enum):
    """Guided flows offered from the home menu."""
    EMERGENCY = "emergency"
    ACCOUNT_LOOKUP = "account_lookup"


class VirtualStep(IntEnum):
    """
    Post-catalog steps.

    Values sit above any catalog index so that moving from the last field
    into a virtual step is always forward.
    """
    PHOTO_CONFIRMATION = 100
    AWAITING_IMAGE = 101
    AWAITING_COMPARE_SELECTION = 110
    COMPLETE = 200


class StepPhase(str, Enum):
    """Sub-position within a catalog step."""
    ANSWER = "answer"
    OTHER_TEXT = "other_text"  # "Otro" chosen, waiting for the free-text override


PHASE_ORDER = {StepPhase.ANSWER: 0, StepPhase.OTHER_TEXT: 1}


@dataclass
class FlowCursor:
    """Position in the active flow."""

    flow_kind: Optional[FlowKind] = None
    step_index: int = 0
    phase: StepPhase = StepPhase.ANSWER

    @property
    def position(self) -> Tuple[int, int]:
        return (self.step_index, PHASE_ORDER[self.phase])

    @property
    def is_virtual(self) -> bool:
        return self.step_index >= VirtualStep.PHOTO_CONFIRMATION

    @property
    def is_complete(self) -> bool:
        return self.step_index == VirtualStep.COMPLETE

    def move_to(self, step_index: int, phase: StepPhase = StepPhase.ANSWER) -> None:
        """Move forward. Going backwards is only allowed through `reset`."""
        if (step_index, PHASE_ORDER[phase]) <= self.position:
            raise ValueError(
                f"Cursor cannot move from {self.position} to {(step_index, PHASE_ORDER[phase])}"
            )
        self.step_index = step_index
        self.phase = phase

    def reset(self, flow_kind: Optional[FlowKind] = None) -> None:
        self.flow_kind = flow_kind
        self.step_index = 0
        self.phase = StepPhase.ANSWER


class RecordFrozenError(RuntimeError):
    """Raised when a finalized record is written to."""


class ConversationRecord(Mapping):
    """Field key -> collected value. Read-only once frozen."""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(values or {})
        self._frozen = False

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ConversationRecord({self._values!r}, frozen={self._frozen})"

    @property
    def frozen(self) -> bool:
        return self._frozen

    def set(self, key: str, value: str) -> None:
        if self._frozen:
            raise RecordFrozenError(f"Record is frozen; cannot set {key!r}")
        self._values[key] = value

    def freeze(self) -> None:
        self._frozen = True

    def with_updates(self, updates: Dict[str, str]) -> "ConversationRecord":
        """Frozen copy of this record with `updates` applied."""
        merged = ConversationRecord({**self._values, **updates})
        merged.freeze()
        return merged

    def missing(self, keys: Tuple[str, ...]) -> List[str]:
        """Keys without a non-blank value."""
        return [k for k in keys if not str(self._values.get(k) or "").strip()]

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)


@dataclass
class ConversationState:
    """
    Complete state for one session.

    `flow_token` changes on every start, restart and trip home; responses
    tagged with an older token are stale.
    """

    session_id: str
    cursor: FlowCursor = field(default_factory=FlowCursor)
    record: ConversationRecord = field(default_factory=ConversationRecord)
    transcript: TranscriptLog = field(default_factory=TranscriptLog)
    flow_token: str = field(default_factory=lambda: str(uuid.uuid4()))

    # Server data fetched during the flow
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    results: Optional[Dict[str, Any]] = None

    # Audit trail
    history: List[Dict[str, Any]] = field(default_factory=list)

    busy: bool = False
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    updated_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def reset(self, flow_kind: Optional[FlowKind]) -> None:
        """Drop everything collected and issue a new flow token."""
        self.cursor.reset(flow_kind)
        self.record = ConversationRecord()
        self.transcript.clear()
        self.candidates = []
        self.results = None
        self.history = []
        self.busy = False
        self.flow_token = str(uuid.uuid4())
        self.updated_at = datetime.utcnow().isoformat()


def create_initial_state(session_id: Optional[str] = None) -> ConversationState:
    """Create an idle state sitting on the home menu."""
    return ConversationState(session_id=session_id or str(uuid.uuid4()))
