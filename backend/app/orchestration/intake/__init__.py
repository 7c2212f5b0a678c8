"""
Intake Orchestration Module

Deterministic conversation engine for the cooperative's guided flows
(emergency report and account/invoice lookup). The session controller
lives in `app.orchestration.intake.session`.
"""
from app.orchestration.intake.state import (
    ConversationRecord,
    ConversationState,
    FlowCursor,
    FlowKind,
    StepPhase,
    VirtualStep,
    create_initial_state,
)
from app.orchestration.intake.transcript import Role, TranscriptEntry, TranscriptLog
from app.orchestration.intake.catalog import FieldDefinition, field_at
from app.orchestration.intake.errors import (
    IntakeError,
    MalformedResponseError,
    SubmissionError,
    TransportError,
    ValidationError,
)

__all__ = [
    "ConversationRecord",
    "ConversationState",
    "FlowCursor",
    "FlowKind",
    "StepPhase",
    "VirtualStep",
    "create_initial_state",
    "Role",
    "TranscriptEntry",
    "TranscriptLog",
    "FieldDefinition",
    "field_at",
    "IntakeError",
    "MalformedResponseError",
    "SubmissionError",
    "TransportError",
    "ValidationError",
]
