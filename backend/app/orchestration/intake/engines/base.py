"""
Base step engine and shared helpers.

Provides common functions for:
- Parsing yes/no and multi-selection input
- Recording audit events
- Walking the field catalog
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import re

from app.orchestration.intake.catalog import (
    Answer,
    ChoiceField,
    FieldDefinition,
    catalog_for,
    field_at,
    required_keys,
)
from app.orchestration.intake.errors import SubmissionError, ValidationError
from app.orchestration.intake.state import (
    ConversationRecord,
    ConversationState,
    FlowKind,
    StepPhase,
)


class EffectKind(str, Enum):
    """Remote calls an engine can ask the session to perform."""
    SUBMIT_EMERGENCY = "submit_emergency"
    QUERY_ACCOUNTS = "query_accounts"
    FETCH_CANDIDATES = "fetch_candidates"
    COMPARE_RECORDS = "compare_records"
    FOLLOW_UP = "follow_up"


@dataclass
class SideEffect:
    """
    A pending remote call.

    `record` is a frozen snapshot; `pending_updates` are committed to the
    live record only when the call succeeds.
    """
    kind: EffectKind
    flow_token: str
    record: ConversationRecord
    pending_updates: Dict[str, str] = field(default_factory=dict)
    ids: List[Any] = field(default_factory=list)
    image: Any = None
    question: Optional[str] = None


@dataclass
class StepOutcome:
    """Messages produced by one engine call, plus an optional remote call."""
    messages: List[str] = field(default_factory=list)
    effect: Optional[SideEffect] = None
    accepted: bool = True


YES_PATTERNS = [r"^1$", r"^s[ií]$", r"^si+$", r"^claro$", r"^ok$", r"^bueno$", r"^dale$"]
NO_PATTERNS = [r"^2$", r"^no$", r"^nop$", r"^sin foto$", r"^no gracias$"]


def parse_yes_no(text: str) -> Optional[bool]:
    """
    Parse a yes/no answer.

    Returns:
        True for yes, False for no, None if unclear
    """
    text_lower = text.lower().strip().rstrip(".!")

    for pattern in YES_PATTERNS:
        if re.match(pattern, text_lower):
            return True
    for pattern in NO_PATTERNS:
        if re.match(pattern, text_lower):
            return False
    return None


def parse_selection(text: str, available: int) -> List[int]:
    """
    Parse a comma-separated list of 1-based indices.

    Every entry must be a number in [1, available]. Returns 0-based indices
    in the order given, without duplicates.
    """
    tokens = [t.strip() for t in text.split(",") if t.strip()]
    if not tokens:
        raise ValidationError(
            f"Escribe los números de las boletas separados por coma (entre 1 y {available})."
        )

    indices: List[int] = []
    for token in tokens:
        if not token.isdecimal() or not 1 <= int(token) <= available:
            raise ValidationError(
                f"La opción \"{token}\" no es válida. "
                f"Elige números entre 1 y {available} separados por coma (ej: 1,2)."
            )
        index = int(token) - 1
        if index not in indices:
            indices.append(index)
    return indices


def add_audit_event(
    state: ConversationState,
    action: str,
    field_changed: Optional[str] = None,
    data_after: Any = None,
) -> ConversationState:
    """Append an audit event to the state history."""
    state.history.append({
        "timestamp": datetime.utcnow().isoformat(),
        "flow": state.cursor.flow_kind.value if state.cursor.flow_kind else None,
        "step": state.cursor.step_index,
        "phase": state.cursor.phase.value,
        "action": action,
        "field_changed": field_changed,
        "data_after": data_after,
    })
    state.updated_at = datetime.utcnow().isoformat()
    return state


def format_field_errors(error: SubmissionError) -> List[str]:
    """Server-supplied field messages, verbatim, one line per message."""
    lines = []
    for key, messages in getattr(error, "field_errors", {}).items():
        for message in messages:
            lines.append(message if key in ("detail", "non_field_errors") else f"{key}: {message}")
    return lines


class StepEngine(ABC):
    """
    State-transition function for one flow kind.

    `advance` validates raw input against the current step, mutates the
    record, cursor and transcript, and returns the assistant messages plus
    an optional remote call for the session to run. Input that fails
    validation never touches the record or the cursor.
    """

    flow_kind: FlowKind
    greeting: str = ""

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def start(self, state: ConversationState) -> StepOutcome:
        """Reset the state and emit the flow greeting with the first question."""
        state.reset(self.flow_kind)
        first = field_at(self.flow_kind, 0)
        text = f"{self.greeting}\n\n{first.prompt(state.record)}"
        add_audit_event(state, action=f"flow_started_{self.flow_kind.value}")
        return self._reply(state, text)

    def advance(self, state: ConversationState, raw_input: str) -> StepOutcome:
        if state.cursor.is_complete:
            return self.after_completion(state, raw_input)
        if state.cursor.is_virtual:
            return self.advance_virtual(state, raw_input)

        current = field_at(self.flow_kind, state.cursor.step_index)
        try:
            if state.cursor.phase == StepPhase.OTHER_TEXT and isinstance(current, ChoiceField):
                answer = current.accept_other_text(raw_input)
            else:
                answer = current.accept(raw_input, state.record)
        except ValidationError as exc:
            return self.reject(state, exc.message)

        state.transcript.add_user(raw_input.strip())

        if answer.wants_other_text:
            state.cursor.move_to(state.cursor.step_index, StepPhase.OTHER_TEXT)
            add_audit_event(state, action="other_selected", field_changed=current.key)
            return self._reply(state, current.other_prompt())

        return self._accept_field(state, current, answer)

    @abstractmethod
    def advance_virtual(self, state: ConversationState, raw_input: str) -> StepOutcome:
        """Handle input on a post-catalog step."""

    @abstractmethod
    def finish_catalog(
        self,
        state: ConversationState,
        last_field: FieldDefinition,
        answer: Answer,
    ) -> StepOutcome:
        """Called when the last catalog field has a valid answer."""

    @abstractmethod
    def resolve(self, state: ConversationState, effect: SideEffect, response: Any) -> StepOutcome:
        """Apply a successful remote response."""

    def fail(self, state: ConversationState, effect: SideEffect, error: SubmissionError) -> StepOutcome:
        """Surface a failed remote call. The cursor stays where it is."""
        add_audit_event(state, action=f"{effect.kind.value}_failed", data_after=error.message)
        messages = [self.failure_message(effect)]
        details = format_field_errors(error)
        if details:
            messages.append("\n".join(details))
        messages.append(self.retry_hint(state, effect))
        return self._reply(state, *messages)

    def after_completion(self, state: ConversationState, raw_input: str) -> StepOutcome:
        return self._reply(
            state,
            "Este flujo ya terminó. Vuelve al inicio si necesitas hacer otra consulta.",
            accepted=False,
        )

    def failure_message(self, effect: SideEffect) -> str:
        return "⚠ Hubo un error al comunicarnos con el servicio. Por favor, intenta nuevamente."

    def retry_hint(self, state: ConversationState, effect: SideEffect) -> str:
        return "Envía nuevamente tu respuesta para reintentar."

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def reject(self, state: ConversationState, message: str) -> StepOutcome:
        """Corrective message only; nothing else changes."""
        add_audit_event(state, action="input_rejected")
        return self._reply(state, message, accepted=False)

    def missing_fields(self, record: ConversationRecord) -> List[str]:
        """Labels of required catalog fields still empty in `record`."""
        missing = set(record.missing(required_keys(self.flow_kind)))
        return [f.label for f in catalog_for(self.flow_kind) if f.key in missing]

    def snapshot_for_submission(
        self,
        state: ConversationState,
        pending_updates: Optional[Dict[str, str]] = None,
    ) -> Optional[ConversationRecord]:
        """Frozen copy of the record, or None if a required field is empty."""
        snapshot = state.record.with_updates(pending_updates or {})
        if self.missing_fields(snapshot):
            return None
        return snapshot

    def incomplete_reply(self, state: ConversationState, snapshot_source: ConversationRecord) -> StepOutcome:
        labels = ", ".join(self.missing_fields(snapshot_source))
        return self._reply(
            state,
            f"Faltan datos obligatorios ({labels}). Vuelve al inicio para completar el formulario.",
            accepted=False,
        )

    def _accept_field(self, state: ConversationState, current: FieldDefinition, answer: Answer) -> StepOutcome:
        next_index = state.cursor.step_index + 1
        next_field = field_at(self.flow_kind, next_index)

        if next_field is None:
            return self.finish_catalog(state, current, answer)

        state.record.set(current.key, answer.value)
        add_audit_event(state, action="field_collected", field_changed=current.key, data_after=answer.value)
        state.cursor.move_to(next_index)

        prompt = next_field.prompt(state.record)
        if answer.acknowledgement:
            prompt = f"{answer.acknowledgement}\n\n{prompt}"
        return self._reply(state, prompt)

    def _reply(
        self,
        state: ConversationState,
        *messages: str,
        effect: Optional[SideEffect] = None,
        accepted: bool = True,
    ) -> StepOutcome:
        for message in messages:
            state.transcript.add_assistant(message)
        return StepOutcome(messages=list(messages), effect=effect, accepted=accepted)
