"""
Intake Session

Controller that owns one conversation state, forwards user input to the
engine of the active flow and runs the remote calls the engines request.
"""
from typing import Any, Dict, List, Optional
import re

from pydantic import BaseModel

from app.core import logger, log_audit_event
from app.core.config import Settings, settings as default_settings
from app.orchestration.intake.catalog import ChoiceField, field_at
from app.orchestration.intake.engines import (
    AccountLookupEngine,
    EffectKind,
    EmergencyEngine,
    SideEffect,
    StepEngine,
    StepOutcome,
)
from app.orchestration.intake.errors import MalformedResponseError, SubmissionError, TransportError
from app.orchestration.intake.state import (
    ConversationState,
    FlowKind,
    StepPhase,
    VirtualStep,
    create_initial_state,
)
from app.services.submission_gateway import ImageAttachment, SubmissionGateway


HOME_GREETING = (
    "¡Hola! Soy el chatbot de la Cooperativa de Agua Potable La Compañía. "
    "¿En qué puedo ayudarte hoy?"
)

HOME_OPTIONS = [
    (FlowKind.EMERGENCY, "Reportar emergencia", r"emergencia|reportar"),
    (FlowKind.ACCOUNT_LOOKUP, "Consulta de boletas", r"boleta|cuenta|consulta"),
]

BUSY_MESSAGE = "Espera un momento, todavía estoy procesando tu solicitud."


class SessionSnapshot(BaseModel):
    """Read-only view of a session for the presentation layer."""
    session_id: str
    flow_kind: Optional[str] = None
    step_index: int
    phase: str
    input_type: str
    options: List[str] = []
    record: Dict[str, str] = {}
    transcript: List[Dict[str, str]] = []
    candidates: List[Dict[str, Any]] = []
    results: Optional[Dict[str, Any]] = None
    busy: bool = False
    is_complete: bool = False


def home_menu_text() -> str:
    lines = [HOME_GREETING]
    lines.extend(f"{i}. {label}" for i, (_, label, _) in enumerate(HOME_OPTIONS, start=1))
    return "\n".join(lines)


class IntakeSession:
    """
    One user's guided conversation.

    Calls are serialized by user interaction. While a remote call is in
    flight the session is busy and further input only gets a wait notice.
    Responses that arrive after a restart or a trip home are discarded.
    """

    def __init__(
        self,
        gateway: Optional[SubmissionGateway] = None,
        session_id: Optional[str] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.gateway = gateway or SubmissionGateway(self.config)
        self.state: ConversationState = create_initial_state(session_id)
        self.engines: Dict[FlowKind, StepEngine] = {
            FlowKind.EMERGENCY: EmergencyEngine(),
            FlowKind.ACCOUNT_LOOKUP: AccountLookupEngine(),
        }
        self.go_home()

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def engine(self) -> Optional[StepEngine]:
        kind = self.state.cursor.flow_kind
        return self.engines[kind] if kind else None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def go_home(self) -> StepOutcome:
        """Leave any flow and show the home menu."""
        self.state.reset(None)
        text = home_menu_text()
        self.state.transcript.add_assistant(text)
        return StepOutcome(messages=[text])

    def start_flow(self, flow_kind: FlowKind) -> StepOutcome:
        outcome = self.engines[flow_kind].start(self.state)
        log_audit_event(
            f"flow_started_{flow_kind.value}",
            actor_id=self.session_id,
            actor_type="session",
            details={"flow_token": self.state.flow_token},
        )
        return outcome

    def restart(self) -> StepOutcome:
        """Start the active flow over, or show the menu if none is active."""
        kind = self.state.cursor.flow_kind
        if kind is None:
            return self.go_home()
        return self.start_flow(kind)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    async def handle_user_input(self, text: str) -> StepOutcome:
        if self.state.busy:
            return self._notice(BUSY_MESSAGE)

        if self.engine is None:
            return self._select_from_home(text)

        engine = self.engine
        outcome = engine.advance(self.state, text)
        if outcome.effect is not None:
            outcome = await self._run_effect(engine, outcome)
        return outcome

    async def handle_image_selected(
        self,
        file_blob: Any,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> StepOutcome:
        """
        Attach a photo to an emergency report.

        `file_blob` is raw bytes or anything with an async `read()` (such as
        an uploaded file). Nothing changes until the read has succeeded.
        """
        if self.state.busy:
            return self._notice(BUSY_MESSAGE)

        engine = self.engine
        if not isinstance(engine, EmergencyEngine) or self.state.cursor.step_index != VirtualStep.AWAITING_IMAGE:
            return self._notice("En este momento no estoy esperando una foto.", accepted=False)

        if not hasattr(file_blob, "read") and not isinstance(file_blob, (bytes, bytearray, memoryview)):
            return self._notice("No pude leer la imagen. Intenta adjuntarla nuevamente.", accepted=False)

        # Busy for the whole read: finalize is one-shot
        token = self.state.flow_token
        self.state.busy = True
        try:
            if hasattr(file_blob, "read"):
                data = await file_blob.read()
                filename = filename or getattr(file_blob, "filename", None)
                content_type = content_type or getattr(file_blob, "content_type", None)
            else:
                data = bytes(file_blob)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning(f"Image read failed for session {self.session_id}: {exc}")
            if token == self.state.flow_token:
                self.state.busy = False
            return self._notice("No pude leer la imagen. Intenta adjuntarla nuevamente.", accepted=False)

        if token != self.state.flow_token:
            logger.info(f"Discarding image read for reset flow in session {self.session_id}")
            return StepOutcome(accepted=False)
        self.state.busy = False

        if self.state.cursor.step_index != VirtualStep.AWAITING_IMAGE:
            return self._notice("En este momento no estoy esperando una foto.", accepted=False)

        error = self._validate_image(data, content_type)
        if error:
            return engine.reject(self.state, error)

        image = ImageAttachment(
            filename=filename or "foto.jpg",
            content_type=content_type,
            data=data,
        )
        outcome = engine.attach_image(self.state, image)
        if outcome.effect is not None:
            outcome = await self._run_effect(engine, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        state = self.state
        cursor = state.cursor
        input_type, options = self._input_hints()
        return SessionSnapshot(
            session_id=state.session_id,
            flow_kind=cursor.flow_kind.value if cursor.flow_kind else None,
            step_index=cursor.step_index,
            phase=cursor.phase.value,
            input_type=input_type,
            options=options,
            record=state.record.as_dict(),
            transcript=[entry.to_dict() for entry in state.transcript.all()],
            candidates=list(state.candidates),
            results=state.results,
            busy=state.busy,
            is_complete=cursor.is_complete,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _notice(self, message: str, accepted: bool = False) -> StepOutcome:
        self.state.transcript.add_assistant(message)
        return StepOutcome(messages=[message], accepted=accepted)

    def _select_from_home(self, text: str) -> StepOutcome:
        choice = text.strip().lower()
        for number, (kind, _, pattern) in enumerate(HOME_OPTIONS, start=1):
            if choice == str(number) or (choice and re.search(pattern, choice)):
                return self.start_flow(kind)
        return self._notice(f"Por favor elige una opción del menú.\n\n{home_menu_text()}")

    def _validate_image(self, data: bytes, content_type: Optional[str]) -> Optional[str]:
        if not content_type or not content_type.startswith("image/"):
            return "El archivo debe ser una imagen (JPG, PNG, etc.)."
        if not data:
            return "La imagen está vacía. Intenta adjuntarla nuevamente."
        if len(data) > self.config.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
            return f"La imagen supera el máximo de {self.config.MAX_UPLOAD_SIZE_MB} MB."
        return None

    def _input_hints(self):
        cursor = self.state.cursor
        if cursor.flow_kind is None:
            return "select", [label for _, label, _ in HOME_OPTIONS]
        if cursor.step_index == VirtualStep.PHOTO_CONFIRMATION:
            return "yesno", ["Sí", "No"]
        if cursor.step_index == VirtualStep.AWAITING_IMAGE:
            return "photo", []
        if cursor.step_index == VirtualStep.AWAITING_COMPARE_SELECTION:
            return "multiselect", [str(c.get("periodo") or c.get("id")) for c in self.state.candidates]
        current = field_at(cursor.flow_kind, cursor.step_index)
        if isinstance(current, ChoiceField) and cursor.phase == StepPhase.ANSWER:
            return "select", list(current.input_options())
        return "text", []

    async def _call(self, effect: SideEffect) -> Any:
        if effect.kind == EffectKind.SUBMIT_EMERGENCY:
            return await self.gateway.create_emergency_report(effect.record, effect.image)
        if effect.kind in (EffectKind.QUERY_ACCOUNTS, EffectKind.FETCH_CANDIDATES):
            return await self.gateway.query_account_records(effect.record)
        if effect.kind == EffectKind.COMPARE_RECORDS:
            return await self.gateway.compare_records(effect.ids)
        if effect.kind == EffectKind.FOLLOW_UP:
            results = self.state.results or {}
            records = results.get("records") or self.state.candidates
            history = [entry.to_dict() for entry in self.state.transcript.all()]
            return await self.gateway.ask_follow_up(effect.question, effect.record, records, history)
        raise ValueError(f"Unknown effect kind: {effect.kind}")

    async def _run_effect(self, engine: StepEngine, outcome: StepOutcome) -> StepOutcome:
        effect = outcome.effect
        self.state.busy = True
        error: Optional[SubmissionError] = None
        response: Any = None

        try:
            response = await self._call(effect)
        except MalformedResponseError as exc:
            logger.error(
                f"Malformed response for {effect.kind.value} in session {self.session_id}: {exc.message}"
            )
            error = exc
        except TransportError as exc:
            logger.warning(
                f"Transport error for {effect.kind.value} in session {self.session_id}: "
                f"{exc.message} (status={exc.status_code})"
            )
            error = exc
        finally:
            if effect.flow_token == self.state.flow_token:
                self.state.busy = False

        if effect.flow_token != self.state.flow_token:
            log_audit_event(
                "stale_response_discarded",
                actor_id=self.session_id,
                actor_type="session",
                details={"effect": effect.kind.value},
            )
            return StepOutcome(messages=outcome.messages, accepted=outcome.accepted)

        if error is not None:
            result = engine.fail(self.state, effect, error)
        else:
            result = engine.resolve(self.state, effect, response)

        return StepOutcome(
            messages=outcome.messages + result.messages,
            effect=effect,
            accepted=outcome.accepted,
        )
