"""
Emergency report engine.

Questions flow:
1. The seven catalog fields (name, phone, sector, address, type, severity,
   description)
2. "Do you want to attach a photo?"
3. Photo upload (only if the answer was yes)

The report is submitted once, after the photo question is settled.
"""
from typing import Any

from app.orchestration.intake.catalog import Answer, FieldDefinition
from app.orchestration.intake.engines.base import (
    EffectKind,
    SideEffect,
    StepEngine,
    StepOutcome,
    add_audit_event,
    parse_yes_no,
)
from app.orchestration.intake.state import ConversationState, FlowKind, VirtualStep


PHOTO_QUESTION = "¿Quieres adjuntar una foto de la emergencia?\n1. Sí\n2. No"


class EmergencyEngine(StepEngine):
    flow_kind = FlowKind.EMERGENCY
    greeting = "Entendido, voy a recopilar información sobre tu emergencia. Comenzamos:"

    def finish_catalog(
        self,
        state: ConversationState,
        last_field: FieldDefinition,
        answer: Answer,
    ) -> StepOutcome:
        state.record.set(last_field.key, answer.value)
        add_audit_event(state, action="field_collected", field_changed=last_field.key, data_after=answer.value)
        state.cursor.move_to(VirtualStep.PHOTO_CONFIRMATION)
        return self._reply(state, PHOTO_QUESTION)

    def advance_virtual(self, state: ConversationState, raw_input: str) -> StepOutcome:
        step = state.cursor.step_index

        if step == VirtualStep.PHOTO_CONFIRMATION:
            wants_photo = parse_yes_no(raw_input)
            if wants_photo is None:
                return self.reject(state, f"Por favor responde 1 (Sí) o 2 (No).\n\n{PHOTO_QUESTION}")

            state.transcript.add_user(raw_input.strip())
            if wants_photo:
                state.cursor.move_to(VirtualStep.AWAITING_IMAGE)
                add_audit_event(state, action="photo_requested")
                return self._reply(
                    state,
                    "Adjunta la foto usando el botón de imagen. "
                    "Si cambias de opinión, responde \"no\" para enviar el reporte sin foto.",
                )
            return self._finalize(state)

        if step == VirtualStep.AWAITING_IMAGE:
            if parse_yes_no(raw_input) is False:
                state.transcript.add_user(raw_input.strip())
                return self._finalize(state)
            return self.reject(
                state,
                "Estoy esperando la foto. Usa el botón de imagen para adjuntarla, "
                "o responde \"no\" para enviar el reporte sin foto.",
            )

        return self.reject(state, "No entendí tu respuesta.")

    def attach_image(self, state: ConversationState, image: Any) -> StepOutcome:
        """Handle a photo that the UI has already read into memory."""
        if state.cursor.step_index != VirtualStep.AWAITING_IMAGE:
            return self.reject(state, "En este momento no estoy esperando una foto.")

        state.transcript.add_user(f"[Foto adjunta: {image.filename}]")
        add_audit_event(state, action="photo_attached", data_after=image.filename)
        return self._finalize(state, image=image)

    def _finalize(self, state: ConversationState, image: Any = None) -> StepOutcome:
        snapshot = self.snapshot_for_submission(state)
        if snapshot is None:
            return self.incomplete_reply(state, state.record)

        state.record.freeze()
        add_audit_event(state, action="record_finalized")
        effect = SideEffect(
            kind=EffectKind.SUBMIT_EMERGENCY,
            flow_token=state.flow_token,
            record=snapshot,
            image=image,
        )
        return self._reply(
            state,
            "✓ Gracias por proporcionar toda la información. Enviando tu reporte de emergencia...",
            effect=effect,
        )

    def resolve(self, state: ConversationState, effect: SideEffect, response: Any) -> StepOutcome:
        state.cursor.move_to(VirtualStep.COMPLETE)
        state.results = response.model_dump()
        add_audit_event(state, action="emergency_submitted", data_after=state.results)

        message = "✓ Emergencia enviada correctamente. Nuestro equipo está en camino."
        if response.id is not None:
            message += f" Número de reporte: {response.id}."
        return self._reply(state, message)

    def failure_message(self, effect: SideEffect) -> str:
        return "⚠ Hubo un error al enviar tu reporte. Por favor, intenta nuevamente."

    def retry_hint(self, state: ConversationState, effect: SideEffect) -> str:
        if state.cursor.step_index == VirtualStep.AWAITING_IMAGE:
            return "Vuelve a adjuntar la foto, o responde \"no\" para enviar sin foto."
        return "Responde nuevamente 1 (Sí) o 2 (No) para reintentar el envío."

    def after_completion(self, state: ConversationState, raw_input: str) -> StepOutcome:
        return self._reply(
            state,
            "Tu reporte de emergencia ya fue enviado. "
            "Vuelve al inicio si necesitas reportar otra emergencia.",
            accepted=False,
        )
