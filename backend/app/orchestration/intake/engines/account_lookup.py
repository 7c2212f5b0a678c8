"""
Account / invoice lookup engine.

Two-level menu (query type, identification method) followed by the
identification value. Consumption and amount-due queries are submitted
straight away; a comparison first fetches the candidate invoices and asks
the user which ones to compare.
"""
from typing import Any, Dict, List

from app.orchestration.intake.catalog import Answer, FieldDefinition
from app.orchestration.intake.engines.base import (
    EffectKind,
    SideEffect,
    StepEngine,
    StepOutcome,
    add_audit_event,
    parse_selection,
)
from app.orchestration.intake.errors import ValidationError
from app.orchestration.intake.state import ConversationState, FlowKind, VirtualStep


COMPARE_QUERY = "Comparar boletas"


def format_clp(amount: Any) -> str:
    """Format an amount as Chilean pesos, e.g. $12.345."""
    if amount is None:
        return "-"
    return "$" + f"{float(amount):,.0f}".replace(",", ".")


def format_consumption(value: Any) -> str:
    if value is None:
        return "-"
    return f"{float(value):g} m³"


def describe_record(index: int, record: Dict[str, Any]) -> str:
    label = record.get("periodo") or f"Boleta {record.get('id')}"
    return (
        f"{index}. {label}: consumo {format_consumption(record.get('consumo'))}, "
        f"monto {format_clp(record.get('monto'))}"
    )


class AccountLookupEngine(StepEngine):
    flow_kind = FlowKind.ACCOUNT_LOOKUP
    greeting = "Claro, te ayudo con tu cuenta y tus boletas."

    def finish_catalog(
        self,
        state: ConversationState,
        last_field: FieldDefinition,
        answer: Answer,
    ) -> StepOutcome:
        pending = {last_field.key: answer.value}
        snapshot = self.snapshot_for_submission(state, pending)
        if snapshot is None:
            return self.incomplete_reply(state, state.record.with_updates(pending))

        is_compare = snapshot.get("tipoConsulta") == COMPARE_QUERY
        effect = SideEffect(
            kind=EffectKind.FETCH_CANDIDATES if is_compare else EffectKind.QUERY_ACCOUNTS,
            flow_token=state.flow_token,
            record=snapshot,
            pending_updates=pending,
        )
        add_audit_event(state, action=f"{effect.kind.value}_requested")
        return self._reply(state, "Buscando tus boletas...", effect=effect)

    def advance_virtual(self, state: ConversationState, raw_input: str) -> StepOutcome:
        if state.cursor.step_index != VirtualStep.AWAITING_COMPARE_SELECTION:
            return self.reject(state, "No entendí tu respuesta.")

        try:
            indices = parse_selection(raw_input, len(state.candidates))
        except ValidationError as exc:
            return self.reject(state, exc.message)

        state.transcript.add_user(raw_input.strip())
        ids = [state.candidates[i]["id"] for i in indices]
        effect = SideEffect(
            kind=EffectKind.COMPARE_RECORDS,
            flow_token=state.flow_token,
            record=state.record.with_updates({}),
            ids=ids,
        )
        add_audit_event(state, action="compare_requested", data_after=ids)
        return self._reply(state, "Comparando las boletas seleccionadas...", effect=effect)

    def after_completion(self, state: ConversationState, raw_input: str) -> StepOutcome:
        question = raw_input.strip()
        if not question:
            return self.reject(state, "Escribe tu pregunta sobre tus boletas.")

        state.transcript.add_user(question)
        effect = SideEffect(
            kind=EffectKind.FOLLOW_UP,
            flow_token=state.flow_token,
            record=state.record.with_updates({}),
            question=question,
        )
        return StepOutcome(messages=[], effect=effect)

    def _commit(self, state: ConversationState, effect: SideEffect) -> None:
        for key, value in effect.pending_updates.items():
            if key not in state.record:
                state.record.set(key, value)
                add_audit_event(state, action="field_collected", field_changed=key, data_after=value)
        state.record.freeze()

    def resolve(self, state: ConversationState, effect: SideEffect, response: Any) -> StepOutcome:
        if effect.kind == EffectKind.QUERY_ACCOUNTS:
            self._commit(state, effect)
            records = [r.model_dump() for r in response]
            state.results = {"records": records}
            state.cursor.move_to(VirtualStep.COMPLETE)
            add_audit_event(state, action="accounts_fetched", data_after=len(records))
            if not records:
                return self._reply(state, "No encontramos boletas asociadas a esa identificación.")
            lines = [describe_record(i, r) for i, r in enumerate(records, start=1)]
            return self._reply(
                state,
                f"Encontré {len(records)} boleta(s):\n" + "\n".join(lines),
                "¿Tienes alguna otra pregunta sobre tus boletas?",
            )

        if effect.kind == EffectKind.FETCH_CANDIDATES:
            self._commit(state, effect)
            state.candidates = [r.model_dump() for r in response]
            add_audit_event(state, action="candidates_fetched", data_after=len(state.candidates))
            if not state.candidates:
                state.cursor.move_to(VirtualStep.COMPLETE)
                return self._reply(state, "No encontramos boletas asociadas a esa identificación.")
            state.cursor.move_to(VirtualStep.AWAITING_COMPARE_SELECTION)
            lines = [describe_record(i, r) for i, r in enumerate(state.candidates, start=1)]
            return self._reply(
                state,
                "Estas son tus boletas:\n" + "\n".join(lines),
                "Escribe los números de las boletas que quieres comparar, separados por coma (ej: 1,2).",
            )

        if effect.kind == EffectKind.COMPARE_RECORDS:
            state.results = response.model_dump()
            state.cursor.move_to(VirtualStep.COMPLETE)
            stats = response.stats
            add_audit_event(state, action="records_compared", data_after=effect.ids)
            return self._reply(
                state,
                f"Comparación de {stats.count} boleta(s): consumo total "
                f"{format_consumption(stats.total_consumo)}, monto total {format_clp(stats.total_monto)}.",
                "¿Tienes alguna otra pregunta sobre tus boletas?",
            )

        if effect.kind == EffectKind.FOLLOW_UP:
            return self._reply(state, response)

        raise ValueError(f"Unexpected effect for account lookup: {effect.kind}")

    def failure_message(self, effect: SideEffect) -> str:
        if effect.kind == EffectKind.FOLLOW_UP:
            return "⚠ No pude responder tu pregunta en este momento. Por favor, intenta nuevamente."
        return "⚠ No pudimos completar tu consulta. Por favor, intenta nuevamente."

    def retry_hint(self, state: ConversationState, effect: SideEffect) -> str:
        if effect.kind == EffectKind.COMPARE_RECORDS:
            return "Vuelve a escribir los números de las boletas para reintentar."
        if effect.kind == EffectKind.FOLLOW_UP:
            return "Puedes volver a enviar tu pregunta."
        return "Envía nuevamente tu identificación para reintentar."

    def history_for_follow_up(self, state: ConversationState) -> List[Dict[str, str]]:
        return [entry.to_dict() for entry in state.transcript.all()]
