"""
Tests for the intake session controller: home menu, navigation and snapshots.
"""

from datetime import datetime, timedelta

import pytest

from app.orchestration.intake.session import HOME_GREETING, IntakeSession, home_menu_text
from app.orchestration.intake.state import FlowKind, StepPhase, VirtualStep
from app.services.session_store import InMemorySessionStore

from conftest import EMERGENCY_HAPPY_PATH, feed


class TestHomeMenu:
    """Test flow selection from the home menu."""

    def test_new_session_shows_menu(self, session):
        snapshot = session.snapshot()
        assert snapshot.flow_kind is None
        assert snapshot.input_type == "select"
        assert snapshot.options == ["Reportar emergencia", "Consulta de boletas"]
        assert snapshot.transcript == [{"role": "assistant", "text": home_menu_text()}]
        assert home_menu_text().startswith(HOME_GREETING)

    @pytest.mark.parametrize("text,kind", [
        ("1", FlowKind.EMERGENCY),
        ("Quiero reportar una emergencia", FlowKind.EMERGENCY),
        ("2", FlowKind.ACCOUNT_LOOKUP),
        ("consultar mi boleta", FlowKind.ACCOUNT_LOOKUP),
    ])
    async def test_selects_flow(self, session, text, kind):
        await session.handle_user_input(text)
        assert session.state.cursor.flow_kind == kind
        assert session.state.cursor.step_index == 0

    async def test_unknown_choice_reprompts(self, session):
        outcome = await session.handle_user_input("hola")
        assert outcome.accepted is False
        assert session.state.cursor.flow_kind is None
        assert "Por favor elige una opción del menú" in outcome.messages[0]

    def test_flow_greeting_includes_first_question(self, emergency_session):
        first = emergency_session.state.transcript.all()[0].text
        assert first.startswith("Entendido, voy a recopilar información sobre tu emergencia.")
        assert first.endswith("¿Cuál es tu nombre completo?")


class TestNavigation:
    """Test restart and going home."""

    async def test_restart_clears_and_keeps_flow(self, emergency_session):
        await feed(emergency_session, "Ana Pérez", "+56912345678")
        old_token = emergency_session.state.flow_token

        emergency_session.restart()

        state = emergency_session.state
        assert state.cursor.flow_kind == FlowKind.EMERGENCY
        assert state.cursor.step_index == 0
        assert len(state.record) == 0
        assert len(state.transcript) == 1
        assert state.flow_token != old_token

    async def test_restart_after_completion_starts_fresh(self, emergency_session):
        await feed(emergency_session, *EMERGENCY_HAPPY_PATH, "2")
        emergency_session.restart()

        state = emergency_session.state
        assert not state.record.frozen
        await feed(emergency_session, "Luis Soto")
        assert state.record["nombreCompleto"] == "Luis Soto"

    async def test_go_home_leaves_flow(self, lookup_session):
        await feed(lookup_session, "1")
        lookup_session.go_home()

        state = lookup_session.state
        assert state.cursor.flow_kind is None
        assert len(state.record) == 0
        assert state.transcript.all()[-1].text == home_menu_text()

    def test_restart_from_home_shows_menu(self, session):
        session.restart()
        assert session.state.cursor.flow_kind is None


class TestSnapshot:
    """Test the presentation-layer view."""

    async def test_choice_step_offers_options(self, emergency_session):
        await feed(emergency_session, "Ana Pérez", "+56912345678")
        snapshot = emergency_session.snapshot()
        assert snapshot.input_type == "select"
        assert snapshot.options[2] == "La Compañía"
        assert snapshot.record == {"nombreCompleto": "Ana Pérez", "telefono": "+56912345678"}

    async def test_other_text_phase_is_free_text(self, emergency_session):
        await feed(emergency_session, "Ana Pérez", "+56912345678", "1", "Calle 1", "7")
        snapshot = emergency_session.snapshot()
        assert snapshot.phase == StepPhase.OTHER_TEXT.value
        assert snapshot.input_type == "text"

    async def test_photo_steps(self, emergency_session):
        await feed(emergency_session, *EMERGENCY_HAPPY_PATH)
        assert emergency_session.snapshot().input_type == "yesno"
        await feed(emergency_session, "1")
        assert emergency_session.snapshot().input_type == "photo"
        assert emergency_session.snapshot().step_index == VirtualStep.AWAITING_IMAGE

    async def test_complete_flag(self, emergency_session):
        await feed(emergency_session, *EMERGENCY_HAPPY_PATH, "2")
        snapshot = emergency_session.snapshot()
        assert snapshot.is_complete is True
        assert snapshot.busy is False
        assert snapshot.results == {"id": 42}


class TestAuditHistory:

    async def test_events_recorded(self, emergency_session):
        await feed(emergency_session, "Ana Pérez", "")
        actions = [event["action"] for event in emergency_session.state.history]
        assert "flow_started_emergency" in actions
        assert "field_collected" in actions
        assert actions[-1] == "input_rejected"

    async def test_restart_starts_a_fresh_history(self, emergency_session):
        await feed(emergency_session, "Ana Pérez", "+56912345678", "x")
        emergency_session.restart()
        actions = [event["action"] for event in emergency_session.state.history]
        assert actions == ["flow_started_emergency"]

    async def test_collected_event_names_field(self, emergency_session):
        await feed(emergency_session, "Ana Pérez")
        event = emergency_session.state.history[-1]
        assert event["field_changed"] == "nombreCompleto"
        assert event["flow"] == "emergency"


class TestSessionStore:

    def test_add_and_get(self, gateway):
        store = InMemorySessionStore(ttl_hours=1)
        session = IntakeSession(gateway=gateway)
        store.add(session)

        assert store.get(session.session_id) is session
        assert store.exists(session.session_id)
        assert store.count() == 1

    def test_delete(self, gateway):
        store = InMemorySessionStore(ttl_hours=1)
        session = IntakeSession(gateway=gateway)
        store.add(session)

        assert store.delete(session.session_id) is True
        assert store.get(session.session_id) is None
        assert store.delete(session.session_id) is False

    def test_expired_sessions_dropped(self, gateway):
        store = InMemorySessionStore(ttl_hours=1)
        session = IntakeSession(gateway=gateway)
        store.add(session)
        store._expiry[session.session_id] = datetime.utcnow() - timedelta(seconds=1)

        assert store.count() == 0
