"""
Intake API routes

Thin HTTP surface over IntakeSession: the presentation layer posts raw
user input and photos, and draws the returned session snapshots.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel

from app.core import logger
from app.orchestration.intake.session import IntakeSession, SessionSnapshot
from app.orchestration.intake.state import FlowKind
from app.api.deps import get_gateway, get_session_store
from app.services.session_store import InMemorySessionStore
from app.services.submission_gateway import SubmissionGateway


router = APIRouter()


# ============================================================================
# Request Schemas
# ============================================================================

class SessionRequest(BaseModel):
    """Request to create a new intake session."""
    flow: Optional[FlowKind] = None


class MessageRequest(BaseModel):
    """User input for an existing session."""
    session_id: str
    message: str


# ============================================================================
# Helpers
# ============================================================================

def _get_session(store: InMemorySessionStore, session_id: str) -> IntakeSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found or expired",
        )
    return session


# ============================================================================
# Routes
# ============================================================================

@router.post("/session", response_model=SessionSnapshot)
async def create_session(
    request: SessionRequest,
    store: InMemorySessionStore = Depends(get_session_store),
    gateway: SubmissionGateway = Depends(get_gateway),
):
    """
    Start a new intake session.

    Without a flow the session opens on the home menu; otherwise the chosen
    flow starts right away.
    """
    session = IntakeSession(gateway=gateway)
    if request.flow is not None:
        session.start_flow(request.flow)
    store.add(session)

    logger.info(f"Intake session created: {session.session_id}, flow={request.flow}")
    return session.snapshot()


@router.post("/message", response_model=SessionSnapshot)
async def post_message(
    request: MessageRequest,
    store: InMemorySessionStore = Depends(get_session_store),
):
    """Forward one user message to the session's active step."""
    session = _get_session(store, request.session_id)
    await session.handle_user_input(request.message)

    snapshot = session.snapshot()
    logger.info(
        f"Intake message processed: session={request.session_id}, "
        f"flow={snapshot.flow_kind}, step={snapshot.step_index}"
    )
    return snapshot


@router.post("/session/{session_id}/image", response_model=SessionSnapshot)
async def post_image(
    session_id: str,
    file: UploadFile = File(...),
    store: InMemorySessionStore = Depends(get_session_store),
):
    """Attach a photo to the emergency report awaiting one."""
    session = _get_session(store, session_id)
    await session.handle_image_selected(file, filename=file.filename, content_type=file.content_type)
    return session.snapshot()


@router.post("/session/{session_id}/restart", response_model=SessionSnapshot)
async def restart_session(
    session_id: str,
    store: InMemorySessionStore = Depends(get_session_store),
):
    """Start the active flow over."""
    session = _get_session(store, session_id)
    session.restart()
    return session.snapshot()


@router.post("/session/{session_id}/home", response_model=SessionSnapshot)
async def go_home(
    session_id: str,
    store: InMemorySessionStore = Depends(get_session_store),
):
    """Leave the active flow and return to the home menu."""
    session = _get_session(store, session_id)
    session.go_home()
    return session.snapshot()


@router.get("/session/{session_id}", response_model=SessionSnapshot)
async def get_session_state(
    session_id: str,
    store: InMemorySessionStore = Depends(get_session_store),
):
    """Current snapshot of a session."""
    session = _get_session(store, session_id)
    return session.snapshot()
