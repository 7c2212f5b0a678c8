"""
Test configuration and fixtures for AguaBot backend tests.
"""

import json
from typing import Any, Callable, Dict, List, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.orchestration.intake.session import IntakeSession
from app.orchestration.intake.state import FlowKind
from app.services.submission_gateway import SubmissionGateway


EMERGENCY_PATH = "/api/emergencias/emergencias/"
QUERY_PATH = "/api/boletas/consulta/"
COMPARE_PATH = "/api/boletas/comparar/"
FOLLOW_UP_PATH = "/api/boletas/chat/"

Responder = Union[httpx.Response, Callable[[httpx.Request], Any]]


class FakeService:
    """Stand-in for the cooperative's remote service behind httpx.MockTransport."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Responder] = {
            EMERGENCY_PATH: httpx.Response(201, json={"id": 42}),
            QUERY_PATH: httpx.Response(200, json=[
                {"id": "id_of_1", "periodo": "2024-01", "consumo": 12, "monto": 10500},
                {"id": "id_of_2", "periodo": "2024-02", "consumo": 18, "monto": 14500},
            ]),
            COMPARE_PATH: httpx.Response(200, json={
                "records": [
                    {"id": "id_of_1", "periodo": "2024-01", "consumo": 12, "monto": 10500},
                    {"id": "id_of_2", "periodo": "2024-02", "consumo": 18, "monto": 14500},
                ],
                "stats": {"count": 2, "total_consumo": 30, "total_monto": 25000},
            }),
            FOLLOW_UP_PATH: httpx.Response(200, json={"respuesta": "Tu consumo subió 6 m³."}),
        }

    def respond(self, path: str, responder: Responder) -> None:
        self.routes[path] = responder

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes[request.url.path]
        if isinstance(responder, httpx.Response):
            # Fresh copy so a canned response can be served more than once
            return httpx.Response(
                responder.status_code,
                headers=responder.headers,
                content=responder.content,
            )
        result = responder(request)
        if hasattr(result, "__await__"):
            result = await result
        return result

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def json_sent_to(self, path: str, index: int = -1) -> Any:
        return json.loads(self.calls_to(path)[index].content)


@pytest.fixture
def test_settings() -> Settings:
    """Settings pointing at the fake service."""
    return Settings(API_BASE="http://coop.test", APP_ENV="development")


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def gateway(service: FakeService, test_settings: Settings) -> SubmissionGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(service.handler))
    return SubmissionGateway(config=test_settings, client=client)


@pytest.fixture
def session(gateway: SubmissionGateway, test_settings: Settings) -> IntakeSession:
    return IntakeSession(gateway=gateway, config=test_settings)


@pytest.fixture
def emergency_session(session: IntakeSession) -> IntakeSession:
    session.start_flow(FlowKind.EMERGENCY)
    return session


@pytest.fixture
def lookup_session(session: IntakeSession) -> IntakeSession:
    session.start_flow(FlowKind.ACCOUNT_LOOKUP)
    return session


@pytest.fixture
def client(gateway: SubmissionGateway):
    """Test client with the fake gateway and a fresh session store."""
    from main import app
    from app.api.deps import get_gateway, get_session_store
    from app.services.session_store import InMemorySessionStore

    store = InMemorySessionStore()
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_session_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


async def feed(session: IntakeSession, *inputs: str) -> None:
    """Send several user inputs in order."""
    for text in inputs:
        await session.handle_user_input(text)


EMERGENCY_HAPPY_PATH = (
    "Ana Pérez",
    "+56912345678",
    "3",
    "Calle Falsa 123",
    "2",
    "1",
    "Hay una fuga grande",
)
