"""
Submission Gateway - serializes finished intake records and talks to the
cooperative's remote service.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from app.core import logger, log_audit_event
from app.core.config import Settings, settings as default_settings
from app.orchestration.intake.catalog import split_other_value
from app.orchestration.intake.errors import MalformedResponseError, TransportError
from app.services.choice_keys import choice_key


# ============================================================================
# Response Schemas
# ============================================================================

class EmergencyAck(BaseModel):
    """Acknowledgement for a created emergency report."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = None


class AccountRecord(BaseModel):
    """One invoice/consumption record returned by the service."""
    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    periodo: Optional[str] = None
    consumo: Optional[float] = None
    monto: Optional[float] = None


class CompareStats(BaseModel):
    """Aggregates computed by the service for a comparison."""
    model_config = ConfigDict(extra="allow")

    count: int
    total_consumo: float = 0.0
    total_monto: float = 0.0


class CompareResult(BaseModel):
    records: List[AccountRecord] = Field(default_factory=list)
    stats: CompareStats


@dataclass(frozen=True)
class ImageAttachment:
    """Photo attached to an emergency report."""
    filename: str
    content_type: str
    data: bytes


# ============================================================================
# Serialization
# ============================================================================

def serialize_emergency(record: Mapping[str, str]) -> Dict[str, str]:
    """Shape an Emergency record the way the remote service expects it."""
    payload = {
        "nombreCompleto": record.get("nombreCompleto", ""),
        "telefono": record.get("telefono", ""),
        "sector": choice_key(record.get("sector")) or "",
        "direccion": record.get("direccion", ""),
        "estadoEmergencia": choice_key(record.get("estadoEmergencia")) or "",
        "descripcion": record.get("descripcion", ""),
    }

    emergency_type = record.get("tipoEmergencia")
    other_text = split_other_value(emergency_type)
    if other_text is not None:
        payload["tipoEmergencia"] = "otro"
        payload["tipoEmergenciaDetalle"] = other_text
    else:
        payload["tipoEmergencia"] = choice_key(emergency_type) or ""

    return payload


def serialize_account_query(record: Mapping[str, str]) -> Dict[str, str]:
    """Shape an AccountLookup record for the query endpoint."""
    return {
        "tipoConsulta": choice_key(record.get("tipoConsulta")) or "",
        "metodoIdentificacion": choice_key(record.get("metodoIdentificacion")) or "",
        "valorIdentificacion": record.get("valorIdentificacion", ""),
    }


def _extract_field_errors(response: httpx.Response) -> Dict[str, List[str]]:
    """Pull server-side validation messages out of an error body, verbatim."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return {"detail": [text]} if text else {}

    errors: Dict[str, List[str]] = {}
    if isinstance(body, dict):
        for key, value in body.items():
            if isinstance(value, list):
                errors[key] = [str(v) for v in value]
            elif isinstance(value, str):
                errors[key] = [value]
    elif isinstance(body, list):
        errors["detail"] = [str(v) for v in body]
    return errors


def _as_record_list(body: Any) -> List[AccountRecord]:
    """Accept a list, a single record, or a {results|records: [...]} envelope."""
    if isinstance(body, dict):
        for envelope in ("results", "records", "boletas"):
            if isinstance(body.get(envelope), list):
                body = body[envelope]
                break
        else:
            body = [body]
    if not isinstance(body, list):
        raise MalformedResponseError("Expected a list of account records", body=json.dumps(body, default=str))
    try:
        return [AccountRecord.model_validate(item) for item in body]
    except PydanticValidationError as exc:
        raise MalformedResponseError(f"Invalid account record: {exc}", body=json.dumps(body, default=str)) from exc


# ============================================================================
# Gateway
# ============================================================================

class SubmissionGateway:
    """
    One network call per finalized record, comparison or follow-up question.

    The HTTP client and the settings are injectable; without a client a
    short-lived `httpx.AsyncClient` is opened per call.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or default_settings
        self._client = client

    async def _post(
        self,
        path: str,
        *,
        json_body: Optional[Any] = None,
        data: Optional[Dict[str, str]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self.config.service_url(path)
        try:
            if self._client is not None:
                response = await self._client.post(url, json=json_body, data=data, files=files)
            else:
                async with httpx.AsyncClient(timeout=self.config.REQUEST_TIMEOUT_SECONDS) as client:
                    response = await client.post(url, json=json_body, data=data, files=files)
        except httpx.HTTPError as exc:
            logger.warning(f"Transport failure posting to {url}: {exc}")
            raise TransportError(f"Could not reach {url}: {exc}") from exc

        if not response.is_success:
            field_errors = _extract_field_errors(response)
            logger.warning(f"Service returned HTTP {response.status_code} for {url}")
            raise TransportError(
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                field_errors=field_errors,
            )

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as exc:
            logger.error(f"Malformed response from {url}: body is not JSON")
            raise MalformedResponseError("Response body is not JSON", body=response.text) from exc

    async def create_emergency_report(
        self,
        record: Mapping[str, str],
        image: Optional[ImageAttachment] = None,
    ) -> EmergencyAck:
        """POST an emergency report; multipart when a photo is attached."""
        payload = serialize_emergency(record)

        if image is not None:
            body = await self._post(
                self.config.EMERGENCY_PATH,
                data=payload,
                files={"foto": (image.filename, image.data, image.content_type)},
            )
        else:
            body = await self._post(self.config.EMERGENCY_PATH, json_body=payload)

        if not isinstance(body, dict):
            raise MalformedResponseError("Emergency acknowledgement is not an object", body=json.dumps(body, default=str))
        ack = EmergencyAck.model_validate(body)

        log_audit_event(
            "emergency_report_created",
            actor_id=str(ack.id) if ack.id is not None else "unknown",
            actor_type="service",
            details={"tipoEmergencia": payload["tipoEmergencia"], "has_photo": image is not None},
        )
        return ack

    async def query_account_records(self, record: Mapping[str, str]) -> List[AccountRecord]:
        """Fetch the records matching an AccountLookup record."""
        payload = serialize_account_query(record)
        body = await self._post(self.config.ACCOUNT_QUERY_PATH, json_body=payload)
        records = _as_record_list(body)
        logger.info(f"Account query ({payload['tipoConsulta']}) returned {len(records)} record(s)")
        return records

    async def compare_records(self, ids: List[Union[int, str]]) -> CompareResult:
        """Ask the service to compare the selected records."""
        body = await self._post(self.config.ACCOUNT_COMPARE_PATH, json_body={"ids": list(ids)})
        try:
            return CompareResult.model_validate(body)
        except PydanticValidationError as exc:
            logger.error(f"Malformed comparison response: {exc}")
            raise MalformedResponseError(f"Invalid comparison response: {exc}", body=json.dumps(body, default=str)) from exc

    async def ask_follow_up(
        self,
        question: str,
        record: Mapping[str, str],
        records: List[Dict[str, Any]],
        history: List[Dict[str, str]],
    ) -> str:
        """Post a follow-up question about an already answered lookup."""
        body = await self._post(
            self.config.FOLLOW_UP_PATH,
            json_body={
                "question": question,
                "record": serialize_account_query(record),
                "records": records,
                "history": history,
            },
        )
        answer = None
        if isinstance(body, dict):
            answer = body.get("respuesta") or body.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            logger.error("Malformed follow-up response: missing answer text")
            raise MalformedResponseError("Follow-up response has no answer", body=json.dumps(body, default=str))
        return answer
