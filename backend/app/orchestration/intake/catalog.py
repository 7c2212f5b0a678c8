"""
Field Catalog

Static, ordered field definitions for each intake flow. Each definition
knows how to phrase its own question and how to turn raw user input into a
stored value, so the step engines dispatch on the field variant instead of
checking field names.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, Mapping, Optional, Tuple
import re

from app.orchestration.intake.errors import ValidationError
from app.orchestration.intake.state import FlowKind


OTHER_PREFIX = "other:"


def make_other_value(text: str) -> str:
    """Build the composite value stored when the user specifies "Otro"."""
    return f"{OTHER_PREFIX}{text}"


def split_other_value(value: Optional[str]) -> Optional[str]:
    """Return the free text of an `other:` composite, or None."""
    if value and value.startswith(OTHER_PREFIX):
        return value[len(OTHER_PREFIX):]
    return None


class FieldKind(str, Enum):
    """Variants of field definitions."""
    FREE_TEXT = "free_text"
    CHOICE = "choice"


@dataclass(frozen=True)
class Answer:
    """Outcome of accepting raw input for a field."""
    value: Optional[str]
    acknowledgement: Optional[str] = None
    wants_other_text: bool = False


@dataclass(frozen=True)
class FieldDefinition(ABC):
    """A single catalog entry."""

    key: str
    label: str
    placeholder: str = ""

    kind: ClassVar[FieldKind]

    @abstractmethod
    def prompt(self, record: Mapping[str, str]) -> str:
        """Question text shown when this field becomes current."""

    @abstractmethod
    def accept(self, raw_input: str, record: Mapping[str, str]) -> Answer:
        """Validate raw input. Raises ValidationError on bad input."""

    def input_options(self) -> Tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class FreeTextField(FieldDefinition):
    """Free-text answer, accepted verbatim once non-empty."""

    pattern: Optional[str] = None
    error_message: str = ""

    kind: ClassVar[FieldKind] = FieldKind.FREE_TEXT

    def prompt(self, record: Mapping[str, str]) -> str:
        return f"¿Cuál es tu {self.label.lower()}?"

    def accept(self, raw_input: str, record: Mapping[str, str]) -> Answer:
        text = raw_input.strip()
        if not text:
            raise ValidationError(
                f"Necesito una respuesta para continuar. {self.prompt(record)}"
            )
        if self.pattern and not re.match(self.pattern, text):
            raise ValidationError(self.error_message or f"El valor ingresado para {self.label.lower()} no es válido.")
        return Answer(value=text)


@dataclass(frozen=True)
class ChoiceField(FieldDefinition):
    """
    Enumerated choice addressed by 1-based number.

    When `allow_other` is set, the last choice is the "Otro" escape and
    selecting it asks for one more free-text answer.
    """

    question: str = ""
    choices: Tuple[str, ...] = ()
    allow_other: bool = False

    kind: ClassVar[FieldKind] = FieldKind.CHOICE

    def prompt(self, record: Mapping[str, str]) -> str:
        lines = [self.question or f"Selecciona {self.label.lower()}:"]
        lines.extend(f"{i}. {choice}" for i, choice in enumerate(self.choices, start=1))
        lines.append("Responde con el número de la opción.")
        return "\n".join(lines)

    def input_options(self) -> Tuple[str, ...]:
        return self.choices

    @property
    def other_choice(self) -> Optional[str]:
        return self.choices[-1] if self.allow_other and self.choices else None

    def other_prompt(self) -> str:
        return f"Elegiste \"{self.other_choice}\". Describe brevemente el {self.label.lower()}:"

    def select(self, raw_input: str) -> str:
        """Map a 1-based numeric selection to its label."""
        text = raw_input.strip()
        try:
            number = int(text)
        except ValueError:
            number = None
        if number is None or not 1 <= number <= len(self.choices):
            raise ValidationError(
                f"Por favor elige un número entre 1 y {len(self.choices)}.\n\n"
                f"{self.prompt({})}"
            )
        return self.choices[number - 1]

    def accept(self, raw_input: str, record: Mapping[str, str]) -> Answer:
        label = self.select(raw_input)
        if label == self.other_choice:
            return Answer(value=None, wants_other_text=True)
        return Answer(
            value=label,
            acknowledgement=f"Seleccionaste: {label}.",
        )

    def accept_other_text(self, raw_input: str) -> Answer:
        text = raw_input.strip()
        if not text:
            raise ValidationError(f"Necesito una descripción para continuar. {self.other_prompt()}")
        return Answer(
            value=make_other_value(text),
            acknowledgement=f"Registré el {self.label.lower()}: {text}.",
        )


# Identification value formats, keyed by the chosen identification method
CLIENT_NUMBER_PATTERN = r"^\d{4,12}$"
RUT_PATTERN = r"^\d{1,2}\.?\d{3}\.?\d{3}-[\dkK]$"
FULL_NAME_PATTERN = r"^[^\W\d_]+(?:[\s'-]+[^\W\d_]+)+$"


@dataclass(frozen=True)
class IdentificationField(FreeTextField):
    """Free-text identifier whose format depends on an earlier choice."""

    method_key: str = "metodoIdentificacion"
    formats: Dict[str, Tuple[str, str, str]] = field(default_factory=dict)

    def _format_for(self, record: Mapping[str, str]) -> Optional[Tuple[str, str, str]]:
        return self.formats.get(record.get(self.method_key, ""))

    def prompt(self, record: Mapping[str, str]) -> str:
        fmt = self._format_for(record)
        return fmt[0] if fmt else super().prompt(record)

    def accept(self, raw_input: str, record: Mapping[str, str]) -> Answer:
        answer = super().accept(raw_input, record)
        fmt = self._format_for(record)
        if fmt:
            _, pattern, error = fmt
            if not re.match(pattern, answer.value, flags=re.UNICODE):
                raise ValidationError(error)
        return answer


PHONE_PATTERN = r"^[0-9+()\-\s]{6,20}$"


EMERGENCY_FIELDS: Tuple[FieldDefinition, ...] = (
    FreeTextField(key="nombreCompleto", label="Nombre completo", placeholder="Ej: Ana Pérez"),
    FreeTextField(
        key="telefono",
        label="Teléfono",
        placeholder="Ej: +56 9 1234 5678",
        pattern=PHONE_PATTERN,
        error_message="Introduce un teléfono válido (ej: +56 9 1234 5678).",
    ),
    ChoiceField(
        key="sector",
        label="Sector",
        question="¿En qué sector ocurre la emergencia?",
        choices=("Centro", "Los Aromos", "La Compañía", "El Molino", "Sector rural"),
    ),
    FreeTextField(key="direccion", label="Dirección", placeholder="Calle, número"),
    ChoiceField(
        key="tipoEmergencia",
        label="Tipo de emergencia",
        question="¿Qué tipo de emergencia quieres reportar?",
        choices=(
            "Fuga de agua",
            "Baja Presión",
            "Sin suministro",
            "Agua turbia",
            "Rotura de matriz",
            "Alcantarillado",
            "Otro",
        ),
        allow_other=True,
    ),
    ChoiceField(
        key="estadoEmergencia",
        label="Gravedad de la emergencia",
        question="¿Qué tan grave es la emergencia?",
        choices=("Baja", "Media", "Alta", "Crítica"),
    ),
    FreeTextField(key="descripcion", label="Descripción detallada", placeholder="Describe lo que ocurre"),
)


ACCOUNT_LOOKUP_FIELDS: Tuple[FieldDefinition, ...] = (
    ChoiceField(
        key="tipoConsulta",
        label="Tipo de consulta",
        question="¿Qué quieres consultar?",
        choices=("Consumo", "Monto adeudado", "Comparar boletas"),
    ),
    ChoiceField(
        key="metodoIdentificacion",
        label="Método de identificación",
        question="¿Cómo quieres identificarte?",
        choices=("Número de cliente", "RUT", "Nombre completo"),
    ),
    IdentificationField(
        key="valorIdentificacion",
        label="Identificación",
        formats={
            "Número de cliente": (
                "Ingresa tu número de cliente (solo dígitos):",
                CLIENT_NUMBER_PATTERN,
                "El número de cliente debe tener solo dígitos (entre 4 y 12).",
            ),
            "RUT": (
                "Ingresa tu RUT (ej: 12.345.678-9):",
                RUT_PATTERN,
                "El RUT ingresado no tiene un formato válido (ej: 12.345.678-9).",
            ),
            "Nombre completo": (
                "Ingresa el nombre completo del titular de la cuenta:",
                FULL_NAME_PATTERN,
                "Ingresa nombre y apellido del titular.",
            ),
        },
    ),
)


CATALOGS: Dict[FlowKind, Tuple[FieldDefinition, ...]] = {
    FlowKind.EMERGENCY: EMERGENCY_FIELDS,
    FlowKind.ACCOUNT_LOOKUP: ACCOUNT_LOOKUP_FIELDS,
}


def catalog_for(flow_kind: FlowKind) -> Tuple[FieldDefinition, ...]:
    return CATALOGS[flow_kind]


def field_at(flow_kind: FlowKind, step_index: int) -> Optional[FieldDefinition]:
    """
    Get the field definition for a step.

    Returns None for virtual and terminal steps, which the engines handle
    themselves.
    """
    fields = CATALOGS.get(flow_kind, ())
    if 0 <= step_index < len(fields):
        return fields[step_index]
    return None


def required_keys(flow_kind: FlowKind) -> Tuple[str, ...]:
    return tuple(f.key for f in CATALOGS[flow_kind])

