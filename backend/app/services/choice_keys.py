"""
Choice label -> machine key translation used before submitting a record.
"""
from typing import Dict, Optional
import re
import unicodedata


def normalize_label(label: str) -> str:
    """Strip diacritics, punctuation and case, and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", label)
    without_marks = "".join(c for c in decomposed if not unicodedata.combining(c))
    without_punct = re.sub(r"[^\w\s]", " ", without_marks.lower())
    return " ".join(without_punct.replace("_", " ").split())


# Keyed by normalized label
CHOICE_KEYS: Dict[str, str] = {
    # Sector
    "centro": "centro",
    "los aromos": "los_aromos",
    "la compania": "la_compania",
    "el molino": "el_molino",
    "sector rural": "rural",
    # Tipo de emergencia
    "fuga de agua": "fuga",
    "baja presion": "baja_presion",
    "sin suministro": "sin_suministro",
    "agua turbia": "agua_turbia",
    "rotura de matriz": "rotura_matriz",
    "alcantarillado": "alcantarillado",
    "otro": "otro",
    # Gravedad
    "baja": "baja",
    "media": "media",
    "alta": "alta",
    "critica": "critica",
    # Consulta de boletas
    "consumo": "consumo",
    "monto adeudado": "monto_adeudado",
    "comparar boletas": "comparar",
    "numero de cliente": "numero_cliente",
    "rut": "rut",
    "nombre completo": "nombre_completo",
}


def choice_key(label: Optional[str], table: Optional[Dict[str, str]] = None) -> Optional[str]:
    """
    Translate a choice label to its machine key.

    Falls back to the raw label when there is no mapping; never returns an
    empty value for a non-empty label.
    """
    if label is None:
        return None
    key = (table if table is not None else CHOICE_KEYS).get(normalize_label(label))
    return key or label
