"""
Logging configuration with field masking for personal data
"""
import logging
import re
from typing import Any

from app.core.config import settings


# Patterns to mask in logs
MASK_PATTERNS = [
    (r"['\"]telefono['\"]:\s*['\"][^'\"]*['\"]", '"telefono": "***"'),
    (r"['\"]nombreCompleto['\"]:\s*['\"][^'\"]*['\"]", '"nombreCompleto": "***"'),
    (r"['\"]valorIdentificacion['\"]:\s*['\"][^'\"]*['\"]", '"valorIdentificacion": "***"'),
    (r"['\"]direccion['\"]:\s*['\"][^'\"]*['\"]", '"direccion": "***"'),
    (r"\b\d{1,2}\.?\d{3}\.?\d{3}-[\dkK]\b", "**.***.***-*"),
]


class MaskingFormatter(logging.Formatter):
    """Custom formatter that masks personal fields."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for pattern, replacement in MASK_PATTERNS:
            message = re.sub(pattern, replacement, message, flags=re.IGNORECASE)
        return message


def setup_logging() -> logging.Logger:
    """Configure application logging."""
    logger = logging.getLogger("aguabot")
    logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

        formatter = MaskingFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)

    return logger


# Global logger instance
logger = setup_logging()


def log_audit_event(
    event_type: str,
    actor_id: str,
    actor_type: str,
    details: dict[str, Any],
) -> None:
    """Log an audit event."""
    logger.info(
        f"AUDIT: {event_type} | actor={actor_id} ({actor_type}) | details={details}"
    )
