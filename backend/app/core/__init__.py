"""
Core module exports
"""
from app.core.config import settings, get_settings, Settings
from app.core.logging import logger, log_audit_event

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "logger",
    "log_audit_event",
]
