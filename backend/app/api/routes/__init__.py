"""
API routes package
"""
from app.api.routes import intake

__all__ = [
    "intake",
]
