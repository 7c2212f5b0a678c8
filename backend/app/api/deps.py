"""
API dependencies
"""
from app.services.session_store import get_session_store
from app.services.submission_gateway import SubmissionGateway


def get_gateway() -> SubmissionGateway:
    """Gateway used by newly created sessions."""
    return SubmissionGateway()


__all__ = [
    "get_gateway",
    "get_session_store",
]
