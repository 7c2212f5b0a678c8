"""Error types for the intake conversation and the remote service gateway."""

from typing import Dict, List, Optional


class IntakeError(Exception):
    """Base class for every error raised by the intake core."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(IntakeError):
    """
    Bad or out-of-range user input.

    Recovered locally: the engine re-prompts with `message` and leaves the
    record and cursor untouched.
    """


class SubmissionError(IntakeError):
    """Base class for failures talking to the remote service."""


class TransportError(SubmissionError):
    """
    Service unreachable or non-success status.

    Attributes:
        status_code: HTTP status if the service answered at all
        field_errors: Server-supplied validation messages, kept verbatim
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        field_errors: Optional[Dict[str, List[str]]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.field_errors = field_errors or {}


class MalformedResponseError(SubmissionError):
    """The service answered with success but the body cannot be interpreted."""

    def __init__(self, message: str, body: Optional[str] = None):
        super().__init__(message)
        self.body = body
