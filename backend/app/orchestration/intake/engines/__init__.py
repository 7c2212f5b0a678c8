"""
Step engines

Each flow kind has an engine that:
1. Validates user input against the current step
2. Updates the record, cursor and transcript
3. Produces the next question
4. Requests the remote call when the flow reaches its terminal step
"""
from app.orchestration.intake.engines.base import (
    EffectKind,
    SideEffect,
    StepEngine,
    StepOutcome,
)
from app.orchestration.intake.engines.emergency import EmergencyEngine
from app.orchestration.intake.engines.account_lookup import AccountLookupEngine

__all__ = [
    "EffectKind",
    "SideEffect",
    "StepEngine",
    "StepOutcome",
    "EmergencyEngine",
    "AccountLookupEngine",
]
