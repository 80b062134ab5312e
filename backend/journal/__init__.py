"""Journal context: daily records, the submission window and the gate.

Re-export the gate surface for convenient imports in tests.
"""

from .errors import SubmissionConflict
from .gate import GateDecision, SubmissionGate, REASON_ALREADY_SUBMITTED, REASON_WINDOW_CLOSED
from .window import WindowService

__all__ = [
    "SubmissionConflict",
    "GateDecision",
    "SubmissionGate",
    "REASON_ALREADY_SUBMITTED",
    "REASON_WINDOW_CLOSED",
    "WindowService",
]
