# cricket_live/errors.py
from __future__ import annotations


class EngineError(Exception):
    """Base class for every error raised by the live match engine."""
    pass


class MatchNotFoundError(EngineError):
    """Raised when a match id is not registered in the state store."""

    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match not found: {match_id}")
        self.match_id = match_id


class ValidationError(EngineError):
    """
    Raised when a delivery is malformed or breaks a scoring rule.

    `kind` is a stable machine-readable code (e.g. "malformed",
    "wicket_limit") so the scorer UI can tell rejections apart.
    The match state is never touched when this is raised.
    """

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class StateConflictError(EngineError):
    """Raised when an operation does not fit the match's current status."""
    pass


class InternalInconsistencyError(EngineError):
    """
    Raised when derived counters disagree with the delivery log.

    Should never happen. The affected match is locked for writes until an
    operator unlocks it.
    """

    def __init__(self, match_id: str, detail: str) -> None:
        super().__init__(f"Match {match_id} is inconsistent: {detail}")
        self.match_id = match_id
        self.detail = detail
