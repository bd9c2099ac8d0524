"""
Error code taxonomy for contract verification.

Every failure a verification run can report maps to one ``ErrorKind``. Kinds
scoped to a single interaction are captured in that interaction's result;
document-level kinds abort the run.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class ErrorScope(str, Enum):
    """Blast radius of an error kind."""
    RUN = "run"
    INTERACTION = "interaction"
    FIELD = "field"


class ErrorKind(str, Enum):
    MALFORMED_DOCUMENT = "MalformedDocument"
    STATE_REGISTRY_UNAVAILABLE = "StateRegistryUnavailable"
    UNKNOWN_PROVIDER_STATE = "UnknownProviderState"
    STATE_SETUP_FAILED = "StateSetupFailed"
    TRANSPORT_UNREACHABLE = "TransportUnreachable"
    REQUEST_FAILED = "RequestFailed"
    MISMATCH = "Mismatch"

    @property
    def scope(self) -> ErrorScope:
        return _SCOPES[self]

    @property
    def reason(self) -> str:
        """Mismatch reason used for the synthetic mismatch of this kind."""
        return _REASONS[self]


_SCOPES = {
    ErrorKind.MALFORMED_DOCUMENT: ErrorScope.RUN,
    ErrorKind.STATE_REGISTRY_UNAVAILABLE: ErrorScope.RUN,
    ErrorKind.UNKNOWN_PROVIDER_STATE: ErrorScope.INTERACTION,
    ErrorKind.STATE_SETUP_FAILED: ErrorScope.INTERACTION,
    ErrorKind.TRANSPORT_UNREACHABLE: ErrorScope.INTERACTION,
    ErrorKind.REQUEST_FAILED: ErrorScope.INTERACTION,
    ErrorKind.MISMATCH: ErrorScope.FIELD,
}

_REASONS = {
    ErrorKind.MALFORMED_DOCUMENT: "malformed document",
    ErrorKind.STATE_REGISTRY_UNAVAILABLE: "state registry unavailable",
    ErrorKind.UNKNOWN_PROVIDER_STATE: "unknown provider state",
    ErrorKind.STATE_SETUP_FAILED: "state setup failed",
    ErrorKind.TRANSPORT_UNREACHABLE: "transport unreachable",
    ErrorKind.REQUEST_FAILED: "request failed",
    ErrorKind.MISMATCH: "mismatch",
}


class ErrorDetail(BaseModel):
    """Structured description of a run-level failure, used in reports and CLI output."""
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    source: Optional[str] = None
    context: Dict[str, Any] = {}

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "error_code": self.kind.value,
            "scope": self.kind.scope.value,
            "message": self.message,
        }
        if self.source:
            result["source"] = self.source
        if self.context:
            result["context"] = self.context
        return result
