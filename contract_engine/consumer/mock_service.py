"""
In-memory mock of a provider, used while a consumer test records an interaction.

The mock is a small state machine::

    IDLE --arm--> ARMED --matching request--> REQUEST_RECEIVED --finalize--> VERIFIED
                    |                               |
                    +------ mismatching request ----+--> VIOLATED

Only a VERIFIED interaction is handed to the recorder.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..core.exceptions import InvalidInteraction
from ..core.matching import compare_request
from ..core.metrics import metrics
from ..core.schemas import Interaction, Mismatch, normalize_multimap
from ..transport.base import TransportResponse

logger = logging.getLogger(__name__)


class MockState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    REQUEST_RECEIVED = "request_received"
    VERIFIED = "verified"
    VIOLATED = "violated"


@dataclass
class ReceivedRequest:
    method: str
    path: str
    query: Dict[str, List[str]] = field(default_factory=dict)
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: Any = None
    mismatches: List[Mismatch] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return not self.mismatches


class MockService:
    """
    Transport that answers with the armed interaction's response template.

    A request that does not satisfy the armed request template gets a 500 whose
    JSON body lists the mismatches, and the mock moves to VIOLATED.
    """

    MISMATCH_STATUS = 500

    def __init__(self, recorder: Optional[Any] = None):
        self.recorder = recorder
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        self.state = MockState.IDLE
        self.interaction: Optional[Interaction] = None
        self.requests: List[ReceivedRequest] = []
        self.mismatches: List[Mismatch] = []

    def arm(self, interaction: Interaction) -> None:
        with self._lock:
            if self.state in (MockState.ARMED, MockState.REQUEST_RECEIVED):
                raise InvalidInteraction(
                    f"Mock is already armed with '{self.interaction.description}'; finalize it first"
                )
            self.reset()
            self.interaction = interaction
            self.state = MockState.ARMED
        logger.debug(f"Mock armed: {interaction.description}")

    def send(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> TransportResponse:
        received = ReceivedRequest(
            method=method.upper(),
            path=path,
            query=normalize_multimap(query),
            headers=normalize_multimap(headers),
            body=body,
        )
        with self._lock:
            self.requests.append(received)
            if self.interaction is None:
                received.mismatches = [Mismatch(path="$", reason="unexpected", expected=None, actual=f"{method} {path}")]
                metrics.record_mock_request(matched=False)
                logger.warning(f"Mock received {method} {path} with no interaction armed")
                return self._mismatch_response("No interaction is armed", received.mismatches)

            received.mismatches = compare_request(
                self.interaction.request, method, path, received.query, received.headers, body
            )
            metrics.record_mock_request(matched=received.matched)
            if not received.matched:
                self.state = MockState.VIOLATED
                self.mismatches.extend(received.mismatches)
                logger.info(
                    f"Mock request did not match '{self.interaction.description}'",
                    extra={"mismatches": len(received.mismatches)},
                )
                return self._mismatch_response(
                    f"Request does not match interaction '{self.interaction.description}'", received.mismatches
                )
            if self.state is MockState.ARMED:
                self.state = MockState.REQUEST_RECEIVED

            response = self.interaction.response
            return TransportResponse(
                response.status,
                {name: list(values) for name, values in response.headers.items()},
                response.body,
            )

    def _mismatch_response(self, message: str, mismatches: List[Mismatch]) -> TransportResponse:
        body = {
            "error": message,
            "mismatches": [m.model_dump(mode="json") for m in mismatches],
        }
        return TransportResponse(self.MISMATCH_STATUS, {"Content-Type": ["application/json"]}, body)

    def finalize(self) -> MockState:
        """
        Close the armed interaction.

        VERIFIED requires exactly one request, and that request must have matched.
        A verified interaction is recorded on the attached recorder.
        """
        with self._lock:
            if self.interaction is None:
                raise InvalidInteraction("No interaction is armed")
            if self.state is MockState.VERIFIED:
                return self.state
            if len(self.requests) != 1:
                count = Mismatch(path="$", reason="request count", expected=1, actual=len(self.requests))
                self.mismatches.append(count)
                self.state = MockState.VIOLATED
            elif self.state is MockState.REQUEST_RECEIVED:
                self.state = MockState.VERIFIED
            else:
                self.state = MockState.VIOLATED

            if self.state is MockState.VERIFIED and self.recorder is not None:
                self.recorder.record(self.interaction)
            logger.debug(f"Mock finalized '{self.interaction.description}': {self.state.value}")
            return self.state
