"""Consumer-driven contract matching and verification engine."""

__version__ = "0.1.0"

from .consumer import Consumer, MockServer, MockService, MockState, Pact, Provider, Recorder
from .core import (
    ContractDocument,
    EachLike,
    Equals,
    Interaction,
    Like,
    Mismatch,
    SomethingLike,
    Term,
    VerificationResult,
    decode,
    encode,
    evaluate,
)
from .provider import (
    OutgoingRequest,
    StateHandlerRegistry,
    VerificationReport,
    Verifier,
    create_state_router,
    verify,
    verify_file,
)
from .transport import RequestsTransport, TestClientTransport, Transport, TransportResponse

__all__ = [
    "Consumer",
    "ContractDocument",
    "EachLike",
    "Equals",
    "Interaction",
    "Like",
    "Mismatch",
    "MockServer",
    "MockService",
    "MockState",
    "OutgoingRequest",
    "Pact",
    "Provider",
    "Recorder",
    "RequestsTransport",
    "SomethingLike",
    "StateHandlerRegistry",
    "Term",
    "TestClientTransport",
    "Transport",
    "TransportResponse",
    "VerificationReport",
    "VerificationResult",
    "Verifier",
    "create_state_router",
    "decode",
    "encode",
    "evaluate",
    "verify",
    "verify_file",
]
