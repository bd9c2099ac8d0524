from .mock_server import MockServer, create_mock_app
from .mock_service import MockService, MockState, ReceivedRequest
from .pact import Consumer, Pact, Provider
from .recorder import Recorder

__all__ = [
    "Consumer",
    "MockServer",
    "MockService",
    "MockState",
    "Pact",
    "Provider",
    "ReceivedRequest",
    "Recorder",
    "create_mock_app",
]
