"""
Transports: anything that can send a request template and return a response.

The verifier only ever talks to a ``Transport``; pick ``RequestsTransport`` for a
provider listening on a real socket, ``TestClientTransport`` for an in-process
FastAPI app, or a consumer-side ``MockService``.
"""

from .asgi import TestClientTransport
from .base import Transport, TransportResponse
from .http import RequestsTransport

__all__ = [
    "Transport",
    "TransportResponse",
    "RequestsTransport",
    "TestClientTransport",
]
