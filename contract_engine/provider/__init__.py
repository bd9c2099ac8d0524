from .report import VerificationReport
from .state_routes import create_state_router
from .states import RemoteStateHandlers, StateHandlerRegistry
from .verifier import OutgoingRequest, Verifier, verify, verify_file

__all__ = [
    "OutgoingRequest",
    "RemoteStateHandlers",
    "StateHandlerRegistry",
    "VerificationReport",
    "Verifier",
    "create_state_router",
    "verify",
    "verify_file",
]
