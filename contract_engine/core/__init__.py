from .codec import decode, encode
from .exceptions import (
    ContractEngineError,
    InvalidInteraction,
    InvalidPathExpression,
    MalformedDocument,
    MockInteractionError,
    StateRegistryUnavailable,
    StateSetupFailed,
    TransportUnreachable,
    UnknownProviderState,
    UnsupportedSpecVersion,
)
from .matchers import EachLike, Equals, Like, SomethingLike, Term
from .matching import compare_request, compare_response, evaluate
from .schemas import (
    ContractDocument,
    Interaction,
    Mismatch,
    Outcome,
    ProviderState,
    RequestTemplate,
    ResponseTemplate,
    SpecVersion,
    VerificationResult,
)
