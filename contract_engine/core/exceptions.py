from __future__ import annotations

from typing import Any, List, Optional


class ContractEngineError(Exception):
    pass


class InvalidPathExpression(ContractEngineError, ValueError):
    def __init__(self, expression: str, detail: str):
        super().__init__(f"Invalid path expression {expression!r}: {detail}")
        self.expression = expression
        self.detail = detail


class InvalidInteraction(ContractEngineError, ValueError):
    pass


class MalformedDocument(ContractEngineError):
    def __init__(self, detail: str, source: Optional[str] = None):
        message = f"{source}: {detail}" if source else detail
        super().__init__(message)
        self.detail = detail
        self.source = source


class UnsupportedSpecVersion(MalformedDocument):
    def __init__(self, version: Any, supported: List[str], source: Optional[str] = None):
        super().__init__(
            f"Unsupported pact specification version {version!r} (supported: {', '.join(supported)})",
            source,
        )
        self.version = version
        self.supported = supported


class UnknownProviderState(ContractEngineError):
    def __init__(self, state: str):
        super().__init__(f"No handler registered for provider state '{state}'")
        self.state = state


class StateSetupFailed(ContractEngineError):
    def __init__(self, state: str, cause: BaseException):
        super().__init__(f"Provider state '{state}' setup failed: {cause}")
        self.state = state
        self.cause = cause


class StateRegistryUnavailable(ContractEngineError):
    pass


class TransportUnreachable(ContractEngineError):
    def __init__(self, target: str, cause: Optional[BaseException] = None):
        detail = f"Transport unreachable: {target}"
        if cause is not None:
            detail += f" ({cause})"
        super().__init__(detail)
        self.target = target
        self.cause = cause


class TransportRequestFailed(ContractEngineError):
    """The provider was reached but the exchange could not be completed."""

    def __init__(self, target: str, cause: BaseException):
        super().__init__(f"Request to {target} failed: {type(cause).__name__}: {cause}")
        self.target = target
        self.cause = cause


class MockInteractionError(AssertionError):
    """Raised by the consumer DSL when the mock did not see exactly the armed request."""

    def __init__(self, description: str, mismatches: list):
        lines = [f"Interaction '{description}' was not satisfied:"]
        lines.extend(f"  - {m.describe()}" for m in mismatches)
        super().__init__("\n".join(lines))
        self.description = description
        self.mismatches = mismatches


class BrokerError(ContractEngineError):
    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
