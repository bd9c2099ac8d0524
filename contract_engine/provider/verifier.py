"""
Provider-side verification.

Each interaction of a contract document is replayed against the real provider,
in document order and in isolation:

1. every provider state must have a registered handler, otherwise the
   interaction fails with ``UnknownProviderState`` and nothing is sent;
2. the handlers run in order; an exception fails the interaction with
   ``StateSetupFailed``;
3. the literal request template (optionally rewritten by a request hook) is
   sent through the transport; an unreachable provider fails the interaction
   with ``TransportUnreachable`` and is not retried; any other failure of the
   hook or the exchange fails it with ``RequestFailed``;
4. the actual response is judged against the response template.

Only run-level problems (an unreadable document, an unreachable remote state
registry) stop the run.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..config import get_settings
from ..logging_setup import run_id
from ..core.contract_store import load_document
from ..core.errors import ErrorDetail, ErrorKind
from ..core.exceptions import MalformedDocument, StateRegistryUnavailable, TransportUnreachable
from ..core.matching import compare_response
from ..core.metrics import metrics
from ..core.schemas import ContractDocument, Interaction, Mismatch, VerificationResult
from ..transport.base import Transport
from ..transport.http import RequestsTransport
from .report import VerificationReport
from .states import RemoteStateHandlers, StateHandler, StateHandlerRegistry

logger = logging.getLogger(__name__)


@dataclass
class OutgoingRequest:
    """Mutable copy of a request template, handed to the request hook before sending."""

    method: str
    path: str
    query: Dict[str, List[str]] = field(default_factory=dict)
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: Any = None

    @classmethod
    def from_interaction(cls, interaction: Interaction) -> "OutgoingRequest":
        request = interaction.request
        return cls(
            method=request.method,
            path=request.path,
            query={name: list(values) for name, values in request.query.items()},
            headers={name: list(values) for name, values in request.headers.items()},
            body=copy.deepcopy(request.body),
        )

    def set_header(self, name: str, value: str) -> None:
        """Replace a header regardless of the case it was recorded with."""
        for existing in [k for k in self.headers if k.lower() == name.lower()]:
            del self.headers[existing]
        self.headers[name] = [value]


# hook(request) may mutate the request in place or return a replacement
RequestHook = Callable[[OutgoingRequest], Optional[OutgoingRequest]]


class Verifier:
    def __init__(
        self,
        transport: Transport,
        state_handlers: Mapping[str, StateHandler],
        request_hook: Optional[RequestHook] = None,
    ):
        self.transport = transport
        self.state_handlers = state_handlers
        self.request_hook = request_hook

    def _fail(
        self,
        interaction: Interaction,
        kind: ErrorKind,
        path: str,
        expected: Any,
        actual: Any,
        started: float,
    ) -> VerificationResult:
        mismatch = Mismatch(path=path, reason=kind.reason, expected=expected, actual=actual)
        return VerificationResult.failure(
            interaction, [mismatch], error=kind, duration_ms=(time.perf_counter() - started) * 1000
        )

    def _run(self, interaction: Interaction) -> VerificationResult:
        started = time.perf_counter()

        handlers = []
        for index, state in enumerate(interaction.provider_states):
            handler = self.state_handlers.get(state.name)
            if handler is None:
                logger.warning(f"No handler for provider state '{state.name}' ({interaction.description})")
                return self._fail(
                    interaction, ErrorKind.UNKNOWN_PROVIDER_STATE,
                    f"$.providerStates[{index}]", state.name, None, started,
                )
            handlers.append((index, state, handler))

        for index, state, handler in handlers:
            try:
                handler(dict(state.params))
            except StateRegistryUnavailable:
                raise
            except Exception as e:
                logger.warning(f"Provider state '{state.name}' setup failed: {e}")
                return self._fail(
                    interaction, ErrorKind.STATE_SETUP_FAILED,
                    f"$.providerStates[{index}]", state.name, f"{type(e).__name__}: {e}", started,
                )

        request = OutgoingRequest.from_interaction(interaction)
        try:
            if self.request_hook is not None:
                request = self.request_hook(request) or request
            status, headers, body = self.transport.send(
                request.method, request.path, headers=request.headers, body=request.body, query=request.query
            )
        except TransportUnreachable as e:
            return self._fail(
                interaction, ErrorKind.TRANSPORT_UNREACHABLE, "$", e.target, str(e), started
            )
        except StateRegistryUnavailable:
            raise
        except Exception as e:
            logger.warning(f"Request for '{interaction.description}' failed: {e}")
            return self._fail(
                interaction, ErrorKind.REQUEST_FAILED, "$",
                f"{request.method} {request.path}", f"{type(e).__name__}: {e}", started,
            )

        mismatches = compare_response(interaction.response, status, headers, body)
        duration_ms = (time.perf_counter() - started) * 1000
        if mismatches:
            return VerificationResult.failure(interaction, mismatches, duration_ms=duration_ms)
        return VerificationResult.success(interaction, duration_ms=duration_ms)

    def verify_interaction(self, interaction: Interaction, provider_name: str = "unknown") -> VerificationResult:
        result = self._run(interaction)
        metrics.record_verification(
            provider=provider_name,
            outcome=result.outcome.value,
            error=result.error.value if result.error else None,
            duration=result.duration_ms / 1000,
        )
        logger.info(
            f"{result.outcome.value.upper()}: {interaction.description}",
            extra={"mismatches": len(result.mismatches), "duration_ms": round(result.duration_ms, 3)},
        )
        return result

    def verify(self, document: ContractDocument) -> List[VerificationResult]:
        """Replay every interaction in order; raises only for run-level errors."""
        logger.info(
            f"Verifying {document.consumer_name} -> {document.provider_name}",
            extra={"interactions": len(document.interactions)},
        )
        return [self.verify_interaction(i, document.provider_name) for i in document.interactions]

    def verify_report(self, document: ContractDocument, source: Optional[str] = None) -> VerificationReport:
        """Like ``verify`` but collects run-level errors into the report instead of raising."""
        run = run_id()
        logger.info(f"Verification run {run} started", extra={"run_id": run, "source": source})
        report = VerificationReport(
            consumer_name=document.consumer_name,
            provider_name=document.provider_name,
            source=source,
            provider_version=get_settings().PACT_PROVIDER_VERSION,
        )
        try:
            for interaction in document.interactions:
                report.results.append(self.verify_interaction(interaction, document.provider_name))
        except StateRegistryUnavailable as e:
            logger.error(f"Verification aborted: {e}")
            report.errors.append(ErrorDetail(kind=ErrorKind.STATE_REGISTRY_UNAVAILABLE, message=str(e), source=source))
        logger.info(
            f"Verification run {run} finished: {report.passed}/{report.total} passed",
            extra={"run_id": run, "success": report.success},
        )
        return report


def verify(
    document: ContractDocument,
    transport: Transport,
    state_handlers: Mapping[str, StateHandler],
    request_hook: Optional[RequestHook] = None,
) -> List[VerificationResult]:
    return Verifier(transport, state_handlers, request_hook=request_hook).verify(document)


def verify_file(
    document_path: Union[str, Path],
    base_url: Optional[str] = None,
    state_handlers: Optional[Mapping[str, StateHandler]] = None,
    transport: Optional[Transport] = None,
    states_url: Optional[str] = None,
    request_hook: Optional[RequestHook] = None,
    timeout: Optional[float] = None,
) -> VerificationReport:
    """
    Verify a contract file against a running provider.

    Args:
        document_path: Contract document to verify.
        base_url: Provider base URL; ignored when ``transport`` is given.
        state_handlers: Local handlers. When omitted, ``states_url`` (or
            ``PROVIDER_STATES_SETUP_URL``) is used to reach the provider's state
            endpoint; with neither, only interactions without states can pass.
        transport: Explicit transport, e.g. ``TestClientTransport(app)``.
        states_url: Provider state setup endpoint.
        request_hook: Rewrites each outgoing request (fresh auth tokens etc).
        timeout: Per-request timeout in seconds.

    Returns:
        The verification report; ``report.exit_code`` is 0 only if every
        interaction passed.
    """
    source = str(document_path)
    try:
        document = load_document(document_path)
    except MalformedDocument as e:
        logger.error(f"Cannot verify {source}: {e}")
        return VerificationReport.aborted(ErrorDetail(kind=ErrorKind.MALFORMED_DOCUMENT, message=str(e), source=source))

    if transport is None:
        if not base_url:
            raise ValueError("either base_url or transport is required")
        transport = RequestsTransport(base_url, timeout=timeout)

    if state_handlers is None:
        url = states_url or get_settings().PROVIDER_STATES_SETUP_URL
        state_handlers = RemoteStateHandlers(url, timeout=timeout) if url else StateHandlerRegistry()

    return Verifier(transport, state_handlers, request_hook=request_hook).verify_report(document, source=source)
