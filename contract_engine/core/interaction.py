"""
Builder-style constructors for interactions.

Request and response templates may embed the consumer DSL (``Like``, ``Term``,
``EachLike``, ``Equals``) in bodies and header values. ``extract_rules`` splits a
template into the literal example that is sent/returned and the matching rules
that are written to the contract.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from .exceptions import InvalidInteraction
from .matchers import DSL_TYPES, EachLike
from .paths import child_field, child_index
from .schemas import Interaction, ProviderState, RequestTemplate, ResponseTemplate


def extract_rules(value: Any, path: str, rules: Dict[str, Any]) -> Any:
    """Return the literal example for ``value`` and collect its rules into ``rules``."""
    if isinstance(value, DSL_TYPES):
        rules[path] = value.rule()
        if isinstance(value, EachLike):
            element = extract_rules(value.example, path + "[*]", rules)
            return [element] * max(value.minimum, 1)
        return extract_rules(value.example, path, rules)
    if isinstance(value, Mapping):
        return {key: extract_rules(item, child_field(path, str(key)), rules) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [extract_rules(item, child_index(path, index), rules) for index, item in enumerate(value)]
    return value


def _extract_headers(headers: Optional[Mapping[str, Any]], rules: Dict[str, Any]) -> Dict[str, List[str]]:
    literal: Dict[str, List[str]] = {}
    for name, value in (headers or {}).items():
        header_path = child_field("$.headers", name)
        if isinstance(value, DSL_TYPES):
            rules[header_path] = value.rule()
            value = value.example
        values = value if isinstance(value, (list, tuple)) else [value]
        literal[name] = [str(v) for v in values]
    return literal


def _ensure_literal(name: str, value: Any) -> None:
    if isinstance(value, DSL_TYPES):
        raise InvalidInteraction(f"request {name} must be literal, matching rules are not allowed ({value!r})")


def build_request(
    method: str,
    path: str,
    headers: Optional[Mapping[str, Any]] = None,
    body: Any = None,
    query: Optional[Mapping[str, Any]] = None,
) -> RequestTemplate:
    _ensure_literal("method", method)
    _ensure_literal("path", path)
    for key, value in (query or {}).items():
        _ensure_literal(f"query parameter '{key}'", value)
    rules: Dict[str, Any] = {}
    literal_headers = _extract_headers(headers, rules)
    literal_body = extract_rules(body, "$.body", rules)
    try:
        return RequestTemplate(
            method=method,
            path=path,
            query=query or {},
            headers=literal_headers,
            body=literal_body,
            matching_rules=rules,
        )
    except ValidationError as e:
        raise InvalidInteraction(f"Invalid request template: {e}") from e


def build_response(
    status: int = 200,
    headers: Optional[Mapping[str, Any]] = None,
    body: Any = None,
) -> ResponseTemplate:
    _ensure_literal("status", status)
    rules: Dict[str, Any] = {}
    literal_headers = _extract_headers(headers, rules)
    literal_body = extract_rules(body, "$.body", rules)
    try:
        return ResponseTemplate(status=status, headers=literal_headers, body=literal_body, matching_rules=rules)
    except ValidationError as e:
        raise InvalidInteraction(f"Invalid response template: {e}") from e


def _as_state(state: Any) -> ProviderState:
    if isinstance(state, ProviderState):
        return state
    if isinstance(state, str):
        return ProviderState(name=state)
    if isinstance(state, Mapping):
        return ProviderState(name=state.get("name", ""), params=dict(state.get("params") or {}))
    if isinstance(state, tuple) and len(state) == 2:
        return ProviderState(name=state[0], params=dict(state[1]))
    raise InvalidInteraction(f"Unsupported provider state {state!r}")


def interaction_from_templates(
    description: str,
    request: Any,
    response: Any,
    provider_states: Sequence[Any] = (),
) -> Interaction:
    if isinstance(request, Mapping):
        request = build_request(**request)
    if isinstance(response, Mapping):
        response = build_response(**response)
    try:
        states = [_as_state(s) for s in provider_states]
        return Interaction(
            description=description,
            provider_states=states,
            request=request,
            response=response,
        )
    except ValidationError as e:
        raise InvalidInteraction(f"Invalid interaction '{description}': {e}") from e


class InteractionBuilder:
    """
    Fluent builder, shaped like the pact DSL::

        Interaction.given("products exist") \\
            .upon_receiving("get all products") \\
            .with_request("GET", "/products") \\
            .will_respond_with(200, body={"products": EachLike({"id": Like(9)})}) \\
            .build()
    """

    def __init__(self) -> None:
        self.reset()

    def given(self, state: str, **params: Any) -> "InteractionBuilder":
        try:
            self._states.append(ProviderState(name=state, params=params))
        except ValidationError as e:
            raise InvalidInteraction(f"Invalid provider state {state!r}: {e}") from e
        return self

    and_given = given

    def upon_receiving(self, description: str) -> "InteractionBuilder":
        self._description = description
        return self

    def with_request(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> "InteractionBuilder":
        self._request = build_request(method, path, headers=headers, body=body, query=query)
        return self

    def will_respond_with(
        self,
        status: int = 200,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> "InteractionBuilder":
        self._response = build_response(status, headers=headers, body=body)
        return self

    def build(self) -> Interaction:
        missing: Tuple[str, ...] = tuple(
            name for name, value in (
                ("description (upon_receiving)", self._description),
                ("request (with_request)", self._request),
                ("response (will_respond_with)", self._response),
            ) if value is None
        )
        if missing:
            raise InvalidInteraction(f"Interaction is incomplete, missing: {', '.join(missing)}")
        return interaction_from_templates(self._description, self._request, self._response, self._states)

    def reset(self) -> None:
        self._states: List[ProviderState] = []
        self._description: Optional[str] = None
        self._request: Optional[RequestTemplate] = None
        self._response: Optional[ResponseTemplate] = None
