from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ErrorKind
from .matchers import Matcher
from .paths import parse_path


SUPPORTED_RULE_ROOTS = ("body", "headers")


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def normalize_multimap(value: Any) -> Dict[str, List[str]]:
    """Coerce ``{name: str | [str, ...]}`` into ``{name: [str, ...]}``."""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError("expected a mapping of name to value(s)")
    normalized: Dict[str, List[str]] = {}
    for name, raw in value.items():
        if isinstance(raw, (list, tuple)):
            normalized[str(name)] = [str(v) for v in raw]
        else:
            normalized[str(name)] = [str(raw)]
    return normalized


def _non_empty_multimap(value: Any, what: str) -> Dict[str, List[str]]:
    normalized = normalize_multimap(value)
    for name, values in normalized.items():
        if not values:
            raise ValueError(f"{what} {name!r} needs at least one value")
    return normalized


class ProviderState(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)

    def key(self) -> Tuple[str, str]:
        return self.name, _canonical(self.params)


class _HttpTemplate(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    headers: Dict[str, List[str]] = Field(default_factory=dict)
    body: Any = None
    matching_rules: Dict[str, Matcher] = Field(default_factory=dict, alias="matchingRules")

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, value: Any) -> Dict[str, List[str]]:
        return _non_empty_multimap(value, "header")

    @field_validator("matching_rules")
    @classmethod
    def _rules_address_headers_or_body(cls, rules: Dict[str, Any]) -> Dict[str, Any]:
        for expression in rules:
            tokens = parse_path(expression)
            if not tokens or tokens[0] not in SUPPORTED_RULE_ROOTS:
                raise ValueError(
                    f"matching rule {expression!r} must address $.body or $.headers "
                    "(method, path, query and status are literal)"
                )
            if tokens[0] == "headers" and (len(tokens) != 2 or not isinstance(tokens[1], str)):
                raise ValueError(f"header rule {expression!r} must name exactly one header")
        return rules

    def header(self, name: str) -> Optional[List[str]]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted:
                return values
        return None

    def rules_under(self, root: str) -> Dict[str, Any]:
        prefix = f"$.{root}"
        return {
            path: rule for path, rule in self.matching_rules.items()
            if path == prefix or path.startswith((prefix + ".", prefix + "["))
        }


class RequestTemplate(_HttpTemplate):
    method: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    query: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("request method must be non-empty")
        return value

    @field_validator("path")
    @classmethod
    def _non_blank_path(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("request path must be non-empty")
        return value

    @field_validator("query", mode="before")
    @classmethod
    def _normalize_query(cls, value: Any) -> Dict[str, List[str]]:
        return _non_empty_multimap(value, "query parameter")


class ResponseTemplate(_HttpTemplate):
    status: int = Field(200, ge=100, le=599)


class Interaction(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    description: str = Field(..., min_length=1)
    provider_states: List[ProviderState] = Field(default_factory=list, alias="providerStates")
    request: RequestTemplate
    response: ResponseTemplate

    @property
    def identity(self) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Key under which a contract may hold at most one interaction."""
        return self.description, tuple(state.key() for state in self.provider_states)

    @property
    def state_names(self) -> List[str]:
        return [state.name for state in self.provider_states]

    @classmethod
    def given(cls, state: str, **params: Any):
        """Start a builder from a provider state and its precondition parameters."""
        from .interaction import InteractionBuilder

        return InteractionBuilder().given(state, **params)

    @classmethod
    def from_templates(
        cls,
        description: str,
        request: Any,
        response: Any,
        provider_states: Sequence[Any] = (),
    ) -> "Interaction":
        """Build directly from request/response templates (models or DSL mappings)."""
        from .interaction import interaction_from_templates

        return interaction_from_templates(description, request, response, provider_states)


class SpecVersion(str, Enum):
    V2 = "2.0.0"
    V3 = "3.0.0"

    @classmethod
    def supported(cls) -> List[str]:
        return [member.value for member in cls]


class ContractDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    consumer_name: str = Field(..., min_length=1)
    provider_name: str = Field(..., min_length=1)
    interactions: List[Interaction] = Field(default_factory=list)
    spec_version: SpecVersion = SpecVersion.V3
    # metadata keys other than the spec version, re-emitted verbatim
    metadata: Dict[str, Any] = Field(default_factory=dict)
    # unknown top-level fields, re-emitted verbatim
    extras: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _unique_interactions(self) -> "ContractDocument":
        seen = set()
        for interaction in self.interactions:
            if interaction.identity in seen:
                raise ValueError(
                    f"Duplicate interaction '{interaction.description}' "
                    f"with provider states {interaction.state_names}"
                )
            seen.add(interaction.identity)
        return self

    def find(self, description: str) -> List[Interaction]:
        return [i for i in self.interactions if i.description == description]


class Mismatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    reason: str
    expected: Any = None
    actual: Any = None

    def describe(self) -> str:
        return f"{self.path}: {self.reason} (expected {self.expected!r}, actual {self.actual!r})"


class Outcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    interaction: Interaction
    outcome: Outcome
    mismatches: List[Mismatch] = Field(default_factory=list)
    error: Optional[ErrorKind] = None
    duration_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASS

    @classmethod
    def success(cls, interaction: Interaction, duration_ms: float = 0.0) -> "VerificationResult":
        return cls(interaction=interaction, outcome=Outcome.PASS, duration_ms=duration_ms)

    @classmethod
    def failure(
        cls,
        interaction: Interaction,
        mismatches: List[Mismatch],
        error: ErrorKind = ErrorKind.MISMATCH,
        duration_ms: float = 0.0,
    ) -> "VerificationResult":
        return cls(
            interaction=interaction,
            outcome=Outcome.FAIL,
            mismatches=list(mismatches),
            error=error,
            duration_ms=duration_ms,
        )
