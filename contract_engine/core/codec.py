"""
Contract document codec.

A contract document is UTF-8 JSON::

    {"consumer": {"name": ...}, "provider": {"name": ...},
     "interactions": [...], "metadata": {"pactSpecVersion": "3.0.0"}}

Matching rules are written in the layout of the document's spec version: a flat
object keyed by full path for 2.0.0, and per-category ``{"matchers": [...]}``
entries for 3.0.0. Top-level fields and metadata keys the codec does not know
about are carried through decode/encode unchanged.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, urlencode

from jsonschema import Draft202012Validator
from pydantic import ValidationError

from .exceptions import InvalidPathExpression, MalformedDocument, UnsupportedSpecVersion
from .matchers import matcher_from_json, matcher_to_json
from .paths import child_field, parse_path
from .schemas import (
    ContractDocument,
    Interaction,
    ProviderState,
    RequestTemplate,
    ResponseTemplate,
    SpecVersion,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent.parent / "schema" / "contract.schema.json"

KNOWN_FIELDS = ("consumer", "provider", "interactions", "metadata")
VERSION_KEY = "pactSpecVersion"
LEGACY_VERSION_KEYS = ("pactSpecification", "pact-specification")


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        return Draft202012Validator(json.load(f))


def _validate_shape(data: Dict[str, Any], source: Optional[str]) -> None:
    errors = sorted(_validator().iter_errors(data), key=lambda e: list(e.path))
    if errors:
        msgs = [f"{list(e.path)}: {e.message}" for e in errors]
        raise MalformedDocument(f"Contract validation failed: {'; '.join(msgs)}", source)


# Matching rules ------------------------------------------------------------------


def _encode_rules_v2(rules: Mapping[str, Any]) -> Dict[str, Any]:
    return {path: matcher_to_json(matcher) for path, matcher in rules.items()}


def _encode_rules_v3(rules: Mapping[str, Any]) -> Dict[str, Any]:
    encoded: Dict[str, Dict[str, Any]] = {}
    for path, matcher in rules.items():
        tokens = parse_path(path)
        entry = {"matchers": [matcher_to_json(matcher)], "combine": "AND"}
        if tokens[0] == "headers":
            encoded.setdefault("header", {})[tokens[1]] = entry
        else:
            # "$.body.products[*]" is stored as "$.products[*]" under "body"
            encoded.setdefault("body", {})["$" + path[len("$.body"):]] = entry
    return encoded


def _decode_single(entry: Any, where: str) -> Any:
    if isinstance(entry, Mapping) and "matchers" in entry:
        matchers = entry["matchers"]
        if not isinstance(matchers, list) or len(matchers) != 1:
            raise ValueError(f"{where}: exactly one matcher per path is supported")
        return matcher_from_json(matchers[0])
    return matcher_from_json(entry)


def _decode_rules(raw: Any) -> Dict[str, Any]:
    """Accept either layout; the v3 layout is recognised by its category keys."""
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("matchingRules must be an object")
    rules: Dict[str, Any] = {}
    for key, value in raw.items():
        if key.startswith("$"):
            rules[key] = _decode_single(value, key)
        elif key == "body":
            if not isinstance(value, Mapping):
                raise ValueError("matchingRules.body must be an object")
            for relative, entry in value.items():
                if not relative.startswith("$"):
                    raise ValueError(f"body rule {relative!r} must start with '$'")
                rules["$.body" + relative[1:]] = _decode_single(entry, relative)
        elif key in ("header", "headers"):
            if not isinstance(value, Mapping):
                raise ValueError(f"matchingRules.{key} must be an object")
            for name, entry in value.items():
                rules[child_field("$.headers", name)] = _decode_single(entry, name)
        else:
            raise ValueError(f"matching rules for {key!r} are not supported (only body and headers)")
    return rules


# Encoding ------------------------------------------------------------------------


def _encode_headers(headers: Mapping[str, List[str]]) -> Dict[str, Any]:
    return {name: values[0] if len(values) == 1 else list(values) for name, values in headers.items()}


def _encode_message(template: Any, version: SpecVersion) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if isinstance(template, RequestTemplate):
        data["method"] = template.method
        data["path"] = template.path
        if template.query:
            if version is SpecVersion.V2:
                data["query"] = urlencode(
                    [(name, value) for name, values in template.query.items() for value in values]
                )
            else:
                data["query"] = {name: list(values) for name, values in template.query.items()}
    else:
        data["status"] = template.status
    if template.headers:
        data["headers"] = _encode_headers(template.headers)
    if template.body is not None:
        data["body"] = template.body
    if template.matching_rules:
        encoder = _encode_rules_v2 if version is SpecVersion.V2 else _encode_rules_v3
        data["matchingRules"] = encoder(template.matching_rules)
    return data


def _encode_interaction(interaction: Interaction, version: SpecVersion) -> Dict[str, Any]:
    states = []
    for state in interaction.provider_states:
        entry: Dict[str, Any] = {"name": state.name}
        if state.params:
            entry["params"] = state.params
        states.append(entry)
    return {
        "description": interaction.description,
        "providerStates": states,
        "request": _encode_message(interaction.request, version),
        "response": _encode_message(interaction.response, version),
    }


def to_dict(document: ContractDocument) -> Dict[str, Any]:
    version = document.spec_version
    data: Dict[str, Any] = {
        "consumer": {"name": document.consumer_name},
        "provider": {"name": document.provider_name},
        "interactions": [_encode_interaction(i, version) for i in document.interactions],
        "metadata": {VERSION_KEY: version.value, **document.metadata},
    }
    for key, value in document.extras.items():
        data.setdefault(key, value)
    return data


def encode(document: ContractDocument) -> bytes:
    """Serialise a document to UTF-8 JSON bytes."""
    return (json.dumps(to_dict(document), indent=2, ensure_ascii=False) + "\n").encode("utf-8")


# Decoding ------------------------------------------------------------------------


def _resolve_version(metadata: Dict[str, Any], source: Optional[str]) -> Tuple[SpecVersion, Dict[str, Any]]:
    """Return the spec version and the metadata with the version key removed."""
    remaining = dict(metadata)
    raw_version: Any = None
    if VERSION_KEY in remaining:
        raw_version = remaining.pop(VERSION_KEY)
    else:
        for key in LEGACY_VERSION_KEYS:
            if isinstance(remaining.get(key), Mapping) and "version" in remaining[key]:
                raw_version = remaining.pop(key)["version"]
                break
    if raw_version is None:
        return SpecVersion.V3, remaining
    try:
        return SpecVersion(str(raw_version)), remaining
    except ValueError:
        raise UnsupportedSpecVersion(raw_version, SpecVersion.supported(), source) from None


def _decode_query(raw: Any) -> Dict[str, List[str]]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        return parse_qs(raw, keep_blank_values=True)
    return raw


def interaction_from_dict(raw: Dict[str, Any]) -> Interaction:
    states = raw.get("providerStates")
    if states is None and raw.get("providerState"):
        states = [{"name": raw["providerState"]}]
    request = dict(raw["request"])
    response = dict(raw["response"])
    return Interaction(
        description=raw["description"],
        provider_states=[ProviderState(name=s["name"], params=s.get("params") or {}) for s in states or []],
        request=RequestTemplate(
            method=request["method"],
            path=request["path"],
            query=_decode_query(request.get("query")),
            headers=request.get("headers") or {},
            body=request.get("body"),
            matching_rules=_decode_rules(request.get("matchingRules")),
        ),
        response=ResponseTemplate(
            status=response["status"],
            headers=response.get("headers") or {},
            body=response.get("body"),
            matching_rules=_decode_rules(response.get("matchingRules")),
        ),
    )


def from_dict(data: Any, source: Optional[str] = None) -> ContractDocument:
    if not isinstance(data, dict):
        raise MalformedDocument("Contract document must be a JSON object", source)
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise MalformedDocument("Contract metadata must be an object", source)
    version, metadata = _resolve_version(metadata, source)
    _validate_shape(data, source)

    interactions: List[Interaction] = []
    for index, raw in enumerate(data["interactions"]):
        try:
            interactions.append(interaction_from_dict(raw))
        except (ValidationError, InvalidPathExpression, ValueError) as e:
            raise MalformedDocument(
                f"Invalid interaction #{index} ({raw.get('description')!r}): {e}", source
            ) from e
    try:
        return ContractDocument(
            consumer_name=data["consumer"]["name"],
            provider_name=data["provider"]["name"],
            interactions=interactions,
            spec_version=version,
            metadata=metadata,
            extras={k: v for k, v in data.items() if k not in KNOWN_FIELDS},
        )
    except ValidationError as e:
        raise MalformedDocument(f"Invalid contract document: {e}", source) from e


def decode(raw: bytes | str, source: Optional[str] = None) -> ContractDocument:
    """Parse contract bytes; raises ``MalformedDocument`` (or ``UnsupportedSpecVersion``)."""
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedDocument(f"Contract is not valid JSON: {e}", source) from e
    document = from_dict(data, source)
    logger.debug(
        f"Decoded contract {document.consumer_name} -> {document.provider_name}",
        extra={"interactions": len(document.interactions), "spec_version": document.spec_version.value},
    )
    return document
