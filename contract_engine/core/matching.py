"""
Matcher engine.

``evaluate`` walks the expected tree depth-first and compares each node of the
actual tree under the most specific rule that applies to the node's path.
Nothing short-circuits: every divergence in the tree is reported in one pass.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .matchers import (
    ARRAY_MATCHERS,
    EachLikeMatcher,
    MinLengthMatcher,
    RegexMatcher,
    TypeMatcher,
)
from .paths import Token, child_field, child_index, parse_path, rule_weight
from .schemas import Mismatch, RequestTemplate, ResponseTemplate, normalize_multimap

logger = logging.getLogger(__name__)


def value_kind(value: Any) -> str:
    """Runtime shape of a JSON-like value; ints and floats are both ``number``."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


class RuleSet:
    """Parsed matching rules with most-specific-wins lookup."""

    def __init__(self, rules: Optional[Mapping[str, Any]] = None):
        self._rules: List[Tuple[Tuple[Token, ...], Any]] = [
            (parse_path(expression), matcher) for expression, matcher in (rules or {}).items()
        ]

    def __bool__(self) -> bool:
        return bool(self._rules)

    def lookup(self, tokens: Tuple[Token, ...]) -> Tuple[Optional[Any], bool]:
        """
        Return ``(matcher, inherited)`` for a node.

        Rules inherited from an ancestor cascade: type-like rules (type, min
        length, each-like) become a plain type rule for the descendant.
        """
        best = None
        best_weight = None
        for rule_tokens, matcher in self._rules:
            weight = rule_weight(rule_tokens, tokens)
            if weight is None:
                continue
            if best_weight is None or weight > best_weight:
                best, best_weight = matcher, weight
        if best is None:
            return None, False
        inherited = best_weight[0] < len(tokens)
        if inherited and isinstance(best, (TypeMatcher,) + ARRAY_MATCHERS):
            return TypeMatcher(), True
        return best, inherited


class _Evaluator:
    def __init__(self, rules: RuleSet, allow_unexpected_keys: bool):
        self.rules = rules
        self.allow_unexpected_keys = allow_unexpected_keys
        self.mismatches: List[Mismatch] = []

    def _mismatch(self, path: str, reason: str, expected: Any, actual: Any) -> None:
        self.mismatches.append(Mismatch(path=path, reason=reason, expected=expected, actual=actual))

    def compare(self, expected: Any, actual: Any, path: str, tokens: Tuple[Token, ...]) -> None:
        matcher, _ = self.rules.lookup(tokens)
        if isinstance(matcher, RegexMatcher):
            self._regex(matcher, actual, path)
        elif isinstance(matcher, MinLengthMatcher):
            self._min_length(matcher, expected, actual, path, tokens)
        elif isinstance(matcher, EachLikeMatcher):
            self._each_like(expected, actual, path, tokens)
        elif isinstance(matcher, TypeMatcher):
            self._type(expected, actual, path, tokens)
        else:
            self._equality(expected, actual, path, tokens)

    def _regex(self, matcher: RegexMatcher, actual: Any, path: str) -> None:
        if not isinstance(actual, str) or re.fullmatch(matcher.pattern, actual) is None:
            self._mismatch(path, "regex", matcher.pattern, actual)

    def _min_length(
        self, matcher: MinLengthMatcher, expected: Any, actual: Any, path: str, tokens: Tuple[Token, ...]
    ) -> None:
        if value_kind(actual) != "array":
            self._mismatch(path, "type", "array", actual)
            return
        if len(actual) < matcher.min:
            self._mismatch(path, "length", matcher.describe(), len(actual))
        self._elements_like(expected, actual, path, tokens)

    def _each_like(self, expected: Any, actual: Any, path: str, tokens: Tuple[Token, ...]) -> None:
        if value_kind(actual) != "array":
            self._mismatch(path, "type", "array", actual)
            return
        if value_kind(expected) != "array" or not expected:
            return
        for index, item in enumerate(actual):
            self.compare(expected[0], item, child_index(path, index), tokens + (index,))

    def _elements_like(self, expected: Any, actual: Sequence[Any], path: str, tokens: Tuple[Token, ...]) -> None:
        # element i is compared with example i when present, otherwise with example 0
        if value_kind(expected) != "array" or not expected:
            return
        for index, item in enumerate(actual):
            example = expected[index] if index < len(expected) else expected[0]
            self.compare(example, item, child_index(path, index), tokens + (index,))

    def _type(self, expected: Any, actual: Any, path: str, tokens: Tuple[Token, ...]) -> None:
        expected_kind = value_kind(expected)
        if expected_kind != value_kind(actual):
            self._mismatch(path, "type", expected_kind, actual)
            return
        if expected_kind == "object":
            self._objects(expected, actual, path, tokens)
        elif expected_kind == "array":
            self._elements_like(expected, actual, path, tokens)

    def _equality(self, expected: Any, actual: Any, path: str, tokens: Tuple[Token, ...]) -> None:
        expected_kind = value_kind(expected)
        if expected_kind != value_kind(actual):
            self._mismatch(path, "type", expected_kind, actual)
            return
        if expected_kind == "object":
            self._objects(expected, actual, path, tokens)
        elif expected_kind == "array":
            if len(expected) != len(actual):
                self._mismatch(path, "length", len(expected), len(actual))
            for index, (item_expected, item_actual) in enumerate(zip(expected, actual)):
                self.compare(item_expected, item_actual, child_index(path, index), tokens + (index,))
        elif expected != actual:
            self._mismatch(path, "value", expected, actual)

    def _objects(self, expected: Mapping, actual: Mapping, path: str, tokens: Tuple[Token, ...]) -> None:
        for key, item in expected.items():
            key_path = child_field(path, str(key))
            if key not in actual:
                self._mismatch(key_path, "missing", item, None)
                continue
            self.compare(item, actual[key], key_path, tokens + (str(key),))
        if not self.allow_unexpected_keys:
            for key, item in actual.items():
                if key not in expected:
                    self._mismatch(child_field(path, str(key)), "unexpected", None, item)


def evaluate(
    rules: Optional[Mapping[str, Any]],
    expected: Any,
    actual: Any,
    path: str = "$",
    allow_unexpected_keys: bool = True,
) -> List[Mismatch]:
    """
    Compare ``actual`` against ``expected`` under ``rules``.

    Args:
        rules: Matching rules keyed by path expression (``$.body.products[*].id``).
        expected: Expected tree carrying the example values.
        actual: Actual tree.
        path: Path expression of the roots being compared.
        allow_unexpected_keys: Tolerate object keys absent from ``expected``.
            Responses are additive, so this defaults to True; request bodies are
            checked strictly.

    Returns:
        Every mismatch found, in depth-first order. Empty means a match.
    """
    ruleset = rules if isinstance(rules, RuleSet) else RuleSet(rules)
    evaluator = _Evaluator(ruleset, allow_unexpected_keys)
    evaluator.compare(expected, actual, path, parse_path(path))
    return evaluator.mismatches


# HTTP message comparison ---------------------------------------------------------


def _join(values: Sequence[str]) -> str:
    return ", ".join(v.strip() for v in values)


def _parse_media_type(value: str) -> Tuple[str, Dict[str, str]]:
    parts = [p.strip() for p in value.split(";")]
    params: Dict[str, str] = {}
    for part in parts[1:]:
        if "=" in part:
            key, _, param = part.partition("=")
            params[key.strip().lower()] = param.strip().strip('"').lower()
    return parts[0].lower(), params


def _content_type_matches(expected: str, actual: str) -> bool:
    expected_type, expected_params = _parse_media_type(expected)
    actual_type, actual_params = _parse_media_type(actual)
    if expected_type != actual_type:
        return False
    return all(actual_params.get(key) == value for key, value in expected_params.items())


def _header_rules_by_name(rules: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Key header rules by lower-cased header name, whichever path form they were written in."""
    by_name: Dict[str, Any] = {}
    for expression, matcher in (rules or {}).items():
        tokens = parse_path(expression)
        if len(tokens) == 2 and tokens[0] == "headers" and isinstance(tokens[1], str):
            by_name[tokens[1].lower()] = matcher
    return by_name


def evaluate_headers(
    rules: Optional[Mapping[str, Any]],
    expected: Mapping[str, Sequence[str]],
    actual: Mapping[str, Sequence[str]],
) -> List[Mismatch]:
    """
    Compare expected headers (names case-insensitive); extra actual headers are fine.

    A rule at ``$.headers.<Name>`` applies to the comma-joined value, except the
    array matchers, which apply to the list of values.
    """
    header_rules = _header_rules_by_name(rules)
    actual_by_name = {name.lower(): list(values) for name, values in actual.items()}
    mismatches: List[Mismatch] = []

    for name, expected_values in expected.items():
        path = child_field("$.headers", name)
        actual_values = actual_by_name.get(name.lower())
        if actual_values is None:
            mismatches.append(Mismatch(path=path, reason="missing", expected=_join(expected_values), actual=None))
            continue

        matcher = header_rules.get(name.lower())
        if isinstance(matcher, ARRAY_MATCHERS):
            mismatches.extend(evaluate({path: matcher}, list(expected_values), actual_values, path))
        elif matcher is not None:
            mismatches.extend(evaluate({path: matcher}, _join(expected_values), _join(actual_values), path))
        elif name.lower() == "content-type":
            if not _content_type_matches(_join(expected_values), _join(actual_values)):
                mismatches.append(Mismatch(
                    path=path, reason="value", expected=_join(expected_values), actual=_join(actual_values)
                ))
        else:
            mismatches.extend(evaluate(None, _join(expected_values), _join(actual_values), path))
    return mismatches


def _compare_query(expected: Mapping[str, List[str]], actual: Mapping[str, List[str]]) -> List[Mismatch]:
    mismatches: List[Mismatch] = []
    for name, values in expected.items():
        path = child_field("$.query", name)
        if name not in actual:
            mismatches.append(Mismatch(path=path, reason="missing", expected=values, actual=None))
        elif list(actual[name]) != list(values):
            mismatches.append(Mismatch(path=path, reason="query", expected=values, actual=list(actual[name])))
    for name, values in actual.items():
        if name not in expected:
            mismatches.append(Mismatch(
                path=child_field("$.query", name), reason="unexpected", expected=None, actual=list(values)
            ))
    return mismatches


def compare_request(
    template: RequestTemplate,
    method: str,
    path: str,
    query: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, Any]] = None,
    body: Any = None,
) -> List[Mismatch]:
    """Judge an inbound request: method, path and query are literal, headers and body use rules."""
    mismatches: List[Mismatch] = []
    if method.upper() != template.method:
        mismatches.append(Mismatch(path="$.method", reason="method", expected=template.method, actual=method))
    if path != template.path:
        mismatches.append(Mismatch(path="$.path", reason="path", expected=template.path, actual=path))
    mismatches.extend(_compare_query(template.query, normalize_multimap(query)))
    mismatches.extend(evaluate_headers(template.rules_under("headers"), template.headers, normalize_multimap(headers)))
    if template.body is not None:
        mismatches.extend(evaluate(
            template.rules_under("body"), template.body, body, path="$.body", allow_unexpected_keys=False
        ))
    return mismatches


def compare_response(
    template: ResponseTemplate,
    status: int,
    headers: Optional[Mapping[str, Any]] = None,
    body: Any = None,
) -> List[Mismatch]:
    """Judge an actual provider response against the recorded response template."""
    mismatches: List[Mismatch] = []
    if status != template.status:
        mismatches.append(Mismatch(path="$.status", reason="status", expected=template.status, actual=status))
    mismatches.extend(evaluate_headers(template.rules_under("headers"), template.headers, normalize_multimap(headers)))
    if template.body is not None:
        mismatches.extend(evaluate(template.rules_under("body"), template.body, body, path="$.body"))
    if mismatches:
        logger.debug("Response mismatches", extra={"count": len(mismatches)})
    return mismatches
