"""
JSONPath-like expressions used as matching-rule keys.

Supported grammar: ``$`` followed by any number of ``.field``, ``['quoted field']``,
``.*``, ``[*]`` and ``[n]`` segments.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional, Tuple, Union

from .exceptions import InvalidPathExpression


class Wildcard:
    __slots__ = ()

    def __repr__(self) -> str:
        return "*"


WILDCARD = Wildcard()

# A field name (str), an array index (int) or WILDCARD.
Token = Union[str, int, Wildcard]

_PLAIN_FIELD = re.compile(r"[^.\[\]'\s]+")
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*\Z")


@lru_cache(maxsize=4096)
def parse_path(expression: str) -> Tuple[Token, ...]:
    if not isinstance(expression, str) or not expression.startswith("$"):
        raise InvalidPathExpression(str(expression), "must start with '$'")

    tokens: list = []
    pos = 1
    length = len(expression)
    while pos < length:
        char = expression[pos]
        if char == ".":
            pos += 1
            if pos < length and expression[pos] == "*":
                tokens.append(WILDCARD)
                pos += 1
                continue
            match = _PLAIN_FIELD.match(expression, pos)
            if not match:
                raise InvalidPathExpression(expression, f"expected a field name at offset {pos}")
            tokens.append(match.group(0))
            pos = match.end()
        elif char == "[":
            close = expression.find("]", pos)
            if close == -1:
                raise InvalidPathExpression(expression, f"unterminated '[' at offset {pos}")
            inner = expression[pos + 1:close]
            if inner == "*":
                tokens.append(WILDCARD)
            elif inner.isdigit():
                tokens.append(int(inner))
            elif len(inner) >= 2 and inner[0] == inner[-1] == "'":
                name = inner[1:-1]
                if not name or "'" in name:
                    raise InvalidPathExpression(expression, f"bad quoted field {inner}")
                tokens.append(name)
            else:
                raise InvalidPathExpression(expression, f"unsupported segment [{inner}]")
            pos = close + 1
        else:
            raise InvalidPathExpression(expression, f"unexpected character {char!r} at offset {pos}")
    return tuple(tokens)


def format_token(token: Token) -> str:
    if isinstance(token, Wildcard):
        return "[*]"
    if isinstance(token, int):
        return f"[{token}]"
    if _IDENTIFIER.match(token):
        return f".{token}"
    return f"['{token}']"


def format_path(tokens: Tuple[Token, ...]) -> str:
    return "$" + "".join(format_token(t) for t in tokens)


def child_field(path: str, name: str) -> str:
    return path + format_token(name)


def child_index(path: str, index: int) -> str:
    return f"{path}[{index}]"


def is_valid_path(expression: str) -> bool:
    try:
        parse_path(expression)
    except InvalidPathExpression:
        return False
    return True


def rule_weight(rule_tokens: Tuple[Token, ...], node_tokens: Tuple[Token, ...]) -> Optional[Tuple[int, int]]:
    """
    Score how specifically a rule path addresses a node path.

    A rule applies when its tokens match the node's tokens or a prefix of them.
    Returns ``(depth, exact_tokens)`` so that deeper rules beat ancestor rules
    and, at the same depth, exact segments beat wildcards. ``None`` means the
    rule does not apply.
    """
    if len(rule_tokens) > len(node_tokens):
        return None
    exact = 0
    for rule_token, node_token in zip(rule_tokens, node_tokens):
        if isinstance(rule_token, Wildcard):
            continue
        if type(rule_token) is not type(node_token) or rule_token != node_token:
            return None
        exact += 1
    return len(rule_tokens), exact
