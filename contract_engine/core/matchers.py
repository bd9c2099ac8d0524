"""
Matching rules and the consumer-side DSL that produces them.

The rule types (``EqualityMatcher`` ... ``EachLikeMatcher``) are what a contract
stores. The DSL values (``Like``, ``Term``, ``EachLike``, ``Equals``) wrap an
example value inside a request/response template; the interaction builder turns
them into a literal example plus a rule keyed by the value's path.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Rule(BaseModel):
    model_config = ConfigDict(frozen=True)

    def describe(self) -> str:
        return self.kind  # type: ignore[attr-defined]


class EqualityMatcher(_Rule):
    kind: Literal["equality"] = "equality"


class TypeMatcher(_Rule):
    kind: Literal["type"] = "type"


class RegexMatcher(_Rule):
    kind: Literal["regex"] = "regex"
    pattern: str

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regular expression {value!r}: {e}") from e
        return value

    def describe(self) -> str:
        return f"regex {self.pattern}"


class MinLengthMatcher(_Rule):
    kind: Literal["min"] = "min"
    min: int = Field(1, ge=1)

    def describe(self) -> str:
        return f"array with at least {self.min} element(s)"


class EachLikeMatcher(_Rule):
    kind: Literal["eachLike"] = "eachLike"

    def describe(self) -> str:
        return "array of elements like the example"


Matcher = Annotated[
    Union[EqualityMatcher, TypeMatcher, RegexMatcher, MinLengthMatcher, EachLikeMatcher],
    Field(discriminator="kind"),
]

ARRAY_MATCHERS = (MinLengthMatcher, EachLikeMatcher)


def matcher_to_json(matcher: Any) -> Dict[str, Any]:
    """Wire form of a single matcher (shared by every spec version)."""
    if isinstance(matcher, EqualityMatcher):
        return {"match": "equality"}
    if isinstance(matcher, TypeMatcher):
        return {"match": "type"}
    if isinstance(matcher, RegexMatcher):
        return {"match": "regex", "regex": matcher.pattern}
    if isinstance(matcher, MinLengthMatcher):
        return {"match": "type", "min": matcher.min}
    if isinstance(matcher, EachLikeMatcher):
        return {"match": "type", "min": 0}
    raise TypeError(f"Not a matcher: {matcher!r}")


def matcher_from_json(data: Dict[str, Any]):
    """Inverse of :func:`matcher_to_json`; raises ``ValueError`` on unknown shapes."""
    if not isinstance(data, dict):
        raise ValueError(f"matcher must be an object, got {type(data).__name__}")
    match = data.get("match")
    if match is None and "regex" in data:
        match = "regex"
    if match is None and "min" in data:
        match = "type"
    if match == "equality":
        return EqualityMatcher()
    if match == "regex":
        if "regex" not in data:
            raise ValueError("regex matcher without a 'regex' pattern")
        return RegexMatcher(pattern=data["regex"])
    if match == "type":
        if "min" not in data:
            return TypeMatcher()
        minimum = data["min"]
        if not isinstance(minimum, int) or isinstance(minimum, bool) or minimum < 0:
            raise ValueError(f"invalid 'min' value {minimum!r}")
        return EachLikeMatcher() if minimum == 0 else MinLengthMatcher(min=minimum)
    raise ValueError(f"unsupported matcher {data!r}")


# Consumer DSL -----------------------------------------------------------------


class Like:
    """Match by type; the example is what the mock returns and what the contract records."""

    def __init__(self, example: Any):
        self.example = example

    def rule(self):
        return TypeMatcher()

    def __repr__(self) -> str:
        return f"Like({self.example!r})"


SomethingLike = Like


class Term:
    """Match a string against ``regex``; ``example`` must itself match."""

    def __init__(self, regex: str, example: str):
        if not isinstance(example, str) or re.fullmatch(regex, example) is None:
            raise ValueError(f"Example {example!r} does not match regex {regex!r}")
        self.regex = regex
        self.example = example

    def rule(self):
        return RegexMatcher(pattern=self.regex)

    def __repr__(self) -> str:
        return f"Term({self.regex!r}, {self.example!r})"


class EachLike:
    """
    An array whose elements all look like ``example``.

    ``minimum`` >= 1 records an ArrayMinLength rule and repeats the example that
    many times; ``minimum=0`` records an ArrayEachLike rule with a single example.
    """

    def __init__(self, example: Any, minimum: int = 1):
        if minimum < 0:
            raise ValueError("minimum must be >= 0")
        self.example = example
        self.minimum = minimum

    def rule(self):
        return MinLengthMatcher(min=self.minimum) if self.minimum else EachLikeMatcher()

    def __repr__(self) -> str:
        return f"EachLike({self.example!r}, minimum={self.minimum})"


class Equals:
    """Force exact equality, overriding a type rule inherited from an enclosing ``Like``."""

    def __init__(self, value: Any):
        self.example = value

    def rule(self):
        return EqualityMatcher()

    def __repr__(self) -> str:
        return f"Equals({self.example!r})"


DSL_TYPES = (Like, Term, EachLike, Equals)
