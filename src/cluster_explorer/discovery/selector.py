"""Label selector parsing and evaluation.

Implements the Kubernetes label selector grammar::

    app=web,tier!=cache,env in (prod,staging),!legacy,team

Requirements are joined by AND. Parsing is atomic: either the whole text is
accepted or :class:`SelectorParseError` names the offending fragment.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from cluster_explorer.discovery.exceptions import SelectorParseError

_NAME = r"[A-Za-z0-9]([A-Za-z0-9_.-]*[A-Za-z0-9])?"
_KEY_RE = re.compile(rf"^([a-z0-9]([a-z0-9.-]*[a-z0-9])?/)?{_NAME}$")
_VALUE_RE = re.compile(rf"^{_NAME}$")
_SET_RE = re.compile(r"^(?P<key>\S+?)\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$")
_SET_OPERATOR_RE = re.compile(r"\s(in|notin)(\s|\()")


class SelectorOperator(StrEnum):
    """Label selector requirement operators."""

    EQUALS = "="
    NOT_EQUALS = "!="
    EXISTS = "exists"
    NOT_EXISTS = "!"
    IN = "in"
    NOT_IN = "notin"


@dataclass(frozen=True)
class SelectorRequirement:
    """A single ``key <op> values`` requirement."""

    key: str
    operator: SelectorOperator
    values: frozenset[str] = field(default_factory=frozenset)

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        match self.operator:
            case SelectorOperator.EQUALS:
                return present and labels[self.key] in self.values
            case SelectorOperator.NOT_EQUALS:
                return not present or labels[self.key] not in self.values
            case SelectorOperator.EXISTS:
                return present
            case SelectorOperator.NOT_EXISTS:
                return not present
            case SelectorOperator.IN:
                return present and labels[self.key] in self.values
            case SelectorOperator.NOT_IN:
                return not present or labels[self.key] not in self.values
        return False

    def __str__(self) -> str:
        match self.operator:
            case SelectorOperator.EQUALS | SelectorOperator.NOT_EQUALS:
                return f"{self.key}{self.operator.value}{next(iter(self.values))}"
            case SelectorOperator.EXISTS:
                return self.key
            case SelectorOperator.NOT_EXISTS:
                return f"!{self.key}"
        return f"{self.key} {self.operator.value} ({','.join(sorted(self.values))})"


@dataclass(frozen=True)
class LabelSelector:
    """An ordered conjunction of requirements. The empty selector matches everything."""

    requirements: tuple[SelectorRequirement, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.requirements

    @property
    def fingerprint(self) -> str:
        """Canonical form, independent of requirement order in the source text."""
        return ",".join(sorted({str(r) for r in self.requirements}))

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        labels = labels or {}
        return all(r.matches(labels) for r in self.requirements)

    def to_query(self) -> str:
        """Selector text suitable for the API server's ``labelSelector`` parameter."""
        return self.fingerprint

    @classmethod
    def from_match_labels(cls, match_labels: Mapping[str, str] | None) -> LabelSelector:
        """Equality selector built from a ``matchLabels`` style mapping."""
        return cls(
            tuple(
                SelectorRequirement(key, SelectorOperator.EQUALS, frozenset({value}))
                for key, value in sorted((match_labels or {}).items())
            )
        )

    def __str__(self) -> str:
        return ",".join(str(r) for r in self.requirements)


def parse(text: str | None) -> LabelSelector:
    """Parse selector text.

    Raises:
        SelectorParseError: If any requirement is malformed.
    """
    if text is None or not text.strip():
        return LabelSelector()
    return LabelSelector(
        tuple(_parse_requirement(segment) for segment in _split(text) if segment)
    )


def matches(selector: LabelSelector | None, labels: Mapping[str, str] | None) -> bool:
    """Whether ``labels`` satisfy every requirement of ``selector``."""
    if selector is None:
        return True
    return selector.matches(labels)


def _split(text: str) -> list[str]:
    """Split on commas outside parentheses, stripping each segment."""
    segments: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise SelectorParseError(text.strip(), "unmatched closing parenthesis")
        if ch == "," and depth == 0:
            segments.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if depth != 0:
        raise SelectorParseError(text.strip(), "unmatched opening parenthesis")
    segments.append("".join(current).strip())
    return segments


def _check_key(key: str, fragment: str) -> str:
    if not key:
        raise SelectorParseError(fragment, "empty key")
    if not _KEY_RE.match(key):
        raise SelectorParseError(fragment, f"invalid key '{key}'")
    return key


def _check_value(value: str, fragment: str) -> str:
    if not value:
        raise SelectorParseError(fragment, "empty value")
    if not _VALUE_RE.match(value):
        raise SelectorParseError(fragment, f"invalid value '{value}'")
    return value


def _parse_requirement(fragment: str) -> SelectorRequirement:
    if _SET_OPERATOR_RE.search(fragment):
        return _parse_set_requirement(fragment)

    if fragment.startswith("!"):
        if "=" in fragment:
            raise SelectorParseError(fragment, "unknown operator")
        return SelectorRequirement(
            _check_key(fragment[1:].strip(), fragment), SelectorOperator.NOT_EXISTS
        )

    for token, operator in (
        ("!=", SelectorOperator.NOT_EQUALS),
        ("==", SelectorOperator.EQUALS),
        ("=", SelectorOperator.EQUALS),
    ):
        if token in fragment:
            key, _, value = fragment.partition(token)
            return SelectorRequirement(
                _check_key(key.strip(), fragment),
                operator,
                frozenset({_check_value(value.strip(), fragment)}),
            )

    if not _KEY_RE.match(fragment):
        raise SelectorParseError(fragment, "unknown operator")
    return SelectorRequirement(fragment, SelectorOperator.EXISTS)


def _parse_set_requirement(fragment: str) -> SelectorRequirement:
    match = _SET_RE.match(fragment)
    if match is None:
        raise SelectorParseError(fragment, "values must be a parenthesised list")
    key = _check_key(match.group("key"), fragment)
    raw_values = [v.strip() for v in match.group("values").split(",")]
    if not any(raw_values):
        raise SelectorParseError(fragment, "empty values list")
    values = frozenset(_check_value(v, fragment) for v in raw_values)
    operator = SelectorOperator.IN if match.group("op") == "in" else SelectorOperator.NOT_IN
    return SelectorRequirement(key, operator, values)
