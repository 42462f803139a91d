"""PromQL parsing and the canonical selector form used for grouping and naming.

Expressions are parsed with ``promql_parser``. Every vector or range selector
found in the tree is converted into a :class:`Selector`, a small frozen value
that renders back to PromQL with ``str()``. The rendered text keeps the
authored order of label matchers, so two selectors render to the same text
exactly when they select the same series the same way.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import promql_parser

UNIT_MILLISECONDS: Dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
    "y": 365 * 24 * 60 * 60 * 1000,
}

# Largest unit first, so a parsed duration renders in the shortest form.
_RENDER_UNITS = ("y", "w", "d", "h", "m", "s")

# promql_parser renders match operators as ``MatchOp.<Name>``.
MATCH_OPERATORS: Dict[str, str] = {
    "Equal": "=",
    "NotEqual": "!=",
    "Re": "=~",
    "NotRe": "!~",
}

_DURATION_RE = re.compile(r"([0-9]+)(ms|[smhdwy])")


class PromQLError(ValueError):
    pass


@dataclass(frozen=True)
class PromDuration:
    """A single-unit Prometheus duration such as ``5m`` or ``1h``.

    ``str()`` gives back the magnitude and unit. Durations parsed from an
    expression are stored in the largest unit that divides them, so
    ``[1h30m]`` and ``[90m]`` become the same ``90m``.
    """

    magnitude: int
    unit: str

    def __post_init__(self) -> None:
        if self.unit not in UNIT_MILLISECONDS:
            raise ValueError(f"unknown duration unit '{self.unit}'")

    @classmethod
    def parse(cls, text: str) -> "PromDuration":
        match = _DURATION_RE.fullmatch(text)
        if match is None:
            raise ValueError(f"invalid duration '{text}', expected an unsigned integer followed by a unit such as '5m'")
        return cls(int(match.group(1)), match.group(2))

    @classmethod
    def from_timedelta(cls, value: timedelta) -> "PromDuration":
        total = value // timedelta(milliseconds=1)
        if total == 0:
            return cls(0, "s")
        for unit in _RENDER_UNITS:
            if total % UNIT_MILLISECONDS[unit] == 0:
                return cls(total // UNIT_MILLISECONDS[unit], unit)
        return cls(total, "ms")

    @property
    def milliseconds(self) -> int:
        return self.magnitude * UNIT_MILLISECONDS[self.unit]

    def __str__(self) -> str:
        return f"{self.magnitude}{self.unit}"


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


@dataclass(frozen=True)
class LabelMatcher:
    key: str
    op: str
    value: str

    def __str__(self) -> str:
        return f"{self.key}{self.op}{_quote(self.value)}"


@dataclass(frozen=True)
class Selector:
    metric: Optional[str] = None
    labels: Tuple[LabelMatcher, ...] = ()
    range: Optional[PromDuration] = None
    offset: Optional[PromDuration] = None

    def __str__(self) -> str:
        text = self.metric or ""
        if self.labels:
            text += "{" + ",".join(str(label) for label in self.labels) + "}"
        if self.range is not None:
            text += f"[{self.range}]"
        if self.offset is not None:
            text += f" offset {self.offset}"
        return text


def parse_expr(text: str) -> Any:
    """Parse ``text`` into a ``promql_parser`` expression tree."""

    try:
        return promql_parser.parse(text)
    except ValueError as exc:
        raise PromQLError(str(exc)) from exc


def node_type(node: Any) -> str:
    return type(node).__name__


def _op_name(matcher: Any) -> str:
    return str(matcher.op).rsplit(".", 1)[-1]


def _label_matcher(matcher: Any) -> LabelMatcher:
    op_name = _op_name(matcher)
    if op_name not in MATCH_OPERATORS:
        raise PromQLError(f"unsupported label match operator '{matcher.op}'")
    return LabelMatcher(matcher.name, MATCH_OPERATORS[op_name], matcher.value)


def as_selector(node: Any) -> Optional[Selector]:
    """Convert a ``VectorSelector`` or ``MatrixSelector`` node, ``None`` for anything else."""

    kind = node_type(node)
    if kind == "MatrixSelector":
        vector, range_ = node.vector_selector, PromDuration.from_timedelta(node.range)
    elif kind == "VectorSelector":
        vector, range_ = node, None
    else:
        return None

    if getattr(vector, "at", None) is not None:
        raise PromQLError(f"the @ modifier is not supported, found it on '{vector.name}'")
    matchers = vector.matchers
    if getattr(matchers, "or_matchers", None):
        raise PromQLError(f"'or' inside label matchers is not supported, found it on '{vector.name}'")
    labels = tuple(
        _label_matcher(matcher)
        for matcher in matchers.matchers
        # The metric name may also be listed as a __name__ matcher.
        if not (vector.name and matcher.name == "__name__" and _op_name(matcher) == "Equal")
    )
    offset = PromDuration.from_timedelta(vector.offset) if vector.offset is not None else None
    return Selector(vector.name or None, labels, range_, offset)
