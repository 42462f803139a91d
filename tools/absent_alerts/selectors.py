from __future__ import annotations

import itertools
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from tools.absent_alerts.promql import PromQLError, Selector, as_selector, node_type

_LEAF_NODES = frozenset({"NumberLiteral", "StringLiteral"})


@dataclass(frozen=True)
class PrometheusRule:
    """A rule as declared in a rules file.

    Every rule has an ``expr``; the remaining fields depend on whether it is
    an alerting or a recording rule so they are kept as an open mapping.
    """

    expr: str
    fields: Dict[str, Any]

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "PrometheusRule":
        fields = {key: value for key, value in data.items() if key != "expr"}
        return cls(expr=str(data["expr"]), fields=fields)

    @property
    def name(self) -> str:
        return str(self.fields.get("alert") or self.fields.get("record") or "<unnamed>")


@dataclass(frozen=True)
class SelectorOccurrence:
    selector: Selector
    rule: PrometheusRule
    source: Optional[Path] = None

    def sort_key(self) -> str:
        return canonical_key(self.selector)


SelectorGroup = Tuple[str, List[SelectorOccurrence]]


def canonical_key(selector: Selector) -> str:
    """Identity of a selector: its rendered text."""

    return str(selector)


def child_nodes(node: Any) -> List[Any]:
    """Sub-expressions of a ``promql_parser`` node, in source order."""

    kind = node_type(node)
    if kind in _LEAF_NODES or kind in ("VectorSelector", "MatrixSelector"):
        return []
    if kind == "BinaryExpr":
        return [node.lhs, node.rhs]
    if kind in ("ParenExpr", "UnaryExpr", "SubqueryExpr"):
        return [node.expr]
    if kind == "AggregateExpr":
        # topk(5, x) and friends: the parameter comes first.
        return [node.expr] if node.param is None else [node.param, node.expr]
    if kind == "Call":
        return list(node.args)
    raise PromQLError(f"unsupported expression node '{kind}'")


def selectors_in_expression(expression: Any) -> List[Selector]:
    """Return every selector in ``expression``, left to right, duplicates kept."""

    selector = as_selector(expression)
    if selector is not None:
        return [selector]
    selectors: List[Selector] = []
    for child in child_nodes(expression):
        selectors.extend(selectors_in_expression(child))
    return selectors


def group_occurrences(
    occurrences: Iterable[SelectorOccurrence],
    ignored: Optional[Set[str]] = None,
) -> List[SelectorGroup]:
    """Group occurrences by canonical key, in key order, skipping ignored keys."""

    ignored = ignored or set()
    ordered = sorted(occurrences, key=lambda occurrence: occurrence.sort_key())
    groups: List[SelectorGroup] = []
    for key, members in itertools.groupby(ordered, key=lambda occurrence: occurrence.sort_key()):
        if key in ignored:
            continue
        groups.append((key, list(members)))
    return groups


def parse_ignore_list(lines: Sequence[str]) -> Set[str]:
    return {line for line in lines if not line.strip().startswith("#")}


def load_ignore_file(path: Path) -> Set[str]:
    """Load the canonical selectors to skip, one per line, ``#`` for comments."""

    with path.open("r", encoding="utf-8") as handle:
        return parse_ignore_list(handle.read().splitlines())
