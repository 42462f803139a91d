#!/usr/bin/env python3
"""Print the syntax tree of a PromQL expression, to debug selector extraction."""

from __future__ import annotations

import argparse
import sys
from typing import Any, List, Optional, Sequence

from tools.absent_alerts.promql import PromQLError, as_selector, node_type, parse_expr
from tools.absent_alerts.selectors import canonical_key, child_nodes, selectors_in_expression


def describe_tree(node: Any, depth: int = 0) -> List[str]:
    """One line per node, indented by depth; selectors show their canonical form."""

    line = "  " * depth + node_type(node)
    selector = as_selector(node)
    if selector is not None:
        return [f"{line} {canonical_key(selector)}"]
    if node_type(node) == "Call":
        line += f" {node.func.name}"
    lines = [line]
    for child in child_nodes(node):
        lines.extend(describe_tree(child, depth + 1))
    return lines


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("expression", help="PromQL expression to parse")
    parser.add_argument(
        "--selectors",
        action="store_true",
        help="Print the canonical selectors found in the expression instead of the tree",
    )
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    try:
        expression = parse_expr(args.expression)
        if args.selectors:
            lines = [canonical_key(selector) for selector in selectors_in_expression(expression)]
        else:
            lines = describe_tree(expression)
    except PromQLError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    for line in lines:
        print(line)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
