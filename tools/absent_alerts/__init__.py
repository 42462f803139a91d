"""Absent-data alert generation for Prometheus rule files."""

from .errors import GeneratorError
from .generate import generate_absent_rules, process_rules_dir
from .promql import PromDuration, PromQLError, Selector, parse_expr
from .rules import (
    AbsentAlertRule,
    build_absent_alert_name,
    merge_for_durations,
    merge_occurrences_into_rule,
    wrap_selector_in_absent,
)
from .selectors import (
    PrometheusRule,
    SelectorOccurrence,
    canonical_key,
    group_occurrences,
    selectors_in_expression,
)
from .settings import GeneratorSettings

__all__ = [
    "AbsentAlertRule",
    "GeneratorError",
    "GeneratorSettings",
    "PromDuration",
    "PromQLError",
    "PrometheusRule",
    "Selector",
    "SelectorOccurrence",
    "build_absent_alert_name",
    "canonical_key",
    "generate_absent_rules",
    "group_occurrences",
    "merge_for_durations",
    "merge_occurrences_into_rule",
    "parse_expr",
    "process_rules_dir",
    "selectors_in_expression",
    "wrap_selector_in_absent",
]
