"""Turn groups of selector occurrences into absent-data alert rules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from tools.absent_alerts.errors import report_error
from tools.absent_alerts.promql import PromDuration, Selector
from tools.absent_alerts.selectors import SelectorOccurrence
from tools.absent_alerts.settings import ALERT_LABELS, GROUP_NAME, MINIMUM_FOR, TOOL_NAME

_MATCH_OP_NAMES: Dict[str, str] = {
    "=": "equal",
    "!=": "notequal",
    "=~": "regexequal",
    "!~": "regexnotequal",
}
_NOT_ALLOWED_IN_NAME_RE = re.compile(r"[^a-zA-Z0-9_:]")


@dataclass(frozen=True)
class AbsentAlertRule:
    name: str
    expr: str
    selector_expr: str
    duration: PromDuration
    labels: Dict[str, str]

    @property
    def annotations(self) -> Dict[str, str]:
        return {
            "summary": f"No data for '{self.selector_expr}'",
            "description": (
                f"No data for '{self.selector_expr}'. This alert rule was generated by {TOOL_NAME}."
            ),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert": self.name,
            "expr": self.expr,
            "for": str(self.duration),
            "labels": dict(sorted(self.labels.items())),
            "annotations": dict(sorted(self.annotations.items())),
        }


def wrap_selector_in_absent(selector: Selector) -> str:
    """Wrap ``selector`` in ``absent_over_time`` when it has a range, else ``absent``."""

    function_name = "absent_over_time" if selector.range is not None else "absent"
    return f"{function_name}({selector})"


def build_absent_alert_name(selector: Selector, errors: Optional[List[str]] = None) -> str:
    """Build an alert name from every part of the selector.

    The result is ``absent`` followed by the metric, each label matcher, the
    range and the offset, joined with underscores. Label values lose every
    character that is not allowed in a name, so distinct values can end up
    with the same name.
    """

    if selector.metric:
        metric = f"_{selector.metric}"
    else:
        report_error(errors, f"Found selector with no metric: '{selector}'")
        metric = "_"
    labels = "_".join(
        f"{label.key}_{_MATCH_OP_NAMES[label.op]}_{_NOT_ALLOWED_IN_NAME_RE.sub('_', label.value)}"
        for label in selector.labels
    )
    if labels:
        labels = f"_{labels}"
    range_part = f"_{selector.range}" if selector.range is not None else ""
    offset_part = ""
    if selector.offset is not None:
        offset_part = f"_offset_{_NOT_ALLOWED_IN_NAME_RE.sub('_', str(selector.offset))}"
    return f"absent{metric}{labels}{range_part}{offset_part}"


def merge_for_durations(
    occurrences: Sequence[SelectorOccurrence],
    errors: Optional[List[str]] = None,
) -> PromDuration:
    """Pick the ``for`` of the absent alert from the rules using the selector.

    The shortest declared ``for`` wins unless it is shorter than an hour.
    """

    durations: List[PromDuration] = []
    for occurrence in occurrences:
        declared = occurrence.rule.fields.get("for")
        if declared is None:
            continue
        try:
            durations.append(PromDuration.parse(str(declared)))
        except ValueError as exc:
            where = f" in {occurrence.source}" if occurrence.source is not None else ""
            report_error(errors, f"Invalid 'for' field in rule '{occurrence.rule.name}'{where}: {exc}")
    if not durations:
        return MINIMUM_FOR
    shortest = min(durations, key=lambda duration: duration.milliseconds)
    if shortest.milliseconds > MINIMUM_FOR.milliseconds:
        return shortest
    return MINIMUM_FOR


def merge_occurrences_into_rule(
    occurrences: Sequence[SelectorOccurrence],
    playbook_link: Optional[str] = None,
    errors: Optional[List[str]] = None,
) -> AbsentAlertRule:
    if not occurrences:
        raise ValueError("cannot build an absent alert from an empty selector group")
    selector = occurrences[0].selector
    labels = dict(ALERT_LABELS)
    if playbook_link:
        labels["playbook"] = playbook_link
    return AbsentAlertRule(
        name=build_absent_alert_name(selector, errors),
        expr=wrap_selector_in_absent(selector),
        selector_expr=str(selector),
        duration=merge_for_durations(occurrences, errors),
        labels=labels,
    )


def build_rules_document(rules: Sequence[AbsentAlertRule]) -> Dict[str, Any]:
    return {"groups": [{"name": GROUP_NAME, "rules": [rule.to_dict() for rule in rules]}]}
