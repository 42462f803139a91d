from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from tools.absent_alerts.errors import report_error
from tools.absent_alerts.promql import PromQLError, Selector, as_selector, parse_expr
from tools.absent_alerts.selectors import PrometheusRule, SelectorOccurrence, selectors_in_expression
from tools.absent_alerts.settings import TOOL_NAME

logger = logging.getLogger(__name__)

RuleGroups = List[Dict[str, Any]]

GENERATED_HEADER = f"# DO NOT MODIFY THIS FILE BY HAND. It was generated by {TOOL_NAME}.\n"


class RuleFileError(ValueError):
    pass


def _extract_groups(data: Any, source: Path) -> RuleGroups:
    if not isinstance(data, dict):
        raise RuleFileError(f"{source} is not a rules document")
    if "groups" in data:
        groups = data["groups"]
    else:
        spec = data.get("spec")
        groups = spec.get("groups") if isinstance(spec, dict) else None
    if not isinstance(groups, list):
        raise RuleFileError(f"{source} is missing a groups list")
    return groups


def load_rules(path: Path) -> List[PrometheusRule]:
    """Load every rule of every group in the rules file at ``path``."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise RuleFileError(f"failed to read the rules file at {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise RuleFileError(f"{path} is not valid YAML: {exc}") from exc

    rules: List[PrometheusRule] = []
    for group in _extract_groups(data, path):
        if not isinstance(group, dict) or not isinstance(group.get("rules"), list):
            raise RuleFileError(f"{path} group missing rules array")
        for rule in group["rules"]:
            if not isinstance(rule, dict) or not isinstance(rule.get("expr"), (str, int, float)):
                raise RuleFileError(f"{path} group '{group.get('name', '<unknown>')}' has a rule without an expr")
            rules.append(PrometheusRule.from_mapping(rule))
    return rules


def selectors_in_rule(
    rule: PrometheusRule,
    errors: Optional[List[str]] = None,
    source: Optional[Path] = None,
) -> List[Selector]:
    """Selectors used by ``rule``, plus the series a recording rule defines."""

    where = f" in {source}" if source is not None else ""
    try:
        selectors = selectors_in_expression(parse_expr(rule.expr))
    except PromQLError as exc:
        report_error(errors, f"Failed to parse expression '{rule.expr}'{where}: {exc}")
        return []

    # Recorded series may only be read outside Prometheus (dashboards), so
    # they need absent alerts even when no other rule uses them.
    record = rule.fields.get("record")
    if isinstance(record, str):
        try:
            recorded = as_selector(parse_expr(record))
        except PromQLError as exc:
            report_error(errors, f"Failed to parse record name '{record}'{where}: {exc}")
        else:
            if recorded is not None:
                selectors.append(recorded)
            else:
                report_error(errors, f"Expected record name '{record}'{where} to be a selector")
    return selectors


def get_selectors_in_file(path: Path, errors: Optional[List[str]] = None) -> List[SelectorOccurrence]:
    occurrences: List[SelectorOccurrence] = []
    for rule in load_rules(path):
        for selector in selectors_in_rule(rule, errors, source=path):
            occurrences.append(SelectorOccurrence(selector=selector, rule=rule, source=path))
    logger.debug("Found %d selector(s) in %s", len(occurrences), path)
    return occurrences


def render_rules_file(document: Dict[str, Any]) -> str:
    return GENERATED_HEADER + yaml.safe_dump(document, sort_keys=False, allow_unicode=True)


def write_rules_file(path: Path, document: Dict[str, Any]) -> None:
    """Replace ``path`` atomically with the rendered ``document``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_handle = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    )
    try:
        with tmp_handle:
            tmp_handle.write(render_rules_file(document))
        os.replace(tmp_handle.name, path)
    except Exception:
        os.unlink(tmp_handle.name)
        raise
