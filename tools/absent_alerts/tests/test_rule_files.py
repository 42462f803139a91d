from __future__ import annotations

import textwrap
from pathlib import Path
from typing import List

import pytest
import yaml

from tools.absent_alerts import rule_files
from tools.absent_alerts.rule_files import (
    GENERATED_HEADER,
    RuleFileError,
    get_selectors_in_file,
    load_rules,
    render_rules_file,
    selectors_in_rule,
    write_rules_file,
)
from tools.absent_alerts.selectors import PrometheusRule

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures" / "rules"


def _write(path: Path, content: str) -> Path:
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


def test_get_selectors_in_file_includes_recorded_series() -> None:
    occurrences = get_selectors_in_file(FIXTURES / "node.rules.yml")

    assert sorted(str(occurrence.selector) for occurrence in occurrences) == [
        "a_recording:cpu",
        'node_cpu_seconds_total{mode!="idle"}[1m]',
        'node_load1{box_type="data-warehouse"}',
    ]
    assert {occurrence.source for occurrence in occurrences} == {FIXTURES / "node.rules.yml"}
    by_selector = {str(occurrence.selector): occurrence.rule for occurrence in occurrences}
    assert by_selector['node_load1{box_type="data-warehouse"}'].fields["for"] == "30m"
    assert by_selector["a_recording:cpu"].name == "a_recording:cpu"


def test_load_rules_accepts_prometheus_operator_documents(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "operator.rules.yml",
        """
        apiVersion: monitoring.coreos.com/v1
        kind: PrometheusRule
        metadata:
          name: example
        spec:
          groups:
            - name: example
              rules:
                - alert: AlwaysOne
                  expr: 1
                - alert: Down
                  expr: up == 0
        """,
    )

    rules = load_rules(path)

    assert [rule.expr for rule in rules] == ["1", "up == 0"]
    assert [rule.name for rule in rules] == ["AlwaysOne", "Down"]


@pytest.mark.parametrize(
    "content",
    [
        "groups: [unterminated\n",
        "- just\n- a\n- list\n",
        "spec: nothing\n",
        "groups:\n  - name: no-rules\n",
        "groups:\n  - name: missing-expr\n    rules:\n      - alert: NoExpr\n",
    ],
)
def test_load_rules_rejects_malformed_documents(tmp_path: Path, content: str) -> None:
    path = _write(tmp_path / "broken.rules.yml", content)
    with pytest.raises(RuleFileError):
        load_rules(path)


def test_load_rules_reports_unreadable_file(tmp_path: Path) -> None:
    with pytest.raises(RuleFileError, match="failed to read"):
        load_rules(tmp_path / "missing.rules.yml")


def test_selectors_in_rule_reports_parse_failures(tmp_path: Path) -> None:
    errors: List[str] = []
    source = tmp_path / "bad.rules.yml"

    selectors = selectors_in_rule(PrometheusRule(expr="rate(foo[5m]", fields={"alert": "Bad"}), errors, source)

    assert selectors == []
    assert len(errors) == 1
    assert "rate(foo[5m]" in errors[0]
    assert str(source) in errors[0]


def test_selectors_in_rule_requires_selector_record_names() -> None:
    errors: List[str] = []

    selectors = selectors_in_rule(PrometheusRule(expr="sum(up)", fields={"record": "sum(up)"}), errors)

    assert [str(selector) for selector in selectors] == ["up"]
    assert len(errors) == 1
    assert "to be a selector" in errors[0]


def test_write_rules_file_adds_header(tmp_path: Path) -> None:
    document = {"groups": [{"name": "absent_label_alerts", "rules": []}]}
    output = tmp_path / "nested" / "absent.rules.yml"

    write_rules_file(output, document)

    text = output.read_text(encoding="utf-8")
    assert text == render_rules_file(document)
    assert text.startswith(GENERATED_HEADER)
    assert text.splitlines()[0].startswith("# DO NOT MODIFY THIS FILE BY HAND")
    assert yaml.safe_load(text) == document


def test_write_rules_file_leaves_previous_file_when_replace_fails(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    output = tmp_path / "absent.rules.yml"
    output.write_text("previous contents\n", encoding="utf-8")

    def fail_replace(src: str, dst: Path) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(rule_files.os, "replace", fail_replace)

    with pytest.raises(OSError, match="disk full"):
        write_rules_file(output, {"groups": [{"name": "absent_label_alerts", "rules": []}]})

    assert output.read_text(encoding="utf-8") == "previous contents\n"
    assert list(tmp_path.iterdir()) == [output]


def test_write_rules_file_replaces_existing_file(tmp_path: Path) -> None:
    output = tmp_path / "absent.rules.yml"
    output.write_text("previous contents\n", encoding="utf-8")
    document = {"groups": [{"name": "absent_label_alerts", "rules": []}]}

    write_rules_file(output, document)

    assert output.read_text(encoding="utf-8") == render_rules_file(document)
    assert list(tmp_path.iterdir()) == [output]
