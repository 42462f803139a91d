from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from tools.absent_alerts.promql import PromDuration

TOOL_NAME = "absent-alert-rule-generator"

RULE_FILE_PATTERN = "*.rules.yml"
DEFAULT_OUTPUT_FILENAME = "absent.rules.yml"
DEFAULT_IGNORE_FILE = Path(__file__).resolve().parent / "ignore_metrics.txt"

GROUP_NAME = "absent_label_alerts"

# Absent alerts never fire faster than this, whatever the origin rules use.
MINIMUM_FOR = PromDuration(1, "h")

ALERT_LABELS: Dict[str, str] = {
    "severity": "business_hours_page",
    "how_much_should_you_panic": "Not much (1/3)",
}

PLAYBOOK_LINK_ENV = "ABSENT_ALERTS_PLAYBOOK_LINK"
LOG_LEVEL_ENV = "ABSENT_ALERTS_LOG_LEVEL"


@dataclass(frozen=True)
class GeneratorSettings:
    rules_dir: Path
    output_file: Path
    ignore_file: Optional[Path] = DEFAULT_IGNORE_FILE
    playbook_link: Optional[str] = None
    dry_run: bool = False

    @classmethod
    def for_rules_dir(
        cls,
        rules_dir: Path,
        output_file: Optional[Path] = None,
        ignore_file: Optional[Path] = DEFAULT_IGNORE_FILE,
        playbook_link: Optional[str] = None,
        dry_run: bool = False,
    ) -> "GeneratorSettings":
        return cls(
            rules_dir=rules_dir,
            output_file=output_file or rules_dir / DEFAULT_OUTPUT_FILENAME,
            ignore_file=ignore_file,
            playbook_link=playbook_link,
            dry_run=dry_run,
        )
