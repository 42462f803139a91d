#!/usr/bin/env python3
"""Generate absent-data alerts for every selector used by Prometheus rules.

Every ``*.rules.yml`` file below the rules directory is parsed, every selector
its rules read (and every series its recording rules write) is collected, and
one ``absent``/``absent_over_time`` alert is generated per unique selector.
The generated rules file is only written when the whole run succeeded, so a
broken rule never leaves a half-written output behind.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Set

from tools.absent_alerts.errors import GeneratorError, report_error
from tools.absent_alerts.rule_files import RuleFileError, get_selectors_in_file, write_rules_file
from tools.absent_alerts.rules import AbsentAlertRule, build_rules_document, merge_occurrences_into_rule
from tools.absent_alerts.selectors import SelectorOccurrence, group_occurrences, load_ignore_file
from tools.absent_alerts.settings import (
    DEFAULT_IGNORE_FILE,
    LOG_LEVEL_ENV,
    PLAYBOOK_LINK_ENV,
    RULE_FILE_PATTERN,
    GeneratorSettings,
)

logger = logging.getLogger(__name__)


def _collect_rule_files(rules_dir: Path) -> List[Path]:
    if not rules_dir.is_dir():
        raise GeneratorError(f"rules directory not found: {rules_dir}")
    try:
        return sorted(rules_dir.rglob(RULE_FILE_PATTERN))
    except OSError as exc:
        raise GeneratorError(f"failed to list rules in {rules_dir}: {exc}") from exc


def _is_output_file(path: Path, output_file: Path, errors: List[str]) -> bool:
    # A missing output file cannot be resolved strictly, and cannot be an input either.
    if not output_file.exists():
        return False
    try:
        return path.resolve(strict=True) == output_file.resolve(strict=True)
    except OSError as exc:
        report_error(errors, f"Failed to resolve {path} or output file {output_file}: {exc}")
        return False


def _load_ignored(settings: GeneratorSettings) -> Set[str]:
    if settings.ignore_file is None:
        return set()
    try:
        return load_ignore_file(settings.ignore_file)
    except OSError as exc:
        raise GeneratorError(f"failed to read the ignore file at '{settings.ignore_file}': {exc}") from exc


def generate_absent_rules(settings: GeneratorSettings) -> List[AbsentAlertRule]:
    """Build the absent alerts for ``settings.rules_dir`` without writing anything.

    Problems with individual files or rules are logged and collected so one
    run reports all of them; :class:`GeneratorError` is raised at the end
    if there were any.
    """

    logger.debug("Reading rules from %s, outputting rules to %s", settings.rules_dir, settings.output_file)
    ignored = _load_ignored(settings)
    logger.debug("Ignoring these selectors %s", sorted(ignored))
    rule_files = _collect_rule_files(settings.rules_dir)

    errors: List[str] = []
    occurrences: List[SelectorOccurrence] = []
    for path in rule_files:
        if _is_output_file(path, settings.output_file, errors):
            continue
        try:
            occurrences.extend(get_selectors_in_file(path, errors))
        except RuleFileError as exc:
            report_error(errors, f"Failed to get selectors from file: {exc}")

    groups = group_occurrences(occurrences, ignored)
    logger.info("Found %d unique selectors in %d files", len(groups), len(rule_files))
    rules = [
        merge_occurrences_into_rule(members, settings.playbook_link, errors)
        for _key, members in groups
    ]
    if errors:
        raise GeneratorError(
            f"{len(errors)} failure(s) during the generation process, see logs above for details. "
            "Rules file not being written out."
        )
    return rules


def process_rules_dir(settings: GeneratorSettings) -> List[AbsentAlertRule]:
    if settings.dry_run:
        logger.info("This is a dry run, no files will be generated")
    rules = generate_absent_rules(settings)
    if settings.dry_run:
        return rules
    logger.debug("Writing generated absent selector rules to %s", settings.output_file)
    try:
        write_rules_file(settings.output_file, build_rules_document(rules))
    except OSError as exc:
        raise GeneratorError(f"failed to write the rules file at {settings.output_file}: {exc}") from exc
    return rules


def _log_level(name: str) -> Optional[int]:
    level = logging.getLevelName(name.upper())
    # getLevelName maps unknown names to a "Level <name>" string.
    return level if isinstance(level, int) else None


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate absent-data alerts for the selectors used by Prometheus rules")
    parser.add_argument("rules_dir", type=Path, help="Path to the directory containing the Prometheus rules files")
    parser.add_argument("--dry-run", action="store_true", help="Report problems but don't write the generated rules file")
    parser.add_argument(
        "--output-file",
        type=Path,
        default=None,
        help="File to write the absent rules to (default: absent.rules.yml in RULES_DIR)",
    )
    parser.add_argument(
        "--ignore-file",
        type=Path,
        default=DEFAULT_IGNORE_FILE,
        help="File listing selectors to skip, one per line (default: the bundled ignore_metrics.txt)",
    )
    parser.add_argument(
        "--playbook-link",
        default=os.getenv(PLAYBOOK_LINK_ENV),
        help=f"Playbook link to attach to every generated alert (default: ${PLAYBOOK_LINK_ENV})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    requested_level = os.getenv(LOG_LEVEL_ENV, "INFO")
    level = _log_level(requested_level)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else level or logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if level is None:
        logger.warning("Unknown log level %r in %s, using INFO", requested_level, LOG_LEVEL_ENV)

    settings = GeneratorSettings.for_rules_dir(
        args.rules_dir,
        output_file=args.output_file,
        ignore_file=args.ignore_file,
        playbook_link=args.playbook_link,
        dry_run=args.dry_run,
    )
    try:
        rules = process_rules_dir(settings)
    except GeneratorError as exc:
        print(f"::error ::{exc}", file=sys.stderr)
        return 1
    if settings.dry_run:
        print(f"Dry run found {len(rules)} absent alert(s); nothing written.")
    else:
        print(f"Wrote {len(rules)} absent alert(s) to {settings.output_file}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
