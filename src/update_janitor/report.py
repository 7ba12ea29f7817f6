"""!
@brief Run totals for the human summary and JSON report.
@details Observational only: the report tallies what the decision engine
and the removal executor already did and never feeds back into either.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

from . import logging_ext
from .decision import DecisionSet
from .uninstall import Errored, Failed, RemovalResult, Succeeded


@dataclass
class RunReport:
    """!
    @brief Accumulated ``{kept, removed, failed, bytes_freed}`` for one run.
    """

    inventory: int = 0
    candidates: int = 0
    ignored: int = 0
    groups: int = 0
    kept: int = 0
    planned_removals: int = 0
    removed: int = 0
    failed: int = 0
    errored: int = 0
    reboot_required: bool = False
    bytes_freed: int = 0
    dry_run: bool = False
    notes: List[str] = field(default_factory=list)
    failures: List[Dict[str, object]] = field(default_factory=list)

    def record_decisions(self, decisions: Iterable[DecisionSet]) -> None:
        for decision in decisions:
            self.groups += 1
            self.kept += len(decision.keep)
            self.planned_removals += len(decision.remove)
            self.notes.extend(decision.notes)

    def record_removals(self, results: Iterable[RemovalResult]) -> None:
        """!
        @brief Fold executor outcomes into the totals.
        @details Only successful removals contribute to ``bytes_freed``;
        records without an estimated size count as zero bytes.
        """

        for result in results:
            outcome = result.outcome
            if isinstance(outcome, Succeeded):
                self.removed += 1
                self.bytes_freed += (result.record.estimated_size_kb or 0) * 1024
                if outcome.exit_code == 3010:
                    self.reboot_required = True
                continue
            entry: Dict[str, object] = {
                "display_name": result.record.display_name,
                "display_version": result.record.display_version,
                "source_key": result.record.source_key,
                "uninstall_command": result.record.uninstall_command,
            }
            if isinstance(outcome, Failed):
                self.failed += 1
                entry["exit_code"] = outcome.exit_code
            elif isinstance(outcome, Errored):
                self.errored += 1
                entry["error"] = outcome.cause
            self.failures.append(entry)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed or self.errored)

    def to_dict(self) -> Dict[str, object]:
        return {
            "inventory": self.inventory,
            "candidates": self.candidates,
            "ignored": self.ignored,
            "groups": self.groups,
            "kept": self.kept,
            "planned_removals": self.planned_removals,
            "removed": self.removed,
            "failed": self.failed,
            "errored": self.errored,
            "reboot_required": self.reboot_required,
            "bytes_freed": self.bytes_freed,
            "dry_run": self.dry_run,
            "notes": list(self.notes),
            "failures": list(self.failures),
        }


def format_bytes(count: int) -> str:
    value = float(count)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def render_summary(report: RunReport, logger: logging.Logger | None = None) -> None:
    """!
    @brief Emit the end-of-run summary to the human and machine channels.
    """

    human_logger = logger or logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    human_logger.info(
        "Scanned %d records: %d candidates in %d groups, %d ignored.",
        report.inventory,
        report.candidates,
        report.groups,
        report.ignored,
    )
    for note in report.notes:
        human_logger.info("Note: %s", note)
    if report.dry_run:
        human_logger.info(
            "Dry-run: would keep %d and remove %d records.", report.kept, report.planned_removals
        )
    else:
        human_logger.info(
            "Kept %d, removed %d, failed %d (%s freed).",
            report.kept,
            report.removed,
            report.failed + report.errored,
            format_bytes(report.bytes_freed),
        )
    for failure in report.failures:
        human_logger.warning(
            "Manual follow-up needed for %s: %s",
            failure["display_name"],
            failure.get("error", f"exit code {failure.get('exit_code')}"),
        )
    if report.reboot_required:
        human_logger.warning("A restart is required to complete one or more removals.")

    machine_logger.info("run_summary", extra=logging_ext.build_event_extra("run_summary", summary=report.to_dict()))


def write_report(report: RunReport, destination: Path) -> Path:
    target = Path(destination).expanduser().resolve()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(report.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    return target


__all__ = ["RunReport", "format_bytes", "render_summary", "write_report"]
