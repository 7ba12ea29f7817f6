"""!
@brief Command line entry point for Update Janitor.
@details Wires the pipeline together: argument parsing, logging setup,
inventory collection, planning, plan artifacts and finally (after
confirmation and the runtime guards) removal of superseded installations.
"""
from __future__ import annotations

import argparse
import ctypes
import datetime
import json
import logging
import os
import pathlib
import platform
from typing import Iterable, List, Optional, Sequence

from . import (
    confirm,
    constants,
    logging_ext,
    restore_point,
    safety,
    version,
)
from .classify import ClassificationRules, load_rules
from .inventory import InventorySource, JsonInventorySource, collect_inventory, default_sources
from .oracle import build_oracle
from .pipeline import RemovalPlan, RunContext, build_plan, execute_plan
from .report import render_summary, write_report

EXIT_OK = 0
EXIT_REMOVAL_FAILURES = 1
EXIT_GUARD_FAILURE = 2


def build_arg_parser() -> argparse.ArgumentParser:
    """!
    @brief Create the argument parser for the ``update-janitor`` command.
    """

    parser = argparse.ArgumentParser(
        prog="update-janitor",
        description="Find superseded runtime and update installations and remove them safely.",
    )
    metadata = version.build_info()
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"{metadata['version']} ({metadata['build']})",
    )

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument("--diagnose", action="store_true", help="Write the plan and exit without changes.")
    modes.add_argument("--dry-run", action="store_true", help="Simulate removals without modifying the system.")

    parser.add_argument(
        "--source",
        action="append",
        choices=[label for label, _, _ in constants.UNINSTALL_SOURCES],
        help="Registry uninstall root to scan (repeatable; default all).",
    )
    parser.add_argument("--inventory", metavar="FILE", help="Read inventory from a JSON export instead of the registry.")
    parser.add_argument("--rules", metavar="FILE", help="JSON file with inclusion/exclusion patterns.")
    parser.add_argument("--oracle-url", metavar="URL", help="HTTP endpoint answering latest-version queries.")
    parser.add_argument(
        "--oracle-timeout",
        metavar="SEC",
        type=float,
        default=constants.ORACLE_TIMEOUT_SECONDS,
        help="Timeout for each latest-version query.",
    )
    parser.add_argument("--no-oracle", action="store_true", help="Decide from local ordering only.")
    parser.add_argument(
        "--settle-delay",
        metavar="SEC",
        type=float,
        default=constants.SETTLE_DELAY_SECONDS,
        help="Pause between consecutive uninstalls.",
    )
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation.")
    parser.add_argument("--force", action="store_true", help="Skip the confirmation prompt.")
    parser.add_argument("--no-restore-point", action="store_true", help="Skip creating a restore point.")
    parser.add_argument("--plan", metavar="OUT", help="Write the computed plan to a JSON file.")
    parser.add_argument("--report", metavar="OUT", help="Write the run report to a JSON file.")
    parser.add_argument("--logdir", metavar="DIR", help="Directory for human/JSONL log output.")
    parser.add_argument("--quiet", action="store_true", help="Minimal console output (errors only).")
    parser.add_argument("--json", action="store_true", help="Mirror structured events to stdout.")
    return parser


def _default_log_directory() -> pathlib.Path:
    if os.name == "nt":
        base = os.environ.get("ProgramData") or r"C:\ProgramData"
        return pathlib.Path(base) / "UpdateJanitor" / "logs"
    return pathlib.Path("~") / ".update-janitor" / "logs"


def _resolve_log_directory(candidate: Optional[str]) -> pathlib.Path:
    if candidate:
        return pathlib.Path(candidate).expanduser().resolve()
    return _default_log_directory().expanduser().resolve()


def _bootstrap_logging(args: argparse.Namespace) -> tuple[logging.Logger, logging.Logger]:
    """!
    @brief Initialise human and machine loggers using :mod:`logging_ext` helpers.
    @returns A tuple of configured human and machine loggers.
    """

    logdir = _resolve_log_directory(getattr(args, "logdir", None))
    setattr(args, "logdir", str(logdir))
    human_logger, machine_logger = logging_ext.setup_logging(
        logdir,
        json_to_stdout=bool(getattr(args, "json", False)),
    )
    if getattr(args, "quiet", False):
        human_logger.setLevel(logging.ERROR)
    return human_logger, machine_logger


def _build_sources(args: argparse.Namespace) -> List[InventorySource]:
    if args.inventory:
        return [JsonInventorySource(pathlib.Path(args.inventory).expanduser())]
    return list(default_sources(args.source))


def _load_rules(args: argparse.Namespace) -> ClassificationRules:
    if args.rules:
        return load_rules(pathlib.Path(args.rules).expanduser())
    return ClassificationRules.defaults()


def _write_plan_artifacts(
    args: argparse.Namespace,
    plan: RemovalPlan,
    human_log: logging.Logger,
) -> List[pathlib.Path]:
    """!
    @brief Persist the plan to the log directory and any requested targets.
    @details A timestamped copy always lands in the log directory. ``--plan``
    adds an explicit target; diagnose runs without ``--plan`` also write
    ``diagnostics-plan.json``.
    """

    logdir = pathlib.Path(args.logdir)
    logdir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d-%H%M%S")

    payload = plan.to_dict()
    payload["metadata"] = {
        "version": version.__version__,
        "run": logging_ext.get_run_metadata(),
        "dry_run": bool(args.dry_run or args.diagnose),
    }
    serialized = json.dumps(payload, indent=2, sort_keys=True)

    targets = [logdir / f"plan-{timestamp}.json"]
    if args.plan:
        targets.append(pathlib.Path(args.plan).expanduser().resolve())
    elif args.diagnose:
        targets.append(logdir / "diagnostics-plan.json")

    for target in targets:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(serialized, encoding="utf-8")
        human_log.info("Wrote plan to %s", target)
    return targets


def _detect_operating_system() -> str:
    try:
        return platform.system()
    except OSError:
        return ""


def _current_process_is_admin() -> bool:
    """!
    @brief Determine whether the current interpreter is running with elevated privileges.
    """

    if os.name == "nt":
        try:
            shell32 = ctypes.windll.shell32  # type: ignore[attr-defined]
            return bool(shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False

    geteuid = getattr(os, "geteuid", None)
    if callable(geteuid):
        return bool(geteuid() == 0)
    return False


def _finish(args: argparse.Namespace, context: RunContext, human_log: logging.Logger) -> int:
    render_summary(context.report, human_log)
    if args.report:
        target = write_report(context.report, pathlib.Path(args.report))
        human_log.info("Wrote report to %s", target)
    return EXIT_REMOVAL_FAILURES if context.report.has_failures else EXIT_OK


def main(argv: Optional[Iterable[str]] = None) -> int:
    """!
    @brief Entry point for the ``update-janitor`` console script.
    @returns ``0`` on success, ``1`` when any removal failed or errored and
    ``2`` when configuration, plan validation or a runtime guard failed.
    """

    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    human_log, machine_log = _bootstrap_logging(args)

    dry_run = bool(args.dry_run or args.diagnose)
    machine_log.info(
        "startup",
        extra=logging_ext.build_event_extra(
            "startup",
            mode="diagnose" if args.diagnose else ("dry-run" if args.dry_run else "remove"),
            dry_run=dry_run,
        ),
    )

    try:
        rules = _load_rules(args)
        sources: Sequence[InventorySource] = _build_sources(args)
    except (OSError, ValueError) as exc:
        human_log.error("Invalid configuration: %s", exc)
        return EXIT_GUARD_FAILURE

    oracle = build_oracle(
        enabled=not args.no_oracle,
        url=args.oracle_url,
        timeout=args.oracle_timeout,
    )
    context = RunContext.create(rules=rules, oracle=oracle)

    records = collect_inventory(sources)
    plan = build_plan(records, context)
    try:
        safety.validate_decisions(plan.groups.values(), plan.decisions)
    except ValueError as exc:
        human_log.error("Refusing to act on an unsafe plan: %s", exc)
        return EXIT_GUARD_FAILURE

    _write_plan_artifacts(args, plan, human_log)

    if args.diagnose:
        context.report.dry_run = True
        human_log.info("Diagnostics complete; plan written and no actions executed.")
        return _finish(args, context, human_log)

    if args.dry_run:
        execute_plan(plan, context, dry_run=True)
        return _finish(args, context, human_log)

    if not plan.removals:
        human_log.info("No superseded installations found.")
        return _finish(args, context, human_log)

    if not confirm.request_removal_confirmation(
        dry_run=False,
        force=bool(args.force or args.yes),
        count=len(plan.removals),
    ):
        human_log.info("Removal cancelled; nothing was changed.")
        machine_log.info("removal_cancelled", extra=logging_ext.build_event_extra("removal_cancelled"))
        return EXIT_OK

    try:
        safety.evaluate_runtime_environment(
            is_admin=_current_process_is_admin(),
            os_system=_detect_operating_system(),
            dry_run=False,
        )
    except (PermissionError, RuntimeError) as exc:
        human_log.error("%s", exc)
        machine_log.error(
            "guard_failed", extra=logging_ext.build_event_extra("guard_failed", error=str(exc))
        )
        return EXIT_GUARD_FAILURE

    if not args.no_restore_point:
        restore_point.create_restore_point(restore_point.DEFAULT_DESCRIPTION)

    execute_plan(plan, context, settle_delay=max(0.0, args.settle_delay))
    return _finish(args, context, human_log)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
