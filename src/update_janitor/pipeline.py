"""!
@brief Run orchestration from inventory to removal.
@details Stages run strictly in sequence: classify, group, resolve the
latest version per group, decide, then (optionally) remove. All mutable
state for a run (rules, the oracle cache, and the running totals) lives on
a :class:`RunContext`, so two runs never share anything.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from . import constants, logging_ext, safety
from .classify import ClassificationRules, classify
from .decision import DecisionSet, decide
from .grouping import ProductGroup, group
from .inventory import InstallationRecord
from .oracle import VersionOracle, VersionResolver
from .report import RunReport
from .uninstall import Invoker, UninstallCommandError, build_invocation, remove_all


@dataclass
class RunContext:
    """!
    @brief Per-run state threaded through the pipeline.
    """

    rules: ClassificationRules
    resolver: VersionResolver
    report: RunReport = field(default_factory=RunReport)

    @classmethod
    def create(
        cls,
        *,
        rules: ClassificationRules | None = None,
        oracle: VersionOracle | None = None,
    ) -> "RunContext":
        return cls(
            rules=rules if rules is not None else ClassificationRules.defaults(),
            resolver=VersionResolver(oracle),
        )


@dataclass
class RemovalPlan:
    """!
    @brief Decisions for every product group plus the records left out of analysis.
    """

    groups: Dict[str, ProductGroup]
    decisions: List[DecisionSet]
    ignored: List[InstallationRecord]
    inventory_size: int

    @property
    def removals(self) -> List[InstallationRecord]:
        return [record for decision in self.decisions for record in decision.remove]

    @property
    def kept(self) -> List[InstallationRecord]:
        return [record for decision in self.decisions for record in decision.keep]

    def to_dict(self) -> Dict[str, object]:
        return {
            "inventory": self.inventory_size,
            "ignored": len(self.ignored),
            "groups": [decision.to_dict() for decision in self.decisions],
            "removals": len(self.removals),
        }


def build_plan(records: Iterable[InstallationRecord], context: RunContext) -> RemovalPlan:
    """!
    @brief Classify, group, resolve, and decide for ``records``.
    @details The oracle is consulted once per canonical key through the
    context's resolver. Nothing is removed here.
    """

    machine_logger = logging_ext.get_machine_logger()

    inventory = list(records)
    candidates, ignored = classify(inventory, context.rules)
    groups = group(candidates)

    decisions: List[DecisionSet] = []
    for key, product_group in groups.items():
        latest = context.resolver.resolve(key, product_group.members[0])
        decision = decide(product_group, latest)
        decisions.append(decision)
        machine_logger.info(
            "decision",
            extra=logging_ext.build_event_extra(
                "decision",
                canonical_key=key,
                latest_version=latest,
                keep=[record.source_key for record in decision.keep],
                remove=[record.source_key for record in decision.remove],
            ),
        )

    report = context.report
    report.inventory = len(inventory)
    report.candidates = len(candidates)
    report.ignored = len(ignored)
    report.record_decisions(decisions)

    return RemovalPlan(groups=groups, decisions=decisions, ignored=ignored, inventory_size=len(inventory))


def execute_plan(
    plan: RemovalPlan,
    context: RunContext,
    *,
    dry_run: bool = False,
    invoker: Invoker | None = None,
    settle_delay: float = constants.SETTLE_DELAY_SECONDS,
) -> RunReport:
    """!
    @brief Remove every record the plan marks for removal.
    @details The plan is validated first; a plan violating the decision
    post-conditions raises :class:`ValueError` before anything runs. In
    dry-run mode the intended commands are logged and nothing is spawned.
    """

    safety.validate_decisions(plan.groups.values(), plan.decisions)
    report = context.report
    report.dry_run = dry_run

    if dry_run:
        human_logger = logging_ext.get_human_logger()
        for record in plan.removals:
            try:
                command = " ".join(build_invocation(record.uninstall_command).command)
            except UninstallCommandError as exc:
                command = f"<unusable: {exc}>"
            human_logger.info(
                "Dry-run: would remove %s %s via %s",
                record.display_name,
                record.display_version or "",
                command,
            )
        return report

    report.record_removals(remove_all(plan.removals, invoker=invoker, settle_delay=settle_delay))
    return report


__all__ = ["RemovalPlan", "RunContext", "build_plan", "execute_plan"]
