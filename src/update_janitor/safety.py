"""!
@brief Safety and guardrail enforcement helpers.
@details Two kinds of checks run before anything is uninstalled: the plan
itself must satisfy the decision engine's post-conditions, and the host
must be able to run uninstallers (Windows, elevated). Dry-run executions
skip the host checks because they never spawn uninstallers.
"""
from __future__ import annotations

from typing import Iterable, Mapping

from .decision import DecisionSet
from .grouping import ProductGroup

SUPPORTED_SYSTEMS = {"windows", "nt"}


def validate_decisions(groups: Iterable[ProductGroup], decisions: Iterable[DecisionSet]) -> None:
    """!
    @brief Verify every group's decision is a total, disjoint, non-empty partition.
    @details Checked per group: each member appears in exactly one of keep or
    remove, nothing else appears, at least one member is kept, and a
    single-member group is never scheduled for removal.
    @raises ValueError When any group violates these conditions.
    """

    by_key: Mapping[str, DecisionSet] = {decision.canonical_key: decision for decision in decisions}
    for product_group in groups:
        decision = by_key.get(product_group.canonical_key)
        if decision is None:
            raise ValueError(f"No decision recorded for group {product_group.canonical_key!r}.")

        members = [id(record) for record in product_group.members]
        kept = [id(record) for record in decision.keep]
        removed = [id(record) for record in decision.remove]

        if set(kept) & set(removed):
            raise ValueError(f"Group {product_group.canonical_key!r} keeps and removes the same record.")
        if sorted(kept + removed) != sorted(members):
            raise ValueError(f"Decision for {product_group.canonical_key!r} does not cover its members exactly.")
        if members and not kept:
            raise ValueError(f"Refusing to remove every installation of {product_group.canonical_key!r}.")
        if len(members) == 1 and removed:
            raise ValueError(f"Refusing to remove the only installation of {product_group.canonical_key!r}.")


def evaluate_runtime_environment(
    *,
    is_admin: bool,
    os_system: str,
    dry_run: bool,
) -> None:
    """!
    @brief Validate runtime prerequisites before destructive execution.
    @param is_admin Indicates whether the current process is elevated.
    @param os_system Result of ``platform.system()`` (or equivalent).
    @param dry_run When ``True`` nothing is uninstalled and the guards pass.
    @raises RuntimeError If the host cannot run Windows uninstallers.
    @raises PermissionError If administrative rights are missing.
    """

    if dry_run:
        return
    _enforce_os_guard(os_system=os_system)
    _enforce_admin_guard(is_admin=is_admin)


def _enforce_os_guard(*, os_system: str) -> None:
    system = str(os_system).strip().lower()
    if system not in SUPPORTED_SYSTEMS:
        raise RuntimeError(
            f"Unsupported operating system '{os_system}'. Windows is required to run uninstallers."
        )


def _enforce_admin_guard(*, is_admin: bool) -> None:
    if not is_admin:
        raise PermissionError("Administrative rights are required to uninstall software.")


__all__ = [
    "SUPPORTED_SYSTEMS",
    "evaluate_runtime_environment",
    "validate_decisions",
]
