"""!
@brief Confirmation prompt shown before superseded installations are removed.
"""

from __future__ import annotations

import sys
from typing import Callable

CONFIRM_PROMPT = "Remove {count} superseded installation(s) from this machine? (Y/n)"


def request_removal_confirmation(
    *,
    dry_run: bool,
    force: bool,
    count: int = 0,
    input_func: Callable[[str], str] | None = None,
    interactive: bool | None = None,
) -> bool:
    """!
    @brief Ask the operator to confirm the pending removals.
    @details Dry-run and forced runs skip the prompt. Sessions without a
    terminal on ``stdin`` proceed so scheduled runs are not blocked. An
    interactive answer of ``""``, ``y`` or ``yes`` accepts; end of input declines.
    @param dry_run Whether the pending execution only simulates removals.
    @param force Whether the caller supplied ``--force`` or ``--yes``.
    @param count Number of records scheduled for removal, shown in the prompt.
    @param input_func Optional ``input`` replacement.
    @param interactive Optional override of terminal detection.
    @returns ``True`` when removals should proceed.
    """

    if dry_run or force:
        return True

    if interactive is None:
        stdin = getattr(sys, "stdin", None)
        isatty = getattr(stdin, "isatty", None)
        interactive = bool(isatty and isatty())

    if not interactive:
        return True

    if input_func is None:
        input_func = input

    try:
        response = input_func(CONFIRM_PROMPT.format(count=count) + " ")
    except EOFError:
        return False

    return response.strip().lower() in ("", "y", "yes")


__all__ = ["CONFIRM_PROMPT", "request_removal_confirmation"]
