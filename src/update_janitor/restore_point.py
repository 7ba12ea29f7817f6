"""!
@brief System restore point creation ahead of removals.
@details Restore coverage is best effort: a missing PowerShell, a timeout or
a refusal from the System Restore service is logged and reported as
``False`` so the caller decides whether to continue.
"""
from __future__ import annotations

import json
import os
from typing import List

from . import exec_utils, logging_ext

_POWERSHELL_EXECUTABLE = "powershell.exe"
_POWERSHELL_TIMEOUT_SECONDS = 180
DEFAULT_DESCRIPTION = "Update Janitor removal"


def create_restore_point(
    description: str,
    *,
    timeout: int = _POWERSHELL_TIMEOUT_SECONDS,
) -> bool:
    """!
    @brief Request a system restore point with the supplied description.
    @param description Text shown for the restore point in System Restore.
    @param timeout Maximum seconds to wait for PowerShell.
    @returns ``True`` if the restore point was created.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    description_text = description or DEFAULT_DESCRIPTION
    machine_logger.info(
        "restore_point_request",
        extra=logging_ext.build_event_extra(
            "restore_point_request", description=description_text
        ),
    )

    if os.name != "nt":
        human_logger.info("Restore points are only available on Windows hosts; skipping.")
        machine_logger.warning(
            "restore_point_unsupported",
            extra=logging_ext.build_event_extra("restore_point_unsupported", platform=os.name),
        )
        return False

    result = exec_utils.run_command(
        _build_powershell_command(description_text),
        event="restore_point",
        timeout=max(1, int(timeout)),
        human_message=f"Creating system restore point: {description_text}",
    )

    if result.error is None and result.returncode == 0:
        human_logger.info("System restore point created: %s", description_text)
        return True

    detail = result.error or (result.stderr or "").strip() or f"exit code {result.returncode}"
    human_logger.warning("Restore point creation failed: %s", detail)
    return False


def _build_powershell_command(description: str) -> List[str]:
    script = (
        f"Checkpoint-Computer -Description {json.dumps(description)} "
        "-RestorePointType 'APPLICATION_UNINSTALL' -ErrorAction Stop"
    )
    return [
        _POWERSHELL_EXECUTABLE,
        "-NoProfile",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        script,
    ]


__all__ = ["DEFAULT_DESCRIPTION", "create_restore_point"]
