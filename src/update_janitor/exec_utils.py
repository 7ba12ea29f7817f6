"""!
@brief Subprocess execution helpers with sanitised environments.
@details Every external command (uninstallers, PowerShell) goes through
:func:`run_command` so plan/result telemetry stays uniform and child
processes never inherit Python virtual environment variables from a packaged
build.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass

from . import logging_ext

_SANITIZE_BLOCKLIST = {
    "PYTHONPATH",
    "PYTHONHOME",
    "PYTHONWARNINGS",
    "VIRTUAL_ENV",
    "PIP_REQUIRE_VIRTUALENV",
    "CONDA_PREFIX",
    "CONDA_DEFAULT_ENV",
    "PYENV_VERSION",
    "POETRY_ACTIVE",
    "__PYVENV_LAUNCHER__",
}


@dataclass
class CommandResult:
    """!
    @brief Outcome information from :func:`run_command`.
    @details ``error`` is set when the process could not be launched (or
    timed out); ``returncode`` is only meaningful when ``error`` is ``None``.
    """

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float
    timed_out: bool = False
    error: str | None = None


def sanitize_environment(base_env: Mapping[str, str] | None = None) -> MutableMapping[str, str]:
    """!
    @brief Produce a subprocess environment stripped of virtualenv artefacts.
    @param base_env Source mapping to copy; the host environment when ``None``.
    @returns Mutable mapping ready for subprocess invocation.
    """

    source = os.environ if base_env is None else base_env
    environment: MutableMapping[str, str] = {str(k): str(v) for k, v in source.items() if v is not None}
    for key in _SANITIZE_BLOCKLIST:
        environment.pop(key, None)
    return environment


def _call_payload(
    command_list: Sequence[str],
    *,
    timeout: float | int | None,
    extra: Mapping[str, object] | None,
) -> MutableMapping[str, object]:
    payload: MutableMapping[str, object] = {"command": list(command_list), "timeout": timeout}
    if extra:
        for key, value in extra.items():
            if key not in {"event", "result"}:
                payload[key] = value
    return payload


def _result_payload(
    *,
    return_code: int,
    duration: float,
    stdout: str,
    stderr: str,
    error: str | None = None,
    timed_out: bool = False,
) -> dict[str, object]:
    return {
        "rc": return_code,
        "duration_ms": round(duration * 1000, 3),
        "stdout": stdout,
        "stderr": stderr,
        "error": error,
        "timed_out": timed_out,
    }


def run_command(
    command: Sequence[str] | str,
    *,
    event: str,
    timeout: int | float | None = None,
    human_message: str | None = None,
    extra: Mapping[str, object] | None = None,
) -> CommandResult:
    """!
    @brief Execute ``command`` with consistent logging and environment hygiene.
    @details Emits ``<event>_plan`` before and ``<event>_result`` after the
    call (``_missing``/``_timeout``/``_error`` on launch failures).
    @param command Sequence of command arguments.
    @param event Base name for structured log events.
    @param timeout Optional timeout in seconds; ``None`` waits for exit.
    @param human_message Optional message emitted to the human logger first.
    @param extra Additional metadata merged into machine log payloads.
    @returns :class:`CommandResult` describing the observed outcome.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    if isinstance(command, str):
        command_list = [command]
    else:
        command_list = [str(part) for part in command]

    call = _call_payload(command_list, timeout=timeout, extra=extra)
    machine_logger.info(f"{event}_plan", extra={"event": f"{event}_plan", "call": dict(call)})

    if human_message:
        human_logger.info(human_message)

    start = time.monotonic()
    try:
        completed = subprocess.run(  # noqa: S603 - intentional command execution
            command_list,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
            env=sanitize_environment(),
        )
    except FileNotFoundError as exc:
        duration = time.monotonic() - start
        human_logger.error("Command not found: %s", command_list[0])
        machine_logger.error(
            f"{event}_missing",
            extra={
                "event": f"{event}_missing",
                "call": dict(call),
                "result": _result_payload(
                    return_code=127, duration=duration, stdout="", stderr="", error=str(exc)
                ),
            },
        )
        return CommandResult(
            command=command_list, returncode=127, stdout="", stderr="", duration=duration, error=str(exc)
        )
    except subprocess.TimeoutExpired as exc:
        duration = time.monotonic() - start
        human_logger.error("Command timed out after %.1fs: %s", duration, command_list[0])
        machine_logger.error(
            f"{event}_timeout",
            extra={
                "event": f"{event}_timeout",
                "call": dict(call),
                "result": _result_payload(
                    return_code=1,
                    duration=duration,
                    stdout=str(exc.stdout or ""),
                    stderr=str(exc.stderr or ""),
                    error="timeout",
                    timed_out=True,
                ),
            },
        )
        return CommandResult(
            command=command_list,
            returncode=1,
            stdout=str(exc.stdout or ""),
            stderr=str(exc.stderr or ""),
            duration=duration,
            timed_out=True,
            error="timeout",
        )
    except OSError as exc:
        duration = time.monotonic() - start
        human_logger.error("Failed to execute %s: %s", command_list[0], exc)
        machine_logger.error(
            f"{event}_error",
            extra={
                "event": f"{event}_error",
                "call": dict(call),
                "result": _result_payload(
                    return_code=1, duration=duration, stdout="", stderr="", error=str(exc)
                ),
            },
        )
        return CommandResult(
            command=command_list, returncode=1, stdout="", stderr="", duration=duration, error=str(exc)
        )

    duration = time.monotonic() - start
    machine_logger.info(
        f"{event}_result",
        extra={
            "event": f"{event}_result",
            "call": dict(call),
            "result": _result_payload(
                return_code=completed.returncode,
                duration=duration,
                stdout=str(completed.stdout),
                stderr=str(completed.stderr),
            ),
        },
    )

    if completed.returncode != 0:
        human_logger.warning("Command %s exited with %s", command_list[0], completed.returncode)

    return CommandResult(
        command=command_list,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        duration=duration,
    )


__all__ = ["CommandResult", "run_command", "sanitize_environment"]
