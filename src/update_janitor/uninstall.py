"""!
@brief Removal executor for superseded installation records.
@details Uninstall strings from the registry come in two shapes. Windows
Installer entries (``MsiExec.exe /I{GUID}`` or ``/X{GUID}``) are rewritten
into a quiet ``msiexec /x`` for the product code. Anything else is treated
as an executable followed by arguments; a conservative silent flag set is
appended when the arguments do not already ask for an unattended run.

Removals run one at a time and are never retried. Most platform installers
serialise on a single global lock, so each invocation is allowed to exit
completely and the executor pauses briefly before starting the next one.
"""
from __future__ import annotations

import re
import shlex
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Sequence, Tuple, Union

from . import constants, exec_utils, logging_ext
from .inventory import InstallationRecord

_MSIEXEC_TOKEN = re.compile(r"\bmsiexec(?:\.exe)?\b", re.IGNORECASE)
_PRODUCT_CODE = re.compile(
    r"\{?([0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12})\}?"
)

Invoker = Callable[[Sequence[str]], exec_utils.CommandResult]


class UninstallCommandError(ValueError):
    """!
    @brief Raised when an uninstall string cannot be turned into an invocation.
    """


@dataclass(frozen=True)
class Succeeded:
    exit_code: int = 0


@dataclass(frozen=True)
class Failed:
    exit_code: int


@dataclass(frozen=True)
class Errored:
    cause: str


Outcome = Union[Succeeded, Failed, Errored]


@dataclass(frozen=True)
class Invocation:
    """!
    @brief Concrete command derived from a registry uninstall string.
    """

    style: str
    command: Tuple[str, ...]
    product_code: str | None = None


@dataclass(frozen=True)
class RemovalResult:
    record: InstallationRecord
    outcome: Outcome
    command: Tuple[str, ...] = ()


def is_msi_command(command: str) -> bool:
    return _MSIEXEC_TOKEN.search(command) is not None


def extract_product_code(command: str) -> str | None:
    """!
    @brief Return the ``{GUID}`` product code found in ``command``, upper-cased.
    """

    match = _PRODUCT_CODE.search(command)
    if match is None:
        return None
    return f"{{{match.group(1).upper()}}}"


def split_command(command: str) -> Tuple[str, str]:
    """!
    @brief Split an uninstall string into ``(executable, argument tail)``.
    @details Handles quoted paths, unquoted paths with spaces that end in
    ``.exe``, and bare executables.
    """

    text = command.strip()
    if text.startswith('"'):
        end = text.find('"', 1)
        if end == -1:
            return text.strip('"').strip(), ""
        return text[1:end].strip(), text[end + 1 :].strip()

    lowered = text.lower()
    start = 0
    while True:
        index = lowered.find(".exe", start)
        if index == -1:
            break
        boundary = index + len(".exe")
        if boundary == len(text) or text[boundary].isspace():
            return text[:boundary], text[boundary:].strip()
        start = boundary

    executable, _, tail = text.partition(" ")
    return executable, tail.strip()


def _split_arguments(tail: str) -> List[str]:
    """!
    @brief Split an argument tail with Windows quoting rules.
    @details Double quotes group and are removed, backslashes are literal,
    and ``#`` or ``'`` carry no special meaning.
    """

    if not tail:
        return []
    lexer = shlex.shlex(tail, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    lexer.escape = ""
    lexer.quotes = '"'
    try:
        return list(lexer)
    except ValueError:
        return [token.strip('"') for token in tail.split() if token.strip('"')]



def has_silent_flag(arguments: Iterable[str]) -> bool:
    return any(argument.strip().lower() in constants.SILENT_FLAGS for argument in arguments)


def build_invocation(command: str) -> Invocation:
    """!
    @brief Construct the quiet, no-restart invocation for an uninstall string.
    @throws UninstallCommandError When the string is empty or an MSI-style
    command carries no product code.
    """

    text = command.strip()
    if not text:
        raise UninstallCommandError("Uninstall command is empty")

    if is_msi_command(text):
        product_code = extract_product_code(text)
        if product_code is None:
            raise UninstallCommandError(f"No product code in MSI uninstall command: {text}")
        return Invocation(
            style="msi",
            command=(
                constants.MSIEXEC_EXECUTABLE,
                constants.MSIEXEC_UNINSTALL_SWITCH,
                product_code,
                *constants.MSIEXEC_QUIET_ARGS,
            ),
            product_code=product_code,
        )

    executable, tail = split_command(text)
    if not executable:
        raise UninstallCommandError(f"No executable in uninstall command: {text}")
    arguments = _split_arguments(tail)
    if not has_silent_flag(arguments):
        arguments.extend(constants.SILENT_FALLBACK_ARGS)
    return Invocation(style="exe", command=(executable, *arguments))


def outcome_from_result(result: exec_utils.CommandResult) -> Outcome:
    if result.error is not None:
        return Errored(result.error)
    if result.returncode in constants.SUCCESS_EXIT_CODES:
        return Succeeded(result.returncode)
    return Failed(result.returncode)


def _default_invoker(record: InstallationRecord) -> Invoker:
    def invoke(command: Sequence[str]) -> exec_utils.CommandResult:
        return exec_utils.run_command(
            command,
            event="uninstall",
            timeout=None,
            human_message=f"Removing {record.display_name} {record.display_version or ''}".rstrip(),
            extra={"display_name": record.display_name, "source_key": record.source_key},
        )

    return invoke


def remove_record(record: InstallationRecord, *, invoker: Invoker | None = None) -> RemovalResult:
    """!
    @brief Uninstall one record with a single attempt.
    @details Exit codes 0 and 3010 are successes, any other code is a
    :class:`Failed` outcome, and a launch failure (or an uninstall string
    that cannot be interpreted) is :class:`Errored`.
    """

    machine_logger = logging_ext.get_machine_logger()
    human_logger = logging_ext.get_human_logger()

    try:
        invocation = build_invocation(record.uninstall_command)
    except UninstallCommandError as exc:
        human_logger.error("Cannot remove %s: %s", record.display_name, exc)
        outcome: Outcome = Errored(str(exc))
        command: Tuple[str, ...] = ()
    else:
        command = invocation.command
        run = invoker if invoker is not None else _default_invoker(record)
        try:
            outcome = outcome_from_result(run(command))
        except OSError as exc:
            outcome = Errored(str(exc))

    if isinstance(outcome, Succeeded) and outcome.exit_code == 3010:
        human_logger.info("%s removed; a restart is required to finish.", record.display_name)
    elif isinstance(outcome, Failed):
        human_logger.warning("%s uninstall exited with %s", record.display_name, outcome.exit_code)
    elif isinstance(outcome, Errored):
        human_logger.error("%s uninstall could not run: %s", record.display_name, outcome.cause)

    machine_logger.info(
        "uninstall_outcome",
        extra=logging_ext.build_event_extra(
            "uninstall_outcome",
            display_name=record.display_name,
            display_version=record.display_version,
            source_key=record.source_key,
            command=list(command),
            outcome=type(outcome).__name__,
            detail=getattr(outcome, "exit_code", getattr(outcome, "cause", None)),
        ),
    )
    return RemovalResult(record=record, outcome=outcome, command=command)


def remove(record: InstallationRecord, *, invoker: Invoker | None = None) -> Outcome:
    return remove_record(record, invoker=invoker).outcome


def remove_all(
    records: Sequence[InstallationRecord],
    *,
    invoker: Invoker | None = None,
    settle_delay: float = constants.SETTLE_DELAY_SECONDS,
) -> List[RemovalResult]:
    """!
    @brief Remove ``records`` sequentially, pausing ``settle_delay`` seconds between them.
    @details A failed or errored record never stops the remaining removals.
    """

    results: List[RemovalResult] = []
    for position, record in enumerate(records):
        if position and settle_delay > 0:
            time.sleep(settle_delay)
        results.append(remove_record(record, invoker=invoker))
    return results


__all__ = [
    "Errored",
    "Failed",
    "Invocation",
    "Invoker",
    "Outcome",
    "RemovalResult",
    "Succeeded",
    "UninstallCommandError",
    "build_invocation",
    "extract_product_code",
    "has_silent_flag",
    "is_msi_command",
    "outcome_from_result",
    "remove",
    "remove_all",
    "remove_record",
    "split_command",
]
