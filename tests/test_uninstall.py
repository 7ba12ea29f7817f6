"""!
@brief Removal executor tests.
@details Validates uninstall command composition for MSI and executable
entries, outcome classification of exit codes, and the sequential,
single-attempt execution contract.
"""

from __future__ import annotations

import pathlib
import sys
from typing import List, Sequence

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from update_janitor import exec_utils, logging_ext, uninstall  # noqa: E402
from update_janitor.inventory import InstallationRecord  # noqa: E402

PRODUCT_CODE = "{050D4FC8-5D48-4B8F-8972-47C82C46020F}"


def _command_result(command: Sequence[str], returncode: int = 0, *, error: str | None = None) -> exec_utils.CommandResult:
    """!
    @brief Convenience factory for :class:`CommandResult` instances.
    """

    return exec_utils.CommandResult(
        command=list(command),
        returncode=returncode,
        stdout="",
        stderr="",
        duration=0.1,
        error=error,
    )


def _record(command: str, name: str = "Contoso Runtime", size: int | None = None) -> InstallationRecord:
    return InstallationRecord(
        display_name=name,
        uninstall_command=command,
        source_key=f"hklm\\{name}",
        display_version="1.0",
        estimated_size_kb=size,
    )


@pytest.mark.parametrize(
    "command",
    [
        "MsiExec.exe /I{050d4fc8-5d48-4b8f-8972-47c82c46020f}",
        "MsiExec.exe /X{050D4FC8-5D48-4B8F-8972-47C82C46020F}",
        r"C:\Windows\System32\msiexec.exe /x {050D4FC8-5D48-4B8F-8972-47C82C46020F} /qb",
    ],
)
def test_msi_commands_become_quiet_product_code_uninstalls(command: str) -> None:
    invocation = uninstall.build_invocation(command)

    assert invocation.style == "msi"
    assert invocation.product_code == PRODUCT_CODE
    assert invocation.command == ("msiexec.exe", "/x", PRODUCT_CODE, "/qn", "/norestart")


def test_msi_command_without_product_code_is_rejected() -> None:
    with pytest.raises(uninstall.UninstallCommandError):
        uninstall.build_invocation("MsiExec.exe /I")


def test_quoted_executable_gets_silent_flags_appended() -> None:
    invocation = uninstall.build_invocation('"C:\\Program Files\\Contoso\\uninst.exe" --remove')

    assert invocation.style == "exe"
    assert invocation.command == ("C:\\Program Files\\Contoso\\uninst.exe", "--remove", "/quiet", "/norestart")


def test_existing_silent_flag_is_respected() -> None:
    invocation = uninstall.build_invocation('"C:\\Program Files\\Contoso\\uninst.exe" /S')

    assert invocation.command == ("C:\\Program Files\\Contoso\\uninst.exe", "/S")


@pytest.mark.parametrize(
    ("command", "expected"),
    [
        (
            '"C:\\App\\uninst.exe" "/LOG=C:\\My Logs\\u.txt" /S',
            ("C:\\App\\uninst.exe", "/LOG=C:\\My Logs\\u.txt", "/S"),
        ),
        (
            '"C:\\App\\uninst.exe" /LOG="C:\\My Logs\\u.txt" /S',
            ("C:\\App\\uninst.exe", "/LOG=C:\\My Logs\\u.txt", "/S"),
        ),
        (
            "C:\\App\\uninst.exe --dir C:\\Bob's#Apps /S",
            ("C:\\App\\uninst.exe", "--dir", "C:\\Bob's#Apps", "/S"),
        ),
        (
            'C:\\App\\uninst.exe "/LOG=C:\\unterminated /S',
            ("C:\\App\\uninst.exe", "/LOG=C:\\unterminated", "/S"),
        ),
    ],
)
def test_quoted_arguments_are_unquoted_for_the_uninstaller(command: str, expected: tuple) -> None:
    invocation = uninstall.build_invocation(command)

    assert invocation.command == expected
    assert not any('"' in argument for argument in invocation.command)


def test_unquoted_path_with_spaces_splits_on_exe() -> None:
    executable, tail = uninstall.split_command(
        r"C:\Program Files (x86)\Microsoft\EdgeWebView\Application\setup.exe --uninstall --msedgewebview"
    )

    assert executable == r"C:\Program Files (x86)\Microsoft\EdgeWebView\Application\setup.exe"
    assert tail == "--uninstall --msedgewebview"


def test_bare_executable_without_extension() -> None:
    assert uninstall.split_command("uninstaller -x") == ("uninstaller", "-x")
    assert uninstall.split_command('"C:\\unterminated\\uninst.exe') == ("C:\\unterminated\\uninst.exe", "")


def test_empty_command_is_rejected() -> None:
    with pytest.raises(uninstall.UninstallCommandError):
        uninstall.build_invocation("   ")


@pytest.mark.parametrize(
    ("returncode", "error", "expected"),
    [
        (0, None, uninstall.Succeeded(0)),
        (3010, None, uninstall.Succeeded(3010)),
        (1603, None, uninstall.Failed(1603)),
        (127, "missing", uninstall.Errored("missing")),
    ],
)
def test_outcome_from_result(returncode: int, error: str | None, expected: uninstall.Outcome) -> None:
    assert uninstall.outcome_from_result(_command_result(["x"], returncode, error=error)) == expected


def test_remove_invokes_once_and_reports_failure(tmp_path: pathlib.Path) -> None:
    """!
    @brief A failing uninstall is attempted exactly once.
    """

    logging_ext.setup_logging(tmp_path, console=False)
    calls: List[List[str]] = []

    def invoker(command: Sequence[str]) -> exec_utils.CommandResult:
        calls.append(list(command))
        return _command_result(command, 1603)

    outcome = uninstall.remove(_record(f"MsiExec.exe /X{PRODUCT_CODE}"), invoker=invoker)

    assert outcome == uninstall.Failed(1603)
    assert calls == [["msiexec.exe", "/x", PRODUCT_CODE, "/qn", "/norestart"]]


def test_launch_exception_is_errored(tmp_path: pathlib.Path) -> None:
    logging_ext.setup_logging(tmp_path, console=False)

    def invoker(command: Sequence[str]) -> exec_utils.CommandResult:
        raise PermissionError("access denied")

    outcome = uninstall.remove(_record("uninst.exe"), invoker=invoker)

    assert isinstance(outcome, uninstall.Errored)
    assert "access denied" in outcome.cause


def test_unusable_command_is_errored_without_invocation(tmp_path: pathlib.Path) -> None:
    logging_ext.setup_logging(tmp_path, console=False)

    def invoker(command: Sequence[str]) -> exec_utils.CommandResult:  # pragma: no cover - must not run
        raise AssertionError("invoker should not be called")

    result = uninstall.remove_record(_record("MsiExec.exe /I"), invoker=invoker)

    assert isinstance(result.outcome, uninstall.Errored)
    assert result.command == ()


def test_default_invoker_uses_run_command(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path) -> None:
    logging_ext.setup_logging(tmp_path, console=False)
    captured = {}

    def fake_run_command(command, *, event, timeout=None, human_message=None, extra=None, **kwargs):
        captured.update(command=list(command), event=event, timeout=timeout, extra=extra)
        return _command_result(command, 3010)

    monkeypatch.setattr(uninstall.exec_utils, "run_command", fake_run_command)

    outcome = uninstall.remove(_record('"C:\\Contoso\\uninst.exe" /quiet'))

    assert outcome == uninstall.Succeeded(3010)
    assert captured["command"] == ["C:\\Contoso\\uninst.exe", "/quiet"]
    assert captured["event"] == "uninstall"
    assert captured["timeout"] is None
    assert captured["extra"]["source_key"] == "hklm\\Contoso Runtime"


def test_remove_all_is_sequential_with_settle_delay(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path) -> None:
    """!
    @brief Failures do not stop later removals and the executor pauses between them.
    """

    logging_ext.setup_logging(tmp_path, console=False)
    timeline: List[str] = []
    codes = iter([1603, 0, 3010])

    def invoker(command: Sequence[str]) -> exec_utils.CommandResult:
        timeline.append(f"run:{command[0]}")
        return _command_result(command, next(codes))

    monkeypatch.setattr(uninstall.time, "sleep", lambda seconds: timeline.append(f"sleep:{seconds}"))

    records = [_record(f"{name}.exe", name=name) for name in ("a", "b", "c")]
    results = uninstall.remove_all(records, invoker=invoker, settle_delay=1.5)

    assert [result.outcome for result in results] == [
        uninstall.Failed(1603),
        uninstall.Succeeded(0),
        uninstall.Succeeded(3010),
    ]
    assert timeline == ["run:a.exe", "sleep:1.5", "run:b.exe", "sleep:1.5", "run:c.exe"]
    assert [result.record for result in results] == records


def test_has_silent_flag_is_case_insensitive() -> None:
    assert uninstall.has_silent_flag(["/VERYSILENT"])
    assert uninstall.has_silent_flag(["--uninstall", "-Q"])
    assert not uninstall.has_silent_flag(["--uninstall"])
