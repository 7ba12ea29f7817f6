"""!
@brief Command line entry point tests.
@details Runs :func:`update_janitor.main.main` against JSON inventory exports
with uninstall execution, host guards and restore points patched out.
"""

from __future__ import annotations

import json
import logging
import pathlib
import sys
from typing import Dict, List

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from update_janitor import exec_utils, logging_ext, main  # noqa: E402

INVENTORY = [
    {
        "SourceKey": "hklm\\{OLD}",
        "DisplayName": "Microsoft Visual C++ 2015-2022 Redistributable (x64) - 14.36.32532",
        "DisplayVersion": "14.36.32532.0",
        "UninstallString": "MsiExec.exe /X{8BDFE669-9705-4184-9368-DB9CE581E0E7}",
        "EstimatedSize": 20480,
    },
    {
        "SourceKey": "hklm\\{NEW}",
        "DisplayName": "Microsoft Visual C++ 2015-2022 Redistributable (x64) - 14.44.35211",
        "DisplayVersion": "14.44.35211.0",
        "UninstallString": "MsiExec.exe /X{0D3E9E15-DE7A-300B-96F1-B4AF12B96488}",
    },
    {
        "SourceKey": "hklm\\Firefox",
        "DisplayName": "Mozilla Firefox (x64 en-US)",
        "DisplayVersion": "121.0",
        "UninstallString": "\"C:\\Program Files\\Mozilla Firefox\\uninstall\\helper.exe\"",
    },
]


@pytest.fixture(autouse=True)
def _reset_logging_state() -> None:
    yield
    for name in (logging_ext.HUMAN_LOGGER_NAME, logging_ext.MACHINE_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        for flt in list(logger.filters):
            logger.removeFilter(flt)


@pytest.fixture
def inventory_file(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "inventory.json"
    path.write_text(json.dumps(INVENTORY), encoding="utf-8")
    return path


@pytest.fixture
def host(monkeypatch: pytest.MonkeyPatch) -> Dict[str, object]:
    """!
    @brief Patch the host seams and record what the CLI asked for.
    """

    state: Dict[str, object] = {"admin": True, "system": "Windows", "commands": [], "restore_points": 0, "rc": 0}

    def fake_run_command(command, *, event, timeout=None, human_message=None, extra=None, **kwargs):
        state["commands"].append(list(command))  # type: ignore[union-attr]
        return exec_utils.CommandResult(
            command=list(command), returncode=int(state["rc"]), stdout="", stderr="", duration=0.0
        )

    def fake_restore_point(description, *, timeout=180):
        state["restore_points"] = int(state["restore_points"]) + 1
        return True

    monkeypatch.setattr(exec_utils, "run_command", fake_run_command)
    monkeypatch.setattr(main, "_current_process_is_admin", lambda: bool(state["admin"]))
    monkeypatch.setattr(main, "_detect_operating_system", lambda: str(state["system"]))
    monkeypatch.setattr(main.restore_point, "create_restore_point", fake_restore_point)
    return state


def _args(tmp_path: pathlib.Path, inventory_file: pathlib.Path, *extra: str) -> List[str]:
    return ["--inventory", str(inventory_file), "--logdir", str(tmp_path / "logs"), "--settle-delay", "0", *extra]


def test_diagnose_writes_plan_and_changes_nothing(tmp_path, inventory_file, host) -> None:
    exit_code = main.main(_args(tmp_path, inventory_file, "--diagnose"))

    assert exit_code == 0
    assert host["commands"] == []
    plan = json.loads((tmp_path / "logs" / "diagnostics-plan.json").read_text(encoding="utf-8"))
    assert plan["removals"] == 1
    assert plan["ignored"] == 1
    group = plan["groups"][0]
    assert group["latest_version"] == "14.44.35211"
    assert [entry["source_key"] for entry in group["remove"]] == ["hklm\\{OLD}"]


def test_dry_run_writes_report_without_invoking(tmp_path, inventory_file, host) -> None:
    report_path = tmp_path / "report.json"

    exit_code = main.main(_args(tmp_path, inventory_file, "--dry-run", "--report", str(report_path)))

    assert exit_code == 0
    assert host["commands"] == []
    assert host["restore_points"] == 0
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["dry_run"] is True
    assert report["planned_removals"] == 1
    assert report["removed"] == 0


def test_removal_run_uninstalls_superseded_record(tmp_path, inventory_file, host) -> None:
    report_path = tmp_path / "report.json"
    plan_path = tmp_path / "plan.json"

    exit_code = main.main(
        _args(tmp_path, inventory_file, "--yes", "--report", str(report_path), "--plan", str(plan_path))
    )

    assert exit_code == 0
    assert host["commands"] == [
        ["msiexec.exe", "/x", "{8BDFE669-9705-4184-9368-DB9CE581E0E7}", "/qn", "/norestart"]
    ]
    assert host["restore_points"] == 1
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["removed"] == 1
    assert report["bytes_freed"] == 20480 * 1024
    assert plan_path.exists()


def test_failed_removal_returns_one(tmp_path, inventory_file, host) -> None:
    host["rc"] = 1603

    assert main.main(_args(tmp_path, inventory_file, "--force", "--no-restore-point")) == 1
    assert host["restore_points"] == 0
    assert len(host["commands"]) == 1


def test_missing_admin_rights_return_two(tmp_path, inventory_file, host) -> None:
    host["admin"] = False

    assert main.main(_args(tmp_path, inventory_file, "--yes")) == 2
    assert host["commands"] == []


def test_non_windows_host_returns_two(tmp_path, inventory_file, host) -> None:
    host["system"] = "Linux"

    assert main.main(_args(tmp_path, inventory_file, "--yes")) == 2
    assert host["commands"] == []


def test_declined_confirmation_changes_nothing(tmp_path, inventory_file, host, monkeypatch) -> None:
    monkeypatch.setattr(main.confirm, "request_removal_confirmation", lambda **kwargs: False)

    assert main.main(_args(tmp_path, inventory_file)) == 0
    assert host["commands"] == []


def test_no_oracle_still_collapses_duplicates(tmp_path, inventory_file, host) -> None:
    assert main.main(_args(tmp_path, inventory_file, "--no-oracle", "--yes", "--no-restore-point")) == 0
    assert [command[2] for command in host["commands"]] == ["{8BDFE669-9705-4184-9368-DB9CE581E0E7}"]


def test_nothing_to_remove(tmp_path, host) -> None:
    path = tmp_path / "single.json"
    path.write_text(json.dumps(INVENTORY[1:]), encoding="utf-8")

    assert main.main(_args(tmp_path, path, "--yes")) == 0
    assert host["commands"] == []
    assert host["restore_points"] == 0


def test_invalid_rules_file_returns_two(tmp_path, inventory_file, host) -> None:
    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps({"include": ["(unclosed"]}), encoding="utf-8")

    assert main.main(_args(tmp_path, inventory_file, "--rules", str(rules))) == 2


def test_custom_rules_extend_candidates(tmp_path, host) -> None:
    path = tmp_path / "inventory.json"
    path.write_text(
        json.dumps(
            [
                {"DisplayName": "Contoso Agent 1.0", "DisplayVersion": "1.0", "UninstallString": "c:\\old\\unins.exe"},
                {"DisplayName": "Contoso Agent 2.0", "DisplayVersion": "2.0", "UninstallString": "c:\\new\\unins.exe"},
            ]
        ),
        encoding="utf-8",
    )
    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps({"include": {"contoso": "^Contoso Agent\\b"}}), encoding="utf-8")

    assert main.main(_args(tmp_path, path, "--rules", str(rules), "--yes", "--no-restore-point")) == 0
    assert host["commands"] == [["c:\\old\\unins.exe", "/quiet", "/norestart"]]


def test_version_flag(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main.main(["--version"])

    assert excinfo.value.code == 0
    assert main.version.__version__ in capsys.readouterr().out


def test_diagnose_and_dry_run_are_exclusive(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main.main(["--diagnose", "--dry-run"])

    assert excinfo.value.code == 2
