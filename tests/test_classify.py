"""!
@brief Candidate classification tests.
@details Exercises the default pattern sets, exclusion precedence and rules
files that extend or replace the defaults.
"""

from __future__ import annotations

import json
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from update_janitor import classify  # noqa: E402
from update_janitor.inventory import InstallationRecord  # noqa: E402


def _record(name: str, key: str | None = None) -> InstallationRecord:
    return InstallationRecord(
        display_name=name,
        uninstall_command="uninstall.exe",
        source_key=key or f"test\\{name}",
    )


@pytest.mark.parametrize(
    "name",
    [
        "Microsoft Visual C++ 2013 Redistributable (x64) - 12.0.40664",
        "Microsoft Visual C++ 2022 X64 Minimum Runtime - 14.44.35211",
        "Security Update for Microsoft Windows (KB5034441)",
        "Update for Windows 10 for x64-based Systems (KB4023057)",
        "Microsoft .NET Runtime - 8.0.1 (x64)",
        "Microsoft Edge WebView2 Runtime",
        "Java 8 Update 391",
        "Python 3.12.1 (64-bit)",
    ],
)
def test_default_rules_include_update_like_records(name: str) -> None:
    assert classify.ClassificationRules.defaults().is_candidate(name)


@pytest.mark.parametrize(
    "name",
    [
        "Mozilla Firefox (x64 en-US)",
        "7-Zip 23.01 (x64)",
        "Python 3.12.1 Standard Library (64-bit)",
        "Python Launcher",
    ],
)
def test_default_rules_ignore_other_records(name: str) -> None:
    assert not classify.ClassificationRules.defaults().is_candidate(name)


def test_exclusion_takes_precedence_over_inclusion() -> None:
    """!
    @brief A record matching both pattern sets is ignored.
    """

    rules = classify.ClassificationRules.defaults()
    name = "Python 3.11.4 Executables (64-bit)"
    assert rules.first_inclusion(name) is not None
    assert rules.first_exclusion(name) is not None

    candidates, ignored = classify.classify([_record(name)], rules)
    assert candidates == []
    assert [record.display_name for record in ignored] == [name]


def test_classify_is_total_and_preserves_order() -> None:
    records = [
        _record("Microsoft Visual C++ 2010  x86 Redistributable - 10.0.40219"),
        _record("Notepad++ (64-bit x64)"),
        _record("Microsoft Edge WebView2 Runtime"),
        _record("Python Launcher"),
    ]

    candidates, ignored = classify.classify(records)

    assert candidates == [records[0], records[2]]
    assert ignored == [records[1], records[3]]


def test_from_mapping_extends_defaults() -> None:
    rules = classify.ClassificationRules.from_mapping(
        {"include": {"contoso": r"^Contoso Runtime\b"}, "exclude": [r"\bDebug Symbols\b"]}
    )

    assert rules.is_candidate("Contoso Runtime 2.1")
    assert rules.is_candidate("Microsoft Edge WebView2 Runtime")
    assert not rules.is_candidate("Contoso Runtime Debug Symbols 2.1")
    assert rules.exclude[-1].name == "exclude-0"


def test_from_mapping_can_replace_defaults() -> None:
    rules = classify.ClassificationRules.from_mapping(
        {"include": [r"^Contoso\b"], "replace_defaults": True}
    )

    assert rules.is_candidate("Contoso Agent")
    assert not rules.is_candidate("Microsoft Edge WebView2 Runtime")
    assert rules.exclude == ()


def test_invalid_pattern_raises_value_error() -> None:
    with pytest.raises(ValueError, match="broken"):
        classify.ClassificationRules.from_mapping({"include": {"broken": "(unclosed"}})


def test_load_rules_reads_json_file(tmp_path: pathlib.Path) -> None:
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"include": [r"^Contoso\b"]}), encoding="utf-8")

    rules = classify.load_rules(path)

    assert rules.is_candidate("Contoso Agent")


def test_load_rules_rejects_non_object(tmp_path: pathlib.Path) -> None:
    path = tmp_path / "rules.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    with pytest.raises(ValueError):
        classify.load_rules(path)


def test_load_rules_rejects_malformed_json(tmp_path: pathlib.Path) -> None:
    path = tmp_path / "rules.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        classify.load_rules(path)
