"""!
@brief Static data shared across the Update Janitor pipeline.
@details Registry uninstall roots, classification patterns, grouping
markers, edition tokens, known-good versions, and uninstall command
arguments live here so detection, grouping, and removal work from one
versioned source of truth. The CLI can extend the pattern sets at runtime
through a rules file (see :mod:`update_janitor.classify`).
"""
from __future__ import annotations

from typing import Dict, Tuple

try:  # pragma: no cover - Windows registry handles are optional on test hosts.
    import winreg
except ImportError:  # pragma: no cover - exercised implicitly in non-Windows CI.
    winreg = None  # type: ignore[assignment]


if winreg is not None:  # pragma: no branch - deterministic assignments.
    HKLM = winreg.HKEY_LOCAL_MACHINE
    HKCU = winreg.HKEY_CURRENT_USER
else:  # pragma: no cover - exercised implicitly in non-Windows CI.
    HKLM = 0x80000002
    HKCU = 0x80000001


UNINSTALL_SOURCES: Tuple[Tuple[str, int, str], ...] = (
    ("hklm", HKLM, r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
    ("hklm-wow64", HKLM, r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"),
    ("hkcu", HKCU, r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
)
"""!
@brief Labelled uninstall roots scanned for installation records.
@details The label prefixes every record's ``source_key`` and doubles as the
``--source`` selector on the command line.
"""

# Classification ---------------------------------------------------------

DEFAULT_INCLUSION_PATTERNS: Tuple[Tuple[str, str], ...] = (
    ("windows-update", r"\bUpdate for (Microsoft )?Windows\b"),
    ("kb-update", r"\bKB\d{6,8}\b"),
    ("security-update", r"^Security Update for\b"),
    ("hotfix", r"^Hotfix for\b"),
    ("vc-redist", r"\bVisual C\+\+ \d{4}(-\d{4})?\b.*\b(Redistributable|Runtime)\b"),
    (
        "dotnet-runtime",
        r"^Microsoft (\.NET|ASP\.NET Core|Windows Desktop)\b.*\b(Runtime|Shared Framework|Hosting Bundle)\b",
    ),
    ("java-update", r"^Java(\(TM\))?( SE Runtime Environment)? \d+ Update \d+"),
    ("webview2", r"^Microsoft Edge WebView2 Runtime\b"),
    ("python-runtime", r"^Python \d+\.\d+\.\d+\b"),
)
"""!
@brief Ordered ``(name, regex)`` pairs marking update/redistributable-like records.
"""

DEFAULT_EXCLUSION_PATTERNS: Tuple[Tuple[str, str], ...] = (
    (
        "python-components",
        r"^Python \d+\.\d+\.\d+ (Standard Library|Executables|Documentation|Core Interpreter"
        r"|Development Libraries|pip Bootstrap|Tcl/Tk Support|Test Suite|Add to Path"
        r"|Utility Scripts)\b",
    ),
    ("python-launcher", r"^Python Launcher\b"),
)
"""!
@brief Sub-components of one composite install that are never independent duplicates.
"""

# Grouping ---------------------------------------------------------------

VERSIONED_FAMILY_MARKERS: Tuple[Tuple[str, int, int], ...] = (
    (r"Visual C\+\+", 2005, 2022),
    (r"Visual Studio", 2005, 2026),
    (r"SQL Server", 2005, 2025),
)
"""!
@brief ``(marker regex, first year, last year)`` for year-qualified product families.
"""

RELEASE_LINE_MARKERS: Tuple[str, ...] = (
    r"^Microsoft (?:\.NET|ASP\.NET Core|Windows Desktop)\b.*?\b(\d+\.\d+)\.\d+",
    r"^Python (\d+\.\d+)\.\d+",
    r"^Java(?:\(TM\))?(?: SE Runtime Environment)? (\d+) Update \d+",
)
"""!
@brief Side-by-side runtime families qualified by their release line.
@details Each regex captures the major (or major.minor) line from the display
name. Different lines of these runtimes are installed alongside each other,
so the line is part of the product identity rather than its version.
"""

# Decision ---------------------------------------------------------------

EDITION_SENSITIVE_FAMILIES: Tuple[str, ...] = (r"Visual C\+\+",)
"""!
@brief Families whose editions must coexist instead of being deduplicated.
"""

EDITION_TOKENS: Tuple[str, ...] = ("Minimum", "Additional", "Debug")

# Version oracle ---------------------------------------------------------

VCREDIST_LATEST_VERSIONS: Dict[str, str] = {
    "2005": "8.0.61001",
    "2008": "9.0.30729.6161",
    "2010": "10.0.40219",
    "2012": "11.0.61030",
    "2013": "12.0.40664",
    "2015": "14.44.35211",
    "2017": "14.44.35211",
    "2019": "14.44.35211",
    "2022": "14.44.35211",
}
"""!
@brief Known-good Visual C++ redistributable versions keyed by product year.
@details 2015 through 2022 share the binary-compatible 14.x runtime.
"""

VCREDIST_FAMILY_PATTERN = r"\bvisual c\+\+"

ORACLE_TIMEOUT_SECONDS = 5.0

# Removal ----------------------------------------------------------------

MSIEXEC_EXECUTABLE = "msiexec.exe"
MSIEXEC_UNINSTALL_SWITCH = "/x"
MSIEXEC_QUIET_ARGS: Tuple[str, ...] = ("/qn", "/norestart")

SILENT_FLAGS = frozenset(
    {
        "/s",
        "/silent",
        "/verysilent",
        "/quiet",
        "/q",
        "/qn",
        "/qb",
        "/qb!",
        "/passive",
        "-s",
        "-q",
        "-silent",
        "--silent",
        "--quiet",
    }
)
"""!
@brief Lower-cased argument tokens that already request an unattended uninstall.
"""

SILENT_FALLBACK_ARGS: Tuple[str, ...] = ("/quiet", "/norestart")

SUCCESS_EXIT_CODES = frozenset({0, 3010})
"""!
@brief Uninstall exit codes treated as success (3010 means a reboot is pending).
"""

SETTLE_DELAY_SECONDS = 2.0
"""!
@brief Pause between consecutive uninstall invocations.
"""


__all__ = [
    "DEFAULT_EXCLUSION_PATTERNS",
    "DEFAULT_INCLUSION_PATTERNS",
    "EDITION_SENSITIVE_FAMILIES",
    "EDITION_TOKENS",
    "HKCU",
    "HKLM",
    "MSIEXEC_EXECUTABLE",
    "MSIEXEC_QUIET_ARGS",
    "MSIEXEC_UNINSTALL_SWITCH",
    "ORACLE_TIMEOUT_SECONDS",
    "RELEASE_LINE_MARKERS",
    "SETTLE_DELAY_SECONDS",
    "SILENT_FALLBACK_ARGS",
    "SILENT_FLAGS",
    "SUCCESS_EXIT_CODES",
    "UNINSTALL_SOURCES",
    "VCREDIST_FAMILY_PATTERN",
    "VCREDIST_LATEST_VERSIONS",
    "VERSIONED_FAMILY_MARKERS",
]
