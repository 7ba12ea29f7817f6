"""!
@brief Dotted version and install date parsing.
@details Registry ``DisplayVersion`` and ``InstallDate`` values are free-form
text. Parsing never raises: each helper returns either :class:`Parsed` or
:class:`Unparsable`, and the two share one total order in which every parsed
value ranks above every unparsable one. Sorting members newest-first
therefore places unknown data last without special-casing in the callers.
"""
from __future__ import annotations

import datetime as _dt
import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Any, Tuple, Union

_LEADING_DIGITS = re.compile(r"\d+")
_VERSION_HEAD = re.compile(r"^[vV]?\d")

INSTALL_DATE_FORMATS: Tuple[str, ...] = ("%Y%m%d", "%Y-%m-%d", "%m/%d/%Y")


@total_ordering
@dataclass(frozen=True)
class Parsed:
    """!
    @brief Successfully parsed value (a version tuple or a :class:`datetime.date`).
    @details ``raw`` keeps the source text for reporting and does not take
    part in comparisons.
    """

    value: Any
    raw: str | None = field(default=None, compare=False)

    @property
    def is_parsed(self) -> bool:
        return True

    def __lt__(self, other: object) -> bool:
        if isinstance(other, Unparsable):
            return False
        if isinstance(other, Parsed):
            return bool(self.value < other.value)
        return NotImplemented


@total_ordering
@dataclass(frozen=True, eq=False)
class Unparsable:
    """!
    @brief Placeholder for missing or malformed input; ranks below every :class:`Parsed`.
    """

    raw: str | None = None

    @property
    def is_parsed(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Unparsable):
            return True
        if isinstance(other, Parsed):
            return False
        return NotImplemented

    def __hash__(self) -> int:
        return hash(Unparsable)

    def __lt__(self, other: object) -> bool:
        if isinstance(other, Parsed):
            return True
        if isinstance(other, Unparsable):
            return False
        return NotImplemented


ParseResult = Union[Parsed, Unparsable]


def parse_version(raw: object) -> ParseResult:
    """!
    @brief Parse a dotted numeric version such as ``14.44.35211``.
    @details Only the first whitespace-delimited token is considered and it
    must start with a digit (an optional ``v`` prefix is allowed). Each dotted
    segment contributes its leading digits; segments without digits count as
    zero. Trailing zero segments are dropped so ``1.2`` and ``1.2.0`` compare
    equal and shorter versions behave as if padded with zeros.
    @param raw Registry value; ``None`` and non-strings are accepted.
    @returns :class:`Parsed` holding a tuple of ints, or :class:`Unparsable`.
    """

    if raw is None:
        return Unparsable(None)
    text = str(raw).strip()
    if not text or not _VERSION_HEAD.match(text):
        return Unparsable(text or None)

    token = text.split()[0].lstrip("vV")
    parts = []
    for segment in token.split("."):
        match = _LEADING_DIGITS.match(segment)
        parts.append(int(match.group(0)) if match else 0)
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return Parsed(tuple(parts), text)


def parse_install_date(raw: object) -> ParseResult:
    """!
    @brief Parse an ``InstallDate`` value (``YYYYMMDD``; a few common variants are tolerated).
    """

    if raw is None:
        return Unparsable(None)
    text = str(raw).strip()
    for fmt in INSTALL_DATE_FORMATS:
        try:
            return Parsed(_dt.datetime.strptime(text, fmt).date(), text)
        except ValueError:
            continue
    return Unparsable(text or None)


def compare_versions(left: object, right: object) -> int:
    """!
    @brief Three-way comparison of two raw version strings.
    @returns ``-1``, ``0`` or ``1``; unparsable input ranks lowest.
    """

    a = parse_version(left)
    b = parse_version(right)
    if a == b:
        return 0
    return -1 if a < b else 1


__all__ = [
    "INSTALL_DATE_FORMATS",
    "ParseResult",
    "Parsed",
    "Unparsable",
    "compare_versions",
    "parse_install_date",
    "parse_version",
]
