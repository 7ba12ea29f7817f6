"""!
@brief Canonical product identity and grouping.
@details A record's canonical key is derived from its display name alone:
version suffixes, ``(KBnnnnnnn)`` markers, and architecture tokens are
removed, and a qualifier is appended so different product generations never
share a group: the product year following a known family marker (for example
``Visual C++ 2013``), or the release line of a side-by-side runtime (for
example ``6.0`` for ``Microsoft .NET Runtime - 6.0.25``).
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from . import constants
from .inventory import InstallationRecord

QUALIFIER_SEPARATOR = "|"

_TRAILING_VERSION = re.compile(r"\s+[vV]?\d+(?:\.\d+)+\b.*$")
_UPDATE_ORDINAL = re.compile(r"\s+Update\s+\d+\b.*$", re.IGNORECASE)
_KB_MARKER = re.compile(r"\s*\(KB\d+\)", re.IGNORECASE)
_ARCH_MARKER = re.compile(r"\(\s*x(?:86|64)\s*\)|\bx(?:86|64)\b", re.IGNORECASE)
_DASH_VERSION = re.compile(r"\s+-\s+[vV]?\d+(?:\.\d+)+.*$")
_WHITESPACE = re.compile(r"\s+")
_EDGE_PUNCTUATION = " -,:;"

_FAMILY_YEARS: Tuple[Tuple[re.Pattern[str], int, int], ...] = tuple(
    (re.compile(marker + r"\s+(\d{4})\b", re.IGNORECASE), first, last)
    for marker, first, last in constants.VERSIONED_FAMILY_MARKERS
)
_RELEASE_LINES: Tuple[re.Pattern[str], ...] = tuple(
    re.compile(marker, re.IGNORECASE) for marker in constants.RELEASE_LINE_MARKERS
)


@dataclass
class ProductGroup:
    """!
    @brief Records believed to be versions/editions of one logical product.
    """

    canonical_key: str
    members: List[InstallationRecord] = field(default_factory=list)

    @property
    def qualifier(self) -> str | None:
        return split_key(self.canonical_key)[1]

    def __len__(self) -> int:
        return len(self.members)


def split_key(canonical_key: str) -> Tuple[str, str | None]:
    """!
    @brief Separate a canonical key into ``(base, qualifier)``.
    """

    base, sep, qualifier = canonical_key.partition(QUALIFIER_SEPARATOR)
    return base, (qualifier if sep else None)


def extract_year_qualifier(display_name: str) -> str | None:
    """!
    @brief Return the product year following a versioned family marker, if in range.
    """

    for pattern, first, last in _FAMILY_YEARS:
        match = pattern.search(display_name)
        if match and first <= int(match.group(1)) <= last:
            return match.group(1)
    return None


def extract_release_line(display_name: str) -> str | None:
    """!
    @brief Return the release line of a side-by-side runtime (``6.0``, ``3.11``, ``8``).
    """

    for pattern in _RELEASE_LINES:
        match = pattern.search(display_name)
        if match:
            return match.group(1)
    return None


def base_name(display_name: str) -> str:
    """!
    @brief Strip version, update ordinal, KB, and architecture markers from ``display_name``.
    """

    text = _TRAILING_VERSION.sub("", display_name)
    text = _UPDATE_ORDINAL.sub("", text)
    text = _KB_MARKER.sub("", text)
    text = _ARCH_MARKER.sub(" ", text)
    text = _DASH_VERSION.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip(_EDGE_PUNCTUATION)
    return text or display_name.strip()


def canonical_key(display_name: str) -> str:
    """!
    @brief Derive the grouping key for ``display_name``.
    @details The base is case-folded so the key is stable across casing
    differences between otherwise identical entries.
    """

    key = base_name(display_name).casefold()
    qualifier = extract_year_qualifier(display_name) or extract_release_line(display_name)
    if qualifier is not None:
        key = f"{key}{QUALIFIER_SEPARATOR}{qualifier}"
    return key


def group(candidates: Iterable[InstallationRecord]) -> Dict[str, ProductGroup]:
    """!
    @brief Cluster candidates by canonical key in discovery order.
    """

    groups: Dict[str, ProductGroup] = {}
    for record in candidates:
        key = canonical_key(record.display_name)
        groups.setdefault(key, ProductGroup(key)).members.append(record)
    return groups


__all__ = [
    "ProductGroup",
    "QUALIFIER_SEPARATOR",
    "base_name",
    "canonical_key",
    "extract_release_line",
    "extract_year_qualifier",
    "group",
    "split_key",
]
