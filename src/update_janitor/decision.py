"""!
@brief Keep/remove decisions for one product group.
@details The engine is total: every member lands in exactly one of
``keep`` or ``remove`` and no input shape raises. Policy, in order of
precedence:

- A sole installation is always kept.
- Without a usable latest version the newest member (by version, then
  install date, unknown data last) is kept and the rest are removed.
- With a latest version, members at or above it are kept and older ones are
  removed, except that edition-sensitive families keep the newest member of
  every edition (``Minimum``/``Additional``/``Debug``) that has no kept
  member yet. Members with unparsable versions are ordered among
  themselves; the first is kept only when nothing else was kept.
- If that still leaves nothing kept, the newest member is retained so a
  group never loses its last copy.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

from . import constants
from .grouping import ProductGroup, split_key
from .inventory import InstallationRecord
from .versioning import parse_version

_EDITION_SENSITIVE = tuple(
    re.compile(pattern, re.IGNORECASE) for pattern in constants.EDITION_SENSITIVE_FAMILIES
)
_EDITION_TOKEN = re.compile(
    r"\b(" + "|".join(re.escape(token) for token in constants.EDITION_TOKENS) + r")\b",
    re.IGNORECASE,
)
_EDITION_CANONICAL = {token.casefold(): token for token in constants.EDITION_TOKENS}


@dataclass
class DecisionSet:
    """!
    @brief Disjoint keep/remove partition of one group's members.
    """

    canonical_key: str
    latest_version: str | None = None
    keep: List[InstallationRecord] = field(default_factory=list)
    remove: List[InstallationRecord] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "canonical_key": self.canonical_key,
            "latest_version": self.latest_version,
            "keep": [record.to_dict() for record in self.keep],
            "remove": [record.to_dict() for record in self.remove],
            "notes": list(self.notes),
        }


def is_edition_sensitive(canonical_key: str) -> bool:
    base, _ = split_key(canonical_key)
    return any(pattern.search(base) for pattern in _EDITION_SENSITIVE)


def edition_token(display_name: str) -> str | None:
    """!
    @brief Extract the edition token (``Minimum``, ``Additional``, ``Debug``) from a name.
    """

    match = _EDITION_TOKEN.search(display_name)
    if match is None:
        return None
    return _EDITION_CANONICAL[match.group(1).casefold()]


def order_newest_first(members: Sequence[InstallationRecord]) -> List[InstallationRecord]:
    """!
    @brief Sort by version, then install date, newest first; ties keep discovery order.
    """

    return sorted(members, key=lambda record: (record.version(), record.installed_on()), reverse=True)


def _partition(
    group: ProductGroup,
    latest_version: str | None,
    kept: Set[int],
    notes: List[str],
) -> DecisionSet:
    """!
    @brief Materialise the decision in discovery order from the kept member indexes.
    """

    decision = DecisionSet(group.canonical_key, latest_version=latest_version, notes=notes)
    for index, record in enumerate(group.members):
        if index in kept:
            decision.keep.append(record)
        else:
            decision.remove.append(record)
    return decision


def _newest_index(group: ProductGroup, indexes: Sequence[int]) -> int:
    ordered = order_newest_first([group.members[index] for index in indexes])
    # sorted() is stable, so identity lookup picks the earliest tied member.
    return next(index for index in indexes if group.members[index] is ordered[0])


def decide(group: ProductGroup, latest_version: str | None = None) -> DecisionSet:
    """!
    @brief Partition ``group`` into keep/remove sets.
    @param group Members of one canonical product.
    @param latest_version Latest known-good version from the oracle, if any.
    @returns :class:`DecisionSet` covering exactly ``group.members``.
    """

    members = group.members
    notes: List[str] = []
    if not members:
        return DecisionSet(group.canonical_key, latest_version=latest_version)

    latest = parse_version(latest_version)

    if len(members) == 1:
        only = members[0]
        current = only.version()
        if latest.is_parsed and current.is_parsed and current < latest:
            notes.append(
                f"{only.display_name} {only.display_version} is older than the latest known "
                f"{latest_version}; kept because it is the only installation."
            )
        return _partition(group, latest_version, {0}, notes)

    all_indexes = list(range(len(members)))
    if not latest.is_parsed:
        return _partition(group, latest_version, {_newest_index(group, all_indexes)}, notes)

    sensitive = is_edition_sensitive(group.canonical_key)
    kept: Set[int] = set()
    kept_editions: Set[Tuple[str, str]] = set()
    below: List[int] = []
    unparsable: List[int] = []

    for index, record in enumerate(members):
        current = record.version()
        if not current.is_parsed:
            unparsable.append(index)
        elif current >= latest:
            kept.add(index)
            edition = edition_token(record.display_name) if sensitive else None
            if edition is not None:
                kept_editions.add((group.canonical_key, edition))
        else:
            below.append(index)

    if sensitive:
        ordered_below = order_newest_first([members[index] for index in below])
        for record in ordered_below:
            edition = edition_token(record.display_name)
            if edition is None or (group.canonical_key, edition) in kept_editions:
                continue
            index = next(i for i in below if members[i] is record)
            kept.add(index)
            kept_editions.add((group.canonical_key, edition))
            notes.append(
                f"{record.display_name} {record.display_version} kept below latest "
                f"{latest_version} as the only {edition} edition."
            )

    if unparsable and not kept:
        kept.add(_newest_index(group, unparsable))

    if not kept:
        retained = _newest_index(group, all_indexes)
        kept.add(retained)
        notes.append(
            f"No member reaches latest {latest_version}; retained "
            f"{members[retained].display_name} {members[retained].display_version} as the newest copy."
        )

    return _partition(group, latest_version, kept, notes)


__all__ = [
    "DecisionSet",
    "decide",
    "edition_token",
    "is_edition_sensitive",
    "order_newest_first",
]
