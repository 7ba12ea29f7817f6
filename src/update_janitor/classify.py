"""!
@brief Candidate classification for duplicate analysis.
@details Records whose display name matches an inclusion pattern become
candidates; any exclusion match sends the record to the ignored bucket even
when it was also included. Pattern sets are plain data so they can be
extended from a JSON rules file without touching the pipeline.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Sequence, Tuple

from . import constants
from .inventory import InstallationRecord


@dataclass(frozen=True)
class PatternRule:
    """!
    @brief Named, compiled display-name predicate.
    """

    name: str
    pattern: re.Pattern[str]

    @classmethod
    def compile(cls, name: str, expression: str) -> "PatternRule":
        try:
            compiled = re.compile(expression, re.IGNORECASE)
        except re.error as exc:
            raise ValueError(f"Invalid pattern for rule {name!r}: {expression!r} ({exc})") from exc
        return cls(name=name, pattern=compiled)

    def matches(self, display_name: str) -> bool:
        return self.pattern.search(display_name) is not None


def _compile_rules(pairs: Iterable[Tuple[str, str]]) -> Tuple[PatternRule, ...]:
    return tuple(PatternRule.compile(name, expression) for name, expression in pairs)


def _coerce_pairs(raw: object, prefix: str) -> List[Tuple[str, str]]:
    """!
    @brief Accept either ``["regex", ...]`` or ``{"name": "regex"}`` from a rules file.
    """

    if raw is None:
        return []
    if isinstance(raw, Mapping):
        return [(str(name), str(expression)) for name, expression in raw.items()]
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        return [(f"{prefix}-{index}", str(expression)) for index, expression in enumerate(raw)]
    raise ValueError(f"Expected a list or mapping of patterns for {prefix!r}")


@dataclass(frozen=True)
class ClassificationRules:
    """!
    @brief Ordered inclusion and exclusion pattern sets.
    """

    include: Tuple[PatternRule, ...]
    exclude: Tuple[PatternRule, ...]

    @classmethod
    def defaults(cls) -> "ClassificationRules":
        return cls(
            include=_compile_rules(constants.DEFAULT_INCLUSION_PATTERNS),
            exclude=_compile_rules(constants.DEFAULT_EXCLUSION_PATTERNS),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "ClassificationRules":
        """!
        @brief Build rules from a mapping with ``include``/``exclude`` entries.
        @details Entries extend the defaults unless ``replace_defaults`` is true.
        @throws ValueError On malformed entries or invalid regular expressions.
        """

        include = _compile_rules(_coerce_pairs(data.get("include"), "include"))
        exclude = _compile_rules(_coerce_pairs(data.get("exclude"), "exclude"))
        if data.get("replace_defaults"):
            return cls(include=include, exclude=exclude)
        base = cls.defaults()
        return cls(include=base.include + include, exclude=base.exclude + exclude)

    def first_inclusion(self, display_name: str) -> PatternRule | None:
        for rule in self.include:
            if rule.matches(display_name):
                return rule
        return None

    def first_exclusion(self, display_name: str) -> PatternRule | None:
        for rule in self.exclude:
            if rule.matches(display_name):
                return rule
        return None

    def is_candidate(self, display_name: str) -> bool:
        if self.first_exclusion(display_name) is not None:
            return False
        return self.first_inclusion(display_name) is not None


def load_rules(path: Path) -> ClassificationRules:
    """!
    @brief Load classification rules from a JSON file.
    @throws ValueError When the file is not a JSON object or a pattern is invalid.
    @throws OSError When the file cannot be read.
    """

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Rules file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ValueError(f"Rules file {path} must contain a JSON object")
    return ClassificationRules.from_mapping(data)


def classify(
    records: Iterable[InstallationRecord],
    rules: ClassificationRules | None = None,
) -> Tuple[List[InstallationRecord], List[InstallationRecord]]:
    """!
    @brief Split ``records`` into ``(candidates, ignored)`` preserving order.
    """

    active = rules if rules is not None else ClassificationRules.defaults()
    candidates: List[InstallationRecord] = []
    ignored: List[InstallationRecord] = []
    for record in records:
        if active.is_candidate(record.display_name):
            candidates.append(record)
        else:
            ignored.append(record)
    return candidates, ignored


__all__ = [
    "ClassificationRules",
    "PatternRule",
    "classify",
    "load_rules",
]
