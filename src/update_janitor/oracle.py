"""!
@brief Latest-version oracles and the per-run resolver cache.
@details An oracle answers "what is the newest known-good version of this
product family?" for a canonical key. Oracles are pluggable: a static table
for well-understood families, an HTTP endpoint, a chain of both, or nothing
at all. The :class:`VersionResolver` wraps whichever oracle is configured,
turns every failure into ``None``, and consults the oracle at most once per
canonical key for the lifetime of a run.
"""
from __future__ import annotations

import json
import re
import urllib.parse
import urllib.request
from typing import Dict, Mapping, Protocol, Sequence

from . import constants, logging_ext
from .grouping import split_key
from .inventory import InstallationRecord

_VCREDIST_FAMILY = re.compile(constants.VCREDIST_FAMILY_PATTERN, re.IGNORECASE)


class VersionOracle(Protocol):
    def lookup(self, canonical_key: str, publisher_hint: str | None) -> str | None:
        ...


class NullVersionOracle:
    """!
    @brief Oracle that never knows anything; the engine then falls back to group ordering.
    """

    def lookup(self, canonical_key: str, publisher_hint: str | None) -> str | None:
        return None


class StaticVersionOracle:
    """!
    @brief Table-driven oracle keyed by the canonical key's year qualifier.
    @details Only keys whose base matches ``family_pattern`` are answered.
    Defaults to the Visual C++ redistributable table in :mod:`constants`.
    """

    def __init__(
        self,
        table: Mapping[str, str] | None = None,
        *,
        family_pattern: re.Pattern[str] | None = None,
    ) -> None:
        self._table = dict(table if table is not None else constants.VCREDIST_LATEST_VERSIONS)
        self._family = family_pattern or _VCREDIST_FAMILY

    def lookup(self, canonical_key: str, publisher_hint: str | None) -> str | None:
        base, qualifier = split_key(canonical_key)
        if qualifier is None or not self._family.search(base):
            return None
        return self._table.get(qualifier)


class HttpVersionOracle:
    """!
    @brief Query a JSON endpoint for the latest version of a product family.
    @details Issues ``GET <url>?key=<canonical key>&publisher=<hint>`` and
    expects an object with a ``latest`` string (``null`` when unknown).
    Network, HTTP, and decoding errors propagate to the caller; the
    :class:`VersionResolver` converts them to ``None``.
    """

    def __init__(self, url: str, *, timeout: float = constants.ORACLE_TIMEOUT_SECONDS) -> None:
        self.url = url
        self.timeout = timeout

    def _build_url(self, canonical_key: str, publisher_hint: str | None) -> str:
        query: Dict[str, str] = {"key": canonical_key}
        if publisher_hint:
            query["publisher"] = publisher_hint
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urllib.parse.urlencode(query)}"

    def lookup(self, canonical_key: str, publisher_hint: str | None) -> str | None:
        request = urllib.request.Request(
            self._build_url(canonical_key, publisher_hint),
            headers={"Accept": "application/json", "User-Agent": "update-janitor"},
        )
        with urllib.request.urlopen(request, timeout=self.timeout) as response:
            payload = json.loads(response.read().decode("utf-8"))
        if not isinstance(payload, Mapping):
            raise ValueError("Oracle response must be a JSON object")
        latest = payload.get("latest")
        if latest is None:
            return None
        text = str(latest).strip()
        return text or None


class ChainedVersionOracle:
    """!
    @brief Ask several oracles in order; the first non-``None`` answer wins.
    """

    def __init__(self, oracles: Sequence[VersionOracle]) -> None:
        self._oracles = list(oracles)

    def lookup(self, canonical_key: str, publisher_hint: str | None) -> str | None:
        for oracle in self._oracles:
            answer = oracle.lookup(canonical_key, publisher_hint)
            if answer is not None:
                return answer
        return None


class VersionResolver:
    """!
    @brief Run-scoped, memoising front for a :class:`VersionOracle`.
    """

    def __init__(self, oracle: VersionOracle | None = None) -> None:
        self._oracle = oracle
        self._cache: Dict[str, str | None] = {}

    @property
    def cache(self) -> Mapping[str, str | None]:
        return dict(self._cache)

    def resolve(self, canonical_key: str, sample_record: InstallationRecord | None = None) -> str | None:
        """!
        @brief Return the latest known version for ``canonical_key`` or ``None``.
        @details The publisher of ``sample_record`` is forwarded as a hint.
        Failures of any kind are logged and cached as ``None``.
        """

        if canonical_key in self._cache:
            return self._cache[canonical_key]

        latest: str | None = None
        if self._oracle is not None:
            hint = sample_record.publisher if sample_record is not None else None
            try:
                latest = self._oracle.lookup(canonical_key, hint)
            except Exception as exc:  # noqa: BLE001 - pluggable oracles may raise anything
                _log_lookup_failure(canonical_key, exc)

        self._cache[canonical_key] = latest
        return latest


def _log_lookup_failure(canonical_key: str, exc: BaseException) -> None:
    logging_ext.get_human_logger().info(
        "Version lookup for %s unavailable (%s); continuing without it.", canonical_key, exc
    )
    logging_ext.get_machine_logger().info(
        "oracle_lookup_failed",
        extra=logging_ext.build_event_extra(
            "oracle_lookup_failed", canonical_key=canonical_key, error=repr(exc)
        ),
    )


def build_oracle(
    *,
    enabled: bool = True,
    url: str | None = None,
    timeout: float = constants.ORACLE_TIMEOUT_SECONDS,
) -> VersionOracle:
    """!
    @brief Assemble the oracle described by CLI options.
    """

    if not enabled:
        return NullVersionOracle()
    oracles: list[VersionOracle] = [StaticVersionOracle()]
    if url:
        oracles.append(HttpVersionOracle(url, timeout=timeout))
    return ChainedVersionOracle(oracles)


__all__ = [
    "ChainedVersionOracle",
    "HttpVersionOracle",
    "NullVersionOracle",
    "StaticVersionOracle",
    "VersionOracle",
    "VersionResolver",
    "build_oracle",
]
