"""!
@brief Inventory collection and normalisation.
@details Reads uninstall entries from the registry (or a JSON export) and
turns them into :class:`InstallationRecord` instances. Inventory is best
effort: entries without a display name or uninstall command are dropped
silently, and a source that cannot be read contributes zero records instead
of aborting the scan, since several sources are usually combined.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Protocol, Sequence, Tuple

from . import constants, logging_ext, registry_tools
from .versioning import ParseResult, parse_install_date, parse_version


@dataclass(frozen=True)
class InstallationRecord:
    """!
    @brief One discovered software entry.
    @details Version and date fields keep their raw text; :meth:`version` and
    :meth:`installed_on` parse them on demand.
    """

    display_name: str
    uninstall_command: str
    source_key: str
    display_version: str | None = None
    publisher: str | None = None
    install_date: str | None = None
    estimated_size_kb: int | None = None

    def version(self) -> ParseResult:
        return parse_version(self.display_version)

    def installed_on(self) -> ParseResult:
        return parse_install_date(self.install_date)

    def to_dict(self) -> Dict[str, object]:
        """!
        @brief Convert the record to a JSON-serialisable dictionary.
        """

        payload: Dict[str, object] = {
            "display_name": self.display_name,
            "uninstall_command": self.uninstall_command,
            "source_key": self.source_key,
        }
        if self.display_version is not None:
            payload["display_version"] = self.display_version
        if self.publisher is not None:
            payload["publisher"] = self.publisher
        if self.install_date is not None:
            payload["install_date"] = self.install_date
        if self.estimated_size_kb is not None:
            payload["estimated_size_kb"] = self.estimated_size_kb
        return payload


class InventorySource(Protocol):
    """!
    @brief Anything that yields ``(source_key, raw values)`` pairs.
    """

    label: str

    def iter_raw_records(self) -> Iterator[Tuple[str, Mapping[str, Any]]]:
        ...


@dataclass(frozen=True)
class RegistryInventorySource:
    """!
    @brief Uninstall entries beneath one registry root.
    """

    label: str
    hive: int
    path: str

    def iter_raw_records(self) -> Iterator[Tuple[str, Mapping[str, Any]]]:
        for subkey in list(registry_tools.iter_subkeys(self.hive, self.path)):
            values = registry_tools.read_values(self.hive, f"{self.path}\\{subkey}")
            if values:
                yield f"{self.label}\\{subkey}", values


@dataclass(frozen=True)
class JsonInventorySource:
    """!
    @brief Raw uninstall values exported to a JSON file.
    @details The file holds a list of objects using registry value names
    (``DisplayName``, ``UninstallString``, ...). An optional ``SourceKey``
    field is honoured; otherwise the list index is used. UTF-8, UTF-16 and UTF-32
    exports are accepted, with or without a byte order mark.
    """

    path: Path
    label: str = "json"

    def iter_raw_records(self) -> Iterator[Tuple[str, Mapping[str, Any]]]:
        try:
            payload = json.loads(Path(self.path).read_bytes())
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise OSError(f"Malformed inventory file {self.path}: {exc}") from exc
        if not isinstance(payload, list):
            raise OSError(f"Inventory file {self.path} must contain a JSON list")
        for index, entry in enumerate(payload):
            if not isinstance(entry, Mapping):
                continue
            key = str(entry.get("SourceKey") or f"{self.label}\\{index}")
            yield key, entry


def default_sources(labels: Iterable[str] | None = None) -> List[RegistryInventorySource]:
    """!
    @brief Build registry sources for the requested labels (all when ``None``).
    @throws ValueError If an unknown label is requested.
    """

    known = {label: (hive, path) for label, hive, path in constants.UNINSTALL_SOURCES}
    selected = list(labels) if labels is not None else list(known)
    unknown = [label for label in selected if label not in known]
    if unknown:
        raise ValueError("Unknown inventory source(s): " + ", ".join(sorted(unknown)))
    return [RegistryInventorySource(label, *known[label]) for label in selected]


def _clean_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip().strip("\0")
    return text or None


def _clean_size(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        size = int(str(value).strip())
    except ValueError:
        return None
    return size if size >= 0 else None


def normalize_record(source_key: str, values: Mapping[str, Any]) -> InstallationRecord | None:
    """!
    @brief Convert raw uninstall values into an :class:`InstallationRecord`.
    @returns ``None`` when ``DisplayName`` or ``UninstallString`` is missing or blank.
    """

    display_name = _clean_text(values.get("DisplayName"))
    uninstall_command = _clean_text(values.get("UninstallString"))
    if not display_name or not uninstall_command:
        return None
    return InstallationRecord(
        display_name=display_name,
        uninstall_command=uninstall_command,
        source_key=source_key,
        display_version=_clean_text(values.get("DisplayVersion")),
        publisher=_clean_text(values.get("Publisher")),
        install_date=_clean_text(values.get("InstallDate")),
        estimated_size_kb=_clean_size(values.get("EstimatedSize")),
    )


def normalize_records(raw_records: Iterable[Tuple[str, Mapping[str, Any]]]) -> List[InstallationRecord]:
    """!
    @brief Normalise raw pairs in order, dropping invalid entries and repeated source keys.
    """

    records: List[InstallationRecord] = []
    seen: set[str] = set()
    for source_key, values in raw_records:
        if source_key in seen:
            continue
        record = normalize_record(source_key, values)
        if record is None:
            continue
        seen.add(source_key)
        records.append(record)
    return records


def collect_inventory(sources: Sequence[InventorySource]) -> List[InstallationRecord]:
    """!
    @brief Scan every source and return the combined, normalised inventory.
    @details A source raising :class:`OSError` is logged and contributes no
    records; the remaining sources are still scanned.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    raw: List[Tuple[str, Mapping[str, Any]]] = []
    for source in sources:
        try:
            collected = list(source.iter_raw_records())
        except OSError as exc:
            human_logger.warning("Inventory source %s unavailable: %s", source.label, exc)
            machine_logger.warning(
                "inventory_source_error",
                extra=logging_ext.build_event_extra(
                    "inventory_source_error", source=source.label, error=str(exc)
                ),
            )
            continue
        machine_logger.info(
            "inventory_source_scanned",
            extra=logging_ext.build_event_extra(
                "inventory_source_scanned", source=source.label, entries=len(collected)
            ),
        )
        raw.extend(collected)

    records = normalize_records(raw)
    human_logger.info("Inventory contains %d installation records", len(records))
    return records


__all__ = [
    "InstallationRecord",
    "InventorySource",
    "JsonInventorySource",
    "RegistryInventorySource",
    "collect_inventory",
    "default_sources",
    "normalize_record",
    "normalize_records",
]
