"""!
@brief Update Janitor package root.
@details Modules under this namespace inventory installed software, find
superseded runtimes and updates, decide which installations are safe to
remove and remove them.
"""

__all__ = [
    "main",
    "inventory",
    "classify",
    "grouping",
    "versioning",
    "oracle",
    "decision",
    "pipeline",
    "uninstall",
    "report",
    "registry_tools",
    "logging_ext",
    "exec_utils",
    "restore_point",
    "constants",
    "safety",
    "confirm",
    "version",
]
