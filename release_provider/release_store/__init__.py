"""
The release_store module records the revisions of releases deployed to a
cluster, keyed by release name and namespace.

This abstract interface allows for various implementations (the helm binary
talking to a cluster, in-memory, etc.).
"""

from .store import (
    ReleaseStore,
    ReleaseRecord,
    InstallOptions,
    UpgradeOptions,
    UninstallOptions,
)
from .in_memory import InMemoryReleaseStore

__all__ = [
    "ReleaseStore",
    "ReleaseRecord",
    "InstallOptions",
    "UpgradeOptions",
    "UninstallOptions",
    "InMemoryReleaseStore",
]
