"""Release store interface for recording release revisions in a cluster."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from release_provider.chart import Chart
from release_provider.exceptions import InputException

__all__ = [
    "ReleaseRecord",
    "InstallOptions",
    "UpgradeOptions",
    "UninstallOptions",
    "ReleaseStore",
]


@dataclass(frozen=True, kw_only=True)
class ReleaseRecord:
    """A single revision of a release as recorded by the release store."""

    name: str
    """Name of the release."""

    namespace: str
    """Namespace of the release."""

    revision: int
    """Revision number, starting at 1 for the install."""

    status: str
    """Lifecycle status, e.g. `deployed`, `failed`, `pending-install`."""

    chart_name: str
    """Name of the chart that was deployed."""

    chart_version: str
    """Version of the chart that was deployed."""

    app_version: str = ""
    """Application version of the chart that was deployed."""

    config: dict[str, Any] = field(default_factory=dict)
    """The values supplied for this revision."""

    manifest: str = ""
    """The rendered manifest as a multi-document YAML string."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ReleaseRecord":
        """Parse a ReleaseRecord from a helm JSON release document."""
        if not (name := doc.get("name")):
            raise InputException(f"Invalid release missing name: {doc}")
        metadata = (doc.get("chart") or {}).get("metadata") or {}
        return cls(
            name=name,
            namespace=doc.get("namespace", ""),
            revision=int(doc.get("version", 0)),
            status=(doc.get("info") or {}).get("status", "unknown"),
            chart_name=metadata.get("name", ""),
            chart_version=str(metadata.get("version", "")),
            app_version=str(metadata.get("appVersion") or ""),
            config=doc.get("config") or {},
            manifest=doc.get("manifest") or "",
        )


@dataclass(kw_only=True)
class InstallOptions:
    """Options applied to an install action."""

    release_name: str
    namespace: str
    atomic: bool = False
    create_namespace: bool = False
    dependency_update: bool = False
    description: str | None = None
    disable_hooks: bool = False
    disable_openapi_validation: bool = False
    dry_run: bool = False
    post_renderer: str | None = None
    render_subchart_notes: bool = False
    replace: bool = False
    skip_crds: bool = False
    timeout: int = 0
    """Seconds, 0 for the store default."""
    wait: bool = False
    wait_for_jobs: bool = False

    def __post_init__(self) -> None:
        if not self.release_name:
            raise InputException("Release name is required")
        # Atomic implies waiting for the release to become ready
        if self.atomic:
            self.wait = True


@dataclass(kw_only=True)
class UpgradeOptions(InstallOptions):
    """Options applied to an upgrade action."""

    cleanup_on_fail: bool = False
    force: bool = False
    max_history: int | None = None
    recreate_pods: bool = False
    reset_values: bool = False
    reuse_values: bool = False


@dataclass(kw_only=True)
class UninstallOptions:
    """Options applied to an uninstall action."""

    release_name: str
    namespace: str
    disable_hooks: bool = False
    timeout: int = 0
    wait: bool = False


class ReleaseStore(ABC):
    """Abstract base class for the release store of a cluster.

    Implementations raise `ReleaseNotFoundError` when a release does not exist
    and `HelmException` for any other failure.
    """

    @abstractmethod
    async def install(
        self, chart: Chart, values: dict[str, Any], options: InstallOptions
    ) -> ReleaseRecord:
        """Install a new release of the chart."""

    @abstractmethod
    async def upgrade(
        self, chart: Chart, values: dict[str, Any], options: UpgradeOptions
    ) -> ReleaseRecord:
        """Upgrade an existing release to a new revision."""

    @abstractmethod
    async def get(self, name: str, namespace: str) -> ReleaseRecord:
        """Return the latest revision of the release."""

    @abstractmethod
    async def uninstall(self, options: UninstallOptions) -> None:
        """Remove the release and its history."""
