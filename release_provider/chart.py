"""Loading chart metadata from an unpacked chart or a chart archive."""

from dataclasses import dataclass, field
import logging
from pathlib import Path
import tarfile
from typing import Any

import yaml

from .exceptions import ChartLoadException, DependencyMismatchException, InputException

__all__ = [
    "Chart",
    "ChartDependency",
    "load_chart",
    "check_dependencies",
    "check_installable",
]

_LOGGER = logging.getLogger(__name__)

CHART_FILE = "Chart.yaml"
CHARTS_DIR = "charts"
INSTALLABLE_TYPES = ("", "application")
_CONSTRAINT_CHARS = set("<>=~^*|, xX")


@dataclass(frozen=True)
class ChartDependency:
    """A sub-chart declared in the chart metadata."""

    name: str
    """Name of the dependency chart."""

    version: str = ""
    """Version constraint of the dependency."""

    repository: str = ""
    """Repository the dependency is fetched from."""

    alias: str | None = None
    """Alternate name the dependency is installed under."""

    condition: str | None = None
    """Values path that enables the dependency."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ChartDependency":
        if not (name := doc.get("name")):
            raise ChartLoadException(f"Invalid chart dependency missing name: {doc}")
        return cls(
            name=name,
            version=str(doc.get("version") or ""),
            repository=doc.get("repository") or "",
            alias=doc.get("alias"),
            condition=doc.get("condition"),
        )


@dataclass
class Chart:
    """A loaded chart, its metadata and the sub-charts vendored with it."""

    name: str
    """Name of the chart."""

    version: str
    """Version of the chart."""

    path: Path
    """Location the chart was loaded from."""

    app_version: str = ""
    """Version of the application packaged by the chart."""

    type: str = ""
    """Chart type, e.g. `application` or `library`."""

    dependencies: list[ChartDependency] = field(default_factory=list)
    """Dependencies declared in the chart metadata."""

    vendored: dict[str, str] = field(default_factory=dict)
    """Name to version of the sub-charts present in the charts directory."""

    @classmethod
    def parse_doc(
        cls, doc: dict[str, Any], path: Path, vendored: dict[str, str]
    ) -> "Chart":
        """Parse the Chart from a Chart.yaml document."""
        if not isinstance(doc, dict):
            raise ChartLoadException(f"Invalid {CHART_FILE} in {path}")
        if not (name := doc.get("name")):
            raise ChartLoadException(f"Invalid {CHART_FILE} missing name in {path}")
        if not (version := doc.get("version")):
            raise ChartLoadException(f"Invalid {CHART_FILE} missing version in {path}")
        return cls(
            name=name,
            version=str(version),
            path=path,
            app_version=str(doc.get("appVersion") or ""),
            type=doc.get("type") or "",
            dependencies=[
                ChartDependency.parse_doc(dep) for dep in doc.get("dependencies") or ()
            ],
            vendored=vendored,
        )


def _load_yaml(content: bytes | str, path: Path) -> Any:
    try:
        return yaml.load(content, Loader=yaml.SafeLoader)
    except yaml.YAMLError as err:
        raise ChartLoadException(f"Unable to parse {CHART_FILE} in {path}: {err}")


def _archive_metadata(archive: tarfile.TarFile, path: Path) -> dict[str, Any]:
    """Return the top level Chart.yaml of a chart archive."""
    for member in archive.getmembers():
        parts = member.name.split("/")
        if len(parts) == 2 and parts[1] == CHART_FILE:
            if (fileobj := archive.extractfile(member)) is None:
                break
            with fileobj:
                return _load_yaml(fileobj.read(), path)  # type: ignore[no-any-return]
    raise ChartLoadException(f"Chart archive {path} has no {CHART_FILE}")


def _archive_vendored(archive: tarfile.TarFile, path: Path) -> dict[str, str]:
    """Return the sub-charts vendored inside a chart archive."""
    vendored: dict[str, str] = {}
    for member in archive.getmembers():
        parts = member.name.split("/")
        if len(parts) == 4 and parts[1] == CHARTS_DIR and parts[3] == CHART_FILE:
            if (fileobj := archive.extractfile(member)) is None:
                continue
            with fileobj:
                doc = _load_yaml(fileobj.read(), path)
            if isinstance(doc, dict) and doc.get("name"):
                vendored[doc["name"]] = str(doc.get("version") or "")
    return vendored


def _read_archive(path: Path) -> tuple[dict[str, Any], dict[str, str]]:
    try:
        with tarfile.open(path, mode="r:*") as archive:
            return _archive_metadata(archive, path), _archive_vendored(archive, path)
    except tarfile.TarError as err:
        raise ChartLoadException(f"Unable to read chart archive {path}: {err}")


def _directory_vendored(path: Path) -> dict[str, str]:
    """Return the sub-charts vendored in the charts directory."""
    vendored: dict[str, str] = {}
    charts_dir = path / CHARTS_DIR
    if not charts_dir.is_dir():
        return vendored
    for entry in sorted(charts_dir.iterdir()):
        if entry.is_dir() and (entry / CHART_FILE).exists():
            doc = _load_yaml((entry / CHART_FILE).read_text(), entry)
        elif entry.suffix == ".tgz" and entry.is_file():
            doc, _ = _read_archive(entry)
        else:
            continue
        if isinstance(doc, dict) and doc.get("name"):
            vendored[doc["name"]] = str(doc.get("version") or "")
    return vendored


def load_chart(path: Path) -> Chart:
    """Load a chart from a directory or a chart archive."""
    _LOGGER.debug("Loading chart from %s", path)
    if path.is_dir():
        chart_file = path / CHART_FILE
        if not chart_file.exists():
            raise ChartLoadException(f"Chart directory {path} has no {CHART_FILE}")
        doc = _load_yaml(chart_file.read_text(), path)
        return Chart.parse_doc(doc, path, _directory_vendored(path))
    if path.is_file():
        doc, vendored = _read_archive(path)
        return Chart.parse_doc(doc, path, vendored)
    raise ChartLoadException(f"Chart path {path} does not exist")


def _is_exact_version(constraint: str) -> bool:
    return bool(constraint) and not (set(constraint) & _CONSTRAINT_CHARS)


def check_dependencies(chart: Chart) -> None:
    """Check that all declared dependencies are vendored with the chart.

    A dependency pinned to an exact version must be vendored at that version.
    Range constraints are satisfied by any vendored version; resolving ranges
    is left to the dependency update.
    """
    problems: list[str] = []
    for dep in chart.dependencies:
        if (found := chart.vendored.get(dep.name)) is None:
            problems.append(f"{dep.name} is missing")
        elif _is_exact_version(dep.version) and found != dep.version.lstrip("v"):
            problems.append(f"{dep.name} is {found}, expected {dep.version}")
    if problems:
        raise DependencyMismatchException(
            f"Chart {chart.name} dependencies found in {CHART_FILE} do not match "
            f"the {CHARTS_DIR}/ directory: {', '.join(problems)}"
        )
    _LOGGER.debug("Chart %s dependencies are up to date", chart.name)


def check_installable(chart: Chart) -> None:
    """Reject charts that can't be installed, such as library charts."""
    if chart.type not in INSTALLABLE_TYPES:
        raise InputException(f"{chart.type} charts are not installable")
