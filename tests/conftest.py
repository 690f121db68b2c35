"""Fixtures shared by the release-provider tests."""

from collections.abc import Callable
import logging
from pathlib import Path
from typing import Any

import pytest
import yaml

from release_provider.chart import CHART_FILE, CHARTS_DIR, load_chart
from release_provider.config import ProviderConfig
from release_provider.exceptions import ChartException
from release_provider.provider import ReleaseProvider
from release_provider.release_store import InMemoryReleaseStore
from release_provider.resolver import (
    ChartCache,
    ChartPathOptions,
    ChartResolver,
    ChartSource,
)

_LOGGER = logging.getLogger(__name__)

ChartWriter = Callable[..., Path]


def _write_chart_yaml(path: Path, doc: dict[str, Any]) -> None:
    path.mkdir(parents=True, exist_ok=True)
    (path / CHART_FILE).write_text(yaml.dump(doc, sort_keys=False))


@pytest.fixture(name="write_chart")
def write_chart_fixture(tmp_path: Path) -> ChartWriter:
    """Fixture that writes an unpacked chart and returns its directory."""

    def write(
        name: str,
        version: str = "1.0.0",
        app_version: str = "",
        type: str = "",
        dependencies: list[dict[str, Any]] | None = None,
        vendored: dict[str, str] | None = None,
    ) -> Path:
        path = tmp_path / "charts" / name
        doc: dict[str, Any] = {"apiVersion": "v2", "name": name, "version": version}
        if app_version:
            doc["appVersion"] = app_version
        if type:
            doc["type"] = type
        if dependencies:
            doc["dependencies"] = dependencies
        _write_chart_yaml(path, doc)
        for dep_name, dep_version in (vendored or {}).items():
            _write_chart_yaml(
                path / CHARTS_DIR / dep_name,
                {"apiVersion": "v2", "name": dep_name, "version": dep_version},
            )
        return path

    return write


class FakeChartSource(ChartSource):
    """Chart source that serves charts written to the local filesystem.

    A dependency update vendors every declared dependency at its declared
    version, or at `dependency_version` when set.
    """

    def __init__(self) -> None:
        self.charts: dict[str, Path] = {}
        self.located: list[ChartPathOptions] = []
        self.updates: list[Path] = []
        self.dependency_version: str | None = None

    def add(self, chart_name: str, path: Path) -> None:
        self.charts[chart_name] = path

    async def locate(self, options: ChartPathOptions, cache: ChartCache) -> Path:
        self.located.append(options)
        if (path := self.charts.get(options.chart_name)) is None:
            raise ChartException(f"chart {options.chart_name} not found")
        return path

    async def update_dependencies(
        self, path: Path, keyring: str | None, cache: ChartCache
    ) -> None:
        self.updates.append(path)
        chart = load_chart(path)
        for dep in chart.dependencies:
            _write_chart_yaml(
                path / CHARTS_DIR / dep.name,
                {
                    "apiVersion": "v2",
                    "name": dep.name,
                    "version": self.dependency_version or dep.version,
                },
            )


@pytest.fixture(name="chart_source")
def chart_source_fixture() -> FakeChartSource:
    """Fixture for the fake chart source."""
    return FakeChartSource()


@pytest.fixture(name="chart_cache")
def chart_cache_fixture(tmp_path: Path) -> ChartCache:
    """Fixture for a chart cache handle private to the test."""
    return ChartCache(tmp_path / "cache")


@pytest.fixture(name="resolver")
def resolver_fixture(
    chart_cache: ChartCache, chart_source: FakeChartSource
) -> ChartResolver:
    """Fixture for a resolver backed by the fake chart source."""
    return ChartResolver(chart_cache, chart_source)


@pytest.fixture(name="release_store")
def release_store_fixture() -> InMemoryReleaseStore:
    """Fixture for an empty in-memory release store."""
    return InMemoryReleaseStore()


@pytest.fixture(name="config")
def config_fixture(tmp_path: Path) -> ProviderConfig:
    """Fixture for the provider configuration."""
    return ProviderConfig(repository_cache=tmp_path / "cache")


@pytest.fixture(name="provider")
def provider_fixture(
    config: ProviderConfig,
    release_store: InMemoryReleaseStore,
    resolver: ChartResolver,
) -> ReleaseProvider:
    """Fixture for a provider backed by fakes."""
    return ReleaseProvider(config, release_store, resolver)


@pytest.fixture(name="podinfo")
def podinfo_fixture(
    write_chart: ChartWriter, chart_source: FakeChartSource
) -> Path:
    """Fixture for a podinfo chart served from the podinfo repository."""
    path = write_chart("podinfo", version="6.5.4", app_version="6.5.4")
    chart_source.add("podinfo/podinfo", path)
    return path
