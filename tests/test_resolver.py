"""Tests for resolving chart references."""

import asyncio
from pathlib import Path

import pytest

from release_provider import resolver as resolver_module
from release_provider.config import ProviderConfig
from release_provider.exceptions import DependencyMismatchException
from release_provider.resolver import (
    DEVEL_VERSION,
    ChartCache,
    ChartPathOptions,
    ChartResolver,
    chart_version,
    get_chart_cache,
    resolve_chart_name,
)
from release_provider.spec import ReleaseSpec, RepositorySpec

from conftest import ChartWriter, FakeChartSource


@pytest.mark.parametrize(
    ("repository", "name", "expected"),
    [
        ("https://charts.example.com", "nginx", ("https://charts.example.com", "nginx")),
        ("oci://registry.example.com/charts", "app", ("oci://registry.example.com/charts", "app")),
        ("/srv/charts", "nginx", ("/srv/charts", "nginx")),
        ("bitnami", "nginx", ("", "bitnami/nginx")),
        ("", "repo/mychart", ("", "repo/mychart")),
        ("bitnami", "other/nginx", ("", "other/nginx")),
        ("", "./charts/app", ("", "./charts/app")),
    ],
)
def test_resolve_chart_name(
    repository: str, name: str, expected: tuple[str, str]
) -> None:
    """Test how a chart reference is qualified with its repository."""
    assert resolve_chart_name(repository, name) == expected


def test_chart_version() -> None:
    """Test the version constraint used to locate the chart."""
    assert chart_version(ReleaseSpec(chart="a")) is None
    assert chart_version(ReleaseSpec(chart="a", version=" 1.2.3 ")) == "1.2.3"
    assert chart_version(ReleaseSpec(chart="a", devel=True)) == DEVEL_VERSION
    assert chart_version(ReleaseSpec(chart="a", version="1.0", devel=True)) == "1.0"


def test_chart_path_options() -> None:
    """Test building the locate options from a release spec."""
    spec = ReleaseSpec(
        chart=" podinfo ",
        version="6.0.0",
        verify=True,
        keyring="/keys",
        repository_spec=RepositorySpec(
            repository="https://stefanprodan.github.io/podinfo",
            repository_username="user",
            repository_password="hunter2",
        ),
    )
    options = ChartPathOptions.from_spec(spec)
    assert options == ChartPathOptions(
        chart_name="podinfo",
        repo_url="https://stefanprodan.github.io/podinfo",
        version="6.0.0",
        verify=True,
        keyring="/keys",
        username="user",
        password="hunter2",
    )
    assert "hunter2" not in str(options)
    assert options.cache_key == ChartPathOptions.from_spec(spec).cache_key
    assert options.cache_key != ChartPathOptions(chart_name="podinfo").cache_key


def test_pull_dir(tmp_path: Path) -> None:
    """Test the directory a chart is unpacked into."""
    cache = ChartCache(tmp_path)
    options = ChartPathOptions(chart_name="bitnami/nginx", version="1.0.0")
    assert cache.pull_dir(options) == (
        tmp_path / "charts" / "bitnami-nginx" / options.cache_key
    )


def test_get_chart_cache_shared(tmp_path: Path) -> None:
    """Test one cache handle is shared per cache directory."""
    cache = get_chart_cache(ProviderConfig(repository_cache=tmp_path / "a"))
    assert cache is get_chart_cache(ProviderConfig(repository_cache=tmp_path / "a"))
    assert cache is not get_chart_cache(ProviderConfig(repository_cache=tmp_path / "b"))
    assert cache.path == (tmp_path / "a").resolve()


async def test_resolve(
    resolver: ChartResolver, chart_source: FakeChartSource, podinfo: Path
) -> None:
    """Test resolving a repository chart."""
    chart, options = await resolver.resolve(
        ReleaseSpec(
            chart="podinfo",
            version="6.5.4",
            repository_spec=RepositorySpec(repository="podinfo"),
        )
    )
    assert chart.name == "podinfo"
    assert chart.path == podinfo
    assert options.chart_name == "podinfo/podinfo"
    assert [o.version for o in chart_source.located] == ["6.5.4"]


async def test_dependency_mismatch_without_update(
    resolver: ChartResolver, chart_source: FakeChartSource, write_chart: ChartWriter
) -> None:
    """Test missing dependencies fail when updating is not requested."""
    chart_source.add(
        "app", write_chart("app", dependencies=[{"name": "redis", "version": "1.0.0"}])
    )
    with pytest.raises(DependencyMismatchException, match="redis is missing"):
        await resolver.resolve(ReleaseSpec(chart="app"))
    assert chart_source.updates == []


async def test_dependency_update_once(
    resolver: ChartResolver,
    chart_source: FakeChartSource,
    write_chart: ChartWriter,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test dependencies are downloaded once and the chart is reloaded."""
    path = write_chart("app", dependencies=[{"name": "redis", "version": "1.0.0"}])
    chart_source.add("app", path)

    loads: list[Path] = []
    load_chart = resolver_module.load_chart

    def counting_load_chart(chart_path: Path):  # type: ignore[no-untyped-def]
        loads.append(chart_path)
        return load_chart(chart_path)

    monkeypatch.setattr(resolver_module, "load_chart", counting_load_chart)

    chart, _ = await resolver.resolve(ReleaseSpec(chart="app", dependency_update=True))
    assert chart.vendored == {"redis": "1.0.0"}
    assert chart_source.updates == [path]
    assert loads == [path, path]


async def test_dependency_update_still_mismatched(
    resolver: ChartResolver, chart_source: FakeChartSource, write_chart: ChartWriter
) -> None:
    """Test a chart that still mismatches after the update fails."""
    chart_source.add(
        "app", write_chart("app", dependencies=[{"name": "redis", "version": "1.0.0"}])
    )
    chart_source.dependency_version = "0.9.0"
    with pytest.raises(DependencyMismatchException, match="redis is 0.9.0"):
        await resolver.resolve(ReleaseSpec(chart="app", dependency_update=True))
    assert len(chart_source.updates) == 1


async def test_resolve_serialized(
    chart_cache: ChartCache, write_chart: ChartWriter
) -> None:
    """Test resolution against one cache directory never overlaps."""
    active = 0
    max_active = 0

    class SlowChartSource(FakeChartSource):
        async def locate(self, options, cache):  # type: ignore[no-untyped-def]
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await super().locate(options, cache)

    source = SlowChartSource()
    source.add("a", write_chart("a"))
    source.add("b", write_chart("b"))
    resolver = ChartResolver(chart_cache, source)
    results = await asyncio.gather(
        resolver.resolve(ReleaseSpec(chart="a")),
        resolver.resolve(ReleaseSpec(chart="b")),
        ChartResolver(chart_cache, source).resolve(ReleaseSpec(chart="a")),
    )
    assert [chart.name for chart, _ in results] == ["a", "b", "a"]
    assert max_active == 1
