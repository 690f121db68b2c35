"""Resolve a chart reference to a loaded chart.

A chart is referenced by name (or local path), an optional repository and a
version constraint. The `ChartResolver` locates the chart through a
`ChartSource`, loads it and makes sure its dependencies are vendored.

Locating a chart reads and writes the shared local cache directory, which is
not safe to do concurrently. All resolution against the same cache directory
is serialized behind the lock of its `ChartCache` handle, while resolution
against different cache directories runs in parallel.

```python
from release_provider.config import ProviderConfig
from release_provider.helm import HelmChartSource
from release_provider.resolver import ChartResolver, get_chart_cache

config = ProviderConfig.from_env()
resolver = ChartResolver(get_chart_cache(config), HelmChartSource())
chart, options = await resolver.resolve(release.release_spec)
```
"""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
import hashlib
import logging
from pathlib import Path
import re

from slugify import slugify

from .chart import Chart, load_chart, check_dependencies
from .config import ProviderConfig
from .context import trace_context
from .exceptions import DependencyMismatchException
from .spec import ReleaseSpec

__all__ = [
    "ChartPathOptions",
    "ChartCache",
    "ChartSource",
    "ChartResolver",
    "get_chart_cache",
    "resolve_chart_name",
    "chart_version",
]

_LOGGER = logging.getLogger(__name__)

DEVEL_VERSION = ">0.0.0-0"

# A request URI has a scheme followed by an absolute path or authority, or is
# itself an absolute path
_REQUEST_URI_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9+.\-]*:/|/)\S*$")


def resolve_chart_name(repository: str, name: str) -> tuple[str, str]:
    """Return the repository URL and the chart name to locate.

    A repository that is a URL is used as-is with the unchanged chart name.
    Otherwise an unqualified chart name is qualified with the repository name.
    """
    if _REQUEST_URI_RE.match(repository):
        return repository, name
    if "/" not in name and repository:
        name = f"{repository}/{name}"
    return "", name


def chart_version(spec: ReleaseSpec) -> str | None:
    """Return the version constraint used to locate the chart."""
    version = (spec.version or "").strip()
    if not version and spec.devel:
        _LOGGER.debug("Setting version to %s", DEVEL_VERSION)
        return DEVEL_VERSION
    return version or None


@dataclass(frozen=True, kw_only=True)
class ChartPathOptions:
    """Options used to locate a chart."""

    chart_name: str
    """Chart reference, possibly qualified with a repository name."""

    repo_url: str = ""
    """URL of the repository when the chart is not a named repository chart."""

    version: str | None = None
    """Version constraint, latest stable when not set."""

    verify: bool = False
    """Verify the chart signature."""

    keyring: str | None = None
    """Public keys used for verification."""

    ca_file: str | None = None
    cert_file: str | None = None
    key_file: str | None = None
    username: str | None = None
    password: str | None = None

    @classmethod
    def from_spec(cls, spec: ReleaseSpec) -> "ChartPathOptions":
        repo = spec.repository_spec
        repo_url, chart_name = resolve_chart_name(
            repo.repository or "", spec.chart.strip()
        )
        return cls(
            chart_name=chart_name,
            repo_url=repo_url,
            version=chart_version(spec),
            verify=spec.verify,
            keyring=spec.keyring,
            ca_file=repo.repository_ca_file,
            cert_file=repo.repository_cert_file,
            key_file=repo.repository_key_file,
            username=repo.repository_username,
            password=repo.repository_password,
        )

    @property
    def cache_key(self) -> str:
        """Stable identifier of the chart within a cache directory."""
        key = hashlib.sha256()
        for part in (self.repo_url, self.chart_name, self.version or ""):
            key.update(part.encode("utf-8"))
            key.update(b"\0")
        return key.hexdigest()[:16]

    def __str__(self) -> str:
        location = f"{self.repo_url} " if self.repo_url else ""
        return f"{location}{self.chart_name}@{self.version or 'latest'}"


class ChartCache:
    """Handle for a local chart cache directory.

    Holds the lock that serializes every locate and load against the
    directory. Use `get_chart_cache` to share one handle per directory.
    """

    def __init__(
        self,
        path: Path,
        repository_config: Path | None = None,
        registry_config: Path | None = None,
        plugins_directory: Path | None = None,
    ) -> None:
        """Initialize ChartCache."""
        self.path = path
        self.repository_config = repository_config
        self.registry_config = registry_config
        self.plugins_directory = plugins_directory
        self.lock = asyncio.Lock()

    def pull_dir(self, options: ChartPathOptions) -> Path:
        """Return the directory a chart is unpacked into.

        e.g. <cache>/charts/bitnami-nginx/ab1234567890abcdef
        """
        slug = slugify(options.chart_name, max_length=50, lowercase=True, separator="-")
        return self.path / "charts" / (slug or "chart") / options.cache_key

    def __repr__(self) -> str:
        return f"ChartCache({self.path})"


_CACHES: dict[Path, ChartCache] = {}


def get_chart_cache(config: ProviderConfig) -> ChartCache:
    """Return the shared ChartCache handle for the configured cache directory."""
    path = config.cache_dir.expanduser().resolve()
    if (cache := _CACHES.get(path)) is None:
        cache = ChartCache(
            path,
            repository_config=config.repository_config,
            registry_config=config.registry_config,
            plugins_directory=config.plugins_directory,
        )
        _CACHES[path] = cache
    return cache


class ChartSource(ABC):
    """Transport that fetches charts and their dependencies."""

    @abstractmethod
    async def locate(self, options: ChartPathOptions, cache: ChartCache) -> Path:
        """Return the local path of the chart, fetching it if needed."""

    @abstractmethod
    async def update_dependencies(
        self, path: Path, keyring: str | None, cache: ChartCache
    ) -> None:
        """Download the declared dependencies into the chart's charts directory."""


class ChartResolver:
    """Locates and loads charts through a ChartSource."""

    def __init__(self, cache: ChartCache, source: ChartSource) -> None:
        """Initialize ChartResolver."""
        self._cache = cache
        self._source = source

    @property
    def cache(self) -> ChartCache:
        """The cache handle this resolver is bound to."""
        return self._cache

    async def resolve(self, spec: ReleaseSpec) -> tuple[Chart, ChartPathOptions]:
        """Return the loaded chart for the release and the options used.

        Missing or mismatched dependencies are downloaded once when
        `dependency_update` is set, after which the chart is reloaded.
        Otherwise, or if the reloaded chart still does not match, a
        `DependencyMismatchException` is raised.
        """
        options = ChartPathOptions.from_spec(spec)
        async with self._cache.lock:
            with trace_context("Resolve chart", str(options)):
                path = await self._source.locate(options, self._cache)
                chart = load_chart(path)
                try:
                    check_dependencies(chart)
                except DependencyMismatchException as err:
                    if not spec.dependency_update:
                        raise
                    _LOGGER.info(
                        "Downloading chart %s dependencies: %s", chart.name, err
                    )
                    await self._source.update_dependencies(
                        path, spec.keyring, self._cache
                    )
                    chart = load_chart(path)
                    check_dependencies(chart)
        _LOGGER.debug("Resolved chart %s %s at %s", chart.name, chart.version, path)
        return chart, options
