"""Library for driving the `helm` binary as the chart source and release store.

This is an example that installs a release:
```python
from release_provider.config import ProviderConfig
from release_provider.helm import HelmChartSource, HelmReleaseStore
from release_provider.release_store import InstallOptions
from release_provider.resolver import ChartResolver, get_chart_cache

config = ProviderConfig.from_env()
resolver = ChartResolver(get_chart_cache(config), HelmChartSource())
chart, _ = await resolver.resolve(release.release_spec)
store = HelmReleaseStore(config)
record = await store.install(
    chart, values, InstallOptions(release_name="nginx", namespace="web")
)
```
"""

import json
import logging
from pathlib import Path
from shutil import rmtree
import tempfile
from typing import Any

import aiofiles
import yaml

from . import command
from .chart import Chart
from .config import ProviderConfig
from .exceptions import ChartException, HelmException, InputException, ReleaseNotFoundError
from .release_store import (
    InstallOptions,
    ReleaseRecord,
    ReleaseStore,
    UninstallOptions,
    UpgradeOptions,
)
from .resolver import ChartCache, ChartPathOptions, ChartSource

__all__ = [
    "HelmChartSource",
    "HelmReleaseStore",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"
OCI_SCHEME = "oci://"
RELEASE_NOT_FOUND = "release: not found"

# Extra seconds granted to the helm process beyond the operation timeout
_TIMEOUT_MARGIN = 30


def _cache_flags(cache: ChartCache) -> list[str]:
    """Helm CLI arguments that point at the cache directory."""
    args = ["--repository-cache", str(cache.path)]
    if cache.repository_config:
        args.extend(["--repository-config", str(cache.repository_config)])
    if cache.registry_config:
        args.extend(["--registry-config", str(cache.registry_config)])
    return args


def _cache_env(cache: ChartCache) -> dict[str, str] | None:
    if cache.plugins_directory:
        return {"HELM_PLUGINS": str(cache.plugins_directory)}
    return None


def _pull_args(options: ChartPathOptions) -> list[str]:
    """Helm pull CLI arguments built from the chart options."""
    args: list[str] = []
    if options.repo_url.startswith(OCI_SCHEME):
        args.append(f"{options.repo_url.rstrip('/')}/{options.chart_name}")
    else:
        args.append(options.chart_name)
        if options.repo_url:
            args.extend(["--repo", options.repo_url])
    if options.version:
        args.extend(["--version", options.version])
    if options.verify:
        args.append("--verify")
        if options.keyring:
            args.extend(["--keyring", options.keyring])
    if options.ca_file:
        args.extend(["--ca-file", options.ca_file])
    if options.cert_file:
        args.extend(["--cert-file", options.cert_file])
    if options.key_file:
        args.extend(["--key-file", options.key_file])
    if options.username:
        args.extend(["--username", options.username])
    if options.password:
        args.extend(["--password", options.password])
    return args


class HelmChartSource(ChartSource):
    """Fetches charts with `helm pull` into the cache directory."""

    async def locate(self, options: ChartPathOptions, cache: ChartCache) -> Path:
        """Return the local path of the chart, pulling it if needed."""
        local_path = Path(options.chart_name).expanduser()
        if not options.repo_url and local_path.exists():
            if options.verify:
                _LOGGER.warning(
                    "Skipping verification of local chart %s", local_path
                )
            return local_path.resolve()

        dest = cache.pull_dir(options)
        if dest.exists():
            rmtree(dest)
        dest.mkdir(parents=True)
        args = [HELM_BIN, "pull"]
        args.extend(_pull_args(options))
        args.extend(["--untar", "--untardir", str(dest)])
        args.extend(_cache_flags(cache))
        await command.run(
            command.Command(
                args,
                exc=HelmException,
                env=_cache_env(cache),
                redact=[options.password] if options.password else None,
            )
        )
        unpacked = [path for path in dest.iterdir() if path.is_dir()]
        if len(unpacked) != 1:
            raise ChartException(
                f"Expected a single chart in {dest} after pulling {options}, "
                f"found {len(unpacked)}"
            )
        return unpacked[0]

    async def update_dependencies(
        self, path: Path, keyring: str | None, cache: ChartCache
    ) -> None:
        """Run `helm dependency update` for the chart."""
        args = [HELM_BIN, "dependency", "update", str(path)]
        if keyring:
            args.extend(["--keyring", keyring])
        args.extend(_cache_flags(cache))
        await command.run(
            command.Command(args, exc=HelmException, env=_cache_env(cache))
        )


def _install_args(options: InstallOptions) -> list[str]:
    """Helm CLI arguments shared by install and upgrade."""
    args = ["--namespace", options.namespace, "--output", "json"]
    if options.atomic:
        args.append("--atomic")
    if options.dependency_update:
        args.append("--dependency-update")
    if options.description:
        args.extend(["--description", options.description])
    if options.disable_hooks:
        args.append("--no-hooks")
    if options.disable_openapi_validation:
        args.append("--disable-openapi-validation")
    if options.dry_run:
        args.append("--dry-run")
    if options.post_renderer:
        args.extend(["--post-renderer", options.post_renderer])
    if options.render_subchart_notes:
        args.append("--render-subchart-notes")
    if options.skip_crds:
        args.append("--skip-crds")
    if options.timeout:
        args.extend(["--timeout", f"{options.timeout}s"])
    if options.wait:
        args.append("--wait")
    if options.wait_for_jobs:
        args.append("--wait-for-jobs")
    return args


def _upgrade_args(options: UpgradeOptions) -> list[str]:
    args = _install_args(options)
    if options.cleanup_on_fail:
        args.append("--cleanup-on-fail")
    if options.force:
        args.append("--force")
    if options.max_history is not None:
        args.extend(["--history-max", str(options.max_history)])
    if options.reset_values:
        args.append("--reset-values")
    elif options.reuse_values:
        args.append("--reuse-values")
    if options.recreate_pods:
        _LOGGER.warning("Recreating pods is not supported by helm 3, ignoring")
    return args


def _command_timeout(timeout: int) -> float | None:
    return float(timeout + _TIMEOUT_MARGIN) if timeout else None


def _parse_record(out: str) -> ReleaseRecord:
    try:
        doc = json.loads(out)
    except json.JSONDecodeError as err:
        raise HelmException(f"Unable to parse helm release output: {err}") from err
    try:
        return ReleaseRecord.parse_doc(doc)
    except InputException as err:
        raise HelmException(str(err)) from err


class HelmReleaseStore(ReleaseStore):
    """Release store of a cluster, accessed through the helm binary."""

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize HelmReleaseStore."""
        self._flags: list[str] = []
        if config.kubeconfig:
            self._flags.extend(["--kubeconfig", config.kubeconfig])
        if config.kube_context:
            self._flags.extend(["--kube-context", config.kube_context])
        self._env = {"HELM_DRIVER": config.helm_driver}

    async def _run(self, args: list[str], timeout: float | None = None) -> str:
        args = [HELM_BIN, *args, *self._flags]
        return await command.run(
            command.Command(args, exc=HelmException, env=self._env, timeout=timeout)
        )

    async def _run_with_values(
        self, args: list[str], values: dict[str, Any], timeout: int
    ) -> ReleaseRecord:
        with tempfile.TemporaryDirectory() as tmp_dir:
            values_path = Path(tmp_dir) / "values.yaml"
            async with aiofiles.open(values_path, mode="w") as values_file:
                await values_file.write(yaml.dump(values, sort_keys=False))
            args.extend(["--values", str(values_path)])
            out = await self._run(args, _command_timeout(timeout))
        return _parse_record(out)

    async def install(
        self, chart: Chart, values: dict[str, Any], options: InstallOptions
    ) -> ReleaseRecord:
        """Run `helm install` for the chart."""
        args = ["install", options.release_name, str(chart.path)]
        args.extend(_install_args(options))
        if options.create_namespace:
            args.append("--create-namespace")
        if options.replace:
            args.append("--replace")
        return await self._run_with_values(args, values, options.timeout)

    async def upgrade(
        self, chart: Chart, values: dict[str, Any], options: UpgradeOptions
    ) -> ReleaseRecord:
        """Run `helm upgrade` for the chart."""
        args = ["upgrade", options.release_name, str(chart.path)]
        args.extend(_upgrade_args(options))
        return await self._run_with_values(args, values, options.timeout)

    async def get(self, name: str, namespace: str) -> ReleaseRecord:
        """Run `helm status` for the release."""
        try:
            out = await self._run(
                ["status", name, "--namespace", namespace, "--output", "json"]
            )
        except HelmException as err:
            if RELEASE_NOT_FOUND in str(err):
                raise ReleaseNotFoundError(name, namespace) from err
            raise
        return _parse_record(out)

    async def uninstall(self, options: UninstallOptions) -> None:
        """Run `helm uninstall` for the release."""
        args = ["uninstall", options.release_name, "--namespace", options.namespace]
        if options.disable_hooks:
            args.append("--no-hooks")
        if options.wait:
            args.append("--wait")
        if options.timeout:
            args.extend(["--timeout", f"{options.timeout}s"])
        try:
            await self._run(args, _command_timeout(options.timeout))
        except HelmException as err:
            if RELEASE_NOT_FOUND in str(err):
                raise ReleaseNotFoundError(
                    options.release_name, options.namespace
                ) from err
            raise
