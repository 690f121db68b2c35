"""Module for an in memory release store."""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import replace
import logging
from typing import Any, DefaultDict

import yaml

from release_provider.chart import Chart
from release_provider.exceptions import HelmException, ReleaseNotFoundError
from release_provider.values import merge_values

from .store import (
    InstallOptions,
    ReleaseRecord,
    ReleaseStore,
    UninstallOptions,
    UpgradeOptions,
)

_LOGGER = logging.getLogger(__name__)

STATUS_DEPLOYED = "deployed"
STATUS_SUPERSEDED = "superseded"
STATUS_FAILED = "failed"

Renderer = Callable[[Chart, str, str, dict[str, Any]], str]


def render_values_config_map(
    chart: Chart, name: str, namespace: str, values: dict[str, Any]
) -> str:
    """Render a manifest holding the values in a single ConfigMap."""
    doc = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": f"{name}-{chart.name}", "namespace": namespace},
        "data": {
            key: value if isinstance(value, str) else yaml.dump(value, sort_keys=False)
            for key, value in values.items()
        },
    }
    return "---\n" + yaml.dump(doc, sort_keys=False)


class InMemoryReleaseStore(ReleaseStore):
    """In-memory implementation of the ReleaseStore interface.

    Keeps the revision history of each release keyed by namespace and name.
    Templates are not rendered; a renderer produces the manifest recorded for
    each revision. Failures may be injected with `fail_next`.
    """

    def __init__(self, renderer: Renderer = render_values_config_map) -> None:
        """Initialize InMemoryReleaseStore."""
        self._renderer = renderer
        self._history: DefaultDict[tuple[str, str], list[ReleaseRecord]] = (
            defaultdict(list)
        )
        self._failure: tuple[Exception, bool] | None = None
        self.calls: list[str] = []

    def fail_next(self, err: Exception, leave_record: bool = False) -> None:
        """Fail the next install or upgrade.

        When `leave_record` is set a failed revision is still recorded, as
        happens when objects were created before the action errored.
        """
        self._failure = (err, leave_record)

    def history(self, name: str, namespace: str) -> list[ReleaseRecord]:
        """Return all recorded revisions of the release."""
        return list(self._history.get((namespace, name), []))

    def _record(
        self,
        chart: Chart,
        values: dict[str, Any],
        options: InstallOptions,
        revision: int,
    ) -> ReleaseRecord:
        record = ReleaseRecord(
            name=options.release_name,
            namespace=options.namespace,
            revision=revision,
            status=STATUS_DEPLOYED,
            chart_name=chart.name,
            chart_version=chart.version,
            app_version=chart.app_version,
            config=values,
            manifest=self._renderer(
                chart, options.release_name, options.namespace, values
            ),
        )
        if options.dry_run:
            return replace(record, status="pending-install")
        failure, self._failure = self._failure, None
        history = self._history[(options.namespace, options.release_name)]
        if failure is not None:
            err, leave_record = failure
            if leave_record:
                history.append(replace(record, status=STATUS_FAILED))
            raise err
        if history:
            history[-1] = replace(history[-1], status=STATUS_SUPERSEDED)
        history.append(record)
        return record

    async def install(
        self, chart: Chart, values: dict[str, Any], options: InstallOptions
    ) -> ReleaseRecord:
        """Install a new release of the chart."""
        self.calls.append(f"install {options.namespace}/{options.release_name}")
        key = (options.namespace, options.release_name)
        if self._history.get(key) and not options.replace:
            raise HelmException(
                "INSTALLATION FAILED: cannot re-use a name that is still in use"
            )
        self._history.pop(key, None)
        return self._record(chart, values, options, 1)

    async def upgrade(
        self, chart: Chart, values: dict[str, Any], options: UpgradeOptions
    ) -> ReleaseRecord:
        """Upgrade an existing release to a new revision."""
        self.calls.append(f"upgrade {options.namespace}/{options.release_name}")
        history = self._history.get((options.namespace, options.release_name))
        if not history:
            raise HelmException(
                f'UPGRADE FAILED: "{options.release_name}" has no deployed releases'
            )
        if options.reuse_values and not options.reset_values:
            values = merge_values(history[-1].config, values)
        return self._record(chart, values, options, history[-1].revision + 1)

    async def get(self, name: str, namespace: str) -> ReleaseRecord:
        """Return the latest revision of the release."""
        self.calls.append(f"get {namespace}/{name}")
        if not (history := self._history.get((namespace, name))):
            raise ReleaseNotFoundError(name, namespace)
        return history[-1]

    async def uninstall(self, options: UninstallOptions) -> None:
        """Remove the release and its history."""
        self.calls.append(f"uninstall {options.namespace}/{options.release_name}")
        if self._history.pop((options.namespace, options.release_name), None) is None:
            raise ReleaseNotFoundError(options.release_name, options.namespace)
        _LOGGER.debug(
            "Removed release %s/%s", options.namespace, options.release_name
        )
