"""Release actions against the release store of a namespace.

Install and upgrade can fail after objects were already created in the
cluster. Their outcome is one of:

- `ActionOk`: the action succeeded.
- `ActionPartialFailure`: the action failed but the release store has a
  record of the release, which must keep being tracked.
- `ActionError`: the action failed and left nothing to track.

Actions are invoked at most once; retrying is up to the caller.
"""

from dataclasses import dataclass
import logging
from typing import Any

from .chart import Chart
from .exceptions import HelmException, ReleaseNotFoundError
from .release_store import (
    InstallOptions,
    ReleaseRecord,
    ReleaseStore,
    UninstallOptions,
    UpgradeOptions,
)
from .spec import ReleaseSpec

__all__ = [
    "ActionOk",
    "ActionPartialFailure",
    "ActionError",
    "ActionResult",
    "install_options",
    "upgrade_options",
    "install",
    "upgrade",
    "get",
    "release_exists",
    "uninstall",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionOk:
    """The action succeeded."""

    record: ReleaseRecord


@dataclass(frozen=True)
class ActionPartialFailure:
    """The action failed, but left a release behind."""

    record: ReleaseRecord
    cause: Exception


@dataclass(frozen=True)
class ActionError:
    """The action failed and there is no release to track."""

    cause: Exception


ActionResult = ActionOk | ActionPartialFailure | ActionError


def _warn_unsupported(spec: ReleaseSpec) -> None:
    """Log the policy flags that helm 3 has no option for."""
    if spec.disable_crd_hooks:
        _LOGGER.warning("Disabling CRD hooks is not supported by helm 3, ignoring")
    if spec.lint:
        _LOGGER.warning("Linting charts is not supported, ignoring")


def install_options(spec: ReleaseSpec, dry_run: bool = False) -> InstallOptions:
    """Return the install options for all policy flags of the release spec."""
    _warn_unsupported(spec)
    return InstallOptions(
        release_name=spec.name or "",
        namespace=spec.namespace or "",
        atomic=spec.atomic,
        create_namespace=spec.create_namespace,
        dependency_update=spec.dependency_update,
        description=spec.description,
        disable_hooks=spec.disable_webhooks,
        disable_openapi_validation=spec.disable_openapi_validation,
        dry_run=dry_run,
        post_renderer=spec.postrender,
        render_subchart_notes=spec.render_subchart_notes,
        replace=spec.replace,
        skip_crds=spec.skip_crds,
        timeout=spec.timeout,
        wait=spec.wait,
        wait_for_jobs=spec.wait_for_jobs,
    )


def upgrade_options(spec: ReleaseSpec, dry_run: bool = False) -> UpgradeOptions:
    """Return the upgrade options for all policy flags of the release spec."""
    _warn_unsupported(spec)
    return UpgradeOptions(
        release_name=spec.name or "",
        namespace=spec.namespace or "",
        atomic=spec.atomic,
        dependency_update=spec.dependency_update,
        description=spec.description,
        disable_hooks=spec.disable_webhooks,
        disable_openapi_validation=spec.disable_openapi_validation,
        dry_run=dry_run,
        post_renderer=spec.postrender,
        render_subchart_notes=spec.render_subchart_notes,
        skip_crds=spec.skip_crds,
        timeout=spec.timeout,
        wait=spec.wait,
        wait_for_jobs=spec.wait_for_jobs,
        cleanup_on_fail=spec.cleanup_on_fail,
        force=spec.force_update,
        max_history=spec.max_history,
        recreate_pods=spec.recreate_pods,
        reset_values=spec.reset_values,
        reuse_values=spec.reuse_values,
    )


async def get(store: ReleaseStore, name: str, namespace: str) -> ReleaseRecord:
    """Return the current release record.

    Raises `ReleaseNotFoundError` when the release does not exist; any other
    error propagates.
    """
    _LOGGER.debug("Getting release %s/%s", namespace, name)
    return await store.get(name, namespace)


async def release_exists(store: ReleaseStore, name: str, namespace: str) -> bool:
    """Return True if the release store has a record of the release."""
    try:
        await get(store, name, namespace)
    except ReleaseNotFoundError:
        return False
    return True


async def _recover(
    store: ReleaseStore, name: str, namespace: str, cause: HelmException
) -> ActionResult:
    """Check if a failed action still left a release behind."""
    try:
        record = await get(store, name, namespace)
    except ReleaseNotFoundError:
        _LOGGER.debug("Release %s/%s does not exist after failure", namespace, name)
        return ActionError(cause)
    except HelmException as err:
        _LOGGER.warning(
            "Unable to check release %s/%s after failure: %s", namespace, name, err
        )
        return ActionError(cause)
    _LOGGER.warning(
        "Release %s/%s was recorded with status %s but returned an error: %s",
        namespace,
        name,
        record.status,
        cause,
    )
    return ActionPartialFailure(record, cause)


async def install(
    store: ReleaseStore,
    chart: Chart,
    values: dict[str, Any],
    spec: ReleaseSpec,
    dry_run: bool = False,
) -> ActionResult:
    """Install the chart as a new release."""
    options = install_options(spec, dry_run)
    _LOGGER.info(
        "Installing release %s/%s from chart %s %s",
        options.namespace,
        options.release_name,
        chart.name,
        chart.version,
    )
    try:
        record = await store.install(chart, values, options)
    except HelmException as err:
        if dry_run:
            return ActionError(err)
        return await _recover(store, options.release_name, options.namespace, err)
    return ActionOk(record)


async def upgrade(
    store: ReleaseStore,
    chart: Chart,
    values: dict[str, Any],
    spec: ReleaseSpec,
    dry_run: bool = False,
) -> ActionResult:
    """Upgrade the release to a new revision of the chart.

    After a failed upgrade the latest revision in the store is tracked, which
    may be the failed revision or the previous one.
    """
    options = upgrade_options(spec, dry_run)
    _LOGGER.info(
        "Upgrading release %s/%s to chart %s %s",
        options.namespace,
        options.release_name,
        chart.name,
        chart.version,
    )
    try:
        record = await store.upgrade(chart, values, options)
    except HelmException as err:
        if dry_run:
            return ActionError(err)
        return await _recover(store, options.release_name, options.namespace, err)
    return ActionOk(record)


async def uninstall(store: ReleaseStore, spec: ReleaseSpec) -> None:
    """Remove the release. A release that does not exist is already removed."""
    options = UninstallOptions(
        release_name=spec.name or "",
        namespace=spec.namespace or "",
        disable_hooks=spec.disable_webhooks,
        timeout=spec.timeout,
        wait=spec.wait,
    )
    _LOGGER.info("Uninstalling release %s/%s", options.namespace, options.release_name)
    try:
        await store.uninstall(options)
    except ReleaseNotFoundError:
        _LOGGER.info(
            "Release %s/%s was already removed",
            options.namespace,
            options.release_name,
        )
