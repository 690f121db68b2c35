"""Resource provider for helm releases.

The provider implements the Check/Diff/Create/Read/Update/Delete contract
that a control loop uses to drive a release resource:

- `check` validates new inputs, inheriting or generating the release name.
- `diff` compares new inputs against the frozen inputs of the checkpoint.
- `create` installs the release and returns its first checkpoint.
- `read` refreshes the checkpoint from the release store.
- `update` upgrades the release and returns a superseding checkpoint.
- `delete` uninstalls the release.

Requests for one resource are handled one at a time, but requests for
different resources may run concurrently on the same provider.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field
import logging
import random
import string
from typing import Any, TypeVar

from . import executor
from .chart import Chart, check_installable
from .checkpoint import (
    INPUTS_KEY,
    checkpoint_release,
    parse_checkpoint,
    set_release_attributes,
)
from .config import ProviderConfig
from .context import trace_context
from .exceptions import (
    InputException,
    PartialReleaseError,
    ReleaseNotFoundError,
    ReleaseProviderException,
)
from .helm import HelmChartSource, HelmReleaseStore
from .properties import (
    annotate_secrets,
    contains_unknowns,
    is_unknown_at,
    restore_unknowns,
    unwrap,
)
from .release_store import ReleaseStore
from .resolver import ChartResolver, get_chart_cache
from .spec import Release, ReleaseSpec, decode_release
from .values import get_values

__all__ = [
    "ReleaseProvider",
    "ResourceState",
    "DiffResult",
    "REPLACE_PATHS",
]

_LOGGER = logging.getLogger(__name__)

PROVIDER_NAME = "kubernetes:helmrelease"
AUTONAME_BASE = "release"
AUTONAME_LENGTH = 8
_AUTONAME_CHARS = string.ascii_lowercase + string.digits

# Changes to these inputs recreate the release instead of upgrading it
REPLACE_PATHS = (
    "chart",
    "name",
    "namespace",
    "repositorySpec.repository",
)

_T = TypeVar("_T")


@dataclass(frozen=True)
class ResourceState:
    """The identity and checkpoint of a release resource."""

    id: str
    """Durable identity of the resource, empty during a preview."""

    properties: dict[str, Any]
    """The checkpoint document."""


@dataclass(frozen=True)
class DiffResult:
    """Differences between the checkpointed and the new inputs."""

    changes: list[str] = field(default_factory=list)
    """Changed input paths of the release spec."""

    replaces: list[str] = field(default_factory=list)
    """Changed input paths that require recreating the release."""

    delete_before_replace: bool = False
    """The old release must be deleted before the new one is created."""

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)


def random_name(base: str) -> str:
    """Return the base name with a random suffix."""
    suffix = "".join(random.choices(_AUTONAME_CHARS, k=AUTONAME_LENGTH))
    return f"{base}-{suffix}"


def adopt_old_name_if_unnamed(new: Release, old: Release) -> None:
    """Keep the name of an existing release when no name is given."""
    if not old.release_spec.name:
        raise InputException("Existing release has no name")
    if not new.release_spec.name:
        new.release_spec.name = old.release_spec.name


def assign_name_if_autonamable(
    release: Release, news: dict[str, Any], base: str
) -> None:
    """Generate a name for a new release when none is given.

    A name that is not yet known is left alone until it is resolved.
    """
    if is_unknown_at(news, ("releaseSpec", "name")):
        return
    if not release.release_spec.name:
        release.release_spec.name = random_name(base)


def _flatten(doc: dict[str, Any], nested: tuple[str, ...]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in doc.items():
        if key in nested and isinstance(value, dict):
            for child, child_value in value.items():
                result[f"{key}.{child}"] = child_value
        else:
            result[key] = value
    return result


def _inputs_of(olds: dict[str, Any]) -> dict[str, Any]:
    """Return the frozen inputs of a checkpoint, or the document itself."""
    if INPUTS_KEY in olds:
        inputs, _ = parse_checkpoint(olds)
        return inputs
    return olds


class ReleaseProvider:
    """Drives the lifecycle of helm releases on behalf of a control loop."""

    def __init__(
        self,
        config: ProviderConfig,
        store: ReleaseStore,
        resolver: ChartResolver,
        name: str = PROVIDER_NAME,
    ) -> None:
        """Initialize ReleaseProvider."""
        self._config = config
        self._store = store
        self._resolver = resolver
        self._name = name

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "ReleaseProvider":
        """Create a provider that drives the helm binary."""
        return cls(
            config,
            HelmReleaseStore(config),
            ChartResolver(get_chart_cache(config), HelmChartSource()),
        )

    def _op(self, op: str) -> str:
        return f"Provider[{self._name}].{op}"

    def _outputs(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Drop secret markers from outputs unless secrets are enabled."""
        if self._config.enable_secrets:
            return doc
        return unwrap(doc)  # type: ignore[no-any-return]

    async def _with_deadline(
        self, label: str, aw: Awaitable[_T], timeout: float | None
    ) -> _T:
        """Bound an operation by the caller's deadline.

        An action in flight at the deadline is not rolled back; the release
        store history is inspected on the next reconciliation.
        """
        try:
            return await asyncio.wait_for(aw, timeout)
        except asyncio.TimeoutError as err:
            raise ReleaseProviderException(
                f"{label} did not complete within {timeout}s"
            ) from err

    async def check(
        self, olds: dict[str, Any], news: dict[str, Any], urn: str = ""
    ) -> dict[str, Any]:
        """Return the new inputs with the release name and namespace resolved."""
        with trace_context(self._op("Check"), urn):
            new, _ = decode_release(news)
            if olds:
                old, _ = decode_release(_inputs_of(olds))
                if not is_unknown_at(news, ("releaseSpec", "name")):
                    adopt_old_name_if_unnamed(new, old)
                if not new.release_spec.namespace and not is_unknown_at(
                    news, ("releaseSpec", "namespace")
                ):
                    new.release_spec.namespace = old.release_spec.namespace
            else:
                assign_name_if_autonamable(new, news, AUTONAME_BASE)

            if not new.release_spec.namespace and not is_unknown_at(
                news, ("releaseSpec", "namespace")
            ):
                new.release_spec.namespace = self._config.default_namespace

            autonamed = annotate_secrets(new.to_dict(), news)
            autonamed = restore_unknowns(autonamed, news)
            return self._outputs(autonamed)

    async def diff(
        self, olds: dict[str, Any], news: dict[str, Any], urn: str = ""
    ) -> DiffResult:
        """Compare the new inputs against the checkpointed inputs.

        Changes to the chart, its repository, the release name or namespace
        replace the release. Any other change upgrades it in place.
        """
        with trace_context(self._op("Diff"), urn):
            old, _ = decode_release(_inputs_of(olds))
            new, _ = decode_release(news)
            nested = ("repositorySpec",)
            old_doc = _flatten(old.release_spec.to_dict(), nested)
            new_doc = _flatten(new.release_spec.to_dict(), nested)
            new_spec = unwrap(news).get("releaseSpec") or {}
            unknown = {
                key
                for key, value in _flatten(new_spec, nested).items()
                if contains_unknowns(value)
            }
            changes = sorted(
                key
                for key in old_doc.keys() | new_doc.keys() | unknown
                if key in unknown
                or key.split(".")[0] in unknown
                or old_doc.get(key) != new_doc.get(key)
            )
            replaces = [key for key in changes if key in REPLACE_PATHS]
            same_identity = "name" not in changes and "namespace" not in changes
            result = DiffResult(
                changes=changes,
                replaces=replaces,
                delete_before_replace=bool(replaces) and same_identity,
            )
            _LOGGER.debug("Diff changes=%s replaces=%s", changes, replaces)
            return result

    async def _prepare(self, spec: ReleaseSpec) -> tuple[Chart, dict[str, Any]]:
        """Resolve the chart and composite the values for a release."""
        if not spec.name:
            raise InputException("Release name is required, run Check first")
        if not spec.namespace:
            spec.namespace = self._config.default_namespace
        chart, _ = await self._resolver.resolve(spec)
        values = get_values(spec)
        check_installable(chart)
        return chart, values

    def _checkpoint(
        self,
        result: executor.ActionResult,
        inputs: Release,
        live: Release,
        news: dict[str, Any],
    ) -> dict[str, Any]:
        """Return the checkpoint for an action result, raising on failure."""
        if isinstance(result, executor.ActionError):
            raise result.cause
        set_release_attributes(live, result.record, news)
        obj = self._outputs(checkpoint_release(inputs, live, news))
        if isinstance(result, executor.ActionPartialFailure):
            raise PartialReleaseError(obj, result.cause) from result.cause
        return obj

    async def create(
        self,
        news: dict[str, Any],
        urn: str = "",
        preview: bool = False,
        timeout: float | None = None,
    ) -> ResourceState:
        """Install the release and return its identity and checkpoint.

        Raises `PartialReleaseError` carrying the checkpoint when the install
        failed but the release was still recorded.
        """
        return await self._with_deadline(
            f"{self._op('Create')}({urn})",
            self._create(urn, news, preview),
            timeout,
        )

    async def _create(
        self, urn: str, news: dict[str, Any], preview: bool
    ) -> ResourceState:
        with trace_context(self._op("Create"), urn) as label:
            if preview and contains_unknowns(news):
                _LOGGER.debug("%s inputs are not yet known, skipping", label)
                return ResourceState(id="", properties=self._outputs(news))
            new, _ = decode_release(news)
            # Freeze inputs to track the actual inputs for checkpointing
            inputs, _ = decode_release(news)
            chart, values = await self._prepare(new.release_spec)
            result = await executor.install(
                self._store, chart, values, new.release_spec, dry_run=preview
            )
            obj = self._checkpoint(result, inputs, new, news)
            release_id = "" if preview else new.release_spec.name or ""
            return ResourceState(id=release_id, properties=obj)

    async def read(
        self, id: str, olds: dict[str, Any], urn: str = ""
    ) -> ResourceState | None:
        """Refresh the checkpoint from the release store.

        Returns None when the release no longer exists.
        """
        with trace_context(self._op("Read"), urn or id):
            inputs_doc = _inputs_of(olds)
            inputs, _ = decode_release(inputs_doc)
            live, _ = decode_release(
                {k: v for k, v in olds.items() if k != INPUTS_KEY}
            )
            spec = live.release_spec
            name = spec.name or id
            namespace = spec.namespace or self._config.default_namespace
            try:
                record = await executor.get(self._store, name, namespace)
            except ReleaseNotFoundError:
                _LOGGER.info("Release %s/%s no longer exists", namespace, name)
                return None
            set_release_attributes(live, record, inputs_doc)
            obj = self._outputs(checkpoint_release(inputs, live, inputs_doc))
            return ResourceState(id=name, properties=obj)

    async def update(
        self,
        id: str,
        olds: dict[str, Any],
        news: dict[str, Any],
        urn: str = "",
        preview: bool = False,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Upgrade the release and return the superseding checkpoint."""
        return await self._with_deadline(
            f"{self._op('Update')}({urn or id})",
            self._update(urn or id, id, olds, news, preview),
            timeout,
        )

    async def _update(
        self,
        resource: str,
        id: str,
        olds: dict[str, Any],
        news: dict[str, Any],
        preview: bool,
    ) -> dict[str, Any]:
        with trace_context(self._op("Update"), resource) as label:
            if preview and contains_unknowns(news):
                _LOGGER.debug("%s inputs are not yet known, skipping", label)
                return self._outputs(news)
            old, _ = decode_release(_inputs_of(olds))
            new, _ = decode_release(news)
            inputs, _ = decode_release(news)
            if not new.release_spec.name:
                new.release_spec.name = old.release_spec.name or id
            if new.release_spec.name != (old.release_spec.name or id):
                raise InputException(
                    f"Release {old.release_spec.name} can't be renamed in place"
                )
            chart, values = await self._prepare(new.release_spec)
            result = await executor.upgrade(
                self._store, chart, values, new.release_spec, dry_run=preview
            )
            return self._checkpoint(result, inputs, new, news)

    async def delete(self, id: str, olds: dict[str, Any], urn: str = "") -> None:
        """Uninstall the release."""
        with trace_context(self._op("Delete"), urn or id):
            live, _ = decode_release(
                {k: v for k, v in olds.items() if k != INPUTS_KEY}
            )
            spec = live.release_spec
            if not spec.name:
                spec.name = id
            if not spec.namespace:
                spec.namespace = self._config.default_namespace
            await executor.uninstall(self._store, spec)
