"""Representation of a helm release managed as a resource.

A `Release` is the typed form of a property document exchanged with the
control loop. The desired state is the `ReleaseSpec` and the observed state
is the `ReleaseStatus`, which is only ever filled in from the release store.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, Optional

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException
from .properties import drop_unknowns, strip_secrets, PropertyPath

__all__ = [
    "RepositorySpec",
    "SetValue",
    "ReleaseSpec",
    "ReleaseStatus",
    "Release",
    "decode_release",
    "RELEASE_RESOURCE_TYPE",
]

_LOGGER = logging.getLogger(__name__)

RELEASE_RESOURCE_TYPE = "kubernetes:helm.sh/v3:Release"

SET_TYPE_AUTO = "auto"
SET_TYPE_STRING = "string"


@dataclass
class BaseSpec(DataClassDictMixin):
    """Base class for all release documents."""

    class Config(BaseConfig):
        omit_none = True
        omit_default = True
        serialize_by_alias = True


@dataclass
class RepositorySpec(BaseSpec):
    """Specification defining the chart repository to use."""

    repository: Optional[str] = None
    """Repository where to locate the chart.

    If this is a URL the chart is fetched without adding the repository.
    """

    repository_ca_file: Optional[str] = field(
        metadata=field_options(alias="repositoryCAFile"), default=None
    )
    """CA bundle used to verify the repository."""

    repository_cert_file: Optional[str] = field(
        metadata=field_options(alias="repositoryCertFile"), default=None
    )
    """Client certificate for the repository."""

    repository_key_file: Optional[str] = field(
        metadata=field_options(alias="repositoryKeyFile"), default=None
    )
    """Client certificate key for the repository."""

    repository_username: Optional[str] = field(
        metadata=field_options(alias="repositoryUsername"), default=None
    )
    """Username for HTTP basic authentication."""

    repository_password: Optional[str] = field(
        metadata=field_options(alias="repositoryPassword"), default=None
    )
    """Password for HTTP basic authentication."""


@dataclass
class SetValue(BaseSpec):
    """A single value override, applied after the values documents."""

    name: str
    """Dotted path of the value to set."""

    value: str = ""
    """Value to assign at the path."""

    type: str = ""
    """Either `auto` (or empty) to infer the type, or `string`."""


@dataclass
class ReleaseSpec(BaseSpec):
    """The desired state of a release."""

    chart: str = ""
    """Chart name to be installed. A path may be used."""

    repository_spec: RepositorySpec = field(
        metadata=field_options(alias="repositorySpec"),
        default_factory=RepositorySpec,
    )
    """Chart repository to use."""

    version: Optional[str] = None
    """Exact chart version or constraint. Latest stable when not set."""

    devel: bool = False
    """Use development versions too. Ignored when `version` is set."""

    name: Optional[str] = None
    """Release name."""

    namespace: Optional[str] = None
    """Namespace to install the release into."""

    values: list[str] = field(default_factory=list)
    """Values documents in raw YAML, later documents take precedence."""

    set: list[SetValue] = field(default_factory=list)
    """Value overrides applied after the values documents."""

    atomic: bool = False
    """Purge the chart on a failed install. Implies `wait`."""

    cleanup_on_fail: bool = field(
        metadata=field_options(alias="cleanupOnFail"), default=False
    )
    """Delete new resources created in a failed upgrade."""

    create_namespace: bool = field(
        metadata=field_options(alias="createNamespace"), default=False
    )
    """Create the namespace if it does not exist."""

    dependency_update: bool = field(
        metadata=field_options(alias="dependencyUpdate"), default=False
    )
    """Update missing chart dependencies before installing."""

    description: Optional[str] = None
    """Custom description of the release."""

    disable_crd_hooks: bool = field(
        metadata=field_options(alias="disableCRDHooks"), default=False
    )
    """Prevent CRD hooks from running, but run other hooks."""

    disable_openapi_validation: bool = field(
        metadata=field_options(alias="disableOpenapiValidation"), default=False
    )
    """Don't validate rendered templates against the OpenAPI schema."""

    disable_webhooks: bool = field(
        metadata=field_options(alias="disableWebhooks"), default=False
    )
    """Prevent hooks from running."""

    force_update: bool = field(
        metadata=field_options(alias="forceUpdate"), default=False
    )
    """Force resource updates through delete and recreate."""

    keyring: Optional[str] = None
    """Public keys used for verification when `verify` is set."""

    lint: bool = False
    """Lint the chart when planning."""

    max_history: Optional[int] = field(
        metadata=field_options(alias="maxHistory"), default=None
    )
    """Maximum number of revisions kept per release, 0 for no limit."""

    postrender: Optional[str] = None
    """Post-render command to run."""

    recreate_pods: bool = field(
        metadata=field_options(alias="recreatePods"), default=False
    )
    """Restart pods during upgrade or rollback."""

    render_subchart_notes: bool = field(
        metadata=field_options(alias="renderSubchartNotes"), default=False
    )
    """Render subchart notes along with the parent."""

    replace: bool = False
    """Reuse the release name even if it is already in use."""

    reset_values: bool = field(
        metadata=field_options(alias="resetValues"), default=False
    )
    """On upgrade, reset the values to the ones built into the chart."""

    reuse_values: bool = field(
        metadata=field_options(alias="reuseValues"), default=False
    )
    """On upgrade, reuse the last values and merge in any overrides."""

    skip_crds: bool = field(metadata=field_options(alias="skipCrds"), default=False)
    """Don't install CRDs."""

    timeout: int = 0
    """Seconds to wait for any individual kubernetes operation."""

    verify: bool = False
    """Verify the chart package before installing it."""

    wait: bool = False
    """Wait until all resources are ready."""

    wait_for_jobs: bool = field(
        metadata=field_options(alias="waitForJobs"), default=False
    )
    """When waiting, also wait for all Jobs to complete."""


@dataclass
class ReleaseStatus(BaseSpec):
    """The observed state of a deployed release."""

    app_version: Optional[str] = field(
        metadata=field_options(alias="appVersion"), default=None
    )
    """Version of the application being deployed."""

    chart: Optional[str] = None
    """Name of the chart."""

    name: Optional[str] = None
    """Name of the release."""

    namespace: Optional[str] = None
    """Namespace of the release."""

    revision: Optional[int] = None
    """Revision of the release in the release store."""

    status: Optional[str] = None
    """Lifecycle status of the release, e.g. `deployed` or `failed`."""

    values: Optional[str] = None
    """JSON encoded values used for the release, with sensitive data cloaked."""

    version: Optional[str] = None
    """Version of the chart."""

    manifest: Optional[str] = None
    """The rendered manifest as JSON, with sensitive data redacted."""


@dataclass
class Release(BaseSpec):
    """A release resource: the desired spec and the observed status."""

    release_spec: ReleaseSpec = field(
        metadata=field_options(alias="releaseSpec"), default_factory=ReleaseSpec
    )
    """The desired state."""

    resource_type: Optional[str] = field(
        metadata=field_options(alias="resourceType"), default=None
    )
    """Type token of the resource."""

    status: ReleaseStatus = field(default_factory=ReleaseStatus)
    """The observed state."""


def decode_release(doc: dict[str, Any]) -> tuple[Release, set[PropertyPath]]:
    """Decode a property document into a Release.

    Secret markers are stripped first and returned by path so they can be
    re-applied to any output document. Unknown values are dropped and decode
    as their defaults.
    """
    plain, secrets = strip_secrets(doc)
    plain = drop_unknowns(plain)
    try:
        release = Release.from_dict(plain)
    except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
        raise InputException(f"Unable to decode release properties: {err}") from err
    return release, secrets
