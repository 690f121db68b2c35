"""Module for building the persisted checkpoint of a release.

The checkpoint combines the live release, including the status observed in
the release store, with the frozen inputs as they were submitted under the
reserved `__inputs` key. Later reconciliation compares against the frozen
inputs rather than the observed state.

Values that were submitted as secret are redacted from the status: the leaf
at the path of each sensitive override is replaced with a placeholder in the
values, and the raw sensitive values are replaced wherever they appear in the
rendered manifest.
"""

import copy
from dataclasses import dataclass, field
import json
import logging
from typing import Any

import yaml

from .exceptions import InputException
from .properties import Secret, annotate_secrets, unwrap
from .release_store import ReleaseRecord
from .spec import Release, ReleaseStatus
from .values import SENSITIVE_VALUE, cloak_value, leaf_paths, split_path

__all__ = [
    "INPUTS_KEY",
    "SensitiveValues",
    "sensitive_values",
    "convert_manifest_to_json",
    "redact_manifest",
    "set_release_attributes",
    "checkpoint_release",
    "parse_checkpoint",
]

_LOGGER = logging.getLogger(__name__)

INPUTS_KEY = "__inputs"


@dataclass
class SensitiveValues:
    """Values of a release that must not appear in its status."""

    paths: list[str] = field(default_factory=list)
    """Dotted paths in the values tree that hold sensitive leaves."""

    raw: list[Any] = field(default_factory=list)
    """The sensitive values themselves, redacted from the manifest."""


def _leaf(doc: dict[str, Any], path: str) -> Any:
    current: Any = doc
    for part in split_path(path):
        current = current.get(part) if isinstance(current, dict) else None
    return current


def sensitive_values(news: dict[str, Any]) -> SensitiveValues:
    """Return the sensitive values of the submitted property document.

    An override is sensitive when its entry, its value or the whole override
    list is secret. A values document that is secret makes every leaf it
    defines sensitive.
    """
    result = SensitiveValues()
    spec = news.get("releaseSpec")
    if isinstance(spec, Secret):
        spec = spec.value
    if not isinstance(spec, dict):
        return result

    set_values = spec.get("set") or []
    all_secret = isinstance(set_values, Secret)
    for entry in unwrap(set_values) if all_secret else set_values:
        if not (
            all_secret
            or isinstance(entry, Secret)
            or (isinstance(entry, dict) and isinstance(entry.get("value"), Secret))
        ):
            continue
        plain = unwrap(entry)
        if not isinstance(plain, dict) or not plain.get("name"):
            continue
        result.paths.append(plain["name"])
        result.raw.append(plain.get("value"))

    documents = spec.get("values") or []
    all_secret = isinstance(documents, Secret)
    for document in unwrap(documents) if all_secret else documents:
        if not (all_secret or isinstance(document, Secret)):
            continue
        try:
            doc = yaml.load(unwrap(document) or "", Loader=yaml.SafeLoader)
        except yaml.YAMLError:
            # The same document fails loudly when the values are composited
            continue
        if not isinstance(doc, dict):
            continue
        for path in leaf_paths(doc):
            result.paths.append(path)
            result.raw.append(_leaf(doc, path))
    return result


def convert_manifest_to_json(manifest: str) -> dict[str, Any]:
    """Convert a multi-document YAML manifest to a mapping of its objects.

    Objects are keyed `[namespace/]kind.group/apiVersion/name`.
    """
    objects: dict[str, Any] = {}
    try:
        docs = list(yaml.load_all(manifest, Loader=yaml.SafeLoader))
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse release manifest: {err}") from err
    for doc in docs:
        if not isinstance(doc, dict):
            continue
        api_version = doc.get("apiVersion", "")
        kind = str(doc.get("kind", "")).lower()
        group = api_version.split("/")[0] if "/" in api_version else ""
        group_kind = f"{kind}.{group}" if group else kind
        metadata = doc.get("metadata") or {}
        key = f"{group_kind}/{api_version}/{metadata.get('name', '')}"
        if namespace := metadata.get("namespace"):
            key = f"{namespace}/{key}"
        objects[key] = doc
    return objects


def _redact(value: Any, raw: list[str]) -> Any:
    if isinstance(value, dict):
        return {k: _redact(v, raw) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact(v, raw) for v in value]
    if isinstance(value, str):
        for item in raw:
            value = value.replace(item, SENSITIVE_VALUE)
        return value
    if value is not None and json.dumps(value) in raw:
        return SENSITIVE_VALUE
    return value


def redact_manifest(manifest: dict[str, Any], raw_values: list[Any]) -> dict[str, Any]:
    """Replace the sensitive values wherever they appear in the manifest."""
    raw = [
        value if isinstance(value, str) else json.dumps(value)
        for value in raw_values
        if value is not None and value != ""
    ]
    # Longest first so a value containing another is redacted whole
    raw.sort(key=len, reverse=True)
    if not raw:
        return manifest
    return _redact(manifest, raw)  # type: ignore[no-any-return]


def set_release_attributes(
    release: Release, record: ReleaseRecord, news: dict[str, Any]
) -> None:
    """Fill in the release status from a release store record."""
    sensitive = sensitive_values(news)
    config = copy.deepcopy(record.config)
    for path in sensitive.paths:
        cloak_value(config, path)
    manifest = redact_manifest(
        convert_manifest_to_json(record.manifest), sensitive.raw
    )
    release.status = ReleaseStatus(
        app_version=record.app_version or None,
        chart=record.chart_name,
        name=record.name,
        namespace=record.namespace,
        revision=record.revision,
        status=record.status,
        values=json.dumps(config, sort_keys=True),
        version=record.chart_version,
        manifest=json.dumps(manifest, sort_keys=True),
    )
    _LOGGER.debug(
        "Release %s/%s revision %d has status %s (%d sensitive values)",
        record.namespace,
        record.name,
        record.revision,
        record.status,
        len(sensitive.paths),
    )


def checkpoint_release(
    inputs: Release, live: Release, news: dict[str, Any]
) -> dict[str, Any]:
    """Return the checkpoint document of the live release and frozen inputs."""
    obj: dict[str, Any] = annotate_secrets(live.to_dict(), news)
    obj[INPUTS_KEY] = annotate_secrets(inputs.to_dict(), news)
    return obj


def parse_checkpoint(doc: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a checkpoint into its frozen inputs and the live release."""
    if not isinstance(inputs := doc.get(INPUTS_KEY), dict):
        raise InputException(f"Checkpoint is missing {INPUTS_KEY}")
    live = {k: v for k, v in doc.items() if k != INPUTS_KEY}
    return inputs, live
