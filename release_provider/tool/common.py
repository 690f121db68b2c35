"""Flags and helpers shared by the release-provider commands."""

from argparse import ArgumentParser, BooleanOptionalAction
import logging
import pathlib
import sys
from typing import Any

import yaml

from release_provider import properties
from release_provider.config import ProviderConfig
from release_provider.exceptions import InputException
from release_provider.provider import ReleaseProvider

_LOGGER = logging.getLogger(__name__)


def add_provider_flags(args: ArgumentParser) -> None:
    """Add flags that configure the provider."""
    args.add_argument(
        "--urn",
        help="Identifier of the resource used in logs",
        default="",
    )
    args.add_argument(
        "--namespace",
        help="Namespace of releases that don't specify one (default from HELM_NAMESPACE)",
        default=None,
    )
    args.add_argument(
        "--kube-context",
        help="Context within the kubeconfig to use",
        default=None,
    )
    args.add_argument(
        "--enable-secrets",
        default=True,
        action=BooleanOptionalAction,
        help="Keep secret markers in the output, otherwise emit plain values",
    )


def add_document_flags(args: ArgumentParser, olds: bool, news: bool) -> None:
    """Add flags for the input and output property documents."""
    if olds:
        args.add_argument(
            "--olds",
            help="YAML or JSON file with the old inputs or checkpoint",
            type=pathlib.Path,
            required=True,
        )
    if news:
        args.add_argument(
            "--news",
            help="YAML or JSON file with the new inputs",
            type=pathlib.Path,
            required=True,
        )
    args.add_argument(
        "--output-file",
        help="Output file for the resulting document, or stdout if not set",
        type=pathlib.Path,
        default=None,
    )


def add_preview_flags(args: ArgumentParser) -> None:
    """Add flags for actions that may run as a preview."""
    args.add_argument(
        "--preview",
        default=False,
        action=BooleanOptionalAction,
        help="Simulate the action with a dry run instead of changing the cluster",
    )
    args.add_argument(
        "--timeout",
        help="Seconds the action may take before it is abandoned",
        type=float,
        default=None,
    )


def build_config(**kwargs: Any) -> ProviderConfig:
    """Return the provider configuration from the environment and flags."""
    config = ProviderConfig.from_env()
    if namespace := kwargs.get("namespace"):
        config.default_namespace = namespace
    if kube_context := kwargs.get("kube_context"):
        config.kube_context = kube_context
    config.enable_secrets = kwargs.get("enable_secrets", True)
    return config


def build_provider(**kwargs: Any) -> ReleaseProvider:
    """Return a provider that drives the helm binary."""
    return ReleaseProvider.from_config(build_config(**kwargs))


def read_document(path: pathlib.Path) -> dict[str, Any]:
    """Read a property document from a YAML or JSON file."""
    try:
        doc = yaml.load(path.read_text(), Loader=yaml.SafeLoader)
    except (OSError, yaml.YAMLError) as err:
        raise InputException(f"Unable to read property document {path}: {err}") from err
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise InputException(f"Property document {path} is not a mapping")
    return properties.decode(doc)  # type: ignore[no-any-return]


def write_document(
    doc: Any, output_file: pathlib.Path | None, keep_secrets: bool = True
) -> None:
    """Write a property document as YAML to the file or stdout."""
    content = yaml.dump(
        properties.encode(doc, keep_secrets=keep_secrets),
        sort_keys=False,
        explicit_start=True,
    )
    if output_file is None:
        sys.stdout.write(content)
        return
    _LOGGER.debug("Writing output to %s", output_file)
    output_file.write_text(content)
