"""Exceptions related to release-provider."""

from typing import Any

__all__ = [
    "ReleaseProviderException",
    "InputException",
    "CommandException",
    "HelmException",
    "ChartException",
    "ChartLoadException",
    "DependencyMismatchException",
    "ReleaseNotFoundError",
    "PartialReleaseError",
]


class ReleaseProviderException(Exception):
    """Generic base exception used for this library."""


class InputException(ReleaseProviderException):
    """Raised when the input documents or values are not formatted as expected."""


class CommandException(ReleaseProviderException):
    """Raised when there is a failure running a subcommand."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class ChartException(ReleaseProviderException):
    """Raised when a chart can't be located or loaded."""


class ChartLoadException(ChartException):
    """Raised when a located chart has no readable metadata."""


class DependencyMismatchException(ChartException):
    """Raised when declared chart dependencies are missing or mismatched."""


class ReleaseNotFoundError(ReleaseProviderException):
    """Raised when the release store has no record for a release."""

    def __init__(self, name: str, namespace: str) -> None:
        super().__init__(f"release {namespace}/{name} not found")
        self.name = name
        self.namespace = namespace


class PartialReleaseError(ReleaseProviderException):
    """Raised when a store mutation failed but still left a release behind.

    The checkpoint describes the release that exists so that the caller can
    keep tracking it, while the cause is still surfaced as a failure.
    """

    def __init__(self, checkpoint: dict[str, Any], cause: Exception) -> None:
        super().__init__(
            f"Release {checkpoint.get('status', {}).get('name', '')} was "
            f"created but has a failed status: {cause}"
        )
        self.checkpoint = checkpoint
        self.cause = cause
