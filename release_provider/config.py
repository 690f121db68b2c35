"""Configuration objects for release-provider."""

from dataclasses import dataclass
import os
from pathlib import Path

DEFAULT_NAMESPACE = "default"
DEFAULT_HELM_DRIVER = "secret"


def _helm_home(kind: str, *parts: str) -> Path:
    """Return a default helm directory following the XDG layout."""
    env = {
        "cache": "XDG_CACHE_HOME",
        "config": "XDG_CONFIG_HOME",
        "data": "XDG_DATA_HOME",
    }[kind]
    fallback = {
        "cache": Path.home() / ".cache",
        "config": Path.home() / ".config",
        "data": Path.home() / ".local" / "share",
    }[kind]
    base = Path(os.environ[env]) if os.environ.get(env) else fallback
    return base.joinpath("helm", *parts)


@dataclass
class ProviderConfig:
    """Configuration for the ReleaseProvider."""

    default_namespace: str = DEFAULT_NAMESPACE
    """Namespace used when a release does not specify one."""

    helm_driver: str = DEFAULT_HELM_DRIVER
    """Storage backend of the release store (secret, configmap, memory)."""

    enable_secrets: bool = True
    """Keep secret markers in output documents, otherwise emit plain values."""

    repository_cache: Path | None = None
    """Local cache of chart archives and repository indexes."""

    repository_config: Path | None = None
    """File listing the named chart repositories."""

    registry_config: Path | None = None
    """File holding OCI registry credentials."""

    plugins_directory: Path | None = None
    """Directory of helm plugins."""

    kubeconfig: str | None = None
    """Path of the kubeconfig used by helm."""

    kube_context: str | None = None
    """Context within the kubeconfig."""

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        """Build a configuration from the standard helm environment variables."""

        def path(name: str, default: Path) -> Path:
            if value := os.environ.get(name):
                return Path(value)
            return default

        return cls(
            default_namespace=os.environ.get("HELM_NAMESPACE") or DEFAULT_NAMESPACE,
            helm_driver=os.environ.get("HELM_DRIVER") or DEFAULT_HELM_DRIVER,
            repository_cache=path(
                "HELM_REPOSITORY_CACHE", _helm_home("cache", "repository")
            ),
            repository_config=path(
                "HELM_REPOSITORY_CONFIG", _helm_home("config", "repositories.yaml")
            ),
            registry_config=path(
                "HELM_REGISTRY_CONFIG", _helm_home("config", "registry", "config.json")
            ),
            plugins_directory=path("HELM_PLUGINS", _helm_home("data", "plugins")),
            kubeconfig=os.environ.get("KUBECONFIG"),
            kube_context=os.environ.get("HELM_KUBECONTEXT"),
        )

    @property
    def cache_dir(self) -> Path:
        """Directory that identifies the shared chart cache."""
        if self.repository_cache is not None:
            return self.repository_cache
        return _helm_home("cache", "repository")
