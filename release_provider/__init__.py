"""
.. include:: ../README.md
"""

__all__ = [
    "provider",
    "spec",
    "properties",
    "values",
    "resolver",
    "executor",
    "checkpoint",
    "release_store",
    "helm",
    "config",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
