"""Property documents exchanged with the control loop.

A property document is a plain mapping of string keys to scalars, lists and
nested mappings. Two markers travel alongside the values:

- `Secret` wraps a value the control loop wants kept confidential.
- `UNKNOWN` stands in for a value that depends on an upstream output that is
  not yet known (e.g. during a preview).

Decoding a document into typed objects happens in two stages. The secrets are
first stripped out and their paths recorded, the plain document is then
decoded, and finally `annotate_secrets` re-applies the markers by path to any
output document derived from the inputs.

On the wire (JSON or YAML) the markers use the control plane's well-known
signatures, see `encode` and `decode`.
"""

from collections.abc import Generator
from dataclasses import dataclass
import logging
from typing import Any

__all__ = [
    "Secret",
    "UNKNOWN",
    "PropertyPath",
    "strip_secrets",
    "annotate_secrets",
    "contains_secrets",
    "is_secret_at",
    "is_unknown_at",
    "contains_unknowns",
    "drop_unknowns",
    "restore_unknowns",
    "unwrap",
    "encode",
    "decode",
]

_LOGGER = logging.getLogger(__name__)

SIG_KEY = "4dabf18193072939515e22adb298388d"
SECRET_SIG = "1b47061264138c4ac30d75fd1eb44270"
UNKNOWN_STRING = "04da6b54-80e4-46f7-96ec-b56ff0331ba9"

PropertyPath = tuple[str | int, ...]


@dataclass(frozen=True)
class Secret:
    """A property value marked secret by the control loop."""

    value: Any

    def __repr__(self) -> str:
        return "Secret(***)"


class _Unknown:
    """Sentinel for a value that is not yet known."""

    _instance: "_Unknown | None" = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()


def unwrap(value: Any) -> Any:
    """Return the value without any secret marker, recursively."""
    if isinstance(value, Secret):
        return unwrap(value.value)
    if isinstance(value, dict):
        return {k: unwrap(v) for k, v in value.items()}
    if isinstance(value, list):
        return [unwrap(v) for v in value]
    return value


def _walk_secrets(
    value: Any, path: PropertyPath
) -> Generator[PropertyPath, None, None]:
    if isinstance(value, Secret):
        yield path
        # Nested secrets inside a secret are implied by the outer marker
        return
    if isinstance(value, dict):
        for key, child in value.items():
            yield from _walk_secrets(child, path + (key,))
    elif isinstance(value, list):
        for index, child in enumerate(value):
            yield from _walk_secrets(child, path + (index,))


def strip_secrets(doc: dict[str, Any]) -> tuple[dict[str, Any], set[PropertyPath]]:
    """Return a plain copy of the document and the paths that were secret."""
    paths = set(_walk_secrets(doc, ()))
    if paths:
        _LOGGER.debug("Stripped %d secret markers", len(paths))
    return unwrap(doc), paths


def contains_secrets(value: Any) -> bool:
    """Return True if the value or any nested value is marked secret."""
    return next(_walk_secrets(value, ()), None) is not None


def is_secret_at(doc: Any, path: PropertyPath) -> bool:
    """Return True if the value at the path, or any parent of it, is secret."""
    current = doc
    for part in path:
        if isinstance(current, Secret):
            return True
        if isinstance(current, dict) and isinstance(part, str) and part in current:
            current = current[part]
        elif (
            isinstance(current, list)
            and isinstance(part, int)
            and 0 <= part < len(current)
        ):
            current = current[part]
        else:
            return False
    return isinstance(current, Secret)


def annotate_secrets(outputs: Any, inputs: Any) -> Any:
    """Mark values in the outputs secret wherever the inputs were secret.

    Values are matched by path. When an input secret has a different shape
    than its output (e.g. a mapping that became a JSON string) the whole
    output value is marked secret.
    """
    if isinstance(outputs, Secret):
        return outputs
    if isinstance(inputs, Secret):
        return Secret(unwrap(outputs))
    if isinstance(outputs, dict) and isinstance(inputs, dict):
        return {
            key: annotate_secrets(value, inputs[key]) if key in inputs else value
            for key, value in outputs.items()
        }
    if isinstance(outputs, list) and isinstance(inputs, list):
        if len(outputs) == len(inputs):
            return [annotate_secrets(o, i) for o, i in zip(outputs, inputs)]
    if contains_secrets(inputs):
        return Secret(unwrap(outputs))
    return outputs


def drop_unknowns(value: Any) -> Any:
    """Return a copy of a plain document with unknown values removed."""
    if isinstance(value, dict):
        return {k: drop_unknowns(v) for k, v in value.items() if v is not UNKNOWN}
    if isinstance(value, list):
        return [drop_unknowns(v) for v in value if v is not UNKNOWN]
    return value


def contains_unknowns(value: Any) -> bool:
    """Return True if the value or any nested value is not yet known."""
    value = unwrap(value)
    if value is UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(contains_unknowns(v) for v in value.values())
    if isinstance(value, list):
        return any(contains_unknowns(v) for v in value)
    return False


def is_unknown_at(doc: Any, path: PropertyPath) -> bool:
    """Return True if the value at the path is not yet known."""
    current = unwrap(doc)
    for part in path:
        if not isinstance(current, dict) or part not in current:
            return False
        current = current[part]
    return current is UNKNOWN


_MISSING = object()


def restore_unknowns(outputs: Any, inputs: Any) -> Any:
    """Copy unknown markers from the inputs to the outputs derived from them.

    The outputs are expected to come from the inputs with unknowns dropped, so
    unknown list items are re-inserted at their position and unknown mapping
    values are restored under keys the outputs lack.
    """
    if isinstance(outputs, Secret):
        return Secret(restore_unknowns(outputs.value, unwrap(inputs)))
    inputs = unwrap(inputs)
    if isinstance(outputs, list) and isinstance(inputs, list):
        remaining = iter(outputs)
        items: list[Any] = []
        for item in inputs:
            if item is UNKNOWN:
                items.append(UNKNOWN)
            elif (output := next(remaining, _MISSING)) is not _MISSING:
                items.append(restore_unknowns(output, item))
        items.extend(remaining)
        return items
    if not isinstance(outputs, dict) or not isinstance(inputs, dict):
        return outputs
    result = {
        key: restore_unknowns(value, inputs[key]) if key in inputs else value
        for key, value in outputs.items()
    }
    for key, value in inputs.items():
        if key in result:
            continue
        if value is UNKNOWN:
            result[key] = UNKNOWN
        elif isinstance(value, (dict, list)) and contains_unknowns(value):
            # Dropped as a default once its unknowns were removed
            result[key] = restore_unknowns(type(value)(), value)
    return result


def encode(value: Any, keep_secrets: bool = True) -> Any:
    """Encode a property document into its JSON compatible wire form."""
    if isinstance(value, Secret):
        if not keep_secrets:
            return encode(value.value, keep_secrets)
        return {SIG_KEY: SECRET_SIG, "value": encode(value.value, keep_secrets)}
    if value is UNKNOWN:
        return UNKNOWN_STRING
    if isinstance(value, dict):
        return {k: encode(v, keep_secrets) for k, v in value.items()}
    if isinstance(value, list):
        return [encode(v, keep_secrets) for v in value]
    return value


def decode(value: Any) -> Any:
    """Decode a property document from its JSON compatible wire form."""
    if isinstance(value, dict):
        if value.get(SIG_KEY) == SECRET_SIG:
            return Secret(decode(value.get("value")))
        return {k: decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode(v) for v in value]
    if value == UNKNOWN_STRING:
        return UNKNOWN
    return value
