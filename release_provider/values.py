"""Module for composing the values tree of a release.

Values come from an ordered list of raw YAML documents followed by an
ordered list of `--set` style overrides:

```python
from release_provider.values import get_values

values = get_values(release.release_spec)
```
"""

from collections.abc import Generator
import logging
from typing import Any
import re

import yaml

from .exceptions import InputException
from .spec import ReleaseSpec, SetValue, SET_TYPE_AUTO, SET_TYPE_STRING

__all__ = [
    "merge_values",
    "parse_value_documents",
    "apply_set_value",
    "get_values",
    "cloak_value",
    "leaf_paths",
    "split_path",
    "SENSITIVE_VALUE",
]

_LOGGER = logging.getLogger(__name__)

SENSITIVE_VALUE = "(sensitive value)"

_INDEX_RE = re.compile(r"^(?P<key>.*?)\[(?P<index>\d+)\]$")
_MAX_INDEX = 65536


def merge_values(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two dictionaries, preferring values from the override.

    Nested mappings are merged key by key at every depth. Any other value in
    the override, including lists, replaces the base value entirely.
    """
    result = base.copy()
    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = merge_values(base_value, override_value)
        else:
            result[key] = override_value
    return result


def parse_value_documents(documents: list[str]) -> dict[str, Any]:
    """Parse and merge raw YAML values documents in order."""
    values: dict[str, Any] = {}
    for document in documents:
        if not document:
            continue
        try:
            obj = yaml.load(document, Loader=yaml.SafeLoader)
        except yaml.YAMLError as err:
            raise InputException(f"Unable to parse values document: {err}") from err
        # Handle empty YAML file case
        if obj is None:
            continue
        if not isinstance(obj, dict):
            raise InputException(
                f"Expected values document to be a mapping, found {type(obj).__name__}"
            )
        values = merge_values(values, obj)
    return values


def split_path(path: str) -> list[str]:
    """Split a dotted path, honoring backslash escaped dots."""
    raw_parts = re.split(r"(?<!\\)\.", path)
    return [re.sub(r"\\(.)", r"\1", raw_part) for raw_part in raw_parts]


def _typed_value(value: str, force_string: bool) -> Any:
    """Infer the type of a scalar the way helm does for `--set`."""
    if force_string:
        return value
    lower = value.lower()
    if lower == "true":
        return True
    if lower == "false":
        return False
    if lower == "null":
        return None
    if value == "0":
        return 0
    # Numbers with a leading zero stay strings, e.g. "0123"
    if value and value[0] != "0":
        try:
            return int(value)
        except ValueError:
            pass
    return value


def _parse_value(value: str, force_string: bool) -> Any:
    if not force_string and value.startswith("{") and value.endswith("}"):
        inner = value[1:-1]
        if not inner:
            return []
        return [_typed_value(item, False) for item in re.split(r"(?<!\\),", inner)]
    return _typed_value(value, force_string)


def _set_in_list(lst: list[Any], index: int, name: str) -> None:
    if index >= _MAX_INDEX:
        raise InputException(f"Index {index} for key {name!r} is too large")
    while len(lst) <= index:
        lst.append(None)


def apply_set_value(values: dict[str, Any], set_value: SetValue) -> None:
    """Assign a single override into the values tree in place."""
    name = set_value.name
    if set_value.type in ("", SET_TYPE_AUTO):
        force_string = False
    elif set_value.type == SET_TYPE_STRING:
        force_string = True
    else:
        raise InputException(f"unexpected type: {set_value.type}")
    if not name:
        raise InputException("Set value is missing a name")

    value = _parse_value(set_value.value, force_string)
    parts = split_path(name)
    container: Any = values
    for i, part in enumerate(parts):
        last = i == len(parts) - 1
        index: int | None = None
        if match := _INDEX_RE.match(part):
            part = match.group("key")
            index = int(match.group("index"))
        if not part:
            raise InputException("empty key")

        if index is None:
            if last:
                container[part] = value
                return
            child = container.get(part)
            if not isinstance(child, dict):
                child = {}
                container[part] = child
            container = child
            continue

        lst = container.get(part)
        if not isinstance(lst, list):
            lst = []
            container[part] = lst
        _set_in_list(lst, index, name)
        if last:
            lst[index] = value
            return
        if not isinstance(lst[index], dict):
            lst[index] = {}
        container = lst[index]


def get_values(spec: ReleaseSpec) -> dict[str, Any]:
    """Return the composited values tree for a release."""
    values = parse_value_documents(spec.values)
    for set_value in spec.set:
        try:
            apply_set_value(values, set_value)
        except InputException as err:
            raise InputException(
                f"failed parsing key {set_value.name!r}: {err}"
            ) from err
    _LOGGER.debug(
        "Composited values from %d documents and %d overrides",
        len(spec.values),
        len(spec.set),
    )
    return values


def cloak_value(values: dict[str, Any], path: str) -> None:
    """Replace the leaf at the dotted path with a placeholder, in place.

    Paths are walked the same way overrides are applied, including `key[N]`
    list indexes. Only the terminal value is replaced. Nothing happens when a
    parent along the path is missing.
    """
    parts = split_path(path)
    container: Any = values
    for i, part in enumerate(parts):
        last = i == len(parts) - 1
        if not isinstance(container, dict):
            return
        index: int | None = None
        if part not in container and (match := _INDEX_RE.match(part)):
            part = match.group("key")
            index = int(match.group("index"))
        if part not in container:
            return

        if index is None:
            if last:
                container[part] = SENSITIVE_VALUE
                return
            container = container[part]
            continue

        lst = container[part]
        if not isinstance(lst, list) or index >= len(lst):
            return
        if last:
            lst[index] = SENSITIVE_VALUE
            return
        container = lst[index]


def leaf_paths(doc: dict[str, Any], prefix: str = "") -> Generator[str, None, None]:
    """Yield the dotted path of each non-mapping leaf in the document."""
    for key, value in doc.items():
        escaped = str(key).replace(".", "\\.")
        path = f"{prefix}.{escaped}" if prefix else escaped
        if isinstance(value, dict) and value:
            yield from leaf_paths(value, path)
        else:
            yield path
