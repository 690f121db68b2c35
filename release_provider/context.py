"""Utilities for tracing provider operations.

Each traced operation is labeled with the operation and the resource it acts
on, e.g. `Create(urn:...)`. Nested operations are joined as `outer > inner`
so the debug log of concurrent releases can be told apart.
"""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

__all__ = [
    "current_trace",
    "trace_context",
]


_STACK: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "trace", default=()
)


def current_trace() -> str:
    """Return the label of the innermost traced operation, or empty."""
    return " > ".join(_STACK.get())


@contextmanager
def trace_context(op: str, resource: str = "") -> Generator[str, None, None]:
    """Trace a nested operation on a resource, yielding its full label.

    Entry, exit and elapsed time are logged at debug level. An operation that
    raises is logged as failed and the exception propagates.
    """
    name = f"{op}({resource})" if resource else op
    token = _STACK.set(_STACK.get() + (name,))
    label = current_trace()
    start = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield label
    except Exception as err:
        _LOGGER.debug(
            "[Trace] ! %s failed after %0.2fs: %s", label, perf_counter() - start, err
        )
        raise
    else:
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, perf_counter() - start)
    finally:
        _STACK.reset(token)
