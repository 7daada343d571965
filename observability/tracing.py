"""Span helper recording evaluator call timings on session state."""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator


@contextmanager
def span(state: Any, name: str, **tags: Any) -> Iterator[None]:
    """Append ``{"span": name, "ms": elapsed, **tags}`` to ``state.events`` on exit."""

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        state.events.append({"span": name, "ms": elapsed_ms, **tags})


__all__ = ["span"]
