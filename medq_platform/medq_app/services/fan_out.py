"""Bounded-concurrency fan-out over independent units of work.

At most `concurrency` units run at once; each unit ends as a success or a
captured error, and results come back in input order.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)


@dataclass
class UnitResult:
    index: int
    success: bool
    data: Any = None
    error: str | None = None
    ms: int = 0


class UnitFailure(Exception):
    """Raised by a unit of work to report a failure with a specific message."""


def clamp_concurrency(requested: Any, default: int, maximum: int) -> int:
    try:
        value = int(requested) if requested is not None else int(default)
    except (TypeError, ValueError):
        value = int(default)
    return max(1, min(value, max(1, int(maximum))))


def run_bounded(
    items: Sequence[Any],
    work: Callable[[int, Any], Any],
    *,
    concurrency: int,
) -> List[UnitResult]:
    """Run `work(index, item)` for every item with at most `concurrency` in flight."""
    if not items:
        return []
    app = current_app._get_current_object() if has_app_context() else None

    def _run(index: int, item: Any) -> UnitResult:
        started = time.perf_counter()
        try:
            if app is not None:
                with app.app_context():
                    value = work(index, item)
            else:
                value = work(index, item)
        except Exception as exc:
            ms = int((time.perf_counter() - started) * 1000)
            logger.warning("Fan-out unit %s failed: %s", index, exc, extra={"unit": index, "durationMs": ms})
            return UnitResult(index=index, success=False, error=str(exc) or exc.__class__.__name__, ms=ms)
        return UnitResult(index=index, success=True, data=value, ms=int((time.perf_counter() - started) * 1000))

    results: List[UnitResult] = []
    with ThreadPoolExecutor(max_workers=max(1, min(concurrency, len(items)))) as executor:
        futures = [executor.submit(_run, index, item) for index, item in enumerate(items)]
        for future in as_completed(futures):
            results.append(future.result())
    results.sort(key=lambda result: result.index)
    return results
