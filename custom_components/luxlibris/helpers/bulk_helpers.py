# File: helpers/bulk_helpers.py
"""Bounded-concurrency fan-out for tenant-wide bulk operations.

Bulk jobs (family repair, streak migration, rollover clearing) touch many
independent records. Each record is one unit of work: a failing unit is
recorded and never aborts the others.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from .. import const

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from ..type_defs import BatchReport

_UnitT = TypeVar("_UnitT")


async def async_fan_out(
    units: Iterable[tuple[str, _UnitT]],
    worker: Callable[[str, _UnitT], Awaitable[Any]],
    limit: int = const.DEFAULT_BULK_CONCURRENCY,
    label: str = "bulk",
) -> BatchReport:
    """Run `worker` over every unit with at most `limit` in flight.

    Args:
        units: (unit_id, unit) pairs; unit_id identifies failures in the report
        worker: Coroutine function called as worker(unit_id, unit)
        limit: Maximum number of concurrently running workers
        label: Operation name used in log messages

    Returns:
        BatchReport with the worker results that succeeded (in input order),
        the failure count, and one {"id", "error"} entry per failed unit.
    """
    pending = list(units)
    semaphore = asyncio.Semaphore(max(const.MIN_BULK_CONCURRENCY, limit))

    async def _run(unit_id: str, unit: _UnitT) -> Any:
        async with semaphore:
            return await worker(unit_id, unit)

    results = await asyncio.gather(
        *[_run(unit_id, unit) for unit_id, unit in pending],
        return_exceptions=True,
    )

    report: BatchReport = {"succeeded": [], "failed": 0, "errors": []}
    for (unit_id, _unit), result in zip(pending, results):
        if isinstance(result, Exception):
            const.LOGGER.warning(
                "WARNING: %s failed for '%s': %s", label, unit_id, result
            )
            report["failed"] += 1
            report["errors"].append({"id": unit_id, "error": str(result)})
        elif isinstance(result, BaseException):
            raise result
        else:
            report["succeeded"].append(result)

    const.LOGGER.debug(
        "DEBUG: %s finished: %d succeeded, %d failed",
        label,
        len(report["succeeded"]),
        report["failed"],
    )
    return report
