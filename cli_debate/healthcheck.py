"""Executor availability checks, run concurrently before a debate starts."""

import asyncio
import logging
from collections.abc import Iterable

from cli_debate.executors.base import Executor
from cli_debate.models import BackendIdentity, ExecutorRole

logger = logging.getLogger(__name__)


async def _check_one(name: str, executor: Executor) -> tuple[str, bool]:
    ok = await executor.is_available()
    if not ok:
        logger.warning("Executor %s: '%s' not found on PATH", name, executor.template.command)
    return name, ok


async def run_availability_checks(executors: dict[str, Executor]) -> dict[str, bool]:
    """Check all executors in parallel.

    Returns:
        Dict mapping executor name -> available.
    """
    results = await asyncio.gather(*(_check_one(n, e) for n, e in executors.items()))
    return dict(results)


async def check_backends(
    backends: Iterable[BackendIdentity] = tuple(BackendIdentity),
) -> dict[BackendIdentity, bool]:
    """Check every given backend CLI, independent of any role binding."""
    executors = {b.value: Executor(b, ExecutorRole.FIXER) for b in backends}
    results = await run_availability_checks(executors)
    return {BackendIdentity(name): ok for name, ok in results.items()}
