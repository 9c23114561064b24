"""Bounded worker-thread helpers for blocking work (CSV parsing, SMTP)."""

from __future__ import annotations

from typing import Any, Callable

import anyio

from serviceability.core.config import settings

_import_sem = anyio.Semaphore(settings.CSV_MAX_CONCURRENCY)
_notify_sem = anyio.Semaphore(settings.NOTIFY_MAX_CONCURRENCY)


async def run_in_thread_limited(func: Callable[..., Any], *args: Any):
    """Run a sync callable in a worker thread with bounded concurrency."""

    async with _import_sem:
        return await anyio.to_thread.run_sync(func, *args)


async def run_in_thread_notify(func: Callable[..., Any], *args: Any):
    async with _notify_sem:
        return await anyio.to_thread.run_sync(func, *args)
