"""Application logging configuration helpers."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from sys import stdout
from typing import Any, Iterator

from loguru import logger

request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
sync_operation_ctx_var: ContextVar[str] = ContextVar("sync_operation", default="-")


def _patch_record(record: dict[str, Any]) -> None:
    record["extra"].setdefault("request_id", request_id_ctx_var.get())
    record["extra"].setdefault("operation", sync_operation_ctx_var.get())


@contextmanager
def sync_operation(name: str) -> Iterator[None]:
    """Tag records logged inside the block (store retries, CAS conflicts) with ``name``."""

    token = sync_operation_ctx_var.set(name)
    try:
        yield
    finally:
        sync_operation_ctx_var.reset(token)


def setup_logging(level: str = "INFO") -> None:
    """Configure the standard logging module and a JSON Loguru sink on stdout."""

    logging.basicConfig(level=logging.INFO)
    logging.getLogger("aiomysql").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logger.remove()
    logger.configure(patcher=_patch_record)
    logger.add(
        stdout,
        level=level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        serialize=True,
    )
