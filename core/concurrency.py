"""
core/concurrency.py -- Deadline-bounded calls into blocking code from async handlers.

The store (SQLAlchemy Core over SQLite) and bcrypt are synchronous. Route
handlers are async, so every such call goes through run_db(), which moves the
work to a worker thread and bounds it with DB_TIMEOUT_SECONDS. A call that
overruns surfaces as InternalFault; the caller never hangs.

The worker thread itself cannot be interrupted. SQLite's own busy timeout
(set from the same setting in auth/store.py) keeps it from outliving the
deadline by much.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from core.config import get_settings
from core.errors import InternalFault

logger = logging.getLogger("talentspal.concurrency")

T = TypeVar("T")


async def run_db(fn: Callable[..., T], *args: Any, timeout: float | None = None, **kwargs: Any) -> T:
    """Run fn(*args, **kwargs) in a worker thread under a deadline.

    AppError subclasses raised by fn propagate unchanged.
    """
    deadline = timeout if timeout is not None else get_settings().db_timeout_seconds
    call = functools.partial(fn, *args, **kwargs)
    try:
        return await asyncio.wait_for(asyncio.to_thread(call), timeout=deadline)
    except asyncio.TimeoutError as exc:
        name = getattr(fn, "__qualname__", repr(fn))
        logger.error("%s exceeded the %.1fs deadline", name, deadline)
        raise InternalFault(f"{name} timed out after {deadline}s") from exc
