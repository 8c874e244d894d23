"""Executable resolution on the search path.

Resolution is injected as a strategy so tests can supply canned
answers without touching the filesystem.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Protocol

logger = logging.getLogger(__name__)


class ExecutableResolver(Protocol):
    async def resolve(self, name: str) -> str | None:
        """Return the absolute path of *name*, or None if unavailable."""


class PathResolver:
    """Resolve executables via PATH lookup under a short timeout.

    Never raises: timeouts, missing binaries and permission errors all
    resolve to None.
    """

    def __init__(self, timeout_seconds: float = 0.5) -> None:
        self._timeout = timeout_seconds

    async def resolve(self, name: str) -> str | None:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(shutil.which, name),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Resolving '%s' timed out after %.2fs", name, self._timeout,
            )
            return None
        except OSError as exc:
            logger.debug("Resolving '%s' failed: %s", name, exc)
            return None
