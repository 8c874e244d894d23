"""Agent process launcher.

Resolves the agent executable (falling back to npx where the family
publishes an npm package), builds the argument vector and spawns the
child with stdin closed and stdout/stderr piped.

Failures are returned, not raised: the lifecycle still has cleanup to
do after a failed launch.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Union

from .agents.base import AgentFamily
from .errors import ExecutableNotFound, SpawnFailed
from .models import ProcessHandle, SessionContext
from .resolver import ExecutableResolver

logger = logging.getLogger(__name__)

NPX_EXECUTABLE = "npx"

LaunchResult = Union[ProcessHandle, ExecutableNotFound, SpawnFailed]


class ProcessLauncher:
    """Spawns agent CLIs as asyncio subprocesses."""

    def __init__(
        self,
        resolver: ExecutableResolver,
        stream_limit_bytes: int = 16 * 1024 * 1024,
    ) -> None:
        self._resolver = resolver
        self._limit = stream_limit_bytes

    async def resolve_command(
        self, family: AgentFamily,
    ) -> tuple[str, list[str], bool] | ExecutableNotFound:
        """Return (executable_path, argv_prefix, used_npx).

        The prefix is what goes before the family's own arguments:
        the resolved executable, or ``npx -y <package>``.
        """
        descriptor = family.descriptor
        path = await self._resolver.resolve(descriptor.executable)
        if path is not None:
            logger.info("Running %s from: %s", descriptor.display_name, path)
            return path, [path], False

        if descriptor.npx_package:
            npx_path = await self._resolver.resolve(NPX_EXECUTABLE)
            if npx_path is not None:
                logger.info(
                    "Running %s via npx (%s)",
                    descriptor.display_name, descriptor.npx_package,
                )
                return npx_path, [npx_path, "-y", descriptor.npx_package], True

        logger.error(
            "%s not found on PATH (executable=%s)",
            descriptor.display_name, descriptor.executable,
        )
        return ExecutableNotFound(descriptor.executable, descriptor.display_name)

    def build_env(self, family: AgentFamily, config_path: str) -> dict[str, str]:
        env = dict(os.environ)
        env.update(family.build_env(config_path))
        return env

    async def launch(
        self,
        family: AgentFamily,
        context: SessionContext,
        config_path: str,
    ) -> LaunchResult:
        resolved = await self.resolve_command(family)
        if isinstance(resolved, ExecutableNotFound):
            return resolved
        executable_path, prefix, used_npx = resolved

        argv = [*prefix, *family.build_argv(context, config_path)]
        try:
            # create_subprocess_exec passes args as array, no shell
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_env(family, config_path),
                limit=self._limit,
            )
        except (OSError, ValueError) as exc:
            # ValueError: NUL byte in argv or env
            logger.error(
                "Failed to spawn %s (%s): %s",
                family.descriptor.display_name, executable_path, exc,
            )
            return SpawnFailed(str(exc))

        logger.info(
            "%s started (pid=%d, session=%s, npx=%s)",
            family.descriptor.display_name, process.pid,
            context.session_id, used_npx,
        )
        return ProcessHandle(
            process=process,
            argv=argv,
            executable_path=executable_path,
            used_npx_fallback=used_npx,
        )
