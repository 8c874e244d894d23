"""Bounded, non-streaming agent run.

The older chat path: start the CLI, wait for the whole process under
a timeout, then normalize its complete stdout in one pass. Cleanup
follows the same rules as the streaming path: the config file is
always removed and a timed-out child is killed and reaped.
"""
from __future__ import annotations

import asyncio
import logging
import uuid

from kanban_pm.shared.models.message import MessageRole

from .agents.registry import AgentRegistry
from .aggregator import ResponseAggregator
from .config import EngineConfig
from .conversation_store import ConversationStore
from .errors import (
    AgentTimeoutError,
    ConfigWriteFailed,
    ExecutableNotFound,
    PersistenceFailed,
    ProcessExitNonZero,
    SpawnFailed,
    UnknownAgentError,
)
from .launcher import ProcessLauncher
from .mcp_config import ConfigProvisioner
from .models import AgentKind, Done, Error, OneShotResult, SessionContext
from .normalizer import StreamNormalizer

logger = logging.getLogger(__name__)


def _failed(message: str, exit_code: int | None = None) -> OneShotResult:
    return OneShotResult(
        text="",
        success=False,
        error=message,
        exit_code=exit_code,
        events=[Error(message), Done()],
    )


async def run_once(
    registry: AgentRegistry,
    agent_kind: AgentKind | str | None,
    model: str | None,
    system_prompt: str,
    user_content: str,
    *,
    config: EngineConfig | None = None,
    store: ConversationStore | None = None,
    session_id: str | None = None,
    provisioner: ConfigProvisioner | None = None,
    launcher: ProcessLauncher | None = None,
    timeout_seconds: float | None = None,
) -> OneShotResult:
    """Run the agent to completion and return its aggregated reply.

    Args:
        registry: Families to choose from.
        agent_kind: Wire identifier or short name; None means Claude.
        model: Model name; None uses the configured default.
        store: When given, a non-empty reply is appended as an
            assistant message tagged with the model.
        timeout_seconds: Total wait for the process. Defaults to
            ``config.oneshot_timeout_seconds``.
    """
    config = config or EngineConfig()
    session_id = session_id or str(uuid.uuid4())
    model = config.default_model if model is None else model
    timeout = config.oneshot_timeout_seconds if timeout_seconds is None else timeout_seconds
    provisioner = provisioner or ConfigProvisioner.from_config(config)
    launcher = launcher or ProcessLauncher(registry.resolver, config.stream_limit_bytes)

    try:
        family = registry.get(agent_kind)
    except UnknownAgentError as exc:
        return _failed(str(exc))

    descriptor = family.descriptor
    context = SessionContext(
        session_id=session_id,
        model=model,
        system_prompt=system_prompt,
        user_content=user_content,
        agent=descriptor,
    )

    try:
        ephemeral = provisioner.provision(session_id, descriptor)
    except ConfigWriteFailed as exc:
        return _failed(str(exc))

    try:
        launched = await launcher.launch(family, context, ephemeral.path)
        if isinstance(launched, (ExecutableNotFound, SpawnFailed)):
            return _failed(str(launched))

        process = launched.process
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=timeout,
            )
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            err = AgentTimeoutError(descriptor.display_name, timeout)
            logger.error("One-shot session %s: %s", session_id[:8], err)
            return _failed(str(err), exit_code=process.returncode)
        except asyncio.CancelledError:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            logger.info("One-shot session %s cancelled", session_id[:8])
            raise
    finally:
        provisioner.remove(ephemeral.path)

    stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
    if stderr_text:
        logger.debug("One-shot session %s stderr: %s", session_id[:8], stderr_text)

    normalizer = StreamNormalizer(
        registry.families(),
        plain_text_fallback=not descriptor.supports_streaming,
    )
    aggregator = ResponseAggregator()
    events = []
    for line in stdout_bytes.decode("utf-8", errors="replace").splitlines():
        event = normalizer.normalize(line, aggregator)
        if event is not None:
            events.append(event)

    text = aggregator.snapshot()
    if text and store is not None:
        try:
            await store.append_message(
                session_id, MessageRole.ASSISTANT, text, model=model,
            )
        except Exception as exc:
            logger.error("%s", PersistenceFailed(session_id, str(exc)))

    returncode = process.returncode
    error = None
    if returncode != 0:
        error = str(ProcessExitNonZero(returncode))
        events.append(Error(error))
    events.append(Done())

    return OneShotResult(
        text=text,
        success=error is None,
        error=error,
        exit_code=returncode,
        events=events,
    )
