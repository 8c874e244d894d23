"""Streaming chat orchestrator.

Runs one agent CLI per chat session and exposes its output as an
ordered stream of canonical events:

    provision config -> spawn -> stream stdout -> wait for exit
    -> remove config -> persist reply -> [Error] -> Done

Each session is driven by its own background task writing into a
bounded EventChannel. The caller iterates start_session(); if it stops
iterating, the channel is detached and the session still runs to the
end so the process is reaped, the config removed and the reply stored.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from kanban_pm.shared.models.message import MessageRole

from .agents.registry import AgentRegistry
from .aggregator import ResponseAggregator
from .config import EngineConfig
from .conversation_store import ConversationStore
from .errors import (
    ConfigWriteFailed,
    ExecutableNotFound,
    PersistenceFailed,
    ProcessExitNonZero,
    SpawnFailed,
    StreamReadFailed,
    UnknownAgentError,
)
from .launcher import ProcessLauncher
from .lifecycle import SessionStateMachine
from .mcp_config import ConfigProvisioner
from .models import (
    AgentKind,
    Done,
    EphemeralConfig,
    Error,
    NormalizedEvent,
    ProcessHandle,
    SessionContext,
    SessionPhase,
)
from .normalizer import StreamNormalizer, progress_event

logger = logging.getLogger(__name__)

# How long stderr may keep draining after the process has exited.
STDERR_GRACE_SECONDS = 2.0


async def read_line_unbounded(stream: asyncio.StreamReader) -> bytes:
    """Read one full line from *stream*, however long it is.

    ``readline()`` raises once a line outgrows the reader's buffer
    limit. A stream-json line carrying a whole tool result can, so
    buffered bytes are drained and accumulated until the separator or
    EOF. Returns b"" at EOF.
    """
    chunks: list[bytes] = []
    while True:
        try:
            chunks.append(await stream.readuntil(b"\n"))
            return b"".join(chunks)
        except asyncio.LimitOverrunError as exc:
            chunks.append(await stream.read(exc.consumed))
        except asyncio.IncompleteReadError as exc:
            # EOF before newline
            chunks.append(exc.partial)
            return b"".join(chunks)


class EventChannel:
    """Bounded single-producer/single-consumer queue of session events.

    Once detached (the consumer went away) sends are dropped instead
    of blocking, so the producer can always run to completion.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[NormalizedEvent | None] = asyncio.Queue(maxsize)
        self._detached = False

    @property
    def detached(self) -> bool:
        return self._detached

    async def send(self, event: NormalizedEvent) -> bool:
        if self._detached:
            return False
        await self._queue.put(event)
        return True

    async def close(self) -> None:
        if not self._detached:
            await self._queue.put(None)

    async def receive(self) -> NormalizedEvent | None:
        """Next event, or None once the producer has closed the channel."""
        return await self._queue.get()

    def detach(self) -> None:
        self._detached = True
        # Free the slot a blocked producer may be waiting on.
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break


@dataclass
class _SessionState:
    """Everything one session owns. Touched only by its own task."""
    session_id: str
    model: str
    channel: EventChannel
    machine: SessionStateMachine
    aggregator: ResponseAggregator = field(default_factory=ResponseAggregator)
    config: EphemeralConfig | None = None
    handle: ProcessHandle | None = None
    stderr_task: asyncio.Task | None = None
    error: str | None = None
    kill_before_wait: bool = False


class CliChatOrchestrator:
    """Runs PM chat sessions against locally installed agent CLIs."""

    def __init__(
        self,
        registry: AgentRegistry,
        store: ConversationStore,
        config: EngineConfig | None = None,
        *,
        provisioner: ConfigProvisioner | None = None,
        launcher: ProcessLauncher | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._registry = registry
        self._store = store
        self._provisioner = provisioner or ConfigProvisioner.from_config(self._config)
        self._launcher = launcher or ProcessLauncher(
            registry.resolver, self._config.stream_limit_bytes,
        )
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_sessions(self) -> int:
        return len(self._tasks)

    async def start_session(
        self,
        agent_kind: AgentKind | str | None,
        model: str | None,
        system_prompt: str,
        user_content: str,
        session_id: str | None = None,
    ) -> AsyncIterator[NormalizedEvent]:
        """Run one chat turn and yield its events, ending with exactly one Done."""
        session_id = session_id or str(uuid.uuid4())
        state = _SessionState(
            session_id=session_id,
            model=self._config.default_model if model is None else model,
            channel=EventChannel(self._config.event_queue_size),
            machine=SessionStateMachine(session_id),
        )
        task = asyncio.create_task(
            self._run_session(state, agent_kind, system_prompt, user_content),
            name=f"pm-chat-{session_id[:8]}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        try:
            while True:
                event = await state.channel.receive()
                if event is None:
                    break
                yield event
        finally:
            if not task.done():
                logger.info(
                    "Session %s: consumer detached, finishing in background",
                    session_id[:8],
                )
            state.channel.detach()

    async def wait_closed(self) -> None:
        """Wait until every background session has terminated."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    # ── Session task ──

    async def _run_session(
        self,
        state: _SessionState,
        agent_kind: AgentKind | str | None,
        system_prompt: str,
        user_content: str,
    ) -> None:
        try:
            await self._provision_and_stream(
                state, agent_kind, system_prompt, user_content,
            )
        except asyncio.CancelledError:
            state.channel.detach()
            state.kill_before_wait = True
            state.error = state.error or "Session cancelled"
            raise
        except Exception as exc:
            logger.exception("Session %s failed", state.session_id[:8])
            state.kill_before_wait = True
            state.error = state.error or f"CLI error: {exc}"
        finally:
            await self._finalize(state)

    async def _provision_and_stream(
        self,
        state: _SessionState,
        agent_kind: AgentKind | str | None,
        system_prompt: str,
        user_content: str,
    ) -> None:
        try:
            family = self._registry.get(agent_kind)
        except UnknownAgentError as exc:
            logger.error("Session %s: %s", state.session_id[:8], exc)
            state.error = str(exc)
            return

        descriptor = family.descriptor
        context = SessionContext(
            session_id=state.session_id,
            model=state.model,
            system_prompt=system_prompt,
            user_content=user_content,
            agent=descriptor,
        )

        try:
            state.config = self._provisioner.provision(state.session_id, descriptor)
        except ConfigWriteFailed as exc:
            state.error = str(exc)
            return

        state.machine.advance(SessionPhase.SPAWNING)
        launched = await self._launcher.launch(family, context, state.config.path)
        if isinstance(launched, (ExecutableNotFound, SpawnFailed)):
            state.error = str(launched)
            return
        state.handle = launched

        state.machine.advance(SessionPhase.STREAMING)
        if self._config.announce_thinking:
            await state.channel.send(progress_event())

        normalizer = StreamNormalizer(
            self._registry.families(),
            plain_text_fallback=not descriptor.supports_streaming,
        )
        process = launched.process
        state.stderr_task = asyncio.create_task(
            self._drain_stderr(process.stderr, state.session_id),
        )
        stdout_task = asyncio.create_task(
            self._pump_stdout(process.stdout, normalizer, state),
        )
        try:
            await stdout_task
        except StreamReadFailed as exc:
            logger.error("Session %s: %s", state.session_id[:8], exc)
            state.error = str(exc)
            state.kill_before_wait = True
        finally:
            if not stdout_task.done():
                stdout_task.cancel()

    async def _pump_stdout(
        self,
        stdout: asyncio.StreamReader,
        normalizer: StreamNormalizer,
        state: _SessionState,
    ) -> None:
        """The single writer of the aggregator. Returns at EOF."""
        while True:
            try:
                raw = await read_line_unbounded(stdout)
            except (OSError, RuntimeError, ValueError) as exc:
                raise StreamReadFailed(str(exc)) from exc
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace")
            event = normalizer.normalize(line, state.aggregator)
            if event is not None:
                await state.channel.send(event)

    @staticmethod
    async def _drain_stderr(stderr: asyncio.StreamReader, session_id: str) -> None:
        """Diagnostic sink: log, never forward, never aggregate."""
        try:
            while True:
                raw = await read_line_unbounded(stderr)
                if not raw:
                    return
                text = raw.decode("utf-8", errors="replace").rstrip()
                if text:
                    logger.debug("Session %s stderr: %s", session_id[:8], text)
        except (OSError, RuntimeError, ValueError) as exc:
            logger.debug("Session %s: stderr read ended: %s", session_id[:8], exc)

    # ── Finalization ──

    async def _finalize(self, state: _SessionState) -> None:
        state.machine.advance(SessionPhase.FINALIZING)
        if state.handle is not None:
            await self._reap(state)
        if state.config is not None:
            self._provisioner.remove(state.config.path)
        await self._persist(state)

        if state.error is not None:
            await state.channel.send(Error(state.error))
        await state.channel.send(Done())
        state.machine.advance(SessionPhase.TERMINATED)
        await state.channel.close()
        logger.info(
            "Session %s terminated (error=%s)", state.session_id[:8], state.error,
        )

    async def _reap(self, state: _SessionState) -> None:
        """Wait for the child to exit. Never skipped, even without a consumer."""
        process = state.handle.process
        if state.kill_before_wait and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass

        try:
            returncode = await process.wait()
        except OSError as exc:
            logger.error("Session %s: wait failed: %s", state.session_id[:8], exc)
            state.error = state.error or f"CLI error: {exc}"
        else:
            logger.info(
                "Session %s: CLI exited with %s", state.session_id[:8], returncode,
            )
            if returncode != 0 and state.error is None:
                state.error = str(ProcessExitNonZero(returncode))

        if state.stderr_task is not None:
            try:
                await asyncio.wait_for(state.stderr_task, STDERR_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logger.debug(
                    "Session %s: stderr still open after exit", state.session_id[:8],
                )

    async def _persist(self, state: _SessionState) -> None:
        text = state.aggregator.snapshot()
        if not text:
            return
        try:
            await self._store.append_message(
                state.session_id, MessageRole.ASSISTANT, text, model=state.model,
            )
        except Exception as exc:
            logger.error("%s", PersistenceFailed(state.session_id, str(exc)))
            return
        logger.info(
            "Session %s: persisted %d chars from %s",
            state.session_id[:8], len(text), state.model,
        )
