"""Exception hierarchy for the CLI agent orchestrator.

One exception per failure mode. Inside a chat session every one of
them is collapsed into an Error + Done event pair; callers outside a
session (one-shot runs, the CLI, the tool bridge) may see them raised.
"""
from __future__ import annotations


class OrchestrationError(Exception):
    """Base exception for all orchestrator errors."""


class UnknownAgentError(OrchestrationError):
    """An agent identifier did not match any supported family."""
    def __init__(self, value: str, known: list[str]):
        self.value = value
        self.known = known
        super().__init__(
            f"Unknown agent '{value}'. Known agents: {', '.join(known)}"
        )


class ConfigWriteFailed(OrchestrationError):
    """The ephemeral MCP config file could not be written."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to create MCP config: {reason}")


class ExecutableNotFound(OrchestrationError):
    """The agent CLI is not on PATH and no fallback is available."""
    def __init__(self, executable: str, display_name: str):
        self.executable = executable
        self.display_name = display_name
        super().__init__(
            f"{display_name} not found. Please install it first."
        )


class SpawnFailed(OrchestrationError):
    """The OS refused to start the agent process."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to spawn CLI: {reason}")


class MalformedOutputLine(OrchestrationError):
    """A stdout line looked like JSON but did not parse.

    Never surfaced to the caller; the normalizer logs and drops it.
    """
    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed output line ({reason}): {line[:200]}")


class ProcessExitNonZero(OrchestrationError):
    """The agent process exited with a failure status."""
    def __init__(self, returncode: int):
        self.returncode = returncode
        super().__init__(f"CLI exited with status: {returncode}")


class StreamReadFailed(OrchestrationError):
    """Reading the agent's stdout failed part-way through."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to read CLI output: {reason}")


class PersistenceFailed(OrchestrationError):
    """The aggregated reply could not be stored. Logged only."""
    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(
            f"Failed to persist reply for session {session_id}: {reason}"
        )


class AgentTimeoutError(OrchestrationError):
    """A one-shot agent run exceeded its wait budget."""
    def __init__(self, agent: str, timeout_seconds: float):
        self.agent = agent
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Agent {agent} timed out after {timeout_seconds}s"
        )


class BackendError(OrchestrationError):
    """The Kanban backend API rejected or failed a tool bridge call."""
    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        text = message if not details else f"{message}: {details}"
        super().__init__(text)
