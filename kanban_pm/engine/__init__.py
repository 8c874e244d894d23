"""PM chat orchestrator: streams replies from agent CLIs as canonical events."""
from .models import (
    AgentDescriptor,
    AgentInfo,
    AgentKind,
    ConfigDialect,
    Content,
    Done,
    EphemeralConfig,
    Error,
    NormalizedEvent,
    OneShotResult,
    ProcessHandle,
    SessionContext,
    SessionPhase,
    Thinking,
)
from .config import EngineConfig
from .errors import (
    AgentTimeoutError,
    BackendError,
    ConfigWriteFailed,
    ExecutableNotFound,
    MalformedOutputLine,
    OrchestrationError,
    PersistenceFailed,
    ProcessExitNonZero,
    SpawnFailed,
    StreamReadFailed,
    UnknownAgentError,
)
from .agents import AgentFamily, AgentRegistry, build_agent_registry
from .aggregator import ResponseAggregator
from .conversation_store import (
    ConversationStore,
    InMemoryConversationStore,
    JsonlConversationStore,
)
from .launcher import ProcessLauncher
from .mcp_config import BridgeCommand, ConfigProvisioner
from .normalizer import StreamNormalizer
from .oneshot import run_once
from .orchestrator import CliChatOrchestrator, EventChannel
from .resolver import ExecutableResolver, PathResolver

__all__ = [
    # Orchestration
    "CliChatOrchestrator",
    "EventChannel",
    "run_once",
    # Components
    "AgentFamily",
    "AgentRegistry",
    "build_agent_registry",
    "BridgeCommand",
    "ConfigProvisioner",
    "ProcessLauncher",
    "StreamNormalizer",
    "ResponseAggregator",
    "ExecutableResolver",
    "PathResolver",
    "ConversationStore",
    "InMemoryConversationStore",
    "JsonlConversationStore",
    "EngineConfig",
    # Models
    "AgentDescriptor",
    "AgentInfo",
    "AgentKind",
    "ConfigDialect",
    "Content",
    "Done",
    "EphemeralConfig",
    "Error",
    "NormalizedEvent",
    "OneShotResult",
    "ProcessHandle",
    "SessionContext",
    "SessionPhase",
    "Thinking",
    # Errors
    "AgentTimeoutError",
    "BackendError",
    "ConfigWriteFailed",
    "ExecutableNotFound",
    "MalformedOutputLine",
    "OrchestrationError",
    "PersistenceFailed",
    "ProcessExitNonZero",
    "SpawnFailed",
    "StreamReadFailed",
    "UnknownAgentError",
]
