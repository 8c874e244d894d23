"""Agent CLI families and the registry that catalogues them."""
from .base import AgentFamily
from .registry import AgentRegistry, build_agent_registry, default_families

__all__ = [
    "AgentFamily",
    "AgentRegistry",
    "build_agent_registry",
    "default_families",
]
