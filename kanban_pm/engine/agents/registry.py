"""Agent registry: maps AgentKind to the family record that drives it."""
from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from ..errors import UnknownAgentError
from ..models import AgentDescriptor, AgentInfo, AgentKind
from ..resolver import ExecutableResolver, PathResolver
from .base import AgentFamily

if TYPE_CHECKING:
    from ..yaml_config import AgentConfig

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Catalogue of agent families and their availability on this host."""

    def __init__(self, resolver: ExecutableResolver | None = None) -> None:
        self._families: dict[AgentKind, AgentFamily] = {}
        self._resolver = resolver or PathResolver()

    @property
    def resolver(self) -> ExecutableResolver:
        return self._resolver

    def register(self, family: AgentFamily) -> None:
        kind = family.descriptor.identifier
        self._families[kind] = family
        logger.debug(
            "Agent registered: %s (executable=%s)",
            kind.value, family.descriptor.executable,
        )

    def get(self, kind: AgentKind | str | None) -> AgentFamily:
        """Return the family for *kind*, raising UnknownAgentError otherwise."""
        kind = AgentKind.parse(kind)
        family = self._families.get(kind)
        if family is None:
            raise UnknownAgentError(kind.value, [k.value for k in self._families])
        return family

    def families(self) -> list[AgentFamily]:
        return list(self._families.values())

    def list(self) -> list[AgentDescriptor]:
        return [f.descriptor for f in self._families.values()]

    async def probe(self, descriptor: AgentDescriptor) -> bool:
        """True when the executable resolves. Never raises."""
        try:
            path = await self._resolver.resolve(descriptor.executable)
        except Exception as exc:
            logger.warning(
                "Probe for %s failed: %s", descriptor.display_name, exc,
            )
            return False
        return path is not None

    async def available(self) -> list[AgentDescriptor]:
        return [d for d in self.list() if await self.probe(d)]

    async def availability_report(self) -> list[AgentInfo]:
        report = [
            AgentInfo(
                agent=d.identifier,
                display_name=d.display_name,
                available=await self.probe(d),
                supports_streaming=d.supports_streaming,
            )
            for d in self.list()
        ]
        missing = [i.display_name for i in report if not i.available]
        if missing:
            logger.info("Agents not installed: %s", ", ".join(missing))
        return report

    @property
    def count(self) -> int:
        return len(self._families)


def default_families() -> list[AgentFamily]:
    from . import claude, codex, gemini, opencode

    return [claude.FAMILY, codex.FAMILY, gemini.FAMILY, opencode.FAMILY]


def build_agent_registry(
    agent_configs: dict[AgentKind, AgentConfig] | None = None,
    resolver: ExecutableResolver | None = None,
) -> AgentRegistry:
    """Build a registry of all families, applying YAML agent overrides.

    A configured ``command`` replaces the executable name; agents with
    ``enabled: false`` are left out entirely.
    """
    agent_configs = agent_configs or {}
    registry = AgentRegistry(resolver)

    for family in default_families():
        kind = family.descriptor.identifier
        cfg = agent_configs.get(kind)
        if cfg is not None and not cfg.enabled:
            logger.info("Agent %s disabled by configuration", kind.value)
            continue
        if cfg is not None and cfg.command:
            family = dataclasses.replace(
                family,
                descriptor=dataclasses.replace(
                    family.descriptor, executable=cfg.command,
                ),
            )
        registry.register(family)

    return registry
