"""
Project capability detection.

Tiers, tried in order until one answers:
1. memory    - last snapshot for this project, younger than the TTL
2. disk      - ai/capabilities.json, if its version matches and git says
               the tracked config files have not changed
3. discovery - ask an agent, then persist to memory, and to disk unless
               the agent gave no usable answer

Usage:
    from featurewarden.capabilities import detect_capabilities

    caps = detect_capabilities("/path/to/project")
    if caps.has_tests:
        print(caps.test_command)
"""

import logging
from typing import Callable, List, Optional, Tuple

from featurewarden.capabilities.discovery import (
    AgentDiscoveryProvider,
    build_discovery_prompt,
    parse_capability_response,
)
from featurewarden.capabilities.disk_cache import (
    CACHE_FILE,
    invalidate_cache,
    load_cached_envelope,
    load_full_cache,
    save_capabilities,
)
from featurewarden.capabilities.invalidation import is_stale
from featurewarden.capabilities.memory_cache import (
    MEMORY_CACHE_TTL_MS,
    MemoryCache,
    clear_capabilities_cache,
    default_memory_cache,
)
from featurewarden.git_utils import GitFacts
from featurewarden.models.capabilities import CapabilitySnapshot

logger = logging.getLogger(__name__)

Tier = Tuple[str, Callable[[str], Optional[CapabilitySnapshot]]]


class CapabilityResolver:
    """Runs the memory -> disk -> discovery cascade for one process.

    Collaborators are injectable so tests can supply a fake clock, git
    and discovery provider.
    """

    def __init__(
        self,
        memory: Optional[MemoryCache] = None,
        git: Optional[GitFacts] = None,
        provider: Optional[AgentDiscoveryProvider] = None,
    ):
        self.memory = memory if memory is not None else default_memory_cache
        self.git = git or GitFacts()
        self.provider = provider or AgentDiscoveryProvider(git=self.git)

    def _from_memory(self, project_path: str) -> Optional[CapabilitySnapshot]:
        return self.memory.get(project_path)

    def _from_disk(self, project_path: str) -> Optional[CapabilitySnapshot]:
        envelope = load_cached_envelope(project_path)
        if envelope is None:
            return None
        if is_stale(project_path, envelope, self.git):
            logger.debug("Disk cache is stale, rediscovering")
            return None
        snapshot = envelope.capabilities.as_cached()
        self.memory.set(project_path, snapshot)
        return snapshot

    def _from_discovery(self, project_path: str) -> CapabilitySnapshot:
        result = self.provider.discover(project_path)
        if result.capabilities.confidence > 0:
            save_capabilities(project_path, result.capabilities, result.config_files, git=self.git)
        else:
            logger.warning("Capability discovery failed, not caching the result on disk")
        self.memory.set(project_path, result.capabilities)
        return result.capabilities

    def tiers(self, force: bool = False) -> List[Tier]:
        """Ordered tiers; force keeps only discovery."""
        cached: List[Tier] = [("memory", self._from_memory), ("disk", self._from_disk)]
        return ([] if force else cached) + [("discovery", self._from_discovery)]

    def detect(self, project_path: str, force: bool = False, verbose: bool = False) -> CapabilitySnapshot:
        for name, tier in self.tiers(force):
            snapshot = tier(project_path)
            if snapshot is not None:
                if verbose:
                    logger.info(f"Capabilities from {name} tier")
                logger.debug(f"Capabilities for {project_path} served by {name}")
                return snapshot
        raise AssertionError("discovery tier always answers")


def detect_capabilities(
    project_path: str,
    force: bool = False,
    verbose: bool = False,
    resolver: Optional[CapabilityResolver] = None,
) -> CapabilitySnapshot:
    """Detect project capabilities, using caches where still valid."""
    return (resolver or CapabilityResolver()).detect(project_path, force=force, verbose=verbose)


def format_capabilities(caps: CapabilitySnapshot) -> str:
    """Plain-text listing for the CLI."""
    lines = [
        f"  Source: {caps.source}",
        f"  Confidence: {caps.confidence * 100:.0f}%",
        f"  Languages: {', '.join(caps.languages) or 'Unknown'}",
        "",
    ]

    def describe(label: str, info, with_framework: bool = False) -> str:
        if not info.available:
            return f"  {label}: Not detected"
        if with_framework:
            return f"  {label}: {info.framework or 'custom'} ({info.command})"
        return f"  {label}: {info.command}"

    lines.append(describe("Tests", caps.test_info, with_framework=True))
    lines.append(describe("E2E", caps.e2e_info, with_framework=True))
    lines.append(describe("Type Check", caps.type_check_info))
    lines.append(describe("Lint", caps.lint_info))
    lines.append(describe("Build", caps.build_info))
    for rule in caps.custom_rules:
        lines.append(f"  Rule {rule.id} ({rule.type}): {rule.command}")
    lines.append(f"  Git: {'Available' if caps.has_git else 'Not available'}")
    return "\n".join(lines)


__all__ = [
    "CACHE_FILE",
    "MEMORY_CACHE_TTL_MS",
    "AgentDiscoveryProvider",
    "CapabilityResolver",
    "MemoryCache",
    "build_discovery_prompt",
    "clear_capabilities_cache",
    "detect_capabilities",
    "format_capabilities",
    "invalidate_cache",
    "is_stale",
    "load_full_cache",
    "parse_capability_response",
    "save_capabilities",
]
