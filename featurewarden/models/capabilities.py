"""
Capability models - what a project can run to verify itself.

A CapabilitySnapshot is produced once per discovery and never mutated;
the next discovery replaces it wholesale. The DiskCacheEnvelope wraps a
snapshot with the facts needed to decide whether it is still fresh.

On disk everything is camelCase JSON; attributes are snake_case and
from_dict accepts both spellings.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional


# Schema version of ai/capabilities.json. Any other version is a miss.
CACHE_VERSION = "1.0.0"

CUSTOM_RULE_TYPES = ("test", "typecheck", "lint", "build", "custom")


def _pick(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    """Read a key that may be spelled camelCase or snake_case."""
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class CapabilityCommand:
    """Availability and command for one kind of check."""
    available: bool = False
    command: Optional[str] = None
    framework: Optional[str] = None
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "available": self.available,
            "command": self.command,
            "framework": self.framework,
            "confidence": self.confidence,
        })

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CapabilityCommand":
        data = data or {}
        return cls(
            available=bool(data.get("available", False)),
            command=data.get("command"),
            framework=data.get("framework"),
            confidence=float(data.get("confidence", 0.0) or 0.0),
        )


@dataclass(frozen=True)
class TestCapabilityInfo(CapabilityCommand):
    """Unit test capability, including selective execution templates."""
    __test__ = False  # not a pytest class

    selective_file_template: Optional[str] = None  # uses {files}
    selective_name_template: Optional[str] = None  # uses {pattern}
    package_manager: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(_drop_none({
            "selectiveFileTemplate": self.selective_file_template,
            "selectiveNameTemplate": self.selective_name_template,
            "packageManager": self.package_manager,
        }))
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TestCapabilityInfo":
        data = data or {}
        base = CapabilityCommand.from_dict(data)
        return cls(
            available=base.available,
            command=base.command,
            framework=base.framework,
            confidence=base.confidence,
            selective_file_template=_pick(data, "selectiveFileTemplate", "selective_file_template"),
            selective_name_template=_pick(data, "selectiveNameTemplate", "selective_name_template"),
            package_manager=_pick(data, "packageManager", "package_manager"),
        )


@dataclass(frozen=True)
class E2ECapabilityInfo(CapabilityCommand):
    """End-to-end test capability (Playwright, Cypress, ...)."""
    config_file: Optional[str] = None
    grep_template: Optional[str] = None  # uses {tags}
    file_template: Optional[str] = None  # uses {files}

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(_drop_none({
            "configFile": self.config_file,
            "grepTemplate": self.grep_template,
            "fileTemplate": self.file_template,
        }))
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "E2ECapabilityInfo":
        data = data or {}
        base = CapabilityCommand.from_dict(data)
        return cls(
            available=base.available,
            command=base.command,
            framework=base.framework,
            confidence=base.confidence,
            config_file=_pick(data, "configFile", "config_file"),
            grep_template=_pick(data, "grepTemplate", "grep_template"),
            file_template=_pick(data, "fileTemplate", "file_template"),
        )


@dataclass(frozen=True)
class CustomRule:
    """A project-specific verification command."""
    id: str
    description: str
    command: str
    type: str = "custom"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "command": self.command,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomRule":
        rule_type = data.get("type", "custom")
        return cls(
            id=data.get("id", ""),
            description=data.get("description", ""),
            command=data.get("command", ""),
            type=rule_type if rule_type in CUSTOM_RULE_TYPES else "custom",
        )


@dataclass(frozen=True)
class CapabilitySnapshot:
    """Discovered or cached facts about how to verify a project."""
    has_tests: bool = False
    test_command: Optional[str] = None
    test_framework: Optional[str] = None
    has_type_check: bool = False
    type_check_command: Optional[str] = None
    has_lint: bool = False
    lint_command: Optional[str] = None
    has_build: bool = False
    build_command: Optional[str] = None
    has_git: bool = False

    source: str = "ai-discovered"  # "cached" | "ai-discovered"
    confidence: float = 0.0
    languages: List[str] = field(default_factory=list)
    detected_at: str = field(default_factory=lambda: datetime.now().isoformat())

    test_info: TestCapabilityInfo = field(default_factory=TestCapabilityInfo)
    e2e_info: E2ECapabilityInfo = field(default_factory=E2ECapabilityInfo)
    type_check_info: CapabilityCommand = field(default_factory=CapabilityCommand)
    lint_info: CapabilityCommand = field(default_factory=CapabilityCommand)
    build_info: CapabilityCommand = field(default_factory=CapabilityCommand)
    custom_rules: List[CustomRule] = field(default_factory=list)

    def as_cached(self) -> "CapabilitySnapshot":
        """Same facts, tagged as coming from the disk cache."""
        return replace(self, source="cached")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "hasTests": self.has_tests,
            "testCommand": self.test_command,
            "testFramework": self.test_framework,
            "hasTypeCheck": self.has_type_check,
            "typeCheckCommand": self.type_check_command,
            "hasLint": self.has_lint,
            "lintCommand": self.lint_command,
            "hasBuild": self.has_build,
            "buildCommand": self.build_command,
            "hasGit": self.has_git,
            "source": self.source,
            "confidence": self.confidence,
            "languages": list(self.languages),
            "detectedAt": self.detected_at,
            "testInfo": self.test_info.to_dict(),
            "e2eInfo": self.e2e_info.to_dict(),
            "typeCheckInfo": self.type_check_info.to_dict(),
            "lintInfo": self.lint_info.to_dict(),
            "buildInfo": self.build_info.to_dict(),
        }
        if self.custom_rules:
            data["customRules"] = [r.to_dict() for r in self.custom_rules]
        return _drop_none(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapabilitySnapshot":
        return cls(
            has_tests=bool(_pick(data, "hasTests", "has_tests", False)),
            test_command=_pick(data, "testCommand", "test_command"),
            test_framework=_pick(data, "testFramework", "test_framework"),
            has_type_check=bool(_pick(data, "hasTypeCheck", "has_type_check", False)),
            type_check_command=_pick(data, "typeCheckCommand", "type_check_command"),
            has_lint=bool(_pick(data, "hasLint", "has_lint", False)),
            lint_command=_pick(data, "lintCommand", "lint_command"),
            has_build=bool(_pick(data, "hasBuild", "has_build", False)),
            build_command=_pick(data, "buildCommand", "build_command"),
            has_git=bool(_pick(data, "hasGit", "has_git", False)),
            source=data.get("source", "ai-discovered"),
            confidence=float(data.get("confidence", 0.0) or 0.0),
            languages=list(data.get("languages") or []),
            detected_at=_pick(data, "detectedAt", "detected_at") or datetime.now().isoformat(),
            test_info=TestCapabilityInfo.from_dict(_pick(data, "testInfo", "test_info")),
            e2e_info=E2ECapabilityInfo.from_dict(_pick(data, "e2eInfo", "e2e_info")),
            type_check_info=CapabilityCommand.from_dict(_pick(data, "typeCheckInfo", "type_check_info")),
            lint_info=CapabilityCommand.from_dict(_pick(data, "lintInfo", "lint_info")),
            build_info=CapabilityCommand.from_dict(_pick(data, "buildInfo", "build_info")),
            custom_rules=[CustomRule.from_dict(r) for r in _pick(data, "customRules", "custom_rules") or []],
        )


@dataclass
class DiskCacheEnvelope:
    """Persisted wrapper around a snapshot (ai/capabilities.json)."""
    capabilities: CapabilitySnapshot
    version: str = CACHE_VERSION
    commit_hash: Optional[str] = None
    tracked_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "version": self.version,
            "capabilities": self.capabilities.to_dict(),
            "commitHash": self.commit_hash,
            "trackedFiles": list(self.tracked_files),
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiskCacheEnvelope":
        """Build from parsed JSON.

        Raises:
            ValueError: if the payload is not an object with a capabilities object.
        """
        if not isinstance(data, dict) or not isinstance(data.get("capabilities"), dict):
            raise ValueError("capability cache is missing a 'capabilities' object")
        return cls(
            capabilities=CapabilitySnapshot.from_dict(data["capabilities"]),
            version=str(data.get("version", "")),
            commit_hash=_pick(data, "commitHash", "commit_hash"),
            tracked_files=list(_pick(data, "trackedFiles", "tracked_files") or []),
        )


@dataclass
class DiscoveryResult:
    """What a discovery provider returns: the snapshot plus the files it read."""
    capabilities: CapabilitySnapshot
    config_files: List[str] = field(default_factory=list)
