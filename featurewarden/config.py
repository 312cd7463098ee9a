"""
featurewarden project configuration.

Per-project settings stored in .featurewarden/config.json:
- agents: agent CLIs to try, in priority order
- parallel_checks: run unit-style checks concurrently
- check_timeout_seconds: per-check subprocess timeout
- timeouts: AI call timeouts in milliseconds

Environment variables override the AI timeouts and the agent order:
FEATUREWARDEN_TIMEOUT_VERIFY, FEATUREWARDEN_TIMEOUT_CAPABILITY,
FEATUREWARDEN_TIMEOUT_DEFAULT, FEATUREWARDEN_AGENTS.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


CONFIG_DIR = ".featurewarden"

DEFAULT_AGENTS = ["claude", "codex", "gemini"]

# AI call timeouts, milliseconds
DEFAULT_TIMEOUTS: Dict[str, int] = {
    "AI_VERIFICATION": 300000,
    "AI_CAPABILITY_DISCOVERY": 120000,
    "AI_DEFAULT": 300000,
}

TIMEOUT_ENV_VARS: Dict[str, str] = {
    "AI_VERIFICATION": "FEATUREWARDEN_TIMEOUT_VERIFY",
    "AI_CAPABILITY_DISCOVERY": "FEATUREWARDEN_TIMEOUT_CAPABILITY",
    "AI_DEFAULT": "FEATUREWARDEN_TIMEOUT_DEFAULT",
}

AGENTS_ENV_VAR = "FEATUREWARDEN_AGENTS"

# Per-check subprocess timeout, seconds
DEFAULT_CHECK_TIMEOUT = 300


@dataclass
class WardenConfig:
    """Project configuration for featurewarden."""
    agents: List[str] = field(default_factory=lambda: list(DEFAULT_AGENTS))
    parallel_checks: bool = False
    check_timeout_seconds: int = DEFAULT_CHECK_TIMEOUT
    timeouts: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TIMEOUTS))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agents": list(self.agents),
            "parallel_checks": self.parallel_checks,
            "check_timeout_seconds": self.check_timeout_seconds,
            "timeouts": dict(self.timeouts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WardenConfig":
        timeouts = dict(DEFAULT_TIMEOUTS)
        for key, value in (data.get("timeouts") or {}).items():
            if key in timeouts and isinstance(value, int) and value > 0:
                timeouts[key] = value
        return cls(
            agents=list(data.get("agents") or DEFAULT_AGENTS),
            parallel_checks=bool(data.get("parallel_checks", False)),
            check_timeout_seconds=int(data.get("check_timeout_seconds", DEFAULT_CHECK_TIMEOUT)),
            timeouts=timeouts,
        )

    def timeout(self, name: str) -> int:
        """Resolve an AI timeout in ms, honouring the environment override."""
        env_name = TIMEOUT_ENV_VARS.get(name)
        if env_name:
            override = parse_timeout(os.environ.get(env_name))
            if override is not None:
                return override
        return self.timeouts.get(name, DEFAULT_TIMEOUTS["AI_DEFAULT"])

    def agent_order(self) -> List[str]:
        """Agent priority, honouring FEATUREWARDEN_AGENTS."""
        env_value = os.environ.get(AGENTS_ENV_VAR, "")
        names = [n.strip() for n in env_value.split(",") if n.strip()]
        return names or list(self.agents)


def parse_timeout(value: Optional[str]) -> Optional[int]:
    """Parse a positive integer timeout; anything else is ignored."""
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError:
        logger.debug(f"Ignoring invalid timeout value: {value!r}")
        return None
    return parsed if parsed > 0 else None


def get_timeout(name: str, config: Optional[WardenConfig] = None) -> int:
    """AI timeout in ms for AI_VERIFICATION, AI_CAPABILITY_DISCOVERY or AI_DEFAULT."""
    return (config or WardenConfig()).timeout(name)


def get_config_path(project_path: str) -> Path:
    """Get path to project config file."""
    return Path(project_path) / CONFIG_DIR / "config.json"


def load_config(project_path: str) -> WardenConfig:
    """Load project configuration. Returns defaults if not found."""
    config_file = get_config_path(project_path)

    if not config_file.exists():
        return WardenConfig()

    try:
        with open(config_file) as f:
            data = json.load(f)
        return WardenConfig.from_dict(data)
    except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring unreadable config {config_file}: {e}")
        return WardenConfig()


def save_config(project_path: str, config: WardenConfig) -> None:
    """Save project configuration."""
    config_file = get_config_path(project_path)

    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
