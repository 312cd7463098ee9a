"""
Agent-driven capability discovery.

An agent explores the project and reports, as JSON, how to run its
tests, e2e tests, type checker, linter and build. The answer becomes a
CapabilitySnapshot plus the list of config files that were read; those
files are tracked so the disk cache knows when to rediscover.

Discovery never raises. Any failure (no agent, timeout, unparsable
answer) yields a snapshot with everything unavailable.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from featurewarden.agents import AskFn, ask_any_agent, extract_json
from featurewarden.config import get_timeout
from featurewarden.git_utils import GitFacts
from featurewarden.models.capabilities import (
    CapabilityCommand,
    CapabilitySnapshot,
    CustomRule,
    DiscoveryResult,
    E2ECapabilityInfo,
    TestCapabilityInfo,
)

logger = logging.getLogger(__name__)

# Assumed confidence for an available capability reported without one
DEFAULT_AVAILABLE_CONFIDENCE = 0.8

# Overall confidence when the agent gave no positive confidences
DEFAULT_OVERALL_CONFIDENCE = 0.5


DISCOVERY_PROMPT = '''You are analyzing a software project to find out how it verifies itself.

## Working Directory

{cwd}

## Task

Explore the project and determine:
1. The package manager (npm, pnpm, yarn, bun, pip, poetry, cargo, go, ...)
2. The config files that define how it is built and tested
3. The command that runs all unit tests, and how to run selected tests
4. The end-to-end test setup (Playwright, Cypress, ...) if any
5. The type check, lint and build commands, if any

## How to Explore

- List the root directory and read the config files you find
- Check lock files to identify the package manager
- Prefer the project's own scripts over generic commands
- Only report commands you have confirmed in a config file

## Requirements

- Test commands must run once and exit (no watch or interactive mode)
- Set "available": false when a command cannot be determined
- Use {{files}} for file lists and {{pattern}} for name filters in templates
- Use {{tags}} for the e2e tag expression in grepTemplate

## Output Format

Return ONLY a JSON object:

{{
  "languages": ["<languages and frameworks>"],
  "configFiles": ["<files that define build/test config, e.g. package.json, pyproject.toml>"],
  "packageManager": "<package manager>",
  "test": {{
    "available": true,
    "command": "<command that runs all unit tests>",
    "framework": "<vitest|jest|mocha|pytest|go|cargo|...>",
    "confidence": 0.95,
    "selectiveFileTemplate": "<command running specific files, with {{files}}>",
    "selectiveNameTemplate": "<command filtering by test name, with {{pattern}}>"
  }},
  "e2e": {{
    "available": false,
    "command": "<command that runs all e2e tests>",
    "framework": "<playwright|cypress|...>",
    "confidence": 0.9,
    "configFile": "<e.g. playwright.config.ts>",
    "grepTemplate": "<command filtering by tags, with {{tags}}>",
    "fileTemplate": "<command running specific files, with {{files}}>"
  }},
  "typecheck": {{"available": true, "command": "<command>", "confidence": 0.9}},
  "lint": {{"available": true, "command": "<command>", "confidence": 0.85}},
  "build": {{"available": true, "command": "<command>", "confidence": 0.9}},
  "customRules": [
    {{"id": "<rule-id>", "description": "<what it checks>", "command": "<command>",
      "type": "test|typecheck|lint|build|custom"}}
  ]
}}

Confidence: 0.9-1.0 verified in a config file, 0.7-0.9 strong indication,
below 0.7 set "available": false. customRules is optional.

Return ONLY the JSON object.'''


def build_discovery_prompt(cwd: str) -> str:
    return DISCOVERY_PROMPT.format(cwd=cwd)


def parse_capability_response(response: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Parse an agent answer into the raw capability dict.

    Returns:
        Tuple of (data, error); exactly one is None.
    """
    try:
        data = json.loads(extract_json(response))
    except json.JSONDecodeError as e:
        return None, f"Failed to parse JSON: {e}"

    if not isinstance(data, dict):
        return None, "Response is not a JSON object"
    if not isinstance(data.get("languages"), list):
        return None, "Missing or invalid 'languages' field"
    if not isinstance(data.get("configFiles"), list):
        data["configFiles"] = []
    return data, None


def _with_default_confidence(info: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(info, dict):
        return {"available": False, "confidence": 0.0}
    info = dict(info)
    if info.get("confidence") is None:
        info["confidence"] = DEFAULT_AVAILABLE_CONFIDENCE if info.get("available") else 0.0
    return info


def _overall_confidence(data: Dict[str, Any]) -> float:
    values = []
    for key in ("test", "e2e", "typecheck", "lint", "build"):
        info = data.get(key)
        if isinstance(info, dict) and isinstance(info.get("confidence"), (int, float)):
            if info["confidence"] > 0:
                values.append(float(info["confidence"]))
    if not values:
        return DEFAULT_OVERALL_CONFIDENCE
    return sum(values) / len(values)


def snapshot_from_response(data: Dict[str, Any], has_git: bool) -> CapabilitySnapshot:
    """Turn a parsed discovery answer into a snapshot."""
    test_raw = _with_default_confidence(data.get("test"))
    test_raw["packageManager"] = data.get("packageManager")
    test = TestCapabilityInfo.from_dict(test_raw)
    e2e = E2ECapabilityInfo.from_dict(_with_default_confidence(data.get("e2e")))
    typecheck = CapabilityCommand.from_dict(_with_default_confidence(data.get("typecheck")))
    lint = CapabilityCommand.from_dict(_with_default_confidence(data.get("lint")))
    build = CapabilityCommand.from_dict(_with_default_confidence(data.get("build")))

    rules: List[CustomRule] = [
        CustomRule.from_dict(r) for r in data.get("customRules") or [] if isinstance(r, dict)
    ]

    return CapabilitySnapshot(
        has_tests=test.available,
        test_command=test.command,
        test_framework=test.framework,
        has_type_check=typecheck.available,
        type_check_command=typecheck.command,
        has_lint=lint.available,
        lint_command=lint.command,
        has_build=build.available,
        build_command=build.command,
        has_git=has_git,
        source="ai-discovered",
        confidence=_overall_confidence(data),
        languages=[str(lang) for lang in data["languages"]],
        detected_at=datetime.now().isoformat(),
        test_info=test,
        e2e_info=e2e,
        type_check_info=typecheck,
        lint_info=lint,
        build_info=build,
        custom_rules=rules,
    )


def minimal_discovery_result() -> DiscoveryResult:
    """Everything unavailable, nothing tracked."""
    return DiscoveryResult(
        capabilities=CapabilitySnapshot(source="ai-discovered", confidence=0.0),
        config_files=[],
    )


class AgentDiscoveryProvider:
    """Discovers capabilities by asking an agent to explore the project."""

    def __init__(
        self,
        ask: Optional[AskFn] = None,
        git: Optional[GitFacts] = None,
        timeout_ms: Optional[int] = None,
    ):
        self.ask = ask or ask_any_agent
        self.git = git or GitFacts()
        self.timeout_ms = timeout_ms

    def discover(self, cwd: str) -> DiscoveryResult:
        timeout_ms = self.timeout_ms or get_timeout("AI_CAPABILITY_DISCOVERY")
        try:
            response = self.ask(build_discovery_prompt(cwd), timeout_ms, cwd)
        except Exception as e:
            logger.warning(f"Capability discovery agent crashed: {e}")
            return minimal_discovery_result()

        if not response.success:
            logger.warning(f"AI discovery failed: {response.error}")
            return minimal_discovery_result()

        data, error = parse_capability_response(response.output)
        if data is None:
            logger.warning(f"Failed to parse discovery response: {error}")
            return minimal_discovery_result()

        snapshot = snapshot_from_response(data, has_git=self.git.is_available(cwd))
        config_files = [str(f) for f in data["configFiles"]]
        logger.debug(f"Discovered capabilities for {snapshot.languages}, tracking {config_files}")
        return DiscoveryResult(capabilities=snapshot, config_files=config_files)
