"""
AI agent CLI runner.

Agents are external CLIs that read a prompt on stdin and print their
answer on stdout. The first one found on PATH that succeeds wins:

    response = ask_any_agent(prompt, timeout_ms=120000, cwd=project)
    if response.success:
        print(response.agent_used, response.output)

A timed-out agent is terminated by subprocess.run and reported as
"Agent timed out"; the next agent in priority order is then tried.
"""

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from featurewarden.config import get_timeout, load_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentConfig:
    """How to invoke one agent CLI."""
    name: str
    command: List[str]
    prompt_via_stdin: bool = True


@dataclass
class AgentResponse:
    """Result of asking an agent."""
    success: bool
    output: str = ""
    error: Optional[str] = None
    agent_used: Optional[str] = None


# All agents run non-interactively with tool permissions pre-approved.
DEFAULT_AGENTS: Dict[str, AgentConfig] = {
    "claude": AgentConfig(
        name="claude",
        command=["claude", "--print", "--output-format", "text",
                 "--permission-mode", "bypassPermissions", "-"],
    ),
    "codex": AgentConfig(
        name="codex",
        command=["codex", "exec", "--skip-git-repo-check", "--full-auto", "-"],
    ),
    "gemini": AgentConfig(
        name="gemini",
        command=["gemini", "--output-format", "text", "--yolo"],
    ),
}

# ask(prompt, timeout_ms, cwd) -> AgentResponse
AskFn = Callable[[str, int, Optional[str]], AgentResponse]


def command_exists(cmd: str) -> bool:
    """Check if an executable is on PATH."""
    return shutil.which(cmd) is not None


def call_agent(
    config: AgentConfig,
    prompt: str,
    timeout_ms: Optional[int] = None,
    cwd: Optional[str] = None,
) -> AgentResponse:
    """Run one agent with the prompt.

    Args:
        config: Agent to run
        prompt: Prompt text
        timeout_ms: Kill the agent after this many milliseconds (None = no limit)
        cwd: Working directory for the agent

    Returns:
        AgentResponse; never raises for process failures.
    """
    args = list(config.command)
    stdin_text = prompt if config.prompt_via_stdin else None
    if not config.prompt_via_stdin:
        args.append(prompt)
    timeout = timeout_ms / 1000 if timeout_ms and timeout_ms > 0 else None

    try:
        process = subprocess.run(
            args,
            input=stdin_text,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        logger.debug(f"{config.name} timed out after {timeout_ms}ms")
        output = e.stdout if isinstance(e.stdout, str) else ""
        return AgentResponse(success=False, output=output or "", error="Agent timed out")
    except OSError as e:
        logger.debug(f"{config.name} could not start: {e}")
        return AgentResponse(success=False, error=str(e))

    if process.returncode == 0:
        return AgentResponse(success=True, output=process.stdout, agent_used=config.name)

    error = process.stderr.strip() or f"exit code {process.returncode}"
    return AgentResponse(success=False, output=process.stdout, error=error)


def available_agents(order: Optional[List[str]] = None) -> List[AgentConfig]:
    """Configured agents, in priority order, that are installed."""
    names = order if order is not None else load_config(".").agent_order()
    agents = []
    for name in names:
        config = DEFAULT_AGENTS.get(name)
        if config is None:
            logger.debug(f"Unknown agent {name!r}, skipping")
            continue
        if not command_exists(config.command[0]):
            logger.debug(f"{name} not installed, skipping")
            continue
        agents.append(config)
    return agents


def ask_any_agent(
    prompt: str,
    timeout_ms: Optional[int] = None,
    cwd: Optional[str] = None,
    order: Optional[List[str]] = None,
) -> AgentResponse:
    """Try each available agent in priority order until one succeeds."""
    if order is None:
        order = load_config(cwd or ".").agent_order()
    if timeout_ms is None:
        timeout_ms = get_timeout("AI_DEFAULT")

    last_error = None
    for config in available_agents(order):
        logger.debug(f"Asking {config.name} (timeout {timeout_ms}ms)")
        response = call_agent(config, prompt, timeout_ms=timeout_ms, cwd=cwd)
        if response.success:
            response.agent_used = config.name
            return response
        last_error = response.error
        logger.warning(f"Agent {config.name} failed: {response.error}")

    return AgentResponse(
        success=False,
        error=last_error or "No AI agents available or all failed",
    )


def extract_json(response: str) -> str:
    """Pull the JSON payload out of an agent answer.

    Prefers a fenced ```json block, then the outermost {...} span, else
    returns the text unchanged for json.loads to reject.
    """
    block = re.search(r"```(?:json)?\s*([\s\S]*?)```", response)
    if block:
        return block.group(1).strip()
    obj = re.search(r"\{[\s\S]*\}", response)
    if obj:
        return obj.group(0)
    return response


def check_available_agents() -> Dict[str, bool]:
    """Installed status of every known agent."""
    return {name: command_exists(cfg.command[0]) for name, cfg in DEFAULT_AGENTS.items()}
