"""
Automated check execution.

Runs the project's own test, typecheck, lint, build and e2e commands and
records each outcome as an AutomatedCheckResult. A failing or crashing
command is a failed result, never an exception.

Two modes:
- direct: one check per available capability, sequential or with
  unit-style checks in a thread pool. E2E always runs last.
- init script: ai/init.sh exists and owns the whole check sequence.
"""

import logging
import os
import re
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from featurewarden.config import DEFAULT_CHECK_TIMEOUT
from featurewarden.models.capabilities import CapabilitySnapshot
from featurewarden.models.verification import AutomatedCheckResult
from featurewarden.relevant_tests import (
    TestDiscoveryResult,
    build_e2e_command,
    describe_e2e_mode,
    determine_e2e_mode,
)

logger = logging.getLogger(__name__)

INIT_SCRIPT = Path("ai") / "init.sh"

# Check types that get CI=true so runners skip watch mode
CI_CHECK_TYPES = ("test", "e2e")

SKIPPED_E2E_OUTPUT = "Skipped: unit tests failed"

ERROR_LINE = re.compile(r"\berror\b", re.IGNORECASE)


@dataclass
class CheckDefinition:
    type: str
    command: str
    name: str
    is_e2e: bool = False


@dataclass
class CheckOptions:
    """How to run the automated checks for one verification."""
    test_mode: str = "full"  # full | quick | skip
    selective_test_command: Optional[str] = None
    test_discovery: Optional[TestDiscoveryResult] = None
    skip_e2e: bool = False
    e2e_tags: List[str] = field(default_factory=list)
    e2e_mode: Optional[str] = None  # full | smoke | tags; derived when None
    use_init_script: bool = False
    init_script_path: Optional[str] = None
    parallel: bool = False


def count_errors(check_type: str, output: str) -> Optional[int]:
    """Rough error count for typecheck and lint output."""
    if check_type not in ("typecheck", "lint"):
        return None
    return sum(1 for line in output.splitlines() if ERROR_LINE.search(line))


class CheckExecutor:
    """Runs check commands through the shell.

    Args:
        timeout_seconds: Per-command timeout
        max_workers: Thread pool size for parallel checks
    """

    def __init__(self, timeout_seconds: int = DEFAULT_CHECK_TIMEOUT, max_workers: int = 4):
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers

    def run(
        self,
        cwd: str,
        check_type: str,
        command: str,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> AutomatedCheckResult:
        """Run one check command.

        Returns:
            Result with duration in ms and combined stdout+stderr.
        """
        timeout = timeout or self.timeout_seconds
        full_env = dict(os.environ)
        full_env.update(env or {})
        started = time.monotonic()

        try:
            process = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env,
            )
            output = (process.stdout or "") + (process.stderr or "")
            success = process.returncode == 0
        except subprocess.TimeoutExpired as e:
            partial = e.stdout if isinstance(e.stdout, str) else ""
            output = f"{partial}Command timed out after {timeout} seconds"
            success = False
        except Exception as e:
            output = f"Check failed with error: {e}"
            success = False

        duration = int((time.monotonic() - started) * 1000)
        logger.debug(f"{check_type} check `{command}` {'passed' if success else 'failed'} in {duration}ms")
        return AutomatedCheckResult(
            type=check_type,
            success=success,
            duration=duration,
            error_count=None if success else count_errors(check_type, output),
            output=output,
        )

    def _run_definition(self, cwd: str, check: CheckDefinition) -> AutomatedCheckResult:
        env = {"CI": "true"} if check.type in CI_CHECK_TYPES else {}
        return self.run(cwd, check.type, check.command, env)

    # =========================================================================
    # Planning
    # =========================================================================

    def plan_checks(self, capabilities: CapabilitySnapshot, options: CheckOptions) -> List[CheckDefinition]:
        """Checks to run for the given capabilities, e2e last."""
        checks: List[CheckDefinition] = []

        if options.test_mode != "skip" and capabilities.has_tests and capabilities.test_command:
            if options.test_mode == "quick" and options.selective_test_command:
                discovery = options.test_discovery
                name = "selective tests"
                if discovery and discovery.test_files:
                    name = f"selective tests ({len(discovery.test_files)} files)"
                checks.append(CheckDefinition("test", options.selective_test_command, name))
            else:
                checks.append(CheckDefinition("test", capabilities.test_command, "tests"))

        if capabilities.has_type_check and capabilities.type_check_command:
            checks.append(CheckDefinition("typecheck", capabilities.type_check_command, "type check"))
        if capabilities.has_lint and capabilities.lint_command:
            checks.append(CheckDefinition("lint", capabilities.lint_command, "linter"))
        if capabilities.has_build and capabilities.build_command:
            checks.append(CheckDefinition("build", capabilities.build_command, "build"))

        if not options.skip_e2e:
            mode = options.e2e_mode or determine_e2e_mode(options.test_mode, bool(options.e2e_tags))
            command = build_e2e_command(capabilities.e2e_info, options.e2e_tags, mode)
            if command:
                checks.append(CheckDefinition(
                    "e2e", command, describe_e2e_mode(mode, options.e2e_tags), is_e2e=True
                ))

        return checks

    # =========================================================================
    # Execution
    # =========================================================================

    def run_sequential(self, cwd: str, checks: List[CheckDefinition]) -> List[AutomatedCheckResult]:
        return [self._run_definition(cwd, check) for check in checks]

    def run_parallel(self, cwd: str, checks: List[CheckDefinition]) -> List[AutomatedCheckResult]:
        """Unit-style checks concurrently, then e2e if unit tests passed."""
        unit_checks = [c for c in checks if not c.is_e2e]
        e2e_checks = [c for c in checks if c.is_e2e]

        results: List[AutomatedCheckResult] = []
        if unit_checks:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [pool.submit(self._run_definition, cwd, c) for c in unit_checks]
                for check, future in zip(unit_checks, futures):
                    try:
                        results.append(future.result())
                    except Exception as e:
                        logger.warning(f"{check.name} crashed: {e}")
                        results.append(AutomatedCheckResult(
                            type=check.type,
                            success=False,
                            duration=0,
                            output=f"Check failed with error: {e}",
                        ))

        unit_tests_passed = all(r.success for r in results if r.type == "test")
        for check in e2e_checks:
            if unit_tests_passed:
                results.append(self._run_definition(cwd, check))
            else:
                logger.debug(f"Skipping {check.name}: unit tests failed")
                results.append(AutomatedCheckResult(
                    type="e2e", success=False, duration=0, output=SKIPPED_E2E_OUTPUT
                ))
        return results

    def build_init_script_command(self, cwd: str, options: CheckOptions) -> str:
        script = options.init_script_path or str(Path(cwd) / INIT_SCRIPT)
        command = f'"{script}" check'
        if options.test_mode == "quick":
            command += " --quick"
        elif options.test_mode == "full":
            command += " --full"
        if options.skip_e2e:
            command += " --skip-e2e"
        discovery = options.test_discovery
        if options.test_mode == "quick" and discovery and discovery.pattern:
            command += f' "{discovery.pattern}"'
        return command

    def run_init_script(self, cwd: str, options: CheckOptions) -> List[AutomatedCheckResult]:
        """Delegate every check to ai/init.sh."""
        env = {"E2E_TAGS": ",".join(options.e2e_tags)} if options.e2e_tags else {}
        command = self.build_init_script_command(cwd, options)
        return [self.run(cwd, "init-script", command, env)]

    def run_automated_checks(
        self,
        cwd: str,
        capabilities: CapabilitySnapshot,
        options: Optional[CheckOptions] = None,
    ) -> List[AutomatedCheckResult]:
        """Run all checks that apply, in the mode the options ask for."""
        options = options or CheckOptions()
        if options.use_init_script:
            return self.run_init_script(cwd, options)

        checks = self.plan_checks(capabilities, options)
        if not checks:
            return []
        if options.parallel:
            return self.run_parallel(cwd, checks)
        return self.run_sequential(cwd, checks)


def has_init_script(cwd: str) -> bool:
    return (Path(cwd) / INIT_SCRIPT).is_file()
