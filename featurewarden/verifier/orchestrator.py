"""
Verification orchestrator.

One verification run walks a fixed sequence of states:

    selecting-mode -> gathering-context -> [executing-checks] -> judging
        -> persisting -> done

Mode is "tdd" when the project runs strict TDD or the feature requires
tests; the verdict then comes from the tests alone. Otherwise (and when a
TDD feature has no test files to run) an agent judges the criteria.

Usage:
    orchestrator = VerificationOrchestrator(project_path)
    result = orchestrator.verify(feature, metadata, VerifyOptions(test_mode="quick"))
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from featurewarden.agents import ask_any_agent
from featurewarden.capabilities import AgentDiscoveryProvider, CapabilityResolver
from featurewarden.config import WardenConfig, load_config
from featurewarden.errors import InvalidTransitionError
from featurewarden.git_utils import GitFacts
from featurewarden.models.capabilities import CapabilitySnapshot
from featurewarden.models.feature import Feature, FeatureListMetadata
from featurewarden.models.verification import AutomatedCheckResult, CriterionResult, VerificationResult
from featurewarden.relevant_tests import (
    TestDiscoveryResult,
    build_e2e_command,
    build_selective_test_command,
    find_test_files_for_changes,
    get_e2e_tags_for_feature,
    get_selective_test_command,
    resolve_pattern_files,
)
from featurewarden.store import VerificationStore
from featurewarden.verifier.checks import CheckExecutor, CheckOptions, has_init_script
from featurewarden.verifier.judgment import AIJudge

logger = logging.getLogger(__name__)

TDD_PASS_REASON = "All tests passed - criterion verified by TDD workflow"
TDD_FAIL_REASON = "Tests failed - criterion not verified"


class VerificationState(Enum):
    SELECTING_MODE = "selecting-mode"
    GATHERING_CONTEXT = "gathering-context"
    EXECUTING_CHECKS = "executing-checks"
    JUDGING = "judging"
    PERSISTING = "persisting"
    DONE = "done"


ALLOWED_TRANSITIONS = {
    None: {VerificationState.SELECTING_MODE},
    VerificationState.SELECTING_MODE: {VerificationState.GATHERING_CONTEXT},
    VerificationState.GATHERING_CONTEXT: {VerificationState.EXECUTING_CHECKS, VerificationState.JUDGING},
    VerificationState.EXECUTING_CHECKS: {VerificationState.JUDGING},
    VerificationState.JUDGING: {VerificationState.PERSISTING},
    VerificationState.PERSISTING: {VerificationState.DONE},
    VerificationState.DONE: set(),
}

# observer(state, context)
Observer = Callable[[VerificationState, Dict[str, Any]], None]


class VerificationRun:
    """State machine for one verification of one feature."""

    def __init__(self, feature_id: str, observer: Optional[Observer] = None):
        self.feature_id = feature_id
        self.state: Optional[VerificationState] = None
        self.observer = observer

    def transition(self, new_state: VerificationState, **context: Any) -> None:
        """Move to new_state.

        Raises:
            InvalidTransitionError: if new_state does not follow the current state.
        """
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            current = self.state.value if self.state else "start"
            raise InvalidTransitionError(current, new_state.value)
        logger.debug(f"{self.feature_id}: {self.state.value if self.state else 'start'} -> {new_state.value}")
        self.state = new_state
        if self.observer:
            self.observer(new_state, dict(context, feature_id=self.feature_id))


@dataclass
class VerifyOptions:
    skip_checks: bool = False
    test_mode: str = "full"  # full | quick | skip
    test_pattern: Optional[str] = None
    skip_e2e: bool = False
    e2e_tags: Optional[List[str]] = None  # defaults to the feature's tags
    e2e_mode: Optional[str] = None  # full | smoke | tags
    parallel: Optional[bool] = None  # defaults to config.parallel_checks
    timeout_ms: Optional[int] = None


@dataclass
class GatheredContext:
    diff: str
    changed_files: List[str]
    commit_hash: str
    capabilities: Optional[CapabilitySnapshot] = None
    tdd_test_files: List[str] = field(default_factory=list)


def select_mode(feature: Feature, metadata: Optional[FeatureListMetadata] = None) -> str:
    """"tdd" for strict projects or features that require tests, else "ai"."""
    if metadata is not None and metadata.tdd_mode == "strict":
        return "tdd"
    reqs = feature.test_requirements
    if reqs is not None and reqs.any_required:
        return "tdd"
    return "ai"


class VerificationOrchestrator:
    """Runs verifications for one project.

    Every collaborator can be injected; defaults are the real ones.
    """

    def __init__(
        self,
        project_path: str,
        store: Optional[VerificationStore] = None,
        resolver: Optional[CapabilityResolver] = None,
        git: Optional[GitFacts] = None,
        executor: Optional[CheckExecutor] = None,
        judge: Optional[AIJudge] = None,
        config: Optional[WardenConfig] = None,
        observer: Optional[Observer] = None,
    ):
        self.project_path = project_path
        self.config = config or load_config(project_path)
        self.git = git or GitFacts()
        self.store = store or VerificationStore(project_path)
        ask = partial(ask_any_agent, order=self.config.agent_order())
        self.resolver = resolver or CapabilityResolver(
            git=self.git,
            provider=AgentDiscoveryProvider(
                ask=ask, git=self.git, timeout_ms=self.config.timeout("AI_CAPABILITY_DISCOVERY")
            ),
        )
        self.executor = executor or CheckExecutor(timeout_seconds=self.config.check_timeout_seconds)
        self.judge = judge or AIJudge(ask=ask)
        self.observer = observer

    # =========================================================================
    # Phases
    # =========================================================================

    def gather_context(self, feature: Feature, mode: str, skip_checks: bool) -> GatheredContext:
        """Diff and capabilities, fetched concurrently."""
        with ThreadPoolExecutor(max_workers=2) as pool:
            diff_future = pool.submit(self.git.diff_for_feature, self.project_path)
            caps_future = None if skip_checks else pool.submit(self.resolver.detect, self.project_path)
            diff, changed_files, commit_hash = diff_future.result()
            capabilities = caps_future.result() if caps_future else None

        context = GatheredContext(
            diff=diff,
            changed_files=changed_files,
            commit_hash=commit_hash,
            capabilities=capabilities,
        )
        if mode == "tdd":
            context.tdd_test_files = self.resolve_tdd_test_files(feature, changed_files)
        return context

    def resolve_tdd_test_files(self, feature: Feature, changed_files: List[str]) -> List[str]:
        """Files matching the unit test pattern plus tests found for the changes."""
        files: List[str] = []
        reqs = feature.test_requirements
        if reqs is not None and reqs.unit is not None:
            files.extend(resolve_pattern_files(self.project_path, reqs.unit.pattern))
        for path in find_test_files_for_changes(self.project_path, changed_files):
            if path not in files:
                files.append(path)
        return files

    def run_tdd_checks(
        self,
        feature: Feature,
        capabilities: CapabilitySnapshot,
        test_files: List[str],
        options: VerifyOptions,
        e2e_tags: List[str],
    ) -> List[AutomatedCheckResult]:
        """Selective tests for the resolved files, then required e2e tests."""
        results: List[AutomatedCheckResult] = []
        discovery = TestDiscoveryResult(pattern=" ".join(test_files), source="explicit", test_files=test_files)
        command = build_selective_test_command(capabilities, discovery)
        if command:
            results.append(self.executor.run(self.project_path, "test", command, {"CI": "true"}))
        else:
            logger.warning(f"No test command available to verify {feature.id}")

        reqs = feature.test_requirements
        e2e_required = bool(reqs and reqs.e2e and reqs.e2e.required)
        if not options.skip_e2e and e2e_required and capabilities.e2e_info.available:
            mode = "tags" if e2e_tags else "full"
            e2e_command = build_e2e_command(capabilities.e2e_info, e2e_tags, mode)
            if e2e_command:
                results.append(self.executor.run(self.project_path, "e2e", e2e_command, {"CI": "true"}))
        return results

    def run_checks(
        self,
        feature: Feature,
        context: GatheredContext,
        options: VerifyOptions,
        e2e_tags: List[str],
    ) -> List[AutomatedCheckResult]:
        """Regular checks for ai mode, via init script when present."""
        capabilities = context.capabilities
        selective_command = None
        discovery = None
        if options.test_mode == "quick":
            target = replace(feature, test_pattern=options.test_pattern) if options.test_pattern else feature
            selective_command, _, discovery = get_selective_test_command(
                self.project_path, target, capabilities, context.changed_files, git=self.git
            )

        check_options = CheckOptions(
            test_mode=options.test_mode,
            selective_test_command=selective_command,
            test_discovery=discovery,
            skip_e2e=options.skip_e2e,
            e2e_tags=e2e_tags,
            e2e_mode=options.e2e_mode,
            use_init_script=has_init_script(self.project_path),
            parallel=self.config.parallel_checks if options.parallel is None else options.parallel,
        )
        return self.executor.run_automated_checks(self.project_path, capabilities, check_options)

    def judge_tdd(
        self,
        feature: Feature,
        context: GatheredContext,
        checks: List[AutomatedCheckResult],
    ) -> VerificationResult:
        passed = all(c.success for c in checks)
        files = context.tdd_test_files
        failed = sum(1 for c in checks if not c.success)
        return VerificationResult(
            feature_id=feature.id,
            timestamp=datetime.now().isoformat(),
            commit_hash=context.commit_hash,
            changed_files=list(context.changed_files),
            diff_summary=f"TDD verification with {len(files)} test file(s)",
            automated_checks=checks,
            criteria_results=[
                CriterionResult(
                    criterion=criterion,
                    index=index,
                    satisfied=passed,
                    confidence=1.0 if passed else 0.0,
                    reasoning=TDD_PASS_REASON if passed else TDD_FAIL_REASON,
                    evidence=list(files),
                )
                for index, criterion in enumerate(feature.acceptance)
            ],
            verdict="pass" if passed else "fail",
            verified_by="tdd",
            overall_reasoning=(
                f"All {len(checks)} test run(s) passed" if passed else f"{failed} test run(s) failed"
            ),
            suggestions=[] if passed else ["Review failing tests and fix implementation"],
            code_quality_notes=[],
            related_files_analyzed=list(files),
        )

    def judge_ai(
        self,
        feature: Feature,
        context: GatheredContext,
        checks: List[AutomatedCheckResult],
        options: VerifyOptions,
    ) -> VerificationResult:
        analysis = self.judge.analyze(
            self.project_path,
            feature,
            context.diff,
            context.changed_files,
            checks,
            timeout_ms=options.timeout_ms or self.config.timeout("AI_VERIFICATION"),
        )
        judgment = analysis.judgment
        return VerificationResult(
            feature_id=feature.id,
            timestamp=datetime.now().isoformat(),
            commit_hash=context.commit_hash,
            changed_files=list(context.changed_files),
            diff_summary=f"{len(context.changed_files)} files changed",
            automated_checks=checks,
            criteria_results=judgment.criteria_results,
            verdict=judgment.verdict,
            verified_by=analysis.agent_used,
            overall_reasoning=judgment.overall_reasoning,
            suggestions=judgment.suggestions,
            code_quality_notes=judgment.code_quality_notes,
            related_files_analyzed=list(context.changed_files),
        )

    # =========================================================================
    # Entry point
    # =========================================================================

    def verify(
        self,
        feature: Feature,
        metadata: Optional[FeatureListMetadata] = None,
        options: Optional[VerifyOptions] = None,
    ) -> VerificationResult:
        """Verify a feature and persist the result.

        Check failures and AI failures end up in the result; only store
        write failures and state machine misuse raise.
        """
        options = options or VerifyOptions()
        run = VerificationRun(feature.id, self.observer)
        e2e_tags = options.e2e_tags if options.e2e_tags is not None else get_e2e_tags_for_feature(feature)

        selected = select_mode(feature, metadata)
        mode = "ai" if options.skip_checks else selected
        run.transition(VerificationState.SELECTING_MODE, selected_mode=selected, mode=mode)

        run.transition(VerificationState.GATHERING_CONTEXT, mode=mode)
        context = self.gather_context(feature, mode, options.skip_checks)

        effective = "tdd" if mode == "tdd" and context.tdd_test_files else "ai"
        if mode == "tdd" and effective == "ai":
            logger.warning(f"No test files found for {feature.id}, falling back to AI verification")

        checks: List[AutomatedCheckResult] = []
        if not options.skip_checks and context.capabilities is not None:
            run.transition(VerificationState.EXECUTING_CHECKS, mode=effective)
            if effective == "tdd":
                checks = self.run_tdd_checks(
                    feature, context.capabilities, context.tdd_test_files, options, e2e_tags
                )
            else:
                checks = self.run_checks(feature, context, options, e2e_tags)

        run.transition(VerificationState.JUDGING, selected_mode=selected, effective_mode=effective)
        if effective == "tdd":
            result = self.judge_tdd(feature, context, checks)
        else:
            result = self.judge_ai(feature, context, checks, options)

        run.transition(VerificationState.PERSISTING, verdict=result.verdict)
        run_number = self.store.save(result)

        run.transition(VerificationState.DONE, run_number=run_number, verdict=result.verdict)
        return result


def verify_feature(
    project_path: str,
    feature: Feature,
    metadata: Optional[FeatureListMetadata] = None,
    options: Optional[VerifyOptions] = None,
) -> VerificationResult:
    """Verify with default collaborators."""
    return VerificationOrchestrator(project_path).verify(feature, metadata, options)
