"""
AI judgment of a feature's acceptance criteria.

The agent sees the feature, its criteria, the diff, the automated check
summary and the changed source files, and answers with JSON. The answer
is parsed into a StructuredJudgment, or a JudgmentParseFailure that is
turned into an all-unsatisfied needs_review judgment.

Transient agent failures (timeouts, network errors, rate limits, 5xx)
are retried with exponential backoff; anything else fails immediately.
"""

import json
import logging
import random
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from featurewarden.agents import AskFn, ask_any_agent, extract_json
from featurewarden.config import get_timeout
from featurewarden.models.feature import Feature
from featurewarden.models.verification import VERDICTS, AutomatedCheckResult, CriterionResult

logger = logging.getLogger(__name__)

SOURCE_FILE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".py", ".go", ".rs")

MAX_RELATED_FILE_CHARS = 5000

PARSE_FAILURE_REASON = "Failed to parse AI response"
NOT_ANALYZED_REASON = "Criterion not analyzed by AI"
NO_REASONING = "No reasoning provided"

TRANSIENT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"timeout",
        r"timed?\s*out",
        r"ETIMEDOUT",
        r"ECONNRESET",
        r"ECONNREFUSED",
        r"ENETUNREACH",
        r"network",
        r"socket hang up",
        r"connection.*reset",
        r"connection.*refused",
        r"connection.*closed",
        r"temporarily unavailable",
        r"rate limit",
        r"too many requests",
        r"429",
        r"502",
        r"503",
        r"504",
        r"overloaded",
        r"capacity",
    )
]


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    jitter: float = 0.1


def is_transient_error(error: Optional[str]) -> bool:
    """Whether an agent error is worth retrying."""
    if not error:
        return False
    return any(pattern.search(error) for pattern in TRANSIENT_PATTERNS)


def calculate_backoff(
    attempt: int,
    config: RetryConfig = RetryConfig(),
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay in ms before retry `attempt` (1-based): 1s, 2s, 4s ... capped."""
    delay = config.base_delay_ms * (2 ** (attempt - 1))
    jitter = delay * config.jitter * (rand() * 2 - 1)
    return min(delay + jitter, config.max_delay_ms)


# =============================================================================
# Prompt
# =============================================================================

def _is_within_root(root: Path, path: str) -> bool:
    try:
        (root / path).resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def read_related_files(cwd: str, changed_files: List[str]) -> Dict[str, str]:
    """Contents of changed source files that live inside the project.

    Unreadable files are skipped.
    """
    root = Path(cwd)
    contents: Dict[str, str] = {}
    for path in changed_files:
        if not path.endswith(SOURCE_FILE_EXTENSIONS):
            continue
        if not _is_within_root(root, path):
            logger.debug(f"Skipping {path}: outside project root")
            continue
        try:
            contents[path] = (root / path).read_text(errors="replace")
        except OSError:
            continue
    return contents


def _format_checks(results: List[AutomatedCheckResult]) -> str:
    if not results:
        return "## Automated Check Results\n\nNo automated checks were run."
    lines = []
    for r in results:
        line = f"- **{r.type.upper()}**: {'PASSED' if r.success else 'FAILED'}"
        if r.duration:
            line += f" ({r.duration}ms)"
        if r.error_count:
            line += f" - {r.error_count} errors"
        lines.append(line)
    return "## Automated Check Results\n\n" + "\n".join(lines)


def _format_related(files: Dict[str, str]) -> str:
    if not files:
        return ""
    sections = []
    for path, content in files.items():
        if len(content) > MAX_RELATED_FILE_CHARS:
            content = content[:MAX_RELATED_FILE_CHARS] + "\n... (truncated)"
        sections.append(f"### {path}\n\n```\n{content}\n```")
    return "## Related Files (for context)\n\n" + "\n\n".join(sections)


VERIFICATION_PROMPT = '''You are a software verification expert. Decide whether the code changes satisfy the acceptance criteria of this feature.

## Feature Information

- **ID**: {id}
- **Description**: {description}
- **Module**: {module}
- **Priority**: {priority}

## Acceptance Criteria

{criteria}

## Changed Files

{files}

## Git Diff

```diff
{diff}
```

{checks}

{related}

## Your Task

1. For EACH criterion decide whether it is satisfied, cite evidence
   (file:line from the diff), give a confidence from 0.0 to 1.0 and
   explain your reasoning.
2. Note code quality problems: bugs, security, missing error handling,
   unhandled edge cases.
3. Give an overall verdict:
   - "pass": every criterion satisfied with high confidence
   - "fail": any criterion clearly not satisfied
   - "needs_review": evidence insufficient or confidence low
4. Suggest concrete improvements.

## Output Format

Respond with ONLY valid JSON:

```json
{{
  "criteriaResults": [
    {{
      "index": 0,
      "satisfied": true,
      "reasoning": "Implemented in auth/login.py:45",
      "evidence": ["auth/login.py:45"],
      "confidence": 0.95
    }}
  ],
  "verdict": "pass",
  "overallReasoning": "...",
  "suggestions": ["..."],
  "codeQualityNotes": ["..."]
}}
```'''


def build_verification_prompt(
    feature: Feature,
    diff: str,
    changed_files: List[str],
    checks: List[AutomatedCheckResult],
    related_files: Optional[Dict[str, str]] = None,
) -> str:
    criteria = "\n".join(f"{i + 1}. {c}" for i, c in enumerate(feature.acceptance))
    return VERIFICATION_PROMPT.format(
        id=feature.id,
        description=feature.description,
        module=feature.module,
        priority=feature.priority,
        criteria=criteria,
        files="\n".join(f"- {f}" for f in changed_files),
        diff=diff,
        checks=_format_checks(checks),
        related=_format_related(related_files or {}),
    )


# =============================================================================
# Response parsing
# =============================================================================

@dataclass
class StructuredJudgment:
    """A parsed agent verdict, one CriterionResult per acceptance criterion."""
    criteria_results: List[CriterionResult]
    verdict: str
    overall_reasoning: str = ""
    suggestions: List[str] = field(default_factory=list)
    code_quality_notes: List[str] = field(default_factory=list)


@dataclass
class JudgmentParseFailure:
    """The agent answered, but not with usable JSON."""
    error: str

    def to_judgment(self, acceptance: List[str]) -> StructuredJudgment:
        return failed_judgment(acceptance, PARSE_FAILURE_REASON, PARSE_FAILURE_REASON)


def failed_judgment(acceptance: List[str], reasoning: str, overall: str) -> StructuredJudgment:
    """needs_review with every criterion unsatisfied at confidence 0."""
    return StructuredJudgment(
        criteria_results=[
            CriterionResult(criterion=c, index=i, satisfied=False, confidence=0.0, reasoning=reasoning)
            for i, c in enumerate(acceptance)
        ],
        verdict="needs_review",
        overall_reasoning=overall,
    )


def clamp_confidence(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return max(0.0, min(1.0, float(value)))


def _text(value, default: str = NO_REASONING) -> str:
    """Agent free text as a string; structured values are serialized."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [_text(v, "") for v in value]


def parse_verification_response(
    response: str,
    acceptance: List[str],
) -> Union[StructuredJudgment, JudgmentParseFailure]:
    """Parse an agent answer. Never raises."""
    try:
        data = json.loads(extract_json(response))
    except json.JSONDecodeError as e:
        return JudgmentParseFailure(f"Invalid JSON: {e}")
    if not isinstance(data, dict):
        return JudgmentParseFailure("Response is not a JSON object")

    items = data.get("criteriaResults")
    by_index = {}
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict) and isinstance(item.get("index"), int):
            by_index.setdefault(item["index"], item)

    results = []
    for index, criterion in enumerate(acceptance):
        item = by_index.get(index)
        if item is None:
            results.append(CriterionResult(
                criterion=criterion, index=index, satisfied=False,
                confidence=0.0, reasoning=NOT_ANALYZED_REASON,
            ))
            continue
        results.append(CriterionResult(
            criterion=criterion,
            index=index,
            satisfied=bool(item.get("satisfied")),
            confidence=clamp_confidence(item.get("confidence")),
            reasoning=_text(item.get("reasoning")),
            evidence=_string_list(item.get("evidence")),
        ))

    verdict = data.get("verdict")
    return StructuredJudgment(
        criteria_results=results,
        verdict=verdict if verdict in VERDICTS else "needs_review",
        overall_reasoning=_text(data.get("overallReasoning")),
        suggestions=_string_list(data.get("suggestions")),
        code_quality_notes=_string_list(data.get("codeQualityNotes")),
    )


# =============================================================================
# Agent call with retry
# =============================================================================

@dataclass
class AIAnalysis:
    judgment: StructuredJudgment
    agent_used: str


class AIJudge:
    """Asks an agent to judge a feature, retrying transient failures.

    Args:
        ask: Agent call, ask(prompt, timeout_ms, cwd) -> AgentResponse
        retry: Attempt and backoff settings
        sleep: Called with seconds between attempts
        rand: Jitter source in [0, 1)
    """

    def __init__(
        self,
        ask: Optional[AskFn] = None,
        retry: RetryConfig = RetryConfig(),
        sleep: Callable[[float], None] = time.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self.ask = ask or ask_any_agent
        self.retry = retry
        self.sleep = sleep
        self.rand = rand

    def analyze(
        self,
        cwd: str,
        feature: Feature,
        diff: str,
        changed_files: List[str],
        checks: List[AutomatedCheckResult],
        timeout_ms: Optional[int] = None,
    ) -> AIAnalysis:
        prompt = build_verification_prompt(
            feature, diff, changed_files, checks, read_related_files(cwd, changed_files)
        )
        timeout_ms = timeout_ms or get_timeout("AI_VERIFICATION")

        last_error = None
        last_agent = None
        for attempt in range(1, self.retry.max_attempts + 1):
            response = self.ask(prompt, timeout_ms, cwd)
            last_agent = response.agent_used or last_agent
            if response.success:
                parsed = parse_verification_response(response.output, feature.acceptance)
                if isinstance(parsed, JudgmentParseFailure):
                    logger.warning(f"Could not parse verdict for {feature.id}: {parsed.error}")
                    parsed = parsed.to_judgment(feature.acceptance)
                return AIAnalysis(judgment=parsed, agent_used=response.agent_used or "unknown")

            last_error = response.error
            if not is_transient_error(last_error):
                logger.warning(f"AI analysis failed (permanent error): {last_error}")
                break
            if attempt < self.retry.max_attempts:
                delay_ms = calculate_backoff(attempt, self.retry, self.rand)
                logger.warning(
                    f"AI analysis failed (attempt {attempt}/{self.retry.max_attempts}): "
                    f"{last_error}; retrying in {delay_ms / 1000:.1f}s"
                )
                self.sleep(delay_ms / 1000)
            else:
                logger.warning(f"AI analysis failed after {attempt} attempts: {last_error}")

        judgment = failed_judgment(
            feature.acceptance,
            f"AI analysis failed: {last_error or 'Unknown error'}",
            "AI analysis failed after retries",
        )
        return AIAnalysis(judgment=judgment, agent_used=last_agent or "none")
