"""
Markdown report for one verification run (<featureId>/NNN.md).

The report carries the free text the metadata file drops: check output,
criterion reasoning and evidence.
"""

from datetime import datetime
from typing import List, Optional

from featurewarden.models.verification import AutomatedCheckResult, VerificationResult

MAX_OUTPUT_LENGTH = 5000

CHECK_NAMES = {
    "test": "Tests",
    "typecheck": "Type Check",
    "lint": "Lint",
    "build": "Build",
    "e2e": "E2E",
    "init-script": "Init Script",
}

VERDICT_ICONS = {
    "pass": "✅",
    "fail": "❌",
    "needs_review": "⚠️",
}


def format_date(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return timestamp


def format_duration(ms: Optional[int]) -> str:
    if ms is None:
        return "N/A"
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    minutes, rest = divmod(ms, 60000)
    return f"{minutes}m {rest / 1000:.1f}s"


def format_check_type(check_type: str) -> str:
    return CHECK_NAMES.get(check_type, check_type.capitalize())


def truncate(text: str, limit: int = MAX_OUTPUT_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... (truncated)"


def _check_section(check: AutomatedCheckResult) -> List[str]:
    lines = [
        f"### {format_check_type(check.type)}",
        "",
        f"- **Status**: {'✅ Passed' if check.success else '❌ Failed'}",
        f"- **Duration**: {format_duration(check.duration)}",
    ]
    if check.error_count:
        lines.append(f"- **Error Count**: {check.error_count}")
    if check.output and check.output.strip():
        lines += ["", "**Output**:", "```", truncate(check.output.strip()), "```"]
    lines.append("")
    return lines


def generate_verification_report(result: VerificationResult, run_number: Optional[int] = None) -> str:
    """Render a result as markdown."""
    lines = [f"# Verification Report: {result.feature_id}", ""]
    if run_number is not None:
        lines.append(f"**Run**: #{run_number:03d}")
    lines.append(f"**Date**: {format_date(result.timestamp)}")
    icon = VERDICT_ICONS.get(result.verdict, "❓")
    lines.append(f"**Verdict**: {icon} {result.verdict.upper()}")
    lines.append(f"**Verified By**: {result.verified_by}")
    if result.commit_hash:
        lines.append(f"**Commit**: `{result.commit_hash[:7]}`")
    lines.append("")

    lines += ["## Changed Files", ""]
    if result.changed_files:
        lines += [f"- `{path}`" for path in result.changed_files]
    else:
        lines.append("_No files changed_")
    if result.diff_summary:
        lines += ["", f"> {result.diff_summary}"]
    lines.append("")

    lines += ["## Automated Checks", ""]
    if result.automated_checks:
        lines += ["| Check | Status | Duration |", "|-------|--------|----------|"]
        for check in result.automated_checks:
            status = "✅ Pass" if check.success else "❌ Fail"
            lines.append(f"| {format_check_type(check.type)} | {status} | {format_duration(check.duration)} |")
        lines.append("")
        for check in result.automated_checks:
            lines += _check_section(check)
    else:
        lines += ["_No automated checks were run_", ""]

    lines += ["## Acceptance Criteria", ""]
    if result.criteria_results:
        for criterion in result.criteria_results:
            lines += [
                f"### {criterion.index + 1}. {criterion.criterion}",
                "",
                f"- **Satisfied**: {'✅ Yes' if criterion.satisfied else '❌ No'}",
                f"- **Confidence**: {round(criterion.confidence * 100)}%",
                "",
            ]
            if criterion.reasoning:
                lines += ["**Reasoning**:", "", criterion.reasoning, ""]
            if criterion.evidence:
                lines += ["**Evidence**:", ""]
                lines += [f"- `{item}`" for item in criterion.evidence]
                lines.append("")
    else:
        lines += ["_No criteria were evaluated_", ""]

    lines += ["## Overall Assessment", ""]
    lines.append(result.overall_reasoning or "_No overall assessment provided_")
    lines.append("")

    for title, items, code in (
        ("Suggestions", result.suggestions, False),
        ("Code Quality Notes", result.code_quality_notes, False),
        ("Related Files Analyzed", result.related_files_analyzed, True),
    ):
        if items:
            lines += [f"## {title}", ""]
            lines += [f"- `{item}`" if code else f"- {item}" for item in items]
            lines.append("")

    lines += ["---", "", f"_Generated by featurewarden at {format_date(result.timestamp)}_"]
    return "\n".join(lines)

