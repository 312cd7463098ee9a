"""
Verification result models.

A VerificationResult is the full record of one run. Its compacted
projection, VerificationMetadata, is what lands in <featureId>/NNN.json;
the free text (check output, criterion reasoning and evidence) goes into
the markdown report and the legacy results.json instead.

Index and legacy documents are the two aggregate files kept beside the
per-run files:
- VerificationIndex: ai/verification/index.json
- LegacyStore: ai/verification/results.json
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .capabilities import _drop_none, _pick

logger = logging.getLogger(__name__)


VERDICTS = ("pass", "fail", "needs_review")
CHECK_TYPES = ("test", "typecheck", "lint", "build", "e2e", "init-script")


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


@dataclass
class AutomatedCheckResult:
    """Outcome of one executed check command."""
    type: str
    success: bool
    duration: int = 0  # milliseconds
    error_count: Optional[int] = None
    output: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "type": self.type,
            "success": self.success,
            "duration": self.duration,
            "errorCount": self.error_count,
            "output": self.output,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutomatedCheckResult":
        return cls(
            type=data.get("type", "test"),
            success=bool(data.get("success", False)),
            duration=int(data.get("duration", 0) or 0),
            error_count=_pick(data, "errorCount", "error_count"),
            output=data.get("output"),
        )

    def compact(self) -> "AutomatedCheckResult":
        """Copy without the raw output."""
        return AutomatedCheckResult(
            type=self.type,
            success=self.success,
            duration=self.duration,
            error_count=self.error_count,
        )


@dataclass
class CriterionResult:
    """Judgment on a single acceptance criterion."""
    criterion: str
    index: int
    satisfied: bool
    confidence: float = 0.0
    reasoning: str = ""
    evidence: List[str] = field(default_factory=list)

    def to_dict(self, compact: bool = False) -> Dict[str, Any]:
        data = {
            "criterion": self.criterion,
            "index": self.index,
            "satisfied": self.satisfied,
            "confidence": self.confidence,
        }
        if not compact:
            data["reasoning"] = self.reasoning
            data["evidence"] = list(self.evidence)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CriterionResult":
        return cls(
            criterion=data.get("criterion", ""),
            index=int(data.get("index", 0) or 0),
            satisfied=bool(data.get("satisfied", False)),
            confidence=float(data.get("confidence", 0.0) or 0.0),
            reasoning=data.get("reasoning", "") or "",
            evidence=list(data.get("evidence") or []),
        )


@dataclass
class VerificationResult:
    """Full record of one verification run."""
    feature_id: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    commit_hash: Optional[str] = None
    changed_files: List[str] = field(default_factory=list)
    diff_summary: str = ""
    automated_checks: List[AutomatedCheckResult] = field(default_factory=list)
    criteria_results: List[CriterionResult] = field(default_factory=list)
    verdict: str = "needs_review"
    verified_by: str = "none"
    overall_reasoning: Optional[str] = None
    suggestions: Optional[List[str]] = None
    code_quality_notes: Optional[List[str]] = None
    related_files_analyzed: Optional[List[str]] = None

    @property
    def passed(self) -> bool:
        return self.verdict == "pass"

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "featureId": self.feature_id,
            "timestamp": self.timestamp,
            "commitHash": self.commit_hash,
            "changedFiles": list(self.changed_files),
            "diffSummary": self.diff_summary,
            "automatedChecks": [c.to_dict() for c in self.automated_checks],
            "criteriaResults": [c.to_dict() for c in self.criteria_results],
            "verdict": self.verdict,
            "verifiedBy": self.verified_by,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationResult":
        verdict = data.get("verdict", "needs_review")
        return cls(
            feature_id=_pick(data, "featureId", "feature_id", ""),
            timestamp=data.get("timestamp") or datetime.now().isoformat(),
            commit_hash=_optional_str(_pick(data, "commitHash", "commit_hash")),
            changed_files=list(_pick(data, "changedFiles", "changed_files") or []),
            diff_summary=_pick(data, "diffSummary", "diff_summary", "") or "",
            automated_checks=[
                AutomatedCheckResult.from_dict(c)
                for c in _pick(data, "automatedChecks", "automated_checks") or []
            ],
            criteria_results=[
                CriterionResult.from_dict(c)
                for c in _pick(data, "criteriaResults", "criteria_results") or []
            ],
            verdict=verdict if verdict in VERDICTS else "needs_review",
            verified_by=_pick(data, "verifiedBy", "verified_by", "none") or "none",
            overall_reasoning=_pick(data, "overallReasoning", "overall_reasoning"),
            suggestions=data.get("suggestions"),
            code_quality_notes=_pick(data, "codeQualityNotes", "code_quality_notes"),
            related_files_analyzed=_pick(data, "relatedFilesAnalyzed", "related_files_analyzed"),
        )


@dataclass
class VerificationMetadata:
    """Compact per-run record, without check output or criterion free text."""
    feature_id: str
    run_number: int
    timestamp: str
    commit_hash: Optional[str] = None
    changed_files: List[str] = field(default_factory=list)
    diff_summary: str = ""
    automated_checks: List[AutomatedCheckResult] = field(default_factory=list)
    criteria_results: List[CriterionResult] = field(default_factory=list)
    verdict: str = "needs_review"
    verified_by: str = "none"

    @classmethod
    def from_result(cls, result: VerificationResult, run_number: int) -> "VerificationMetadata":
        """Project a full result down to its metadata."""
        return cls(
            feature_id=result.feature_id,
            run_number=run_number,
            timestamp=result.timestamp,
            commit_hash=result.commit_hash,
            changed_files=list(result.changed_files),
            diff_summary=result.diff_summary,
            automated_checks=[c.compact() for c in result.automated_checks],
            criteria_results=[
                CriterionResult(
                    criterion=c.criterion,
                    index=c.index,
                    satisfied=c.satisfied,
                    confidence=c.confidence,
                )
                for c in result.criteria_results
            ],
            verdict=result.verdict,
            verified_by=result.verified_by,
        )

    def to_result(self) -> VerificationResult:
        """Rebuild a result with empty free text."""
        return VerificationResult(
            feature_id=self.feature_id,
            timestamp=self.timestamp,
            commit_hash=self.commit_hash,
            changed_files=list(self.changed_files),
            diff_summary=self.diff_summary,
            automated_checks=[c.compact() for c in self.automated_checks],
            criteria_results=[
                CriterionResult(
                    criterion=c.criterion,
                    index=c.index,
                    satisfied=c.satisfied,
                    confidence=c.confidence,
                    reasoning="",
                    evidence=[],
                )
                for c in self.criteria_results
            ],
            verdict=self.verdict,
            verified_by=self.verified_by,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "featureId": self.feature_id,
            "runNumber": self.run_number,
            "timestamp": self.timestamp,
            "commitHash": self.commit_hash,
            "changedFiles": list(self.changed_files),
            "diffSummary": self.diff_summary,
            "automatedChecks": [c.compact().to_dict() for c in self.automated_checks],
            "criteriaResults": [c.to_dict(compact=True) for c in self.criteria_results],
            "verdict": self.verdict,
            "verifiedBy": self.verified_by,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationMetadata":
        """Build from parsed JSON.

        Raises:
            ValueError: if required fields are missing.
        """
        if not isinstance(data, dict):
            raise ValueError("metadata must be a JSON object")
        feature_id = _pick(data, "featureId", "feature_id")
        run_number = _pick(data, "runNumber", "run_number")
        if not feature_id or not isinstance(run_number, int):
            raise ValueError("metadata is missing featureId or runNumber")
        result = VerificationResult.from_dict(data)
        meta = cls.from_result(result, run_number)
        return meta


@dataclass
class FeatureSummary:
    """Per-feature aggregate kept in the index."""
    feature_id: str
    latest_run: int
    latest_timestamp: str
    latest_verdict: str
    total_runs: int
    pass_count: int = 0
    fail_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "featureId": self.feature_id,
            "latestRun": self.latest_run,
            "latestTimestamp": self.latest_timestamp,
            "latestVerdict": self.latest_verdict,
            "totalRuns": self.total_runs,
            "passCount": self.pass_count,
            "failCount": self.fail_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureSummary":
        return cls(
            feature_id=_pick(data, "featureId", "feature_id", ""),
            latest_run=int(_pick(data, "latestRun", "latest_run", 0) or 0),
            latest_timestamp=_pick(data, "latestTimestamp", "latest_timestamp", "") or "",
            latest_verdict=_pick(data, "latestVerdict", "latest_verdict", "needs_review"),
            total_runs=int(_pick(data, "totalRuns", "total_runs", 0) or 0),
            pass_count=int(_pick(data, "passCount", "pass_count", 0) or 0),
            fail_count=int(_pick(data, "failCount", "fail_count", 0) or 0),
        )


@dataclass
class VerificationIndex:
    """ai/verification/index.json"""
    features: Dict[str, FeatureSummary] = field(default_factory=dict)
    updated_at: str = field(default_factory=lambda: datetime.now().isoformat())
    version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "features": {fid: s.to_dict() for fid, s in self.features.items()},
            "updatedAt": self.updated_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationIndex":
        """Build from parsed JSON.

        Raises:
            ValueError: if the document does not have the index shape.
        """
        if not isinstance(data, dict) or not isinstance(data.get("features"), dict):
            raise ValueError("index is missing a 'features' object")
        if not isinstance(data.get("version"), str):
            raise ValueError("index is missing a 'version' string")
        return cls(
            features={fid: FeatureSummary.from_dict(s) for fid, s in data["features"].items()},
            updated_at=_pick(data, "updatedAt", "updated_at", "") or "",
            version=data["version"],
        )


@dataclass
class LegacyStore:
    """ai/verification/results.json: last full result per feature."""
    results: Dict[str, VerificationResult] = field(default_factory=dict)
    updated_at: str = field(default_factory=lambda: datetime.now().isoformat())
    version: str = ""
    # Entries that could not be parsed, written back untouched
    unreadable: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": {**self.unreadable, **{fid: r.to_dict() for fid, r in self.results.items()}},
            "updatedAt": self.updated_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LegacyStore":
        """Build from parsed JSON.

        A malformed entry is kept aside in unreadable; the other entries
        still load.

        Raises:
            ValueError: if the document does not have the legacy shape.
        """
        if not isinstance(data, dict) or not isinstance(data.get("results"), dict):
            raise ValueError("legacy store is missing a 'results' object")
        results = {}
        unreadable = {}
        for fid, raw in data["results"].items():
            try:
                if not isinstance(raw, dict):
                    raise ValueError("entry is not an object")
                results[fid] = VerificationResult.from_dict(raw)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping unreadable legacy result for {fid}: {e}")
                unreadable[fid] = raw
        return cls(
            results=results,
            unreadable=unreadable,
            updated_at=_pick(data, "updatedAt", "updated_at", "") or "",
            version=str(data.get("version", "")),
        )


@dataclass
class FeatureVerificationSummary:
    """Short summary of a result, for embedding in a feature list."""
    verified_at: str
    verdict: str
    verified_by: str
    commit_hash: Optional[str]
    summary: str

    @classmethod
    def from_result(cls, result: VerificationResult) -> "FeatureVerificationSummary":
        satisfied = sum(1 for c in result.criteria_results if c.satisfied)
        total = len(result.criteria_results)
        return cls(
            verified_at=result.timestamp,
            verdict=result.verdict,
            verified_by=result.verified_by,
            commit_hash=result.commit_hash,
            summary=f"{satisfied}/{total} criteria satisfied",
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "verifiedAt": self.verified_at,
            "verdict": self.verdict,
            "verifiedBy": self.verified_by,
            "commitHash": self.commit_hash,
            "summary": self.summary,
        })
