"""
Feature list models (ai/feature_list.json).

Only the parts verification needs are modelled; unknown keys are ignored.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .capabilities import _pick

logger = logging.getLogger(__name__)

FEATURE_LIST_PATH = Path("ai") / "feature_list.json"

TDD_MODES = ("strict", "recommended", "disabled")


@dataclass
class UnitTestRequirement:
    required: bool = False
    pattern: Optional[str] = None
    cases: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UnitTestRequirement":
        data = data or {}
        return cls(
            required=bool(data.get("required", False)),
            pattern=data.get("pattern"),
            cases=list(data.get("cases") or []),
        )


@dataclass
class E2ETestRequirement:
    required: bool = False
    pattern: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    scenarios: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "E2ETestRequirement":
        data = data or {}
        return cls(
            required=bool(data.get("required", False)),
            pattern=data.get("pattern"),
            tags=list(data.get("tags") or []),
            scenarios=list(data.get("scenarios") or []),
        )


@dataclass
class TestRequirements:
    """Unit and e2e test requirements declared on a feature."""
    __test__ = False  # not a pytest class

    unit: Optional[UnitTestRequirement] = None
    e2e: Optional[E2ETestRequirement] = None

    @property
    def any_required(self) -> bool:
        return bool((self.unit and self.unit.required) or (self.e2e and self.e2e.required))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["TestRequirements"]:
        if not data:
            return None
        return cls(
            unit=UnitTestRequirement.from_dict(data["unit"]) if data.get("unit") else None,
            e2e=E2ETestRequirement.from_dict(data["e2e"]) if data.get("e2e") else None,
        )


@dataclass
class Feature:
    """A tracked feature and its acceptance criteria."""
    id: str
    description: str = ""
    module: str = ""
    priority: int = 0
    status: str = "failing"
    acceptance: List[str] = field(default_factory=list)
    test_pattern: Optional[str] = None
    e2e_tags: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    test_requirements: Optional[TestRequirements] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feature":
        return cls(
            id=data.get("id", ""),
            description=data.get("description", ""),
            module=data.get("module", "") or "",
            priority=int(data.get("priority", 0) or 0),
            status=data.get("status", "failing"),
            acceptance=list(data.get("acceptance") or []),
            test_pattern=_pick(data, "testPattern", "test_pattern"),
            e2e_tags=list(_pick(data, "e2eTags", "e2e_tags") or []),
            tags=list(data.get("tags") or []),
            test_requirements=TestRequirements.from_dict(
                _pick(data, "testRequirements", "test_requirements")
            ),
        )


@dataclass
class FeatureListMetadata:
    project_goal: str = ""
    version: str = "1.0.0"
    tdd_mode: str = "recommended"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FeatureListMetadata":
        data = data or {}
        tdd_mode = _pick(data, "tddMode", "tdd_mode", "recommended")
        return cls(
            project_goal=_pick(data, "projectGoal", "project_goal", "") or "",
            version=data.get("version", "1.0.0"),
            tdd_mode=tdd_mode if tdd_mode in TDD_MODES else "recommended",
        )


@dataclass
class FeatureList:
    features: List[Feature] = field(default_factory=list)
    metadata: FeatureListMetadata = field(default_factory=FeatureListMetadata)

    def get(self, feature_id: str) -> Optional[Feature]:
        for feature in self.features:
            if feature.id == feature_id:
                return feature
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureList":
        return cls(
            features=[Feature.from_dict(f) for f in data.get("features") or []],
            metadata=FeatureListMetadata.from_dict(data.get("metadata")),
        )


def load_feature_list(project_path: str) -> Optional[FeatureList]:
    """Load ai/feature_list.json.

    Returns:
        The parsed list, or None if the file is missing or unreadable.
    """
    path = Path(project_path) / FEATURE_LIST_PATH
    if not path.exists():
        return None
    try:
        with open(path) as f:
            return FeatureList.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, AttributeError, TypeError) as e:
        logger.warning(f"Could not read feature list {path}: {e}")
        return None
