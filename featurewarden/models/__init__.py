"""
Data models for featurewarden.

Exports:
- Capability models: CapabilitySnapshot, DiskCacheEnvelope and the
  per-capability detail records
- Verification models: VerificationResult, VerificationMetadata,
  VerificationIndex, LegacyStore and their parts
- Feature models: Feature, FeatureList, FeatureListMetadata
"""

from .capabilities import (
    CACHE_VERSION,
    CapabilityCommand,
    CapabilitySnapshot,
    CustomRule,
    DiscoveryResult,
    DiskCacheEnvelope,
    E2ECapabilityInfo,
    TestCapabilityInfo,
)
from .feature import (
    E2ETestRequirement,
    Feature,
    FeatureList,
    FeatureListMetadata,
    TestRequirements,
    UnitTestRequirement,
    load_feature_list,
)
from .verification import (
    AutomatedCheckResult,
    CriterionResult,
    FeatureSummary,
    FeatureVerificationSummary,
    LegacyStore,
    VerificationIndex,
    VerificationMetadata,
    VerificationResult,
)

__all__ = [
    # Capabilities
    "CACHE_VERSION",
    "CapabilityCommand",
    "CapabilitySnapshot",
    "CustomRule",
    "DiscoveryResult",
    "DiskCacheEnvelope",
    "E2ECapabilityInfo",
    "TestCapabilityInfo",
    # Features
    "E2ETestRequirement",
    "Feature",
    "FeatureList",
    "FeatureListMetadata",
    "TestRequirements",
    "UnitTestRequirement",
    "load_feature_list",
    # Verification
    "AutomatedCheckResult",
    "CriterionResult",
    "FeatureSummary",
    "FeatureVerificationSummary",
    "LegacyStore",
    "VerificationIndex",
    "VerificationMetadata",
    "VerificationResult",
]
