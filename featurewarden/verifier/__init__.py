"""
Feature verification.

    from featurewarden.verifier import VerificationOrchestrator, VerifyOptions

    result = VerificationOrchestrator(project_path).verify(feature, metadata)
    print(result.verdict)
"""

from featurewarden.verifier.checks import CheckExecutor, CheckOptions, has_init_script
from featurewarden.verifier.judgment import AIJudge, RetryConfig, is_transient_error, parse_verification_response
from featurewarden.verifier.orchestrator import (
    VerificationOrchestrator,
    VerificationRun,
    VerificationState,
    VerifyOptions,
    select_mode,
    verify_feature,
)

__all__ = [
    "AIJudge",
    "CheckExecutor",
    "CheckOptions",
    "RetryConfig",
    "VerificationOrchestrator",
    "VerificationRun",
    "VerificationState",
    "VerifyOptions",
    "has_init_script",
    "is_transient_error",
    "parse_verification_response",
    "select_mode",
    "verify_feature",
]
