"""
Verification result store.

Layout under ai/verification/:
    index.json            per-feature summaries
    results.json          legacy: latest full result per feature
    results.json.bak      copy made when results.json was migrated
    <featureId>/NNN.json  compact metadata for run NNN
    <featureId>/NNN.md    markdown report for run NNN
"""

from featurewarden.store.constants import INDEX_VERSION, STORE_VERSION, format_run_number
from featurewarden.store.index import create_empty_index
from featurewarden.store.legacy import CompatibilityWriter, LegacyStoreWriter, load_legacy_store
from featurewarden.store.migration import migrate_results_json, needs_migration
from featurewarden.store.results import (
    VerificationStore,
    clear_verification_result,
    get_last_verification,
    get_verification_history,
    get_verification_stats,
    load_verification_index,
    save_verification_result,
)

__all__ = [
    "INDEX_VERSION",
    "STORE_VERSION",
    "CompatibilityWriter",
    "LegacyStoreWriter",
    "VerificationStore",
    "clear_verification_result",
    "create_empty_index",
    "format_run_number",
    "get_last_verification",
    "get_verification_history",
    "get_verification_stats",
    "load_legacy_store",
    "load_verification_index",
    "migrate_results_json",
    "needs_migration",
    "save_verification_result",
]
