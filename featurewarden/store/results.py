"""
Verification result store.

Append-only history per feature, an index of per-feature summaries, and
compatibility writers (results.json by default) kept in step on every
save:

    store = VerificationStore(project_path)
    run_number = store.save(result)
    last = store.get_last("auth.login")
    for meta in store.get_history("auth.login"):
        print(meta.run_number, meta.verdict)
"""

import logging
from typing import Dict, List, Optional

from featurewarden.errors import StoreWriteError
from featurewarden.models.verification import (
    FeatureSummary,
    VerificationIndex,
    VerificationMetadata,
    VerificationResult,
)
from featurewarden.store.constants import get_store_dir
from featurewarden.store.index import create_empty_index, read_index_file, save_index, update_feature_summary
from featurewarden.store.legacy import CompatibilityWriter, LegacyStoreWriter, load_legacy_store
from featurewarden.store.migration import auto_migrate_if_needed
from featurewarden.store.runs import (
    list_run_numbers,
    read_run_metadata,
    remove_run_files,
    reserve_run_number,
    write_run_files,
)

logger = logging.getLogger(__name__)


class VerificationStore:
    """Durable store of verification runs for one project.

    Args:
        project_path: Project root
        writers: Compatibility writers run after each save; defaults to
            the legacy results.json writer
    """

    def __init__(self, project_path: str, writers: Optional[List[CompatibilityWriter]] = None):
        self.project_path = project_path
        self.writers = writers if writers is not None else [LegacyStoreWriter()]

    # =========================================================================
    # Index
    # =========================================================================

    def load_index(self) -> Optional[VerificationIndex]:
        """Read the index, migrating legacy results first if needed.

        Returns:
            None if there is no index (and nothing to migrate); an empty
            index if the file is corrupt.
        """
        auto_migrate_if_needed(self.project_path)
        return read_index_file(self.project_path)

    def get_feature_summary(self, feature_id: str) -> Optional[FeatureSummary]:
        index = self.load_index()
        if index is None:
            return None
        return index.features.get(feature_id)

    # =========================================================================
    # Write path
    # =========================================================================

    def save(self, result: VerificationResult) -> int:
        """Persist a run.

        Order: reserve run number, write metadata and report, update the
        index, then run the compatibility writers.

        Returns:
            The run number assigned.

        Raises:
            StoreWriteError: if any file could not be written.
        """
        index = self.load_index() or create_empty_index()
        existing = index.features.get(result.feature_id)
        floor = existing.latest_run if existing else 0

        try:
            run_number = reserve_run_number(self.project_path, result.feature_id, floor)
        except OSError as e:
            raise StoreWriteError(f"Could not reserve run for {result.feature_id}: {e}",
                                  str(get_store_dir(self.project_path))) from e

        try:
            write_run_files(self.project_path, result, run_number)
            update_feature_summary(index, result, run_number)
            save_index(self.project_path, index)
        except OSError as e:
            remove_run_files(self.project_path, result.feature_id, run_number)
            raise StoreWriteError(f"Could not save run {run_number} of {result.feature_id}: {e}",
                                  str(get_store_dir(self.project_path))) from e
        except BaseException:
            remove_run_files(self.project_path, result.feature_id, run_number)
            raise

        for writer in self.writers:
            try:
                writer.write(self.project_path, result, run_number)
            except OSError as e:
                raise StoreWriteError(f"{writer.name} write failed for {result.feature_id}: {e}",
                                      str(get_store_dir(self.project_path))) from e

        logger.debug(f"Saved {result.feature_id} run {run_number} ({result.verdict})")
        return run_number

    def clear(self, feature_id: str) -> None:
        """Forget a feature in the index and compatibility stores.

        Run files stay on disk for audit.
        """
        for writer in self.writers:
            writer.clear(self.project_path, feature_id)

        index = self.load_index()
        if index is not None and feature_id in index.features:
            del index.features[feature_id]
            save_index(self.project_path, index)

    # =========================================================================
    # Read path
    # =========================================================================

    def get_last(self, feature_id: str) -> Optional[VerificationResult]:
        """Latest result for a feature.

        Full free text comes from the legacy store when its record is the
        same run; otherwise the result is rebuilt from metadata with
        empty reasoning.
        """
        summary = self.get_feature_summary(feature_id)
        legacy = load_legacy_store(self.project_path)
        legacy_result = legacy.results.get(feature_id) if legacy else None

        if summary is not None:
            metadata = read_run_metadata(self.project_path, feature_id, summary.latest_run)
            if metadata is not None:
                if legacy_result is not None and legacy_result.timestamp == metadata.timestamp:
                    return legacy_result
                return metadata.to_result()

        return legacy_result

    def get_history(self, feature_id: str) -> List[VerificationMetadata]:
        """Every readable run of a feature, oldest first."""
        history = []
        for run_number in list_run_numbers(self.project_path, feature_id):
            metadata = read_run_metadata(self.project_path, feature_id, run_number)
            if metadata is not None:
                history.append(metadata)
        return history

    def has_verification(self, feature_id: str) -> bool:
        if self.get_feature_summary(feature_id) is not None:
            return True
        return self.get_last(feature_id) is not None

    def get_all_results(self) -> Dict[str, VerificationResult]:
        """Latest full results from the legacy store."""
        legacy = load_legacy_store(self.project_path)
        return dict(legacy.results) if legacy else {}

    def stats(self) -> Dict[str, int]:
        """Counts of features by latest verdict."""
        index = self.load_index()
        if index is not None and index.features:
            verdicts = [s.latest_verdict for s in index.features.values()]
        else:
            verdicts = [r.verdict for r in self.get_all_results().values()]
        return {
            "total": len(verdicts),
            "passing": verdicts.count("pass"),
            "failing": verdicts.count("fail"),
            "needs_review": verdicts.count("needs_review"),
        }


# =============================================================================
# Module-level helpers
# =============================================================================

def save_verification_result(project_path: str, result: VerificationResult) -> int:
    return VerificationStore(project_path).save(result)


def get_last_verification(project_path: str, feature_id: str) -> Optional[VerificationResult]:
    return VerificationStore(project_path).get_last(feature_id)


def get_verification_history(project_path: str, feature_id: str) -> List[VerificationMetadata]:
    return VerificationStore(project_path).get_history(feature_id)


def clear_verification_result(project_path: str, feature_id: str) -> None:
    VerificationStore(project_path).clear(feature_id)


def get_verification_stats(project_path: str) -> Dict[str, int]:
    return VerificationStore(project_path).stats()


def load_verification_index(project_path: str) -> Optional[VerificationIndex]:
    return VerificationStore(project_path).load_index()
