"""
Migration from the legacy results.json to the per-run layout.

Each legacy result becomes run 001 of its feature, a fresh index is
written, and results.json is copied to results.json.bak. A feature that
fails to migrate is logged and skipped; the rest still migrate.
"""

import logging
import shutil

from featurewarden.models.verification import FeatureSummary
from featurewarden.store.constants import (
    LEGACY_BACKUP_FILE,
    get_index_path,
    get_legacy_path,
    get_store_dir,
)
from featurewarden.store.index import create_empty_index, save_index
from featurewarden.store.legacy import load_legacy_store
from featurewarden.store.runs import remove_run_files, write_run_files

logger = logging.getLogger(__name__)

MIGRATION_NOT_NEEDED = -1


def needs_migration(project_path: str) -> bool:
    """True when results.json exists and index.json does not."""
    return get_legacy_path(project_path).exists() and not get_index_path(project_path).exists()


def migrate_results_json(project_path: str) -> int:
    """Migrate legacy results into the per-run layout.

    Returns:
        Number of features migrated, 0 for an empty legacy store, or -1
        when migration is not needed.
    """
    if not needs_migration(project_path):
        return MIGRATION_NOT_NEEDED

    store = load_legacy_store(project_path)
    if store is None or not store.results:
        return 0

    index = create_empty_index()
    migrated = 0
    for feature_id, result in store.results.items():
        run_number = 1
        try:
            write_run_files(project_path, result, run_number)
        except Exception as e:
            logger.warning(f"Failed to migrate feature {feature_id}: {e}")
            remove_run_files(project_path, feature_id, run_number)
            continue
        index.features[feature_id] = FeatureSummary(
            feature_id=feature_id,
            latest_run=run_number,
            latest_timestamp=result.timestamp,
            latest_verdict=result.verdict,
            total_runs=1,
            pass_count=1 if result.verdict == "pass" else 0,
            fail_count=1 if result.verdict == "fail" else 0,
        )
        migrated += 1

    save_index(project_path, index)

    backup = get_store_dir(project_path) / LEGACY_BACKUP_FILE
    try:
        shutil.copyfile(get_legacy_path(project_path), backup)
    except OSError as e:
        logger.warning(f"Failed to back up results.json: {e}")

    if migrated:
        logger.info(f"Migrated {migrated} verification results to the per-run layout")
    return migrated


def auto_migrate_if_needed(project_path: str) -> None:
    """Migrate on first access; failures are logged, never raised."""
    if not needs_migration(project_path):
        return
    try:
        migrate_results_json(project_path)
    except Exception as e:
        logger.warning(f"Automatic migration failed: {e}")
