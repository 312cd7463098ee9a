"""
Legacy single-file store (ai/verification/results.json).

Holds the latest full result per feature. Still written on every save so
older readers keep working, and read back for the free text the per-run
metadata drops.
"""

import json
import logging
from datetime import datetime
from typing import Optional

from featurewarden.models.verification import LegacyStore, VerificationResult
from featurewarden.store.constants import STORE_VERSION, get_legacy_path, get_store_dir
from featurewarden.store.index import write_json_atomic

logger = logging.getLogger(__name__)


def create_empty_store() -> LegacyStore:
    return LegacyStore(results={}, updated_at=datetime.now().isoformat(), version=STORE_VERSION)


def load_legacy_store(project_path: str) -> Optional[LegacyStore]:
    """Read results.json.

    Returns:
        None if the file does not exist; an empty store if it is corrupt.
    """
    path = get_legacy_path(project_path)
    if not path.exists():
        return None
    try:
        with open(path) as f:
            return LegacyStore.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Corrupted legacy store {path}, treating as empty: {e}")
        return create_empty_store()


def save_legacy_store(project_path: str, store: LegacyStore) -> None:
    """Write results.json. OSError propagates."""
    get_store_dir(project_path).mkdir(parents=True, exist_ok=True)
    write_json_atomic(get_legacy_path(project_path), store.to_dict())


class CompatibilityWriter:
    """Extra representation written after the per-run files and index.

    Subclasses mirror each save (and clear) into another format. Errors
    propagate out of VerificationStore.save.
    """

    name = "compatibility"

    def write(self, project_path: str, result: VerificationResult, run_number: int) -> None:
        raise NotImplementedError

    def clear(self, project_path: str, feature_id: str) -> None:
        raise NotImplementedError


class LegacyStoreWriter(CompatibilityWriter):
    """Mirrors each save into results.json."""

    name = "legacy-results-json"

    def write(self, project_path: str, result: VerificationResult, run_number: int) -> None:
        store = load_legacy_store(project_path) or create_empty_store()
        store.unreadable.pop(result.feature_id, None)
        store.results[result.feature_id] = result
        store.updated_at = datetime.now().isoformat()
        store.version = STORE_VERSION
        save_legacy_store(project_path, store)

    def clear(self, project_path: str, feature_id: str) -> None:
        store = load_legacy_store(project_path)
        if store is None or (feature_id not in store.results and feature_id not in store.unreadable):
            return
        store.results.pop(feature_id, None)
        store.unreadable.pop(feature_id, None)
        store.updated_at = datetime.now().isoformat()
        save_legacy_store(project_path, store)
