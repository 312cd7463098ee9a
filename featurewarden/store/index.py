"""
Verification index (ai/verification/index.json).

One FeatureSummary per feature, updated on each save. Reading here does
not migrate; see store.results for the migrating read.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from featurewarden.models.verification import FeatureSummary, VerificationIndex, VerificationResult
from featurewarden.store.constants import INDEX_VERSION, get_index_path, get_store_dir

logger = logging.getLogger(__name__)


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """Write JSON through a temp file in the same directory, then replace."""
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def create_empty_index() -> VerificationIndex:
    return VerificationIndex(features={}, updated_at=datetime.now().isoformat(), version=INDEX_VERSION)


def read_index_file(project_path: str) -> Optional[VerificationIndex]:
    """Read index.json as stored.

    Returns:
        None if the file does not exist; an empty index if it is corrupt.
    """
    path = get_index_path(project_path)
    if not path.exists():
        return None
    try:
        with open(path) as f:
            return VerificationIndex.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Corrupted index {path}, returning empty index: {e}")
        return create_empty_index()


def save_index(project_path: str, index: VerificationIndex) -> None:
    """Persist the index atomically. OSError propagates."""
    get_store_dir(project_path).mkdir(parents=True, exist_ok=True)
    write_json_atomic(get_index_path(project_path), index.to_dict())


def update_feature_summary(index: VerificationIndex, result: VerificationResult, run_number: int) -> FeatureSummary:
    """Fold a saved run into the index entry for its feature."""
    summary = index.features.get(result.feature_id)
    if summary is None:
        summary = FeatureSummary(
            feature_id=result.feature_id,
            latest_run=run_number,
            latest_timestamp=result.timestamp,
            latest_verdict=result.verdict,
            total_runs=run_number,
        )
        index.features[result.feature_id] = summary
    else:
        summary.latest_run = run_number
        summary.latest_timestamp = result.timestamp
        summary.latest_verdict = result.verdict
        summary.total_runs = run_number

    if result.verdict == "pass":
        summary.pass_count += 1
    elif result.verdict == "fail":
        summary.fail_count += 1

    index.updated_at = datetime.now().isoformat()
    index.version = INDEX_VERSION
    return summary
