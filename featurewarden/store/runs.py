"""
Per-run files: <featureId>/NNN.json (metadata) and <featureId>/NNN.md (report).

Run numbers are claimed by creating NNN.json exclusively, so two writers
for the same feature never get the same number.
"""

import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from featurewarden.models.verification import VerificationMetadata, VerificationResult
from featurewarden.report import generate_verification_report
from featurewarden.store.constants import format_run_number, get_feature_dir

logger = logging.getLogger(__name__)

RUN_FILE_PATTERN = re.compile(r"^(\d+)\.json$")


def list_run_numbers(project_path: str, feature_id: str) -> List[int]:
    """Run numbers with a metadata file on disk, ascending."""
    feature_dir = get_feature_dir(project_path, feature_id)
    if not feature_dir.is_dir():
        return []
    numbers = []
    for path in feature_dir.iterdir():
        match = RUN_FILE_PATTERN.match(path.name)
        if match:
            numbers.append(int(match.group(1)))
    return sorted(numbers)


def metadata_path(project_path: str, feature_id: str, run_number: int) -> Path:
    return get_feature_dir(project_path, feature_id) / f"{format_run_number(run_number)}.json"


def report_path(project_path: str, feature_id: str, run_number: int) -> Path:
    return get_feature_dir(project_path, feature_id) / f"{format_run_number(run_number)}.md"


def reserve_run_number(project_path: str, feature_id: str, floor: int = 0) -> int:
    """Claim the next run number by exclusive-creating its metadata file.

    Args:
        floor: Highest run number already known (e.g. from the index)

    Returns:
        The claimed run number; its NNN.json exists and is empty.
    """
    feature_dir = get_feature_dir(project_path, feature_id)
    feature_dir.mkdir(parents=True, exist_ok=True)

    existing = list_run_numbers(project_path, feature_id)
    candidate = max([floor] + existing) + 1
    while True:
        try:
            with open(metadata_path(project_path, feature_id, candidate), "x"):
                pass
            return candidate
        except FileExistsError:
            logger.debug(f"Run {candidate} of {feature_id} already taken, trying next")
            candidate += 1


def write_run_files(project_path: str, result: VerificationResult, run_number: int) -> None:
    """Write metadata then report for a run. OSError propagates."""
    feature_dir = get_feature_dir(project_path, result.feature_id)
    feature_dir.mkdir(parents=True, exist_ok=True)

    metadata = VerificationMetadata.from_result(result, run_number)
    with open(metadata_path(project_path, result.feature_id, run_number), "w") as f:
        json.dump(metadata.to_dict(), f, indent=2)

    report = generate_verification_report(result, run_number)
    with open(report_path(project_path, result.feature_id, run_number), "w") as f:
        f.write(report)


def remove_run_files(project_path: str, feature_id: str, run_number: int) -> None:
    """Best-effort cleanup of a run whose save failed."""
    for path in (
        metadata_path(project_path, feature_id, run_number),
        report_path(project_path, feature_id, run_number),
    ):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial run file {path}: {e}")


def read_run_metadata(project_path: str, feature_id: str, run_number: int) -> Optional[VerificationMetadata]:
    """Load one run's metadata; None if missing or unparsable."""
    path = metadata_path(project_path, feature_id, run_number)
    if not path.exists():
        return None
    try:
        with open(path) as f:
            return VerificationMetadata.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Skipping unreadable run file {path}: {e}")
        return None
