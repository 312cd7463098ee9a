"""
On-disk capability cache at ai/capabilities.json.

The envelope records the commit it was discovered at and the config
files discovery read, so invalidation can tell whether it still holds.
"""

import json
import logging
from datetime import datetime
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from featurewarden.git_utils import GitFacts
from featurewarden.models.capabilities import (
    CACHE_VERSION,
    CapabilitySnapshot,
    DiskCacheEnvelope,
)

logger = logging.getLogger(__name__)

CACHE_FILE = Path("ai") / "capabilities.json"


def get_cache_path(project_path: str) -> Path:
    return Path(project_path) / CACHE_FILE


def load_full_cache(project_path: str) -> Optional[DiskCacheEnvelope]:
    """Read the envelope as stored, without version or staleness checks.

    Returns:
        The envelope, or None if the file is missing or unparsable.
    """
    cache_path = get_cache_path(project_path)
    if not cache_path.exists():
        return None
    try:
        with open(cache_path) as f:
            return DiskCacheEnvelope.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to parse capability cache {cache_path}: {e}")
        return None


def load_cached_envelope(project_path: str) -> Optional[DiskCacheEnvelope]:
    """Read the envelope if it exists and has the current schema version."""
    envelope = load_full_cache(project_path)
    if envelope is None:
        return None
    if envelope.version != CACHE_VERSION:
        logger.debug(f"Cache version mismatch ({envelope.version} vs {CACHE_VERSION}), ignoring")
        return None
    return envelope


def save_capabilities(
    project_path: str,
    snapshot: CapabilitySnapshot,
    tracked_files: Optional[List[str]] = None,
    git: Optional[GitFacts] = None,
) -> DiskCacheEnvelope:
    """Write the snapshot with the current commit hash.

    Creates the ai/ directory if needed. A repository without commits is
    stored without a hash, which makes the entry stale on next read.
    """
    git = git or GitFacts()
    cache_path = get_cache_path(project_path)
    cache_path.parent.mkdir(parents=True, exist_ok=True)

    envelope = DiskCacheEnvelope(
        capabilities=replace(snapshot, detected_at=datetime.now().isoformat()),
        version=CACHE_VERSION,
        commit_hash=git.try_commit_hash(project_path),
        tracked_files=list(tracked_files or []),
    )

    with open(cache_path, "w") as f:
        json.dump(envelope.to_dict(), f, indent=2)
    logger.debug(f"Saved capabilities to {cache_path} at {envelope.commit_hash}")
    return envelope


def invalidate_cache(project_path: str) -> None:
    """Remove the cache file; a missing file is fine."""
    try:
        get_cache_path(project_path).unlink()
    except FileNotFoundError:
        pass
