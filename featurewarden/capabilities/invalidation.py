"""
Git-based staleness checks for the disk cache.

Any doubt means stale: a missing hash, an unresolvable HEAD or a failing
diff all send the caller back to discovery.
"""

import logging
from typing import List, Optional

from featurewarden.git_utils import GitError, GitFacts
from featurewarden.models.capabilities import DiskCacheEnvelope

logger = logging.getLogger(__name__)


def has_commit_changed(project_path: str, cached_hash: str, git: GitFacts) -> bool:
    current = git.try_commit_hash(project_path)
    if current is None:
        logger.debug("Could not resolve HEAD, assuming stale")
        return True
    return current != cached_hash


def has_tracked_file_changes(
    project_path: str,
    cached_hash: str,
    tracked_files: List[str],
    git: GitFacts,
) -> bool:
    try:
        changed = git.diff_name_only(project_path, cached_hash, "HEAD", tracked_files)
    except GitError as e:
        logger.debug(f"Tracked file diff failed, assuming stale: {e}")
        return True
    if changed:
        logger.debug(f"Tracked files changed since {cached_hash[:7]}: {changed}")
    return bool(changed)


def is_stale(project_path: str, envelope: DiskCacheEnvelope, git: Optional[GitFacts] = None) -> bool:
    """Decide whether a cached envelope no longer describes the project.

    - No commit hash: stale.
    - No tracked files: stale iff HEAD moved.
    - Tracked files: stale iff any of them changed between the cached
      commit and HEAD.
    """
    git = git or GitFacts()
    if not envelope.commit_hash:
        logger.debug("No commit hash in cache, marking as stale")
        return True
    if not envelope.tracked_files:
        return has_commit_changed(project_path, envelope.commit_hash, git)
    return has_tracked_file_changes(project_path, envelope.commit_hash, envelope.tracked_files, git)
