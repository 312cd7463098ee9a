"""
Git facts used by the capability cache, test discovery and verifier.

All commands go through run_git(), which never raises for a non-zero
exit; callers branch on the return code. A missing git binary surfaces
as return code 127 with the error text in stderr.
"""

import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

GitRunner = Callable[[List[str], Optional[Path]], Tuple[int, str, str]]

NO_DIFF = "No changes detected"
DIFF_UNAVAILABLE = "Unable to get git diff"
UNKNOWN_COMMIT = "unknown"


def run_git(args: List[str], cwd: Optional[Path] = None) -> Tuple[int, str, str]:
    """Run a git command.

    Returns:
        Tuple of (return_code, stdout, stderr)
    """
    cmd = ["git"] + args
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd or Path.cwd(),
            capture_output=True,
            text=True,
        )
    except OSError as e:
        logger.debug(f"git {' '.join(args)} could not start: {e}")
        return 127, "", str(e)
    if result.returncode != 0:
        logger.debug(f"git {' '.join(args)} exited {result.returncode}: {result.stderr.strip()}")
    return result.returncode, result.stdout, result.stderr


def _lines(out: str) -> List[str]:
    return [line.strip() for line in out.splitlines() if line.strip()]


def _dedupe(items: Sequence[str]) -> List[str]:
    seen = set()
    unique = []
    for item in items:
        if item not in seen:
            seen.add(item)
            unique.append(item)
    return unique


class GitError(Exception):
    """A git query that must succeed did not."""


class GitFacts:
    """Read-only queries against a git working tree."""

    def __init__(self, runner: Optional[GitRunner] = None):
        self.runner = runner or run_git

    def _run(self, args: List[str], cwd: str) -> Tuple[int, str, str]:
        return self.runner(args, Path(cwd))

    def is_available(self, cwd: str) -> bool:
        """Check if cwd is inside a git work tree."""
        code, out, _ = self._run(["rev-parse", "--is-inside-work-tree"], cwd)
        return code == 0 and out.strip() == "true"

    def current_commit_hash(self, cwd: str) -> str:
        """Full hash of HEAD.

        Raises:
            GitError: if HEAD cannot be resolved.
        """
        code, out, err = self._run(["rev-parse", "HEAD"], cwd)
        if code != 0 or not out.strip():
            raise GitError(err.strip() or "could not resolve HEAD")
        return out.strip()

    def try_commit_hash(self, cwd: str) -> Optional[str]:
        """Like current_commit_hash, but None instead of raising."""
        try:
            return self.current_commit_hash(cwd)
        except GitError:
            return None

    def diff_name_only(
        self,
        cwd: str,
        from_ref: str,
        to_ref: str = "HEAD",
        paths: Optional[List[str]] = None,
    ) -> List[str]:
        """Files changed between two refs, optionally limited to paths.

        Raises:
            GitError: if the diff fails (unknown ref, not a repo, ...).
        """
        args = ["diff", "--name-only", from_ref, to_ref]
        if paths:
            args += ["--"] + list(paths)
        code, out, err = self._run(args, cwd)
        if code != 0:
            raise GitError(err.strip() or f"git diff {from_ref} {to_ref} failed")
        return _lines(out)

    def changed_files(self, cwd: str) -> List[str]:
        """Staged, unstaged and last-commit changes, deduplicated in that order."""
        files: List[str] = []
        for args in (
            ["diff", "--cached", "--name-only"],
            ["diff", "--name-only"],
            ["diff", "HEAD~1", "HEAD", "--name-only"],
        ):
            code, out, _ = self._run(args, cwd)
            if code == 0:
                files.extend(_lines(out))
        return _dedupe(files)

    def diff_for_feature(self, cwd: str) -> Tuple[str, List[str], str]:
        """Diff of the last commit plus uncommitted work.

        Falls back to uncommitted work only (e.g. a repo with one commit),
        then to a placeholder when git is unusable.

        Returns:
            Tuple of (diff_text, changed_files, commit_hash)
        """
        commit = self.try_commit_hash(cwd)
        if commit is not None:
            last_code, last_diff, _ = self._run(["diff", "HEAD~1", "HEAD"], cwd)
            work_code, work_diff, _ = self._run(["diff", "HEAD"], cwd)
            if last_code == 0 and work_code == 0:
                _, last_files, _ = self._run(["diff", "HEAD~1", "HEAD", "--name-only"], cwd)
                _, work_files, _ = self._run(["diff", "HEAD", "--name-only"], cwd)
                diff = last_diff + work_diff
                files = _dedupe(_lines(last_files) + _lines(work_files))
                return diff or NO_DIFF, files, commit

            if work_code == 0:
                _, work_files, _ = self._run(["diff", "HEAD", "--name-only"], cwd)
                return work_diff or NO_DIFF, _lines(work_files), commit

        logger.debug(f"No usable git diff in {cwd}")
        return DIFF_UNAVAILABLE, [], UNKNOWN_COMMIT
