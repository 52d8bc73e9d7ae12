"""Git client that owns one local clone of a remote configuration repository.

Provides:
- Clone-if-absent / sync-if-present startup
- Fetch + three-way merge with "discard local commits on conflict"
- Commit with an explicit author, atomic push
- Per-path fingerprints (latest commit touching a path)
- Read-only history access
"""
import logging
import shutil
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from ..errors import RepositoryError, TransportError
from ..utils.logging_config import timed
from .command import (
    DEFAULT_AUTHOR_EMAIL,
    DEFAULT_AUTHOR_NAME,
    run_git,
    stderr_text,
)
from .merge import GitCliMergeEngine, MergeEngine

logger = logging.getLogger(__name__)

RepoPath = Union[str, PurePosixPath, Path]


@dataclass
class SyncResult:
    """Outcome of RepositoryClient.sync().

    Evaluates truthy when the remote state was merged cleanly.
    """
    merged: bool
    remote_missing: bool = False
    conflicts: list[str] = field(default_factory=list)
    head: str = ""

    def __bool__(self) -> bool:
        return self.merged

    @property
    def discarded(self) -> bool:
        """True if local commits were thrown away by a hard reset."""
        return not self.merged and not self.remote_missing


@dataclass
class CommitInfo:
    """Information about a git commit."""
    hash: str
    short_hash: str
    author: str
    email: str
    date: datetime
    message: str


class RepositoryClient:
    """
    Serialized git operations on one local clone of one remote branch.

    Every public operation takes ``self.lock``. The lock is re-entrant so
    callers can hold it across a multi-step pipeline (write, commit, sync,
    push) while the individual primitives lock again.
    """

    def __init__(
        self,
        url: str,
        local_path: Path,
        remote: str = "origin",
        branch: str = "main",
        timeout: float = 30,
        merge_engine: Optional[MergeEngine] = None,
        name: Optional[str] = None,
    ):
        """
        Initialize RepositoryClient.

        Args:
            url: URL (or path) of the remote repository
            local_path: Where the working copy lives
            remote: Remote name (default: origin)
            branch: Tracked branch, same name locally and remotely
            timeout: Seconds allowed for each network operation
            merge_engine: Merge implementation (default: git CLI)
            name: Label used in logs (default: directory name)
        """
        self.url = url
        self.local_path = Path(local_path).expanduser().absolute()
        self.remote = remote
        self.branch = branch
        self.timeout = timeout
        self.merge_engine = merge_engine or GitCliMergeEngine()
        self.name = name or self.local_path.name
        self.lock = threading.RLock()

    @property
    def tracking_ref(self) -> str:
        """Remote-tracking ref the branch is synced against."""
        return f"refs/remotes/{self.remote}/{self.branch}"

    def _git(self, *args: str, **kwargs):
        return run_git(self.local_path, *args, **kwargs)

    def is_cloned(self) -> bool:
        """Check if the local clone exists."""
        return (self.local_path / ".git").exists()

    # === Lifecycle ===

    @timed("ensure_ready")
    def ensure_ready(self) -> SyncResult:
        """
        Clone the remote if there is no local clone, otherwise sync.

        Raises:
            TransportError: If the remote cannot be reached
            RepositoryError: If the local clone is unusable
        """
        with self.lock:
            if self.is_cloned():
                logger.info(
                    f"Repo already cloned to {self.local_path}, "
                    f"pulling from {self.remote}/{self.branch}"
                )
                self._verify()
                return self.sync()

            logger.info(f"No local git repo found in {self.local_path}, cloning from {self.url}")
            return self._clone()

    def _verify(self) -> None:
        """Fail if the existing clone is corrupt or on the wrong branch."""
        result = self._git("rev-parse", "--git-dir", check=False)
        if result.returncode != 0:
            raise RepositoryError(
                f"Local repository at {self.local_path} is not usable: {stderr_text(result)}",
                stderr=stderr_text(result),
            )

        current = self._git("symbolic-ref", "--short", "HEAD", check=False).stdout.strip()
        if current != self.branch:
            raise RepositoryError(
                f"Local repository at {self.local_path} is on branch "
                f"'{current}', expected '{self.branch}'"
            )

    def _clone(self) -> SyncResult:
        """Create the clone: init, add the remote, fetch, reset to the remote tip."""
        self.local_path.mkdir(parents=True, exist_ok=True)
        if any(self.local_path.iterdir()):
            raise RepositoryError(
                f"Cannot clone into {self.local_path}: directory is not empty"
            )

        try:
            self._git("init", "-q", f"--initial-branch={self.branch}")
            self._git("remote", "add", self.remote, self.url)

            if not self._fetch():
                logger.warning(
                    f"Cloned an empty repository: {self.url} has no "
                    f"'{self.branch}' branch yet"
                )
                return SyncResult(merged=False, remote_missing=True)

            self._git("reset", "-q", "--hard", self.tracking_ref)
        except RepositoryError:
            # Leave no half-made clone behind so the next attempt starts over
            shutil.rmtree(self.local_path / ".git", ignore_errors=True)
            raise

        head = self.head()
        logger.info(f"Cloned {self.url} ({self.branch} @ {head[:8]}) to {self.local_path}")
        return SyncResult(merged=True, head=head)

    # === Read-only queries ===

    def has_commits(self) -> bool:
        """Check if the local branch has at least one commit."""
        result = self._git("rev-parse", "--verify", "-q", "HEAD", check=False)
        return result.returncode == 0

    def head(self) -> str:
        """Commit ID of the branch tip, or "" on an unborn branch."""
        result = self._git("rev-parse", "--verify", "-q", "HEAD", check=False)
        if result.returncode != 0:
            return ""
        return result.stdout.strip()

    def fingerprint_for_path(self, path: RepoPath) -> str:
        """
        Return the ID of the latest commit that touched ``path``.

        Used to detect updates that were not based on the last change.
        Returns "" if no commit touched the path (a new document).

        Args:
            path: Path relative to the repository root
        """
        repo_path = PurePosixPath(path).as_posix()
        with self.lock:
            if not self.has_commits():
                logger.info(f"No commits for file path {repo_path}")
                return ""

            result = self._git("log", "-n1", "--format=%H", "--", repo_path)
            commit_id = result.stdout.strip()
            if not commit_id:
                logger.info(f"No commits for file path {repo_path}")
            return commit_id

    def history(
        self,
        path: Optional[RepoPath] = None,
        limit: int = 20,
    ) -> list[CommitInfo]:
        """
        Get commit history, newest first.

        Args:
            path: Restrict to commits touching this path
            limit: Maximum commits to return
        """
        with self.lock:
            if not self.has_commits():
                return []

            # Format: hash|short|author|email|date|subject
            format_str = "%H|%h|%an|%ae|%aI|%s"
            args = ["log", f"--format={format_str}", f"-n{limit}"]
            if path is not None:
                args.extend(["--", PurePosixPath(path).as_posix()])

            result = self._git(*args)

        commits = []
        for line in result.stdout.strip().split("\n"):
            if not line:
                continue

            parts = line.split("|", 5)
            if len(parts) < 6:
                continue

            try:
                commits.append(CommitInfo(
                    hash=parts[0],
                    short_hash=parts[1],
                    author=parts[2],
                    email=parts[3],
                    date=datetime.fromisoformat(parts[4]),
                    message=parts[5],
                ))
            except ValueError as e:
                logger.warning(f"Failed to parse commit: {e}")

        return commits

    def show(self, path: RepoPath, revision: str = "HEAD") -> Optional[bytes]:
        """
        Get file contents at a revision.

        Returns:
            File bytes, or None if the path does not exist at that revision
        """
        repo_path = PurePosixPath(path).as_posix()
        with self.lock:
            result = self._git("show", f"{revision}:{repo_path}", check=False, text=False)
        if result.returncode != 0:
            return None
        return result.stdout

    # === Local mutations ===

    def stage(self, path: RepoPath) -> None:
        """Equivalent to ``git add <path>``."""
        with self.lock:
            self._git("add", "--", PurePosixPath(path).as_posix())

    def commit(
        self,
        message: str,
        author_name: str = DEFAULT_AUTHOR_NAME,
        author_email: str = DEFAULT_AUTHOR_EMAIL,
    ) -> str:
        """
        Commit the staged changes.

        Returns:
            The new commit ID

        Raises:
            RepositoryError: If nothing is staged or git refuses the commit
        """
        with self.lock:
            result = self._git("diff", "--cached", "--quiet", check=False)
            if result.returncode == 0:
                raise RepositoryError("Could not commit: no staged changes")

            self._git(
                "commit", "-q",
                "-m", message,
                f"--author={author_name} <{author_email}>",
            )
            commit_id = self.head()

        logger.info(f"Committed: {commit_id[:8]} - {message.split(chr(10))[0]}")
        return commit_id

    def restore_path(self, path: RepoPath) -> None:
        """
        Drop uncommitted changes to one path, staged or not.

        A path unknown to HEAD is removed from the index and the disk.
        """
        repo_path = PurePosixPath(path).as_posix()
        with self.lock:
            in_head = self.has_commits() and self._git(
                "cat-file", "-e", f"HEAD:{repo_path}", check=False
            ).returncode == 0

            if in_head:
                self._git("checkout", "-q", "HEAD", "--", repo_path)
            else:
                self._git("rm", "-q", "--cached", "--ignore-unmatch", "--", repo_path)
                (self.local_path / repo_path).unlink(missing_ok=True)

        logger.info(f"Restored {repo_path} to HEAD")

    def reset_to(self, commit_id: str) -> None:
        """
        Move the branch back to ``commit_id``, dropping later commits and
        any merge in progress. Equivalent to ``git reset --hard <commit_id>``.

        An empty commit_id returns the branch to unborn with an empty index;
        files that were committed since stay on disk untracked.
        """
        with self.lock:
            if commit_id:
                self._git("reset", "-q", "--hard", commit_id)
            elif self.has_commits():
                self._git("update-ref", "-d", "HEAD")
                self._git("read-tree", "--empty")

        logger.warning(f"Reset {self.branch} to {commit_id[:8] or '(no commits)'}")

    # === Remote operations ===

    def _fetch(self) -> bool:
        """
        Fetch the tracked branch into its remote-tracking ref.

        Returns:
            False if the remote has no such branch (e.g. no commits yet)

        Raises:
            TransportError: If the remote cannot be reached
        """
        result = self._git(
            "fetch", "--quiet", "--no-tags",
            self.remote, f"+refs/heads/{self.branch}:{self.tracking_ref}",
            check=False,
            timeout=self.timeout,
            error_type=TransportError,
        )
        if result.returncode == 0:
            return True

        stderr = stderr_text(result)
        # Requires the C locale set by git_env()
        if "couldn't find remote ref" in stderr.lower():
            return False

        raise TransportError(
            f"Could not fetch {self.branch} from {self.remote}: {stderr}",
            command=["git", "fetch", self.remote, self.branch],
            stderr=stderr,
        )

    @timed("sync")
    def sync(self) -> SyncResult:
        """
        Fetch from the remote and merge it into the local branch.

        Clean merges (fast-forward, or a merge commit when different files
        changed) give merged=True. If the merge conflicts, every local commit
        not yet on the remote is discarded; equivalent to:

            git reset --hard <remote>/<branch>

        and merged=False. A remote without the branch gives merged=False,
        remote_missing=True and leaves the local branch alone.

        Raises:
            TransportError: If the fetch fails for any other reason
            RepositoryError: If the merge or reset fails
        """
        with self.lock:
            if not self._fetch():
                logger.warning(
                    f"Could not sync {self.remote}/{self.branch}, "
                    "possibly due to the remote repo being empty (no commits)"
                )
                return SyncResult(merged=False, remote_missing=True, head=self.head())

            outcome = self.merge_engine.merge(
                self.local_path, self.tracking_ref, timeout=self.timeout
            )
            if outcome.merged:
                head = self.head()
                logger.debug(f"Synced {self.name} to {head[:8]}")
                return SyncResult(merged=True, head=head)

            logger.warning(
                "Git sync resulted in merge conflict(s). "
                f"Discarding local changes in the following files: {outcome.conflicts}"
            )
            self._git("reset", "-q", "--hard", self.tracking_ref)
            return SyncResult(merged=False, conflicts=outcome.conflicts, head=self.head())

    @timed("push")
    def push(self) -> None:
        """
        Push the branch to the remote atomically.

        Equivalent to ``git push --atomic <remote> HEAD:refs/heads/<branch>``.

        Raises:
            RepositoryError: If any ref update is rejected, even when
                others were accepted
            TransportError: If the remote cannot be reached
        """
        with self.lock:
            if not self.has_commits():
                raise RepositoryError("Could not push: branch has no commits")

            result = self._git(
                "push", "--atomic", "--porcelain",
                self.remote, f"HEAD:refs/heads/{self.branch}",
                check=False,
                timeout=self.timeout,
                error_type=TransportError,
            )

        statuses = parse_push_porcelain(result.stdout)
        rejected = {ref: summary for flag, ref, summary in statuses if flag == "!"}
        if rejected:
            raise RepositoryError(
                f"Problems pushing to remote: {rejected}",
                command=["git", "push", self.remote, self.branch],
                stderr=stderr_text(result),
            )

        if result.returncode != 0:
            stderr = stderr_text(result)
            raise TransportError(
                f"Could not push to {self.remote}: {stderr}",
                command=["git", "push", self.remote, self.branch],
                stderr=stderr,
            )

        logger.info(f"Pushed {self.branch} to {self.remote}: {[s for _, _, s in statuses]}")


def parse_push_porcelain(output: str) -> list[tuple[str, str, str]]:
    """
    Parse ``git push --porcelain`` output.

    Each ref line is ``<flag>\\t<from>:<to>\\t<summary>``. Flags: space
    (fast-forward), ``+`` (forced), ``-`` (deleted), ``*`` (new),
    ``=`` (up to date), ``!`` (rejected).

    Returns:
        List of (flag, "<from>:<to>", summary) tuples
    """
    statuses = []
    for line in output.splitlines():
        if len(line) < 2 or line[1] != "\t":
            continue
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        statuses.append((parts[0], parts[1], parts[2]))
    return statuses
