"""Subprocess wrapper around the git binary."""
import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

from ..errors import RepositoryError

logger = logging.getLogger(__name__)

# Used for merge commits and as the fallback author when none is given
DEFAULT_AUTHOR_NAME = "Configkeeper"
DEFAULT_AUTHOR_EMAIL = "configkeeper@local"


def git_env() -> dict[str, str]:
    """Environment for git subprocesses.

    Prompts are disabled so a missing credential fails fast instead of
    blocking on stdin. Messages are kept untranslated because callers match
    on stderr text. Author and committer identity fall back to the
    placeholder when the host has none configured.
    """
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["LC_ALL"] = "C"
    env["LANGUAGE"] = "C"
    env.setdefault("GIT_AUTHOR_NAME", DEFAULT_AUTHOR_NAME)
    env.setdefault("GIT_AUTHOR_EMAIL", DEFAULT_AUTHOR_EMAIL)
    env.setdefault("GIT_COMMITTER_NAME", DEFAULT_AUTHOR_NAME)
    env.setdefault("GIT_COMMITTER_EMAIL", DEFAULT_AUTHOR_EMAIL)
    return env


def run_git(
    repo_path: Path,
    *args: str,
    check: bool = True,
    timeout: Optional[float] = None,
    text: bool = True,
    error_type: type[RepositoryError] = RepositoryError,
) -> subprocess.CompletedProcess:
    """Run a git command in ``repo_path``.

    Args:
        repo_path: Working tree to run in (passed as ``git -C``)
        *args: git arguments
        check: Raise on a non-zero exit
        timeout: Seconds before the command is killed
        text: Decode stdout/stderr as text
        error_type: Exception class raised on failure or timeout

    Raises:
        RepositoryError: On non-zero exit (when check is set) or timeout
    """
    cmd = ["git", "-C", str(repo_path)] + list(args)
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=text,
            check=False,  # We'll handle errors ourselves
            timeout=timeout,
            env=git_env(),
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"Git command timed out after {timeout}s: {' '.join(args)}")
        raise error_type(
            f"git {args[0]} timed out after {timeout}s", command=cmd
        ) from e
    except OSError as e:
        raise RepositoryError(f"Could not run git: {e}", command=cmd) from e

    if check and result.returncode != 0:
        stderr = stderr_text(result)
        logger.error(f"Git command failed: {stderr}")
        raise error_type(
            f"git {args[0]} failed: {stderr}", command=cmd, stderr=stderr
        )

    return result


def stderr_text(result: subprocess.CompletedProcess) -> str:
    """Return stderr of a finished command as stripped text."""
    stderr = result.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return (stderr or "").strip()
