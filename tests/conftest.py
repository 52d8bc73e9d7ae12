"""Shared fixtures: bare remotes and clones built with the git binary."""
import os
import subprocess
from pathlib import Path
from typing import Callable, Optional

import pytest

from mcp_config_store.config_store import ConfigStore
from mcp_config_store.git import RepositoryClient

GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "Seeder",
    "GIT_AUTHOR_EMAIL": "seeder@test",
    "GIT_COMMITTER_NAME": "Seeder",
    "GIT_COMMITTER_EMAIL": "seeder@test",
    "GIT_TERMINAL_PROMPT": "0",
}

NETWORK_YAML = b"vlans:\n  - id: 100\n    name: office\n"

NETWORK_SCHEMA = b"""{
  "type": "object",
  "properties": {
    "vlans": {
      "type": "array",
      "items": {
        "type": "object",
        "properties": {
          "id": {"type": "integer"},
          "name": {"type": "string"}
        },
        "required": ["id"]
      }
    }
  },
  "required": ["vlans"]
}
"""


def git(cwd: Path, *args: str, check: bool = True) -> str:
    """Run git in cwd and return stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=check,
        env=GIT_ENV,
    )
    return result.stdout.strip()


def write(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def seed_remote(remote: Path, files: dict[str, bytes], workdir: Path, message: str = "Seed") -> str:
    """Commit files to the remote's main branch through a scratch clone.

    Returns:
        The new remote tip
    """
    if workdir.exists():
        git(workdir, "pull", "-q", "origin", "main")
    else:
        workdir.mkdir(parents=True)
        git(workdir, "init", "-q", "--initial-branch=main")
        git(workdir, "remote", "add", "origin", str(remote))
        if git(remote, "rev-parse", "--verify", "-q", "refs/heads/main", check=False):
            git(workdir, "pull", "-q", "origin", "main")

    for name, content in files.items():
        write(workdir / name, content)
    git(workdir, "add", "-A")
    git(workdir, "commit", "-q", "-m", message)
    git(workdir, "push", "-q", "origin", "HEAD:refs/heads/main")
    return git(workdir, "rev-parse", "HEAD")


def remote_tip(remote: Path) -> str:
    return git(remote, "rev-parse", "refs/heads/main")


def remote_file(remote: Path, path: str) -> Optional[str]:
    result = subprocess.run(
        ["git", "show", f"main:{path}"],
        cwd=remote, capture_output=True, text=True, env=GIT_ENV,
    )
    return result.stdout if result.returncode == 0 else None


@pytest.fixture
def empty_remote(tmp_path) -> Path:
    """A bare repository with no commits."""
    remote = tmp_path / "origin.git"
    remote.mkdir()
    git(remote, "init", "-q", "--bare", "--initial-branch=main")
    return remote


@pytest.fixture
def seeded_remote(tmp_path, empty_remote) -> Path:
    """A bare repository holding one document and its schema."""
    seed_remote(
        empty_remote,
        {
            "config/network.yaml": NETWORK_YAML,
            "schemas/network.json": NETWORK_SCHEMA,
        },
        tmp_path / "seeder",
        message="Initial config",
    )
    return empty_remote


@pytest.fixture
def make_client(tmp_path) -> Callable[..., RepositoryClient]:
    """Factory for ready RepositoryClients cloned from a remote."""
    def _make(remote: Path, name: str, ready: bool = True) -> RepositoryClient:
        client = RepositoryClient(url=str(remote), local_path=tmp_path / name, timeout=30)
        if ready:
            client.ensure_ready()
        return client
    return _make


@pytest.fixture
def make_store(make_client) -> Callable[..., ConfigStore]:
    """Factory for ConfigStores on fresh clones."""
    def _make(remote: Path, name: str) -> ConfigStore:
        return ConfigStore(make_client(remote, name))
    return _make
