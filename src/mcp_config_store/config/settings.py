"""Settings loaded from configkeeper.yaml and CONFIGKEEPER_* environment variables."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_PATH = Path.home() / ".configkeeper" / "repo"

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "CONFIGKEEPER_REPO_URL": ("repository", "url"),
    "CONFIGKEEPER_REPO_REMOTE": ("repository", "remote"),
    "CONFIGKEEPER_REPO_BRANCH": ("repository", "branch"),
    "CONFIGKEEPER_REPO_TIMEOUT": ("repository", "timeout"),
    "CONFIGKEEPER_LOCAL_PATH": ("repository", "local_path"),
}


@dataclass
class RepositorySettings:
    """Where the configuration repository lives."""
    url: str
    remote: str = "origin"
    branch: str = "main"
    timeout: float = 30
    local_path: Path = DEFAULT_LOCAL_PATH


@dataclass
class PathSettings:
    """Layout of documents and schemas inside the repository."""
    config: str = "config"
    schemas: str = "schemas"
    extension: str = "yaml"


@dataclass
class Settings:
    """Complete configkeeper settings.

    ```yaml
    repository:
      url: https://git.example.com/ops/config.git
      remote: origin
      branch: main
      timeout: 30
      local_path: ~/.configkeeper/repo
    paths:
      config: config
      schemas: schemas
      extension: yaml
    validation:
      server: true
    identity:
      email_domain: example.com
    startup:
      retries: 3
    ```
    """
    repository: RepositorySettings
    paths: PathSettings = field(default_factory=PathSettings)
    validate_on_save: bool = True
    email_domain: str = "example.com"
    startup_retries: int = 3
    source: Optional[str] = None  # file the settings were read from

    @property
    def schemas_dir(self) -> Path:
        return self.repository.local_path / self.paths.schemas

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: Optional[str] = None) -> "Settings":
        """
        Build settings from a parsed YAML mapping.

        Raises:
            ValueError: If the URL is missing or a number is out of range
        """
        repo = dict(data.get("repository") or {})
        paths = dict(data.get("paths") or {})
        validation = data.get("validation") or {}
        identity = data.get("identity") or {}
        startup = data.get("startup") or {}

        if not repo.get("url"):
            raise ValueError("repository.url is required (or set CONFIGKEEPER_REPO_URL)")

        try:
            timeout = float(repo.get("timeout", 30))
            retries = int(startup.get("retries", 3))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid numeric setting: {e}") from e
        if timeout <= 0:
            raise ValueError(f"repository.timeout must be positive, got {timeout}")
        if retries < 1:
            raise ValueError(f"startup.retries must be at least 1, got {retries}")

        local_path = Path(str(repo.get("local_path", DEFAULT_LOCAL_PATH))).expanduser()

        return cls(
            repository=RepositorySettings(
                url=str(repo["url"]),
                remote=str(repo.get("remote", "origin")),
                branch=str(repo.get("branch", "main")),
                timeout=timeout,
                local_path=local_path,
            ),
            paths=PathSettings(
                config=str(paths.get("config", "config")),
                schemas=str(paths.get("schemas", "schemas")),
                extension=str(paths.get("extension", "yaml")).lstrip("."),
            ),
            validate_on_save=bool(validation.get("server", True)),
            email_domain=str(identity.get("email_domain", "example.com")),
            startup_retries=retries,
            source=source,
        )

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Settings":
        """
        Load settings from a YAML file and the environment.

        Environment variables override file values. Without a file, the
        environment alone must provide the repository URL.
        """
        path = config_path or find_config()
        data: dict[str, Any] = {}
        if path:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded settings from {path}")

        apply_env_overrides(data)
        return cls.from_dict(data, source=path)


def find_config() -> Optional[str]:
    """Find configkeeper.yaml, or None if there is none."""
    env_path = os.environ.get("CONFIGKEEPER_CONFIG")
    if env_path:
        return env_path

    search_paths = [
        Path.cwd() / "configkeeper.yaml",
        Path.cwd() / "configs" / "configkeeper.yaml",
        Path.home() / ".config" / "configkeeper" / "configkeeper.yaml",
        Path("/etc/configkeeper/configkeeper.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return str(path)

    return None


def apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay CONFIGKEEPER_* environment variables onto parsed settings."""
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})
            if data[section] is None:
                data[section] = {}
            data[section][key] = value
