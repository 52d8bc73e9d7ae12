"""Tests for settings loading."""
from pathlib import Path

import pytest

from mcp_config_store.config import Settings, find_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CONFIGKEEPER_CONFIG",
        "CONFIGKEEPER_REPO_URL",
        "CONFIGKEEPER_REPO_REMOTE",
        "CONFIGKEEPER_REPO_BRANCH",
        "CONFIGKEEPER_REPO_TIMEOUT",
        "CONFIGKEEPER_LOCAL_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    """Tests for Settings.from_dict and Settings.load."""

    def test_defaults(self):
        settings = Settings.from_dict({"repository": {"url": "https://git.example.com/cfg.git"}})

        assert settings.repository.remote == "origin"
        assert settings.repository.branch == "main"
        assert settings.repository.timeout == 30
        assert settings.paths.config == "config"
        assert settings.paths.extension == "yaml"
        assert settings.validate_on_save is True
        assert settings.email_domain == "example.com"
        assert settings.startup_retries == 3

    def test_load_yaml(self, tmp_path):
        config_file = tmp_path / "configkeeper.yaml"
        config_file.write_text(
            "repository:\n"
            "  url: /srv/git/cfg.git\n"
            "  branch: prod\n"
            "  timeout: 5\n"
            f"  local_path: {tmp_path / 'clone'}\n"
            "paths:\n"
            "  config: etc\n"
            "  extension: .json\n"
            "validation:\n"
            "  server: false\n"
            "identity:\n"
            "  email_domain: corp.example\n"
        )

        settings = Settings.load(str(config_file))

        assert settings.source == str(config_file)
        assert settings.repository.url == "/srv/git/cfg.git"
        assert settings.repository.branch == "prod"
        assert settings.repository.timeout == 5.0
        assert settings.repository.local_path == tmp_path / "clone"
        assert settings.paths.config == "etc"
        assert settings.paths.extension == "json"
        assert settings.validate_on_save is False
        assert settings.email_domain == "corp.example"
        assert settings.schemas_dir == tmp_path / "clone" / "schemas"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "configkeeper.yaml"
        config_file.write_text("repository:\n  url: /srv/git/cfg.git\n  branch: prod\n")
        monkeypatch.setenv("CONFIGKEEPER_REPO_BRANCH", "staging")
        monkeypatch.setenv("CONFIGKEEPER_REPO_TIMEOUT", "12")

        settings = Settings.load(str(config_file))

        assert settings.repository.branch == "staging"
        assert settings.repository.timeout == 12.0

    def test_env_only(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("CONFIGKEEPER_REPO_URL", "/srv/git/cfg.git")
        monkeypatch.setenv("CONFIGKEEPER_LOCAL_PATH", str(tmp_path / "clone"))

        settings = Settings.load()

        assert settings.repository.url == "/srv/git/cfg.git"
        assert settings.repository.local_path == tmp_path / "clone"

    def test_missing_url(self):
        with pytest.raises(ValueError, match="repository.url"):
            Settings.from_dict({"repository": {"branch": "main"}})

    @pytest.mark.parametrize("timeout", [0, -1, "soon"])
    def test_bad_timeout(self, timeout):
        with pytest.raises(ValueError):
            Settings.from_dict({"repository": {"url": "x", "timeout": timeout}})

    def test_bad_retries(self):
        with pytest.raises(ValueError, match="retries"):
            Settings.from_dict({"repository": {"url": "x"}, "startup": {"retries": 0}})


class TestFindConfig:
    """Tests for config file discovery."""

    def test_env_variable_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONFIGKEEPER_CONFIG", "/elsewhere/configkeeper.yaml")

        assert find_config() == "/elsewhere/configkeeper.yaml"

    def test_current_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "configkeeper.yaml").write_text("repository: {}\n")

        assert Path(find_config()) == tmp_path / "configkeeper.yaml"
