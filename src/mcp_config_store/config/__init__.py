"""Settings for the configuration repository and the server."""
from .settings import Settings, RepositorySettings, PathSettings, find_config

__all__ = ["Settings", "RepositorySettings", "PathSettings", "find_config"]
