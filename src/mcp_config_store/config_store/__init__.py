"""Configuration Store package for git-backed configuration documents.

This package provides:
- ConfigStore: load/save of named documents with optimistic concurrency
- ConfigDocument: document bytes plus fingerprint
- AuthorIdentity / identity_for_user: commit author mapping

Repository layout managed:
    <local_path>/
    ├── config/            # one <type>.yaml per document
    └── schemas/           # one <type>.json JSON Schema per document type
"""

from .store import ConfigStore, ConfigDocument
from .identity import AuthorIdentity, identity_for_user, PLACEHOLDER_IDENTITY

__all__ = [
    "ConfigStore",
    "ConfigDocument",
    "AuthorIdentity",
    "identity_for_user",
    "PLACEHOLDER_IDENTITY",
]
