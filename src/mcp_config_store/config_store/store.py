"""Configuration Store for named documents kept in a git repository.

Handles:
- Mapping a document type to a file in the working copy
- Loads that pick up upstream changes first
- Saves guarded by an optimistic-concurrency fingerprint
- Publishing each save (commit, merge with upstream, push)
"""
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from ..errors import (
    ConflictError,
    NotFoundError,
    RepositoryError,
    SyncConflictError,
)
from ..git import CommitInfo, RepositoryClient, SyncResult
from ..utils.logging_config import timed
from .identity import identity_for_user

logger = logging.getLogger(__name__)


@dataclass
class ConfigDocument:
    """A document as read from the working copy."""
    type: str
    content: bytes
    fingerprint: str  # ID of the latest commit touching the document's path
    path: str = ""  # path relative to the repository root


class ConfigStore:
    """
    Load and save configuration documents by type.

    A document of type ``network`` lives at ``<config_path>/network.<extension>``
    in the repository. Every load and save holds the repository lock for its
    whole duration, so one pipeline runs at a time per repository.
    """

    def __init__(
        self,
        client: RepositoryClient,
        config_path: str = "config",
        extension: str = "yaml",
        email_domain: str = "example.com",
    ):
        """
        Initialize the config store.

        Args:
            client: Repository holding the documents
            config_path: Sub-path of the repository containing documents
            extension: File extension of documents, without the dot
            email_domain: Domain used for author emails
        """
        self.client = client
        self.config_path = PurePosixPath(config_path)
        self.extension = extension.lstrip(".")
        self.email_domain = email_domain

    @property
    def name(self) -> str:
        return self.client.name

    @property
    def config_dir(self) -> Path:
        """Directory of documents in the working copy."""
        return self.client.local_path / self.config_path

    def repo_path_for(self, doc_type: str) -> PurePosixPath:
        """Path of a document relative to the repository root."""
        if not doc_type or "/" in doc_type or "\\" in doc_type or doc_type.startswith("."):
            raise ValueError(f"Invalid config type: {doc_type!r}")
        return self.config_path / f"{doc_type}.{self.extension}"

    def full_path_for(self, doc_type: str) -> Path:
        return self.client.local_path / self.repo_path_for(doc_type)

    # === Read ===

    @timed("load")
    def load(self, doc_type: str) -> ConfigDocument:
        """
        Sync with the remote and read a document.

        Raises:
            NotFoundError: If no document of this type exists
            TransportError: If the remote cannot be reached
        """
        repo_path = self.repo_path_for(doc_type)
        full_path = self.full_path_for(doc_type)

        with self.client.lock:
            self.client.sync()

            if not full_path.is_file():
                raise NotFoundError(f"config {doc_type} not found on path {repo_path}")

            fingerprint = self.client.fingerprint_for_path(repo_path)
            try:
                content = full_path.read_bytes()
            except OSError as e:
                raise RepositoryError(
                    f"Could not read config of type {doc_type} from path {full_path}: {e}"
                ) from e

        return ConfigDocument(
            type=doc_type,
            content=content,
            fingerprint=fingerprint,
            path=repo_path.as_posix(),
        )

    def list_types(self) -> list[str]:
        """List document types present in the working copy, sorted."""
        with self.client.lock:
            if not self.config_dir.is_dir():
                return []
            return sorted(p.stem for p in self.config_dir.glob(f"*.{self.extension}"))

    def history(self, doc_type: str, limit: int = 20) -> list[CommitInfo]:
        """Commits that touched a document, newest first."""
        return self.client.history(self.repo_path_for(doc_type), limit=limit)

    def load_at_revision(self, doc_type: str, revision: str) -> bytes:
        """
        Read a document as it was at a revision.

        Raises:
            NotFoundError: If the document does not exist at that revision
        """
        content = self.client.show(self.repo_path_for(doc_type), revision)
        if content is None:
            raise NotFoundError(f"config {doc_type} not found at revision {revision}")
        return content

    # === Write ===

    @timed("save")
    def save(
        self,
        doc_type: str,
        content: bytes,
        base_fingerprint: str = "",
        author: Optional[str] = None,
    ) -> str:
        """
        Save a document and publish it to the remote.

        Args:
            doc_type: Document type
            content: New document bytes
            base_fingerprint: Fingerprint returned by the load this edit is
                based on. Empty means "new document", no conflict check.
            author: Username of the editor (placeholder identity if None)

        Returns:
            The document's fingerprint after the save

        Raises:
            ConflictError: The document changed since base_fingerprint.
                Nothing was written.
            SyncConflictError: The commit collided with a remote change and
                was discarded. Load again and retry.
            RepositoryError: Commit, sync or push failed (TransportError when
                the remote was unreachable). A failed commit or sync is rolled
                back. After a push failure the local commit is kept and goes
                out with the next successful push.
        """
        repo_path = self.repo_path_for(doc_type)
        full_path = self.full_path_for(doc_type)

        with self.client.lock:
            current = self.client.fingerprint_for_path(repo_path)
            if current and current != base_fingerprint:
                raise ConflictError(
                    f"Incoming change for config {repo_path} is based on commit ID "
                    f"{base_fingerprint or '(none)'} but most recent commit ID is {current}",
                    current=current,
                    base=base_fingerprint,
                )

            if current and full_path.is_file() and full_path.read_bytes() == content:
                logger.info(f"Config {doc_type} unchanged, nothing to commit")
                return current

            previous_head = self.client.head()
            try:
                full_path.parent.mkdir(parents=True, exist_ok=True)
                full_path.write_bytes(content)
            except OSError as e:
                raise RepositoryError(
                    f"Could not write config of type {doc_type} to file at path {full_path}: {e}"
                ) from e

            identity = identity_for_user(author, self.email_domain)
            try:
                self.client.stage(repo_path)
                self.client.commit(
                    f"Update {doc_type} configuration", identity.name, identity.email
                )
            except RepositoryError:
                self.client.restore_path(repo_path)
                raise

            logger.info("Pushing changes to config repo")
            try:
                result: SyncResult = self.client.sync()
            except RepositoryError:
                # A save that cannot reach the remote leaves the branch where it was
                self.client.reset_to(previous_head)
                if not previous_head:
                    full_path.unlink(missing_ok=True)
                raise
            if result.discarded:
                raise SyncConflictError(
                    f"Conflicting edits of config type {doc_type} detected, discarding changes.",
                    conflicts=result.conflicts,
                )

            try:
                self.client.push()
            except RepositoryError as e:
                logger.error(
                    f"Push of config {doc_type} failed, local commit kept "
                    f"until the next successful push: {e}"
                )
                raise

            fingerprint = self.client.fingerprint_for_path(repo_path)

        logger.info(f"Saved config {doc_type} as {fingerprint[:8]} by {identity.name}")
        return fingerprint

    def sync(self) -> SyncResult:
        """Pick up out-of-band remote changes."""
        with self.client.lock:
            return self.client.sync()
