"""Mapping from an authenticated username to a git author identity."""
from dataclasses import dataclass
from typing import Optional

from ..git.command import DEFAULT_AUTHOR_EMAIL, DEFAULT_AUTHOR_NAME


@dataclass(frozen=True)
class AuthorIdentity:
    """Name and email written into the author block of a commit."""
    name: str
    email: str


PLACEHOLDER_IDENTITY = AuthorIdentity(DEFAULT_AUTHOR_NAME, DEFAULT_AUTHOR_EMAIL)


def identity_for_user(
    username: Optional[str],
    email_domain: str = "example.com",
) -> AuthorIdentity:
    """
    Derive a commit author from a username.

    ``alice`` becomes ``Alice <alice@example.com>``. No username (None or
    empty) maps to the placeholder identity.
    """
    if not username:
        return PLACEHOLDER_IDENTITY
    return AuthorIdentity(
        name=username[:1].upper() + username[1:],
        email=f"{username}@{email_domain}",
    )
