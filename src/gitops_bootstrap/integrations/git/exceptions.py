"""Git integration exceptions.

Messages are built from redacted text only: credential values and URL
userinfo never appear in ``str(error)``.
"""

from __future__ import annotations

import re

_USERINFO = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")
_AUTH_HEADER = re.compile(r"(Authorization:\s*\w+\s+)\S+", re.IGNORECASE)


def redact(text: str) -> str:
    """Strip URL userinfo and HTTP authorization values from ``text``."""
    text = _USERINFO.sub(r"\g<scheme>***@", text)
    return _AUTH_HEADER.sub(r"\1***", text)


class GitError(Exception):
    """Base exception for GitOps repository operations.

    Attributes:
        message: Human-readable, redacted error message.
        url: Redacted remote URL, if known.
        details: Redacted git stderr or underlying error text.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: str | None = None,
    ) -> None:
        self.message = redact(message)
        self.url = redact(url) if url else None
        self.details = redact(details).strip() if details else None
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.url:
            parts.append(f"[{self.url}]")
        if self.details:
            parts.append(f": {self.details}")
        return " ".join(parts)


class GitAuthError(GitError):
    """Credentials are missing, malformed, or rejected by the remote."""


class GitCloneError(GitError):
    """Cloning (or initialising against an empty remote) failed."""


class GitPullError(GitError):
    """Updating an existing clone from the remote failed."""


class GitPushError(GitError):
    """Committing or pushing to the remote failed (conflict or auth)."""
