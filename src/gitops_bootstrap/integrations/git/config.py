"""GitOps repository configuration models.

Secrets are never stored in configuration: the models only name the
environment variables that hold them.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DEFAULT_BRANCH = "main"


class GitAuthConfig(BaseModel):
    """Credential source for git operations.

    Exactly one of ``ssh_key_env`` (PEM/OpenSSH private key) or
    ``token_env`` (personal access token for HTTPS) must be set.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    ssh_key_env: str | None = None
    token_env: str | None = None

    @model_validator(mode="after")
    def validate_single_source(self) -> GitAuthConfig:
        """Reject configurations with both or neither credential source."""
        if not self.ssh_key_env and not self.token_env:
            raise ValueError("ssh_key_env or token_env is required")
        if self.ssh_key_env and self.token_env:
            raise ValueError("only one of ssh_key_env or token_env should be set, not both")
        return self

    @property
    def auth_type(self) -> Literal["ssh", "token"]:
        return "ssh" if self.ssh_key_env else "token"

    @property
    def env_var(self) -> str:
        """Name of the environment variable holding the secret."""
        return self.ssh_key_env or self.token_env or ""


class GitRepositoryConfig(BaseModel):
    """Remote repository the bootstrap writes its manifests to."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str
    branch: str = DEFAULT_BRANCH
    path: str = ""
    auth: GitAuthConfig
    # Read-only credentials handed to the GitOps controller; falls back to auth
    argocd_auth: GitAuthConfig | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("git repository url is required")
        return v

    @field_validator("branch")
    @classmethod
    def validate_branch(cls, v: str) -> str:
        v = v.strip() or DEFAULT_BRANCH
        if v.startswith("-") or " " in v or ".." in v:
            raise ValueError(f"invalid branch name: {v!r}")
        return v

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Normalise the sub-path and keep it inside the repository."""
        v = v.strip().strip("/")
        if not v:
            return ""
        pure = PurePosixPath(v)
        if pure.is_absolute() or ".." in pure.parts:
            raise ValueError("path must be relative and stay inside the repository")
        return str(pure)

    def get_argocd_auth(self) -> GitAuthConfig:
        """Credentials for the in-cluster controller."""
        return self.argocd_auth or self.auth
