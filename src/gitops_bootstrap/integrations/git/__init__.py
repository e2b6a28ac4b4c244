"""Git integration: configuration, credentials and the GitOps repository handle."""

from gitops_bootstrap.integrations.git.config import (
    DEFAULT_BRANCH,
    GitAuthConfig,
    GitRepositoryConfig,
)
from gitops_bootstrap.integrations.git.credentials import (
    CredentialProvider,
    EnvCredentialProvider,
    GitCredential,
    SSHKeyCredential,
    TokenCredential,
)
from gitops_bootstrap.integrations.git.exceptions import (
    GitAuthError,
    GitCloneError,
    GitError,
    GitPullError,
    GitPushError,
)
from gitops_bootstrap.integrations.git.repository import (
    COMMIT_AUTHOR_EMAIL,
    COMMIT_AUTHOR_NAME,
    MARKER_FILE,
    GitOpsRepository,
)

__all__ = [
    "COMMIT_AUTHOR_EMAIL",
    "COMMIT_AUTHOR_NAME",
    "DEFAULT_BRANCH",
    "MARKER_FILE",
    "CredentialProvider",
    "EnvCredentialProvider",
    "GitAuthConfig",
    "GitAuthError",
    "GitCloneError",
    "GitCredential",
    "GitError",
    "GitOpsRepository",
    "GitPullError",
    "GitPushError",
    "GitRepositoryConfig",
    "SSHKeyCredential",
    "TokenCredential",
]
