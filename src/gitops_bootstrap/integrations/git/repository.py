"""Git-backed GitOps configuration repository.

A :class:`GitOpsRepository` owns one private clone of the remote for the
duration of a bootstrap run. It is a single-writer handle: concurrent
use from several threads, or several handles pushing to the same remote
branch, is not supported. A rejected push must be re-pulled and retried
by the caller.
"""

from __future__ import annotations

import shutil
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import git
import structlog
from git.exc import GitCommandError

from gitops_bootstrap.core.exceptions import raise_if_cancelled
from gitops_bootstrap.integrations.git.config import GitRepositoryConfig
from gitops_bootstrap.integrations.git.credentials import (
    CredentialProvider,
    EnvCredentialProvider,
    GitCredential,
)
from gitops_bootstrap.integrations.git.exceptions import (
    GitAuthError,
    GitCloneError,
    GitError,
    GitPullError,
    GitPushError,
)

logger = structlog.get_logger()

MARKER_FILE = ".bootstrapped"
TEMP_DIR_PREFIX = "gitops-bootstrap-"
REMOTE_NAME = "origin"

COMMIT_AUTHOR_NAME = "gitops-bootstrap"
COMMIT_AUTHOR_EMAIL = "gitops-bootstrap@noreply.local"

_AUTH_FAILURE_HINTS = (
    "authentication failed",
    "permission denied",
    "could not read username",
    "could not read from remote repository",
    "invalid username or password",
    "403",
    "401",
)


def _stderr(error: GitCommandError) -> str:
    text = error.stderr or error.stdout or ""
    if isinstance(text, bytes):
        text = text.decode(errors="replace")
    return text.strip()


def _looks_like_auth_failure(details: str) -> bool:
    lowered = details.lower()
    return any(hint in lowered for hint in _AUTH_FAILURE_HINTS)


class GitOpsRepository:
    """Idempotent clone-or-pull, marker-gated, change-detecting commit-and-push.

    Example:
        ```python
        with GitOpsRepository(config) as repo:
            repo.validate_auth()
            repo.init()
            if not repo.is_bootstrapped():
                write_manifests(repo.work_dir)
                repo.write_bootstrap_marker()
                repo.commit_and_push("Bootstrap foundational applications")
        ```
    """

    def __init__(
        self,
        config: GitRepositoryConfig,
        credentials: CredentialProvider | None = None,
    ) -> None:
        """Initialize the handle. No network or filesystem access happens here.

        Args:
            config: Remote URL, branch, sub-path and auth source.
            credentials: Credential provider; defaults to reading the
                environment variable named by ``config.auth``.
        """
        self.config = config
        self._credentials = credentials or EnvCredentialProvider(config.auth)
        self._credential: GitCredential | None = None

        self._temp_dir: Path | None = None
        self._repo: git.Repo | None = None
        self._remote_has_branch = False
        self._unpushed = False
        self._log = logger.bind(entity="gitops_repository", branch=config.branch)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def url(self) -> str:
        return self.config.url

    @property
    def branch(self) -> str:
        return self.config.branch

    @property
    def cloned(self) -> bool:
        return self._repo is not None

    @property
    def repo_root(self) -> Path:
        """Root of the local working tree.

        Raises:
            GitError: If the repository has not been initialized.
        """
        if self._repo is None or self._temp_dir is None:
            raise GitError("repository not initialized; call init() first", url=self.url)
        return self._temp_dir / "repo"

    @property
    def work_dir(self) -> Path:
        """Working-tree directory all writes are scoped to (root or sub-path)."""
        root = self.repo_root
        return root / self.config.path if self.config.path else root

    # =========================================================================
    # Credentials
    # =========================================================================

    def _ensure_temp_dir(self) -> Path:
        if self._temp_dir is None:
            self._temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX))
            (self._temp_dir / "credentials").mkdir(mode=0o700)
            self._log.debug("created_temp_dir", path=str(self._temp_dir))
        return self._temp_dir

    def _git_env(self) -> dict[str, str]:
        """Environment for git subprocesses, resolving credentials on first use."""
        credential = self.credential()
        scratch = self._ensure_temp_dir() / "credentials"
        env = {"GIT_TERMINAL_PROMPT": "0"}
        env.update(credential.environment(scratch))
        return env

    def credential(self) -> GitCredential:
        """Resolved credential (resolving it if needed)."""
        if self._credential is None:
            self._credential = self._credentials.resolve()
        return self._credential

    # =========================================================================
    # Remote Operations
    # =========================================================================

    def _remote_branches(self, env: dict[str, str]) -> set[str]:
        try:
            output = git.Git().ls_remote("--heads", self.url, env=env)
        except GitCommandError as e:
            details = _stderr(e)
            if _looks_like_auth_failure(details):
                raise GitAuthError(
                    "remote rejected credentials", url=self.url, details=details
                ) from e
            raise GitCloneError("failed to list remote refs", url=self.url, details=details) from e

        branches = set()
        for line in output.splitlines():
            _, _, ref = line.partition("\t")
            if ref.startswith("refs/heads/"):
                branches.add(ref.removeprefix("refs/heads/"))
        return branches

    def validate_auth(self, cancel: threading.Event | None = None) -> None:
        """List remote refs with the configured credentials, without cloning.

        An empty remote is a success.

        Raises:
            GitAuthError: Missing env var, malformed key, rejection, or an
                unreachable remote.
            OperationCancelledError: ``cancel`` was set.
        """
        raise_if_cancelled(cancel, "validate git auth")
        env = self._git_env()
        try:
            branches = self._remote_branches(env)
        except GitCloneError as e:
            raise GitAuthError(
                "failed to authenticate with remote", url=self.url, details=e.details
            ) from e
        self._log.info("validated_git_auth", remote_branches=len(branches))

    def init(self, cancel: threading.Event | None = None) -> None:
        """Clone the remote on first call, pull on later calls.

        Raises:
            GitAuthError: Credentials could not be resolved.
            GitCloneError: The first clone failed.
            GitPullError: A fast-forward pull of an existing clone failed.
            OperationCancelledError: ``cancel`` was set.
        """
        raise_if_cancelled(cancel, "initialize git repository")
        if self._repo is not None:
            self._pull()
        else:
            self._clone()
        self.work_dir.mkdir(parents=True, exist_ok=True)

    def _clone(self) -> None:
        env = self._git_env()
        path = self._ensure_temp_dir() / "repo"
        branches = self._remote_branches(env)

        try:
            if not branches:
                repo = git.Repo.init(path, mkdir=True)
                repo.git.symbolic_ref("HEAD", f"refs/heads/{self.branch}")
                repo.create_remote(REMOTE_NAME, self.url)
                self._log.info("initialized_empty_repository")
            elif self.branch in branches:
                repo = git.Repo.clone_from(
                    self.url,
                    path,
                    env=env,
                    depth=1,
                    branch=self.branch,
                    single_branch=True,
                )
                self._remote_has_branch = True
                self._log.info("cloned_repository")
            else:
                repo = git.Repo.clone_from(self.url, path, env=env, depth=1, single_branch=True)
                repo.git.checkout("-B", self.branch)
                self._log.info("cloned_default_branch", created_branch=self.branch)
        except GitCommandError as e:
            shutil.rmtree(path, ignore_errors=True)
            raise GitCloneError(
                f"failed to clone branch {self.branch}", url=self.url, details=_stderr(e)
            ) from e

        repo.git.update_environment(**env)
        self._repo = repo

    def _pull(self) -> None:
        assert self._repo is not None
        if not self._remote_has_branch:
            self._log.debug("skipped_pull", reason="branch not on remote yet")
            return
        try:
            self._repo.git.pull(REMOTE_NAME, self.branch, ff_only=True)
        except GitCommandError as e:
            raise GitPullError(
                f"failed to pull branch {self.branch}", url=self.url, details=_stderr(e)
            ) from e
        self._log.info("pulled_repository")

    # =========================================================================
    # Bootstrap Marker
    # =========================================================================

    @property
    def marker_path(self) -> Path:
        return self.work_dir / MARKER_FILE

    def is_bootstrapped(self) -> bool:
        """True if the bootstrap marker exists in the working tree."""
        return self.marker_path.is_file()

    def write_bootstrap_marker(self) -> Path:
        """Write the marker with the current UTC time."""
        timestamp = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        path = self.marker_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"bootstrapped_at: {timestamp}\n", encoding="utf-8")
        self._log.debug("wrote_bootstrap_marker", path=str(path))
        return path

    # =========================================================================
    # Commit and Push
    # =========================================================================

    def has_changes(self) -> bool:
        """True if the working tree differs from HEAD (including untracked files)."""
        repo = self._require_repo()
        return bool(repo.git.status("--porcelain").strip())

    def commit_and_push(self, message: str, cancel: threading.Event | None = None) -> bool:
        """Stage everything, commit as the service identity, and push.

        A commit left behind by an earlier cancelled or failed push on this
        handle is pushed even when the tree is now clean, so the caller can
        retry with the same handle.

        Returns:
            False if the tree was clean and nothing was pending,
            True if a commit was pushed.

        Raises:
            GitPushError: Commit or push failed. No retry is attempted.
            OperationCancelledError: ``cancel`` was set before committing.
        """
        repo = self._require_repo()
        changed = self.has_changes()
        if not changed and not self._unpushed:
            self._log.info("skipped_commit", reason="no changes")
            return False

        raise_if_cancelled(cancel, "commit and push to git remote")
        if changed:
            identity = {
                "GIT_AUTHOR_NAME": COMMIT_AUTHOR_NAME,
                "GIT_AUTHOR_EMAIL": COMMIT_AUTHOR_EMAIL,
                "GIT_COMMITTER_NAME": COMMIT_AUTHOR_NAME,
                "GIT_COMMITTER_EMAIL": COMMIT_AUTHOR_EMAIL,
            }
            try:
                repo.git.add("--all")
                repo.git.commit("-m", message, env=identity)
            except GitCommandError as e:
                raise GitPushError(
                    "failed to commit changes", url=self.url, details=_stderr(e)
                ) from e
            self._unpushed = True
        else:
            self._log.info("retrying_push", commit=repo.head.commit.hexsha[:12])

        refspec = f"refs/heads/{self.branch}:refs/heads/{self.branch}"
        try:
            repo.git.push(REMOTE_NAME, refspec)
        except GitCommandError as e:
            raise GitPushError(
                f"failed to push branch {self.branch}", url=self.url, details=_stderr(e)
            ) from e

        self._unpushed = False
        self._remote_has_branch = True
        self._log.info("pushed_commit", commit=repo.head.commit.hexsha[:12], message=message)
        return True

    def _require_repo(self) -> git.Repo:
        if self._repo is None:
            raise GitError("repository not initialized; call init() first", url=self.url)
        return self._repo

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def cleanup(self) -> None:
        """Remove the local clone and credential files. Safe to call repeatedly."""
        if self._repo is not None:
            self._repo.close()
            self._repo = None
        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir, ignore_errors=True)
            self._log.debug("removed_temp_dir", path=str(self._temp_dir))
            self._temp_dir = None
        self._remote_has_branch = False
        self._unpushed = False

    def __enter__(self) -> GitOpsRepository:
        return self

    def __exit__(self, *args: Any) -> None:
        self.cleanup()
