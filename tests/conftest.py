"""Shared pytest fixtures for gitops_bootstrap tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import git
import pytest
import typer
from typer.testing import CliRunner

from gitops_bootstrap.cli.main import app
from gitops_bootstrap.integrations.git.config import GitAuthConfig, GitRepositoryConfig

TEST_TOKEN_ENV = "TEST_GITOPS_TOKEN"
TEST_TOKEN = "s3cret-test-token"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Reset environment variables for each test."""
    # Clear any GITOPS_ prefixed environment variables
    for key in list(os.environ.keys()):
        if key.startswith("GITOPS_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("gitops_bootstrap.logging.config.LOG_DIR", tmp_path / "logs")


@pytest.fixture
def capture_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Fixture to capture log output."""
    import logging

    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app


# =============================================================================
# Git Fixtures
# =============================================================================


@pytest.fixture
def git_token(monkeypatch: pytest.MonkeyPatch) -> str:
    """Export a dummy access token; file:// remotes ignore it."""
    monkeypatch.setenv(TEST_TOKEN_ENV, TEST_TOKEN)
    return TEST_TOKEN


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """Create an empty bare repository to act as the remote."""
    path = tmp_path / "remote.git"
    git.Repo.init(path, bare=True, mkdir=True, initial_branch="main")
    return path


@pytest.fixture
def git_config(bare_remote: Path, git_token: str) -> GitRepositoryConfig:
    """Repository configuration pointing at the bare remote over file://."""
    return GitRepositoryConfig(
        url=bare_remote.as_uri(),
        branch="main",
        auth=GitAuthConfig(token_env=TEST_TOKEN_ENV),
    )
