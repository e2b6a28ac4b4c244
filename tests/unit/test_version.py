"""Tests for version module."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

import pytest

from gitops_bootstrap import __version__


class TestVersion:
    """Test version information."""

    @pytest.mark.unit
    def test_version_format(self) -> None:
        """Test version follows semantic versioning."""
        parts = __version__.split(".")
        assert len(parts) >= 2, "Version should have at least major.minor"
        assert all(part.isdigit() for part in parts[:2]), "Major and minor should be numeric"

    @pytest.mark.unit
    def test_matches_distribution_metadata(self) -> None:
        try:
            installed = version("gitops-bootstrap")
        except PackageNotFoundError:
            pytest.skip("package not installed")
        assert installed == __version__
