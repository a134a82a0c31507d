"""Tests for versions.py module."""

import pytest

from kubesa.versions import normalize_version, parse_version, resolve_capabilities, version_from_parts


class TestNormalizeVersion:
    """Tests for version string normalization."""

    def test_strip_v_prefix(self):
        """Test the leading 'v' is removed."""
        assert normalize_version("v1.29.2") == "1.29.2"

    def test_no_prefix(self):
        """Test versions without prefix pass through."""
        assert normalize_version("1.29.2") == "1.29.2"

    def test_distribution_suffix(self):
        """Test provider build suffixes are accepted."""
        assert normalize_version("v1.23.17-eks-a59e1f0") == "1.23.17-eks-a59e1f0"
        assert normalize_version("v1.28.5+k3s1") == "1.28.5+k3s1"

    @pytest.mark.parametrize("version", ["", "v", "1.29", "latest", "v1.x.0"])
    def test_invalid(self, version):
        """Test malformed versions raise ValueError."""
        with pytest.raises(ValueError):
            normalize_version(version)


class TestParseVersion:
    """Tests for numeric version parsing."""

    def test_parse(self):
        """Test the release triple is extracted."""
        assert parse_version("v1.23.17-eks-a59e1f0") == (1, 23, 17)

    def test_ordering(self):
        """Test tuples compare numerically."""
        assert parse_version("1.9.0") < parse_version("1.24.0")

    def test_from_parts(self):
        """Test major/minor fields of managed offerings."""
        assert version_from_parts("1", "24+") == "1.24.0"

    def test_from_parts_invalid(self):
        """Test parts without digits are rejected."""
        with pytest.raises(ValueError):
            version_from_parts("", "x")


class TestResolveCapabilities:
    """Tests for the token secret threshold."""

    @pytest.mark.parametrize(
        ("version", "expected"),
        [
            ("v1.23.17", True),
            ("v1.23.99-gke.100", True),
            ("v1.24.0", False),
            ("v1.24.0-rc.1", False),
            ("v1.29.2", False),
            ("v1.9.11", True),
        ],
    )
    def test_threshold(self, version, expected):
        """Test token secrets are auto-provisioned below 1.24.0 only."""
        assert resolve_capabilities(version).token_secrets_auto_provisioned is expected

    def test_server_version_normalized(self):
        """Test the stored version has no prefix."""
        assert resolve_capabilities("v1.29.2").server_version == "1.29.2"
