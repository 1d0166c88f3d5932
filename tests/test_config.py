"""Tests for resolver configuration."""

import sys

import pytest

from stepfile.config import ResolverConfig, max_supported_depth


class TestResolverConfig:
    """Tests for ResolverConfig."""

    def test_defaults(self):
        """Test default settings."""
        config = ResolverConfig()
        assert config.max_depth == 64
        assert config.strict_enumerations is True
        assert config.accept_integer_as_real is True

    def test_frozen(self):
        """Test that configurations are immutable."""
        config = ResolverConfig()
        with pytest.raises(AttributeError):
            config.max_depth = 3

    def test_invalid_depth(self):
        """Test that the depth limit must be positive."""
        with pytest.raises(ValueError):
            ResolverConfig(max_depth=0)

    def test_depth_beyond_recursion_limit(self):
        """Test that a limit deeper than the interpreter can recurse is rejected."""
        with pytest.raises(ValueError, match="recursion limit"):
            ResolverConfig(max_depth=max_supported_depth() + 1)
        assert ResolverConfig(max_depth=max_supported_depth()).max_depth == max_supported_depth()

    def test_supported_depth_follows_recursion_limit(self, monkeypatch):
        """Test that raising the recursion limit allows deeper graphs."""
        monkeypatch.setattr(sys, "getrecursionlimit", lambda: 4100)
        assert max_supported_depth() == 500
        assert ResolverConfig(max_depth=500).max_depth == 500


class TestFromEnv:
    """Tests for reading configuration from the environment."""

    def test_empty_environment(self):
        """Test that unset variables keep the defaults."""
        assert ResolverConfig.from_env({}) == ResolverConfig()

    def test_all_variables(self):
        """Test reading every variable."""
        config = ResolverConfig.from_env(
            {
                "STEPFILE_MAX_DEPTH": "12",
                "STEPFILE_STRICT_ENUMERATIONS": "no",
                "STEPFILE_ACCEPT_INTEGER_AS_REAL": "False",
            }
        )
        assert config == ResolverConfig(
            max_depth=12, strict_enumerations=False, accept_integer_as_real=False
        )

    def test_unrelated_variables_ignored(self):
        """Test that other variables have no effect."""
        assert ResolverConfig.from_env({"PATH": "/bin", "STEPFILE_OTHER": "1"}) == ResolverConfig()

    def test_process_environment(self, monkeypatch):
        """Test reading os.environ by default."""
        monkeypatch.setenv("STEPFILE_MAX_DEPTH", "7")
        assert ResolverConfig.from_env().max_depth == 7

    @pytest.mark.parametrize(
        "name, value",
        [
            ("STEPFILE_MAX_DEPTH", "deep"),
            ("STEPFILE_MAX_DEPTH", "0"),
            ("STEPFILE_STRICT_ENUMERATIONS", "maybe"),
        ],
    )
    def test_malformed_values(self, name, value):
        """Test that malformed values are rejected with the variable name."""
        with pytest.raises(ValueError, match=name):
            ResolverConfig.from_env({name: value})
