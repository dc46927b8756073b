"""
Unit tests for configuration module.

Tests environment variable parsing and settings validation.
"""

import os
import pytest
from unittest.mock import patch


class TestParseCommaList:
    """Test comma-separated list parsing."""

    @pytest.mark.unit
    def test_parse_simple_list(self):
        """Should parse simple comma-separated values."""
        from gorillionaire.core.config import parse_comma_list
        assert parse_comma_list("a,b,c") == ["a", "b", "c"]

    @pytest.mark.unit
    def test_parse_with_spaces(self):
        """Should strip whitespace."""
        from gorillionaire.core.config import parse_comma_list
        assert parse_comma_list(" a , b , c ") == ["a", "b", "c"]

    @pytest.mark.unit
    def test_parse_none_value(self):
        """Should treat 'none' as empty list."""
        from gorillionaire.core.config import parse_comma_list
        assert parse_comma_list("NONE") == []

    @pytest.mark.unit
    def test_parse_already_list(self):
        from gorillionaire.core.config import parse_comma_list
        assert parse_comma_list(["x", "y"]) == ["x", "y"]

    @pytest.mark.unit
    def test_parse_empty_string(self):
        from gorillionaire.core.config import parse_comma_list
        assert parse_comma_list("") == []


class TestSettingsProperties:
    """Test Settings class properties."""

    @pytest.mark.unit
    def test_cors_defaults_to_wildcard(self):
        with patch.dict(os.environ, {"CORS_ORIGINS": ""}):
            from gorillionaire.core.config import Settings
            assert Settings().cors_origins_list == ["*"]

    @pytest.mark.unit
    def test_cors_origins_list(self):
        with patch.dict(os.environ, {"CORS_ORIGINS": "https://app.gorillionai.re, http://localhost:3000"}):
            from gorillionaire.core.config import Settings
            assert Settings().cors_origins_list == ["https://app.gorillionai.re", "http://localhost:3000"]

    @pytest.mark.unit
    def test_discord_callback_uri(self):
        with patch.dict(os.environ, {"PUBLIC_API_URL": "https://api.example.com/"}):
            from gorillionaire.core.config import Settings
            assert Settings().discord_callback_uri == "https://api.example.com/social/discord/callback"

    @pytest.mark.unit
    def test_blank_port_uses_default(self):
        with patch.dict(os.environ, {"API_PORT": "", "MAX_RESTART_ATTEMPTS": ""}):
            from gorillionaire.core.config import Settings
            settings = Settings()
            assert settings.API_PORT == 3001
            assert settings.MAX_RESTART_ATTEMPTS == 5

    @pytest.mark.unit
    def test_supervisor_knobs(self):
        with patch.dict(os.environ, {"MAX_RESTART_ATTEMPTS": "2", "RESTART_DELAY_SECONDS": "0.5"}):
            from gorillionaire.core.config import Settings
            settings = Settings()
            assert settings.MAX_RESTART_ATTEMPTS == 2
            assert settings.RESTART_DELAY_SECONDS == 0.5

    @pytest.mark.unit
    def test_feature_flags(self):
        with patch.dict(os.environ, {"ENABLE_JOBS": "false", "ENABLE_SIGNAL_GENERATOR": "0"}):
            from gorillionaire.core.config import Settings
            settings = Settings()
            assert settings.ENABLE_JOBS is False
            assert settings.ENABLE_SIGNAL_GENERATOR is False
