"""Tests for wagateway.config.settings."""

import os

import pytest
from pydantic import ValidationError

from wagateway.config.settings import (
    Settings,
    load_session_factory,
    validate_settings,
    writable_dir,
)
from wagateway.session import ConfigurationError, MemorySession


class TestSettings:
    """Test the Settings pydantic-settings class."""

    def _make(self, **kwargs):
        return Settings(_env_file=None, **kwargs)

    # -- defaults --

    def test_defaults(self, monkeypatch):
        for name in ("API_TOKEN", "PORT", "COUNTRY_CODE", "AUTH_DIR", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        s = self._make()
        assert s.PORT == 3000
        assert s.API_TOKEN == ""
        assert s.auth_required is False
        assert s.AUTH_DIR == "auth"
        assert s.QR_IMAGE_PATH == "public/qr/qr-code.png"
        assert s.QR_IMAGE_URL == "/api/v1/qr/image"
        assert s.COUNTRY_CODE == "62"
        assert s.MAX_UPLOAD_BYTES == 16 * 1024 * 1024
        assert s.SESSION_FACTORY == "wagateway.session.memory:MemorySession"
        assert s.RECONNECT_MAX_ATTEMPTS == 0
        assert s.CORS_ORIGINS == ["*"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("API_TOKEN", "s3cret")
        monkeypatch.setenv("PORT", "8080")
        s = self._make()
        assert s.API_TOKEN == "s3cret"
        assert s.PORT == 8080
        assert s.auth_required is True

    # -- validators --

    def test_country_code_plus_stripped(self):
        assert self._make(COUNTRY_CODE="+44").COUNTRY_CODE == "44"

    def test_country_code_must_be_digits(self):
        with pytest.raises(ValidationError):
            self._make(COUNTRY_CODE="ID")

    def test_log_level_uppercased(self):
        assert self._make(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_bad_log_level(self):
        with pytest.raises(ValidationError):
            self._make(LOG_LEVEL="chatty")

    def test_reconnect_values_kept_as_given(self):
        s = self._make(RECONNECT_BASE_DELAY=10.0, RECONNECT_MAX_DELAY=1.0)
        assert s.RECONNECT_MAX_DELAY == 1.0


class TestValidateSettings:
    def _make(self, **kwargs):
        return Settings(_env_file=None, **kwargs)

    def test_defaults_are_valid(self):
        validate_settings(self._make(AUTH_DIR="auth", QR_IMAGE_PATH="qr.png"))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"AUTH_DIR": "  "},
            {"QR_IMAGE_PATH": ""},
            {"QR_IMAGE_PATH": "qr.jpg"},
            {"MAX_UPLOAD_BYTES": 0},
            {"RECONNECT_MAX_ATTEMPTS": -1},
            {"RECONNECT_BASE_DELAY": -1.0},
            {"RECONNECT_FACTOR": 0.5},
            {"RECONNECT_BASE_DELAY": 10.0, "RECONNECT_MAX_DELAY": 1.0},
            {"SESSION_FACTORY": "no_such_module_xyz:Session"},
        ],
    )
    def test_rejects(self, overrides):
        with pytest.raises(ConfigurationError):
            validate_settings(self._make(**overrides))


class TestLoadSessionFactory:
    def test_loads_memory_session(self):
        assert load_session_factory("wagateway.session.memory:MemorySession") is MemorySession

    @pytest.mark.parametrize(
        "path",
        [
            "wagateway.session.memory",
            ":MemorySession",
            "wagateway.session.memory:Nope",
            "wagateway.session.memory:INDIVIDUAL_SUFFIX",
        ],
    )
    def test_rejects(self, path):
        with pytest.raises(ConfigurationError):
            load_session_factory(path)


class TestWritableDir:
    def test_existing_dir(self, tmp_path):
        assert writable_dir(tmp_path) is True

    def test_missing_dir_under_writable_parent(self, tmp_path):
        assert writable_dir(tmp_path / "a" / "b") is True

    def test_file_in_the_way(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        assert writable_dir(blocker) is False

    @pytest.mark.skipif(os.geteuid() == 0, reason="root can write anywhere")
    def test_read_only_dir(self, tmp_path):
        ro = tmp_path / "ro"
        ro.mkdir()
        ro.chmod(0o500)
        try:
            assert writable_dir(ro / "auth") is False
        finally:
            ro.chmod(0o700)
