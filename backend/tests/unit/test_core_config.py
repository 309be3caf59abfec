"""Tests for application configuration.

Settings for database, API, authentication and the onboarding flow. Tests
cover defaults, env var loading, and production security validation.
"""

import uuid

import pytest
from pydantic import ValidationError

from app.core.config import _INSECURE_DEFAULT_PASSWORD, Settings

# Reusable test constants
_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_TEST_AUTH_SECRET = "a" * 64
_PRODUCTION = "production"


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        """Default password is rejected in production environment."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_INSECURE_DEFAULT_PASSWORD,
            )

        errors = exc_info.value.errors()
        assert len(errors) == 1
        assert "Cannot use default database password in production" in str(
            errors[0]["msg"]
        )

    def test_allows_custom_password_in_production(self):
        """Custom password is allowed in production environment."""
        s = Settings(
            environment=_PRODUCTION,
            database_password=_SECURE_DB_PASSWORD,
        )
        assert s.database_password == _SECURE_DB_PASSWORD


class TestAuthConfigDefaults:
    """Auth settings have local-first defaults."""

    def test_auth_enabled_defaults_to_false(self):
        """Auth is disabled by default for local development."""
        s = Settings()
        assert s.auth_enabled is False

    def test_auth_secret_defaults_to_empty(self):
        """Auth secret is empty by default (not required in local mode)."""
        s = Settings()
        assert s.auth_secret.get_secret_value() == ""

    def test_auth_issuer_and_audience_default_to_bookeasy(self):
        """JWT issuer and audience claims default to 'bookeasy'."""
        s = Settings()
        assert s.auth_issuer == "bookeasy"
        assert s.auth_audience == "bookeasy"

    def test_default_user_id_defaults_to_none(self):
        """Default user ID is None when not set."""
        s = Settings()
        assert s.default_user_id is None


class TestOnboardingDefaults:
    """Onboarding timing and redirect defaults."""

    def test_debounce_defaults(self):
        """Auto-save waits 2s, username checks 0.5s."""
        s = Settings()
        assert s.onboarding_autosave_debounce_seconds == 2.0
        assert s.onboarding_username_debounce_seconds == 0.5

    def test_auth_redirect_defaults(self):
        """Expired sessions go to /auth after 2 seconds."""
        s = Settings()
        assert s.onboarding_login_path == "/auth"
        assert s.onboarding_auth_redirect_delay_seconds == 2

    def test_rejects_negative_autosave_debounce(self):
        """A negative delay makes no sense for a timer."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(onboarding_autosave_debounce_seconds=-1)
        assert "cannot be negative" in str(exc_info.value)

    def test_rejects_negative_username_debounce(self):
        """Same rule for the username check debounce."""
        with pytest.raises(ValidationError):
            Settings(onboarding_username_debounce_seconds=-0.1)

    def test_allows_zero_debounce(self):
        """Zero disables debouncing."""
        s = Settings(onboarding_autosave_debounce_seconds=0)
        assert s.onboarding_autosave_debounce_seconds == 0


class TestDatabaseUrls:
    """Database URLs are assembled from parts."""

    def test_async_url_uses_asyncpg(self):
        """The runtime URL targets the asyncpg driver."""
        s = Settings(
            database_user="u",
            database_password="p",
            database_host="db",
            database_port=6543,
            database_name="n",
        )
        assert s.database_url == "postgresql+asyncpg://u:p@db:6543/n"


class TestAuthProductionValidation:
    """Production validation for auth settings."""

    def test_rejects_empty_auth_secret_in_production_when_auth_enabled(self):
        """Auth secret must be set when auth is enabled in production."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                auth_enabled=True,
                auth_secret="",
            )
        assert "AUTH_SECRET must be set" in str(exc_info.value)

    def test_rejects_auth_secret_at_boundary_minus_one(self):
        """Auth secret of exactly 31 chars is rejected in production."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                auth_enabled=True,
                auth_secret="a" * 31,
            )
        assert "AUTH_SECRET must be at least 32 characters" in str(exc_info.value)

    def test_allows_auth_secret_at_exact_boundary(self):
        """Auth secret of exactly 32 chars is accepted in production."""
        s = Settings(
            environment=_PRODUCTION,
            database_password=_SECURE_DB_PASSWORD,
            auth_enabled=True,
            auth_secret="a" * 32,
        )
        assert len(s.auth_secret.get_secret_value()) == 32

    def test_allows_empty_auth_secret_in_development_with_auth_enabled(self):
        """Auth secret not required in development even with auth enabled."""
        s = Settings(auth_enabled=True, auth_secret="")
        assert s.auth_secret.get_secret_value() == ""


class TestCorsWildcardValidation:
    """CORS wildcard is incompatible with credentials."""

    def test_rejects_wildcard_origin(self):
        """Wildcard origin is rejected (incompatible with credentials)."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(allowed_origins=["*"])
        assert "must not contain '*'" in str(exc_info.value)

    def test_allows_specific_origins(self):
        """Specific origins are accepted."""
        s = Settings(allowed_origins=["http://localhost:5173"])
        assert s.allowed_origins == ["http://localhost:5173"]


class TestConfigEnvLoading:
    """Settings loaded from environment variables."""

    def test_auth_enabled_loaded_from_env(self, monkeypatch: pytest.MonkeyPatch):
        """AUTH_ENABLED env var is correctly parsed as boolean."""
        monkeypatch.setenv("AUTH_ENABLED", "true")
        s = Settings()
        assert s.auth_enabled is True

    def test_default_user_id_loaded_from_env(self, monkeypatch: pytest.MonkeyPatch):
        """DEFAULT_USER_ID env var is parsed as a UUID."""
        user_id = uuid.UUID("00000000-0000-0000-0000-000000000001")
        monkeypatch.setenv("DEFAULT_USER_ID", str(user_id))
        s = Settings()
        assert s.default_user_id == user_id

    def test_autosave_debounce_loaded_from_env(self, monkeypatch: pytest.MonkeyPatch):
        """ONBOARDING_AUTOSAVE_DEBOUNCE_SECONDS env var is parsed as float."""
        monkeypatch.setenv("ONBOARDING_AUTOSAVE_DEBOUNCE_SECONDS", "0.25")
        s = Settings()
        assert s.onboarding_autosave_debounce_seconds == 0.25
