"""Application configuration loaded from environment variables.

Settings for the database, authentication, rate limiting and the provider
onboarding flow. Uses pydantic-settings for validation and .env file support.
"""

import uuid

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in _check_production() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "bookeasy_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "bookeasy"
    database_user: str = "bookeasy_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # CORS: the wizard frontend (Vite dev server by default)
    allowed_origins: list[str] = ["http://localhost:5173"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Authentication
    # Sessions are issued by the hosted auth service as HS256 JWT cookies.
    # With auth disabled, DEFAULT_USER_ID stands in for the session owner.
    default_user_id: uuid.UUID | None = None
    auth_enabled: bool = False
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "bookeasy"
    auth_audience: str = "bookeasy"
    auth_cookie_name: str = "bookeasy.session-token"

    # Rate limiting, format "count/period" (e.g. "30/minute")
    rate_limit_username_check: str = "30/minute"
    rate_limit_enabled: bool = True

    # Onboarding flow
    onboarding_autosave_debounce_seconds: float = 2.0
    onboarding_username_debounce_seconds: float = 0.5
    onboarding_auth_redirect_delay_seconds: int = 2
    onboarding_login_path: str = "/auth"

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy (asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_settings(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - Debounce intervals must be non-negative (all environments)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Production: no default database password, and a long enough
          AUTH_SECRET when auth is enabled
        """
        self._check_debounce()
        self._check_cors()
        if self.environment == "production":
            self._check_production()
        return self

    def _check_debounce(self) -> None:
        for name in (
            "onboarding_autosave_debounce_seconds",
            "onboarding_username_debounce_seconds",
        ):
            value = getattr(self, name)
            if value < 0:
                msg = f"{name.upper()} cannot be negative. Got: {value}"
                raise ValueError(msg)

    def _check_cors(self) -> None:
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "Session cookies are incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

    def _check_production(self) -> None:
        if self.database_password == _INSECURE_DEFAULT_PASSWORD:
            msg = (
                "Cannot use default database password in production. "
                "Set DATABASE_PASSWORD environment variable to a secure value."
            )
            raise ValueError(msg)

        if not self.auth_enabled:
            return
        secret_value = self.auth_secret.get_secret_value()
        if not secret_value:
            msg = "AUTH_SECRET must be set when AUTH_ENABLED=true in production."
            raise ValueError(msg)
        if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
            msg = (
                f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                "characters for adequate security."
            )
            raise ValueError(msg)


settings = Settings()
