import os
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, validator
from typing import Optional, Union


class Settings(BaseSettings):
    """
    Application settings with Pydantic validation.
    Loads from environment variables with type checking and validation.
    """
    app_name: str = Field(default="Blog Platform API", env="APP_NAME")
    environment: str = Field(default="development", env="ENVIRONMENT")
    api_prefix: str = Field(default="/api", env="API_PREFIX")

    backend_cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        env="BACKEND_CORS_ORIGINS"
    )

    database_url: str = Field(
        default="sqlite:///./blog.db",
        env="DATABASE_URL"
    )
    db_migrate_on_startup: bool = Field(default=False, env="DB_MIGRATE_ON_STARTUP")

    # JWT - validate non-default
    jwt_secret_key: str = Field(default="dev-secret-key-change-in-production-5c1a9e7b3d2f4a6c8e0b", env="JWT_SECRET_KEY", min_length=32)
    # Optional per-token-type secrets; fall back to jwt_secret_key
    jwt_refresh_secret_key: Optional[str] = Field(default=None, env="JWT_REFRESH_SECRET_KEY")
    jwt_recovery_secret_key: Optional[str] = Field(default=None, env="JWT_RECOVERY_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=10, env="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_minutes: int = Field(default=60 * 24 * 14, env="REFRESH_TOKEN_EXPIRE_MINUTES")
    recovery_code_expire_minutes: int = Field(default=60, env="RECOVERY_CODE_EXPIRE_MINUTES")
    confirmation_code_expire_minutes: int = Field(default=90, env="CONFIRMATION_CODE_EXPIRE_MINUTES")

    # Key for hashing recovery codes at rest
    code_hash_secret_key: str = Field(default="dev-code-hash-secret-change-in-production-7f3e1d9c", env="CODE_HASH_SECRET_KEY", min_length=32)

    # Cookie settings
    cookie_domain: Optional[str] = Field(default=None, env="COOKIE_DOMAIN")
    cookie_secure: bool = Field(default=True, env="COOKIE_SECURE")
    cookie_samesite: str = Field(default="strict", env="COOKIE_SAMESITE")
    cookie_refresh_name: str = Field(default="refreshToken", env="COOKIE_REFRESH_NAME")

    # Rate limiting (sliding window per ip + url)
    auth_rate_limit_enabled: bool = Field(default=True, env="AUTH_RATE_LIMIT_ENABLED")
    auth_rate_limit_attempts: int = Field(default=5, env="AUTH_RATE_LIMIT_ATTEMPTS")
    auth_rate_limit_window_seconds: float = Field(default=10.0, env="AUTH_RATE_LIMIT_WINDOW_SECONDS")
    trust_proxy_headers: bool = Field(default=False, env="TRUST_PROXY_HEADERS")
    auth_require_confirmed_email: bool = Field(default=False, env="AUTH_REQUIRE_CONFIRMED_EMAIL")

    # Sentry
    sentry_dsn: Union[str, None] = Field(default=None, env="SENTRY_DSN")
    sentry_env: str = Field(default="development", env="SENTRY_ENV")
    metrics_token: Optional[str] = Field(default=None, env="METRICS_TOKEN")

    debug: bool = Field(default=True, env="DEBUG")

    # Admin (HTTP Basic) for user management endpoints
    admin_login: str = Field(default="admin", env="ADMIN_LOGIN")
    admin_password: str = Field(default="qwerty", env="ADMIN_PASSWORD")

    # SMTP (optional)
    smtp_host: Optional[str] = Field(default=None, env="SMTP_HOST")
    smtp_port: Optional[int] = Field(default=None, env="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, env="SMTP_USER")
    smtp_pass: Optional[str] = Field(default=None, env="SMTP_PASS")
    email_from: Optional[str] = Field(default=None, env="EMAIL_FROM")
    frontend_url: Optional[str] = Field(default=None, env="FRONTEND_URL")

    @validator("jwt_secret_key", "code_hash_secret_key")
    def validate_secret(cls, v: str, values: dict) -> str:
        """Ensure signing secrets are strong in production"""
        env = values.get("environment")
        if env == "production":
            if len(v) < 32 or "dev-" in v or "change" in v.lower():
                raise ValueError(
                    "Secrets must be strong, unique values (min 32 chars) in production. "
                    "Generate with: python3 scripts/generate_secrets.py"
                )
        return v

    @validator("database_url")
    def validate_database_url(cls, v: str, values: dict) -> str:
        """Validate database URL; disallow SQLite in production."""
        env = values.get("environment")
        if env == "production" and v.startswith("sqlite"):
            raise ValueError("SQLite is not allowed for DATABASE_URL in production. Use PostgreSQL.")
        return v

    @validator("debug")
    def validate_debug(cls, v: bool, values: dict) -> bool:
        """Never allow DEBUG=true in production."""
        if values.get("environment") == "production" and v:
            raise ValueError("DEBUG must be false in production.")
        return v

    @validator("admin_password")
    def validate_admin_password(cls, v: str, values: dict) -> str:
        if values.get("environment") == "production" and v == "qwerty":
            raise ValueError("ADMIN_PASSWORD must be changed in production.")
        return v

    @property
    def refresh_cookie_path(self) -> str:
        return self.api_prefix or "/"

    class Config:
        # Load env file based on ENVIRONMENT; default to development
        env_file = ".env.production" if os.getenv("ENVIRONMENT") == "production" else ".env.development"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Validates all environment variables on first access.
    Raises ValidationError if configuration is invalid.
    """
    return Settings()
