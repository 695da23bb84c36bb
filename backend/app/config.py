# app/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "Auth & RBAC API"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))

    # CORS origins for frontend
    CORS_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
        if o.strip()
    ]
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    cookie_secure: bool = _env_bool("COOKIE_SECURE", "false")

    # JWT settings (access and refresh tokens are signed with different secrets)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    jwt_refresh_secret: str = os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
    refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    # Issue a new refresh token on every refresh and revoke the presented one
    refresh_token_rotation: bool = _env_bool("REFRESH_TOKEN_ROTATION", "false")

    # Password hashing (Argon2 time cost)
    password_hash_time_cost: int = int(os.getenv("PASSWORD_HASH_TIME_COST", "3"))

    # Account lockout
    max_login_attempts: int = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    lock_time_minutes: int = int(os.getenv("LOCK_TIME_MINUTES", "120"))

    # Single-use account tokens
    email_verification_expire_hours: int = int(os.getenv("EMAIL_VERIFICATION_EXPIRE_HOURS", "24"))
    password_reset_expire_minutes: int = int(os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", "60"))

    # Refresh-token garbage collection
    revoked_token_retention_days: int = int(os.getenv("REVOKED_TOKEN_RETENTION_DAYS", "30"))
    token_sweep_interval_seconds: int = int(os.getenv("TOKEN_SWEEP_INTERVAL_SECONDS", "3600"))

    # Rate limiting (limits string notation, e.g. "5/15minutes")
    rate_limit_enabled: bool = _env_bool("RATE_LIMIT_ENABLED", "true")
    rate_limit_default: str = os.getenv("RATE_LIMIT_DEFAULT", "100/15minutes")
    rate_limit_auth: str = os.getenv("RATE_LIMIT_AUTH", "5/15minutes")
    rate_limit_password_reset: str = os.getenv("RATE_LIMIT_PASSWORD_RESET", "3/hour")

    # Notifications: "log" (dev), "memory" (tests) or "http" (mail API)
    notifier_backend: str = os.getenv("NOTIFIER_BACKEND", "log")
    mail_api_url: str | None = os.getenv("MAIL_API_URL")
    mail_api_key: str | None = os.getenv("MAIL_API_KEY")
    mail_from: str = os.getenv("MAIL_FROM", "no-reply@localhost")

    # OAuth providers
    oauth_redirect_base: str = os.getenv("OAUTH_REDIRECT_BASE", "http://localhost:8000/api/v1/oauth")
    google_client_id: str | None = os.getenv("GOOGLE_CLIENT_ID")
    google_client_secret: str | None = os.getenv("GOOGLE_CLIENT_SECRET")
    github_client_id: str | None = os.getenv("GITHUB_CLIENT_ID")
    github_client_secret: str | None = os.getenv("GITHUB_CLIENT_SECRET")
    facebook_client_id: str | None = os.getenv("FACEBOOK_CLIENT_ID")
    facebook_client_secret: str | None = os.getenv("FACEBOOK_CLIENT_SECRET")

    # Default superadmin created on first startup (skipped without a password)
    superadmin_email: str = os.getenv("SUPERADMIN_EMAIL", "superadmin@example.com")
    superadmin_password: str | None = os.getenv("SUPERADMIN_PASSWORD")

settings = Settings()  # Instantiate configuration
