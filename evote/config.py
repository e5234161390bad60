"""
Runtime configuration, read from environment variables.

Environment variables:
    DB_HOST / DB_PORT / DB_NAME / DB_USER / DB_PASSWORD   PostgreSQL connection
    DB_POOL_MIN / DB_POOL_MAX                             asyncpg pool bounds
    DB_COMMAND_TIMEOUT    Per-statement timeout in seconds (default: 30)
    JWT_SECRET            HS256 signing key for bearer tokens
    JWT_EXPIRY_HOURS      Bearer-token validity (default: 168 → 7 days)
    OTP_EXPIRY_MINUTES    Email OTP validity (default: 10)
    ALLOW_ADMIN_REGISTRATION   "false" rejects self-registration as admin
    SMTP_HOST / SMTP_PORT / SMTP_USER / SMTP_PASS / SMTP_USE_TLS / SMTP_FROM
    SMTP_TIMEOUT          Seconds before an SMTP dispatch is abandoned
    API_PREFIX            Mount point of the JSON API (default: /api)
    CORS_ORIGINS          Comma-separated list of allowed origins (default: *)
    LOG_LEVEL             Root log level (default: INFO)
    HOST / PORT           Bind address for ``python -m evote``
"""
import os
import logging
from dataclasses import dataclass, field

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default).strip() or default)


@dataclass
class Settings:
    # ── Database ─────────────────────────────────────────────────────────────
    db_host: str = "postgres"
    db_port: int = 5432
    db_name: str = "evote"
    db_user: str = "evote_user"
    db_password: str = "evote_pass"
    db_pool_min: int = 2
    db_pool_max: int = 20
    db_command_timeout: float = 30.0

    # ── Auth ─────────────────────────────────────────────────────────────────
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 168
    otp_expiry_minutes: int = 10
    allow_admin_registration: bool = True

    # ── Mail ─────────────────────────────────────────────────────────────────
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_use_tls: bool = True
    smtp_from: str = "noreply@evote.local"
    smtp_timeout: float = 30.0

    # ── HTTP ─────────────────────────────────────────────────────────────────
    api_prefix: str = "/api"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            db_host=os.getenv("DB_HOST", "postgres"),
            db_port=_env_int("DB_PORT", "5432"),
            db_name=os.getenv("DB_NAME", "evote"),
            db_user=os.getenv("DB_USER", "evote_user"),
            db_password=os.getenv("DB_PASSWORD", "evote_pass"),
            db_pool_min=_env_int("DB_POOL_MIN", "2"),
            db_pool_max=_env_int("DB_POOL_MAX", "20"),
            db_command_timeout=float(os.getenv("DB_COMMAND_TIMEOUT", "30")),
            jwt_secret=os.getenv("JWT_SECRET", "change-me-in-production"),
            jwt_expiry_hours=_env_int("JWT_EXPIRY_HOURS", "168"),
            otp_expiry_minutes=_env_int("OTP_EXPIRY_MINUTES", "10"),
            allow_admin_registration=_env_bool("ALLOW_ADMIN_REGISTRATION", "true"),
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=_env_int("SMTP_PORT", "587"),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_pass=os.getenv("SMTP_PASS", ""),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", "true"),
            smtp_from=os.getenv("SMTP_FROM", "noreply@evote.local"),
            smtp_timeout=float(os.getenv("SMTP_TIMEOUT", "30")),
            api_prefix=os.getenv("API_PREFIX", "/api").rstrip("/"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", "5000"),
        )


_handler: logging.Handler | None = None


def configure_logging(level: str = "INFO") -> logging.Handler:
    """Attach a single stream handler to the root logger.

    Safe to call more than once: a second call only adjusts the level.
    """
    global _handler
    root = logging.getLogger()
    root.setLevel(level)
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    if _handler not in root.handlers:
        root.addHandler(_handler)
    return _handler
