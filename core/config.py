"""
Environment configuration for Bluhatch.

All settings are read once at import time from environment variables, with
development-friendly defaults. Production deployments are checked by
``validate_environment`` when the app is created.

Example usage:
    from core.config import APP_URL, MAX_UPLOAD_SIZE
"""

import os
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent.parent

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development").lower()
APP_URL = os.environ.get("APP_URL", "http://localhost:8000").rstrip("/")

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./bluhatch.db")
DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.environ.get("DB_MAX_OVERFLOW", "10"))
DB_ECHO = os.environ.get("DB_ECHO", "false").lower() == "true"
USE_PGBOUNCER = os.environ.get("USE_PGBOUNCER", "false").lower() == "true"

# Convert postgresql:// to postgresql+asyncpg:// for async support
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
elif DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)

# Blob storage
BLOB_STORAGE_DIR = Path(os.environ.get("BLOB_STORAGE_DIR", str(BASE_DIR / "storage" / "evidence-files")))
BLOB_PUBLIC_PATH = "/evidence-files"

# Upload limits. Support both MAX_UPLOAD_SIZE_MB and MAX_UPLOAD_MB
_max_mb_env = os.environ.get("MAX_UPLOAD_SIZE_MB") or os.environ.get("MAX_UPLOAD_MB") or "10"
MAX_UPLOAD_SIZE = int(_max_mb_env) * 1024 * 1024
SUPPORTED_CONTENT_TYPES = ("image/jpeg", "image/png", "application/pdf")

# HTTP
RATE_LIMIT_PER_MIN = int(os.environ.get("RATE_LIMIT_PER_MIN", "30"))
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"
CORS_ORIGINS: List[str] = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()
]

# Auth
JWT_SECRET = os.environ.get("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = int(os.environ.get("JWT_EXPIRY_HOURS", "24"))

# Timestamping authority
TIMESTAMP_BACKEND = os.environ.get("TIMESTAMP_BACKEND", "simulated").lower()
TIMESTAMP_TIMEOUT_S = float(os.environ.get("TIMESTAMP_TIMEOUT_S", "10"))
TIMESTAMP_SIMULATED_DELAY_S = float(os.environ.get("TIMESTAMP_SIMULATED_DELAY_S", "1.0"))
TIMESTAMP_CLOCK_SKEW_S = float(os.environ.get("TIMESTAMP_CLOCK_SKEW_S", "300"))
TSA_URLS: List[str] = [
    u.strip()
    for u in os.environ.get(
        "TSA_URLS",
        "http://timestamp.digicert.com,http://time.certum.pl,http://timestamp.apple.com/ts01",
    ).split(",")
    if u.strip()
]


def is_production() -> bool:
    return ENVIRONMENT == "production"


def validate_environment() -> bool:
    """
    Fail fast on insecure configuration in production.

    Returns:
        True when the configuration is acceptable

    Raises:
        RuntimeError: If a production deployment uses a weak JWT secret,
            a non-PostgreSQL database or an unknown timestamp backend
    """
    problems = []

    if TIMESTAMP_BACKEND not in ("simulated", "rfc3161"):
        problems.append(f"Unknown TIMESTAMP_BACKEND '{TIMESTAMP_BACKEND}'")

    if is_production():
        if len(JWT_SECRET) < 32 or JWT_SECRET == "dev-secret-change-me":
            problems.append("Insecure JWT_SECRET; set a strong value in environment")
        if not DATABASE_URL.startswith("postgresql+asyncpg://"):
            problems.append("DATABASE_URL must point at PostgreSQL in production")
        if not APP_URL.startswith("https://"):
            problems.append("APP_URL must use https in production")

    if problems:
        raise RuntimeError("; ".join(problems))

    return True
