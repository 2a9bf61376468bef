"""
Central configuration module for Creator Subscriptions
Reads and validates environment variables with strict checks for production
"""
import os
import sys
from typing import Optional, List
from pathlib import Path

from dotenv import load_dotenv

# Only load .env in development
if os.getenv("ENV", "dev").lower() == "dev":
    load_dotenv()


DEFAULT_PLANS_CONFIG_PATH = str(Path(__file__).parent / "data" / "plans.yaml")


class Config:
    """Central configuration class with environment variable validation"""

    # Environment
    ENV: str = os.getenv("ENV", "dev").lower()

    # Required for all environments
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./creator_subscriptions.db")

    # Optional but recommended
    REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
    PORT: int = int(os.getenv("PORT", "8000"))

    # CORS
    CORS_ORIGINS: List[str] = []

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Plan catalog
    PLANS_CONFIG_PATH: str = os.getenv("PLANS_CONFIG_PATH", DEFAULT_PLANS_CONFIG_PATH)
    PLAN_CACHE_TTL_SECONDS: int = int(os.getenv("PLAN_CACHE_TTL_SECONDS", "300"))

    # Usage sessions
    HEARTBEAT_INTERVAL_SECONDS: int = int(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "30"))
    HEARTBEAT_GRACE_SECONDS: int = int(os.getenv("HEARTBEAT_GRACE_SECONDS", "60"))
    ORPHANED_SESSION_MAX_AGE_HOURS: int = int(os.getenv("ORPHANED_SESSION_MAX_AGE_HOURS", "2"))

    # Trial expiry prompt (client side)
    TRIAL_CHECK_INITIAL_DELAY_SECONDS: float = float(os.getenv("TRIAL_CHECK_INITIAL_DELAY_SECONDS", "0.5"))
    TRIAL_CHECK_INTERVAL_SECONDS: float = float(os.getenv("TRIAL_CHECK_INTERVAL_SECONDS", "180"))

    # Background jobs
    ENABLE_SCHEDULER: bool = os.getenv("ENABLE_SCHEDULER", "false").lower() in ("1", "true", "yes")

    def __init__(self):
        """Initialize configuration and validate required variables"""
        self._load_cors_origins()
        self._validate()

    def _load_cors_origins(self):
        """Load CORS origins from environment variable"""
        default_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

        cors_env = os.getenv("CORS_ORIGINS", "")
        if cors_env:
            env_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
            self.CORS_ORIGINS = default_origins + env_origins
        else:
            self.CORS_ORIGINS = default_origins

    def _validate(self):
        """Validate required configuration based on environment"""
        errors = []

        if self.ENV not in ["dev", "test", "staging", "prod"]:
            errors.append(f"Invalid ENV value: {self.ENV}. Must be 'dev', 'test', 'staging', or 'prod'")

        # SECRET_KEY signs and verifies bearer tokens
        if not self.SECRET_KEY:
            errors.append("SECRET_KEY is required but not set")
        elif len(self.SECRET_KEY) < 32:
            errors.append(f"SECRET_KEY must be at least 32 characters (current: {len(self.SECRET_KEY)})")

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required but not set")
        elif self.ENV in ["staging", "prod"] and not self.DATABASE_URL.startswith("postgresql"):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL connection string in {self.ENV} "
                f"(got: {self.DATABASE_URL[:30]}...)"
            )

        if self.HEARTBEAT_INTERVAL_SECONDS <= 0:
            errors.append("HEARTBEAT_INTERVAL_SECONDS must be positive")
        if self.HEARTBEAT_GRACE_SECONDS < self.HEARTBEAT_INTERVAL_SECONDS:
            errors.append("HEARTBEAT_GRACE_SECONDS must be at least HEARTBEAT_INTERVAL_SECONDS")

        if not Path(self.PLANS_CONFIG_PATH).exists():
            errors.append(f"PLANS_CONFIG_PATH does not exist: {self.PLANS_CONFIG_PATH}")

        # Fail fast in staging/prod
        if errors and self.ENV in ["staging", "prod"]:
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION VALIDATION FAILED", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  ❌ {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            sys.exit(1)

        # Warn in dev
        if errors and self.ENV == "dev":
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION WARNINGS (dev mode - continuing)", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  ⚠️  {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode"""
        return self.ENV == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode"""
        return self.ENV == "prod"

    def get_database_url(self) -> str:
        """Get database URL (alias for DATABASE_URL)"""
        return self.DATABASE_URL

    def get_secret_key(self) -> str:
        """Get secret key (alias for SECRET_KEY)"""
        return self.SECRET_KEY


# Create global config instance
config = Config()
