"""Application configuration module.

Reads settings from environment variables with defaults tuned for a single
SQLite file serving many concurrent participation requests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    """Get integer from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    """Get float from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_str(name: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.getenv(name, default)


@dataclass(frozen=True)
class Config:
    environment: str
    debug: bool
    log_level: str
    log_file: Optional[str]
    database_path: str
    db_pool_size: int
    db_busy_timeout: int
    max_conflict_retries: int
    conflict_backoff_ms: int
    reward_code_prefix: str
    reward_code_length: int
    code_generation_attempts: int
    reward_validity_days: int
    default_timezone: str
    fraud_review_threshold: int
    fraud_block_threshold: int
    ip_velocity_limit: int
    sweep_interval_seconds: float
    cache_ttl_hot: int
    cache_ttl_warm: int
    cache_ttl_cold: int
    export_folder: str
    prometheus_port: int

    def validate(self) -> None:
        """Reject settings the engine cannot run with.

        Raises:
            ConfigurationError: If any value is out of range
        """
        problems = []
        if self.db_pool_size < 1:
            problems.append("DB_POOL_SIZE must be at least 1")
        if self.max_conflict_retries < 0:
            problems.append("MAX_CONFLICT_RETRIES must not be negative")
        if self.reward_code_length < 6:
            problems.append("REWARD_CODE_LENGTH must be at least 6")
        if self.code_generation_attempts < 1:
            problems.append("CODE_GENERATION_ATTEMPTS must be at least 1")
        if self.reward_validity_days < 1:
            problems.append("REWARD_VALIDITY_DAYS must be at least 1")
        if not 0 <= self.fraud_review_threshold <= self.fraud_block_threshold <= 100:
            problems.append("fraud thresholds must satisfy 0 <= review <= block <= 100")
        if self.sweep_interval_seconds <= 0:
            problems.append("SWEEP_INTERVAL_SECONDS must be positive")
        if problems:
            raise ConfigurationError("; ".join(problems))


def load_config() -> Config:
    """Load application configuration from environment variables.

    Returns:
        Config: Application configuration with validated values
    """
    log_file = _get_str("LOG_FILE", "logs/promo_engine.log")
    config = Config(
        environment=_get_str("ENVIRONMENT", "development"),
        debug=_get_bool("DEBUG", False),
        log_level=_get_str("LOG_LEVEL", "INFO").upper(),
        log_file=log_file or None,
        database_path=_get_str("DATABASE_PATH", "data/promotions.sqlite"),
        db_pool_size=_get_int("DB_POOL_SIZE", 10),
        db_busy_timeout=_get_int("DB_BUSY_TIMEOUT", 5000),
        max_conflict_retries=_get_int("MAX_CONFLICT_RETRIES", 3),
        conflict_backoff_ms=_get_int("CONFLICT_BACKOFF_MS", 25),
        reward_code_prefix=_get_str("REWARD_CODE_PREFIX", "COMP"),
        reward_code_length=_get_int("REWARD_CODE_LENGTH", 10),
        code_generation_attempts=_get_int("CODE_GENERATION_ATTEMPTS", 5),
        reward_validity_days=_get_int("REWARD_VALIDITY_DAYS", 30),
        default_timezone=_get_str("DEFAULT_TIMEZONE", "UTC"),
        fraud_review_threshold=_get_int("FRAUD_REVIEW_THRESHOLD", 50),
        fraud_block_threshold=_get_int("FRAUD_BLOCK_THRESHOLD", 80),
        ip_velocity_limit=_get_int("IP_VELOCITY_LIMIT", 5),
        sweep_interval_seconds=_get_float("SWEEP_INTERVAL_SECONDS", 60.0),
        cache_ttl_hot=_get_int("CACHE_TTL_HOT", 30),
        cache_ttl_warm=_get_int("CACHE_TTL_WARM", 300),
        cache_ttl_cold=_get_int("CACHE_TTL_COLD", 3600),
        export_folder=_get_str("EXPORT_FOLDER", "exports"),
        prometheus_port=_get_int("PROMETHEUS_PORT", 8000),
    )
    config.validate()
    return config
