"""
Payrecon - Configuration Settings

This module handles all engine configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "Payrecon"
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    
    # ===========================================
    # DATABASE CONFIGURATION
    # SQLite (aiosqlite) for local work, PostgreSQL (asyncpg) in production
    # ===========================================
    database_url: str = "sqlite+aiosqlite:///./payrecon.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    
    # ===========================================
    # PAYROLL GENERATION
    # ===========================================
    payroll_max_workers: int = 4  # Concurrent employees per batch
    external_read_timeout_seconds: float = 30.0  # Attendance/leave/settlement reads
    
    # ===========================================
    # PAYMENT RECONCILIATION
    # Amounts are compared as fractions of the internal payment amount.
    # ===========================================
    reconciliation_auto_match_threshold: Decimal = Decimal("0.01")
    reconciliation_exact_epsilon: Decimal = Decimal("0.01")
    reconciliation_minor_variance_ratio: Decimal = Decimal("0.01")
    
    @field_validator("payroll_max_workers")
    @classmethod
    def validate_max_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("payroll_max_workers must be at least 1")
        return value
    
    @field_validator("external_read_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("external_read_timeout_seconds must be positive")
        return value
    
    @field_validator(
        "reconciliation_auto_match_threshold",
        "reconciliation_minor_variance_ratio",
    )
    @classmethod
    def validate_fraction(cls, value: Decimal) -> Decimal:
        """
        Tolerances are fractional differences (0.01 == 1%),
        not similarity scores.
        """
        if value <= 0 or value >= 1:
            raise ValueError(
                f"Tolerance must be a fraction between 0 and 1 (exclusive), got {value}"
            )
        return value
    
    @field_validator("reconciliation_exact_epsilon")
    @classmethod
    def validate_epsilon(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("reconciliation_exact_epsilon must be positive")
        return value
    
    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")
    
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
