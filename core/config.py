"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no SMS credentials in code)
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()


class NotificationConfig(BaseModel):
    """SMS delivery channel credentials. Any missing value disables live delivery."""

    account_sid: str | None = Field(default=None, description="Twilio account SID")
    auth_token: str | None = Field(default=None, description="Twilio auth token")
    from_number: str | None = Field(default=None, description="Sender phone number")
    base_url: str = Field(default="https://api.twilio.com", description="Messaging API base URL")
    timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for a single delivery attempt"
    )

    @field_validator("account_sid", "auth_token", "from_number")
    @classmethod
    def blank_is_missing(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def live_enabled(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)


class RuleThresholds(BaseModel):
    """Emergency rule thresholds."""

    bradycardia_max_bpm: float = Field(
        default=40.0, gt=0.0, description="Heart rate at or below this is bradycardia"
    )
    tachycardia_min_bpm: float = Field(
        default=180.0, gt=0.0, description="Heart rate at or above this is tachycardia"
    )
    fall_magnitude_threshold: float = Field(
        default=18.0, gt=0.0, description="Acceleration magnitude (m/s^2) above this is a fall"
    )

    @model_validator(mode="after")
    def heart_rate_bands_disjoint(self) -> "RuleThresholds":
        """Keep the two heart-rate rules mutually exclusive."""
        if self.bradycardia_max_bpm >= self.tachycardia_min_bpm:
            raise ValueError("bradycardia_max_bpm must be below tachycardia_min_bpm")
        return self


class AuditConfig(BaseModel):
    """Emergency audit log settings."""

    log_file_path: str = Field(default="./emergency.log", description="Path to audit log")


class DatabaseConfig(BaseModel):
    """Subject store settings."""

    path: str = Field(default="./cardio.db", description="SQLite database file")


class PipelineConfig(BaseModel):
    """Sample processing settings."""

    max_concurrent_samples: int = Field(
        default=32, gt=0, description="Maximum samples evaluated at once in a batch"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    rules: RuleThresholds = Field(default_factory=RuleThresholds)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    notification_config = NotificationConfig(
        account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        from_number=os.getenv("TWILIO_FROM_NUMBER"),
        base_url=os.getenv("TWILIO_API_BASE_URL", "https://api.twilio.com"),
        timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10.0")),
    )

    rule_thresholds = RuleThresholds(
        bradycardia_max_bpm=float(os.getenv("BRADYCARDIA_MAX_BPM", "40")),
        tachycardia_min_bpm=float(os.getenv("TACHYCARDIA_MIN_BPM", "180")),
        fall_magnitude_threshold=float(os.getenv("FALL_MAGNITUDE_THRESHOLD", "18")),
    )

    audit_config = AuditConfig(
        log_file_path=os.getenv("EMERGENCY_LOG_FILE", "./emergency.log"),
    )

    database_config = DatabaseConfig(
        path=os.getenv("DB_FILE", "./cardio.db"),
    )

    pipeline_config = PipelineConfig(
        max_concurrent_samples=int(os.getenv("MAX_CONCURRENT_SAMPLES", "32")),
    )

    # Logging config
    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    # Application config
    return AppConfig(
        environment=environment,
        debug=debug,
        notification=notification_config,
        rules=rule_thresholds,
        audit=audit_config,
        database=database_config,
        pipeline=pipeline_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


# Configuration validation and helpers
def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")

        if config.notification.live_enabled:
            print("✅ SMS delivery configured")
        else:
            print("⚠️  SMS credentials incomplete, notifications will be logged only")

    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


# Development helpers
def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n🩺 RULE THRESHOLDS")
    print(f"Bradycardia: <= {config.rules.bradycardia_max_bpm} bpm")
    print(f"Tachycardia: >= {config.rules.tachycardia_min_bpm} bpm")
    print(f"Fall: magnitude > {config.rules.fall_magnitude_threshold} m/s²")

    print("\n📨 NOTIFICATIONS")
    print(f"Channel: {'live SMS' if config.notification.live_enabled else 'log-only stub'}")
    print(f"Audit Log: {config.audit.log_file_path}")
    print(f"Subject DB: {config.database.path}")


if __name__ == "__main__":
    # Test configuration loading
    validate_config()
    print_config_summary()
