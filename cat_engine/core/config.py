"""
Engine configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Self


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Application
    APP_NAME: str = "CAT Engine"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Adaptive testing defaults
    # Used when a session configuration does not override the starting ability
    CAT_DEFAULT_STARTING_ABILITY: float = Field(
        default=0.0,
        ge=-6.0,
        le=6.0,
        description="Seed ability for new sessions (theta scale)",
    )
    # Bounds of the uniform draw for default discrimination (a) of
    # uncalibrated items
    CAT_DEFAULT_DISCRIMINATION_RANGE: List[float] = [1.0, 1.5]
    # Exposure rate above which items are reported as overexposed
    CAT_EXPOSURE_ALERT_THRESHOLD: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Exposure rate threshold for overexposure alerts (0.0-1.0)",
    )

    # Sentry Error Tracking
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking (leave empty to disable)",
    )
    SENTRY_TRACES_SAMPLE_RATE: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry traces sample rate (0.0-1.0, 0.1 = 10% of transactions)",
    )

    # OpenTelemetry metrics and tracing
    OTEL_ENABLED: bool = False
    OTEL_SERVICE_NAME: str = "cat-engine"
    OTEL_EXPORTER: Literal["console", "otlp", "none"] = "console"
    OTEL_OTLP_ENDPOINT: str = "http://localhost:4318"
    OTEL_METRICS_ENABLED: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_discrimination_range(self) -> Self:
        """Validate CAT_DEFAULT_DISCRIMINATION_RANGE: [low, high] with 0 < low <= high."""
        bounds = self.CAT_DEFAULT_DISCRIMINATION_RANGE
        if len(bounds) != 2:
            raise ValueError(
                f"CAT_DEFAULT_DISCRIMINATION_RANGE must have exactly 2 values, "
                f"got {len(bounds)}"
            )
        low, high = bounds
        if low <= 0:
            raise ValueError(
                f"CAT_DEFAULT_DISCRIMINATION_RANGE lower bound must be positive, got {low}"
            )
        if low > high:
            raise ValueError(
                f"CAT_DEFAULT_DISCRIMINATION_RANGE must be ordered, got [{low}, {high}]"
            )
        return self

    @model_validator(mode="after")
    def validate_log_level(self) -> Self:
        """Reject log levels the logging module does not know."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.LOG_LEVEL.upper() not in valid:
            raise ValueError(
                f"LOG_LEVEL must be one of {sorted(valid)}, got {self.LOG_LEVEL!r}"
            )
        return self


settings = Settings()
