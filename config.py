"""
Centralized configuration for the CRO analysis client
All environment variables and settings are defined here
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Provides centralized configuration with validation and defaults.
    """

    # ======================
    # Backend Configuration
    # ======================
    BACKEND_BASE_URL: str = Field(
        default="http://localhost:3000",
        description="Base URL of the dashboard backend that runs analyses"
    )
    API_TOKEN: str = Field(default="", description="Optional bearer token for the backend")
    CONNECT_TIMEOUT: float = Field(
        default=10.0,
        description="Connect timeout in seconds (read time is bounded by the analysis guard)"
    )
    DEFAULT_LLM: str = Field(default="gpt", description="Model used when a request names none")

    # ======================
    # Analysis Flows
    # ======================
    PAGE_ANALYSIS_ENDPOINT: str = Field(
        default="/api/analyze",
        description="Endpoint for the single-page CRO analysis flow"
    )
    PAGE_ANALYSIS_TIMEOUT: int = Field(
        default=300,  # 5 minutes
        description="Wall-clock limit for the page analysis flow in seconds"
    )
    INSIGHTS_ANALYSIS_ENDPOINT: str = Field(
        default="/api/analyze-v2",
        description="Endpoint for the insights/themes/hypotheses flow"
    )
    INSIGHTS_ANALYSIS_TIMEOUT: int = Field(
        default=180,  # 3 minutes
        description="Wall-clock limit for the insights flow in seconds"
    )

    # ======================
    # Progress Simulation
    # ======================
    PROGRESS_TICK_INTERVAL: float = Field(
        default=1.0,
        description="Seconds between progress ticks while waiting on recommendations"
    )
    PROGRESS_TICK_STEP: int = Field(default=2, description="Percent added per tick")
    PROGRESS_CAP: int = Field(
        default=90,
        description="Simulated progress never passes this value before the response arrives"
    )

    # ======================
    # Authentication Redirect
    # ======================
    LOGIN_PATH: str = Field(default="/login", description="Where to send unauthenticated users")
    LOGIN_REDIRECT_DELAY: float = Field(
        default=2.0,
        description="Seconds to show the login message before redirecting"
    )

    # ======================
    # Status Polling
    # ======================
    STATUS_ENDPOINT: str = Field(
        default="/api/analysis/status",
        description="Endpoint reporting server-side progress of a saved analysis"
    )
    STATUS_POLL_INTERVAL: float = Field(default=5.0, description="Seconds between status polls")
    STATUS_POLL_MAX_ATTEMPTS: int = Field(default=60, ge=1, description="Max polls before giving up")
    STATUS_RETRY_ATTEMPTS: int = Field(
        default=3,
        description="Attempts per status check on connection errors"
    )
    STATUS_RETRY_MIN_WAIT: float = Field(default=2.0, description="Min retry backoff in seconds")
    STATUS_RETRY_MAX_WAIT: float = Field(default=10.0, description="Max retry backoff in seconds")

    # ======================
    # Logging Configuration
    # ======================
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("PROGRESS_CAP")
    @classmethod
    def _cap_below_complete(cls, value: int) -> int:
        if not 0 < value < 100:
            raise ValueError("PROGRESS_CAP must be between 1 and 99")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Allow extra env vars in .env file


# Global settings instance
settings = Settings()


# ======================
# Convenience Functions
# ======================

def get_backend_base_url() -> str:
    """Get backend base URL"""
    return settings.BACKEND_BASE_URL


def get_log_level() -> str:
    """Get configured log level"""
    return settings.LOG_LEVEL.upper()
