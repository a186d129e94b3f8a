# contract_tester/config.py
"""
Centralized tester configuration using pydantic-settings.

All settings are read from environment variables or .env file.
CLI flags override these values; the result is folded into a RunConfig
that is passed explicitly to the Orchestrator.
"""

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contract_tester.constants import HTTP_METHODS
from contract_tester.utils.retry import RetryPolicy


class Settings(BaseSettings):
    """Tester settings loaded from environment variables.

    Priority: environment variables > .env file > defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )

    # --- Target ---
    BASE_URL: Optional[str] = Field(
        default=None,
        description="Base URL of the service under test (defaults to the contract's first server)"
    )
    VERIFY_TLS: bool = Field(
        default=True,
        description="Verify TLS certificates of the service under test"
    )

    # --- Dispatch ---
    CONCURRENCY_LIMIT: int = Field(
        default=4,
        ge=1,
        description="Maximum number of requests in flight"
    )
    REQUEST_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout in seconds"
    )
    RETRY_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Attempts per operation on transport failure or timeout"
    )
    RETRY_BASE_DELAY: float = Field(
        default=0.5,
        ge=0,
        description="Base backoff delay in seconds"
    )
    RETRY_MAX_DELAY: float = Field(
        default=10.0,
        ge=0,
        description="Backoff delay cap in seconds"
    )
    RUN_DEADLINE: Optional[float] = Field(
        default=None,
        gt=0,
        description="Overall run deadline in seconds; unstarted operations are cancelled after it"
    )
    METHODS: list[str] = Field(
        default_factory=lambda: list(HTTP_METHODS),
        description="HTTP methods to test"
    )

    # --- Reporting ---
    RESPONSE_EXCERPT_LIMIT: int = Field(
        default=512,
        ge=0,
        description="Bytes of response body kept in each report"
    )

    # --- Debug / Logging ---
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    LOGS_PATH: Optional[str] = Field(
        default=None,
        description="Directory for error.log; unset disables the error file"
    )
    TRACING_ENABLED: bool = Field(
        default=False,
        description="Export OpenTelemetry spans to the console"
    )
    SERVICE_NAME: str = Field(
        default="contract-tester",
        description="service.name resource attribute for traces"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v_upper

    @field_validator("METHODS")
    @classmethod
    def validate_methods(cls, v: list[str]) -> list[str]:
        methods = [m.upper() for m in v]
        unknown = set(methods) - set(HTTP_METHODS)
        if unknown:
            raise ValueError(f"METHODS contains unknown HTTP methods: {sorted(unknown)}")
        return methods

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            base_delay=self.RETRY_BASE_DELAY,
            max_delay=self.RETRY_MAX_DELAY,
        )


class RunConfig(BaseModel):
    """Explicit per-run configuration handed to the Orchestrator."""

    model_config = {"frozen": True}

    base_url: str
    concurrency_limit: int = Field(default=4, ge=1)
    request_timeout: float = Field(default=10.0, gt=0)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    run_deadline: Optional[float] = Field(default=None, gt=0)
    methods: tuple[str, ...] = HTTP_METHODS
    parameter_values: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    response_excerpt_limit: int = Field(default=512, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings, base_url: str, **overrides) -> "RunConfig":
        values = {
            "base_url": base_url,
            "concurrency_limit": settings.CONCURRENCY_LIMIT,
            "request_timeout": settings.REQUEST_TIMEOUT,
            "retry_policy": settings.retry_policy(),
            "run_deadline": settings.RUN_DEADLINE,
            "methods": tuple(settings.METHODS),
            "response_excerpt_limit": settings.RESPONSE_EXCERPT_LIMIT,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance (singleton pattern)."""
    return Settings()

