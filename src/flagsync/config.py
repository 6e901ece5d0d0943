"""Runtime options and environment-backed settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from flagsync.auth import ApiCredentials
from flagsync.controller import OptimizelyController
from flagsync.plan.actions import RiskLevel
from flagsync.validation import ValidatorOptions

DEFAULT_ACTOR = "flagsync"


@dataclass(frozen=True)
class SyncOptions:
    """
    Options for ExecutionEngine and SafeArchiveGate.

    Attributes:
        dry_run: never call remote mutations; synthesize results instead.
        max_concurrent_operations: batch size (and parallelism within a batch).
        operation_timeout_ms: how long the coordinator waits for one operation.
        enable_rollback: invert an operation when post-validation recommends it.
        risk_tolerance: highest plan risk the engine executes.
        archive_batch_delay_ms: pause between live archive batches.
        actor: identity recorded in audit events and approval requests.
    """

    dry_run: bool = False
    max_concurrent_operations: int = 3
    operation_timeout_ms: int = 30_000
    enable_rollback: bool = True
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM
    archive_batch_delay_ms: int = 1000
    actor: str = DEFAULT_ACTOR

    def __post_init__(self) -> None:
        batch_size = self.max_concurrent_operations
        if not isinstance(batch_size, int) or batch_size < 1:
            raise ValueError("max_concurrent_operations must be an int >= 1")
        if self.operation_timeout_ms <= 0:
            raise ValueError("operation_timeout_ms must be > 0")
        if self.archive_batch_delay_ms < 0:
            raise ValueError("archive_batch_delay_ms must be >= 0")
        if not self.actor:
            raise ValueError("actor must be a non-empty string")
        object.__setattr__(self, "risk_tolerance", RiskLevel(self.risk_tolerance))


class Settings(BaseSettings):
    """Settings read from the environment (and an optional .env file)."""

    optimizely_api_token: Optional[str] = Field(default=None, description="Optimizely API token")
    optimizely_project_id: Optional[str] = Field(default=None, description="Optimizely project id")
    optimizely_base_url: str = Field(
        default=OptimizelyController.DEFAULT_BASE_URL,
        description="REST API base URL",
    )

    dry_run: bool = Field(default=False, description="Report changes without mutating flags")
    log_level: str = Field(default="INFO", description="Log level")

    api_rate_limit: float = Field(default=5.0, description="Max requests per second")
    api_timeout: float = Field(default=30.0, description="HTTP timeout (seconds)")
    max_retries: int = Field(default=3, description="Retries for retryable HTTP errors")

    concurrency_limit: int = Field(default=3, description="Operations per execution batch")
    risk_tolerance: RiskLevel = Field(default=RiskLevel.MEDIUM, description="Max plan risk")
    operation_timeout: int = Field(default=30_000, description="Per-operation timeout (ms)")

    overrides_path: Optional[str] = Field(default=None, description="Override config file")
    github_actor: str = Field(default=DEFAULT_ACTOR, description="Actor for audit events")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {v}")
        return level

    @field_validator("risk_tolerance", mode="before")
    @classmethod
    def normalize_risk_tolerance(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("concurrency_limit", "max_retries")
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:
        minimum = 1 if info.field_name == "concurrency_limit" else 0
        if v < minimum:
            raise ValueError(f"{info.field_name} must be >= {minimum}")
        return v

    @field_validator("api_rate_limit", "api_timeout")
    @classmethod
    def validate_positive(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    def to_credentials(self) -> ApiCredentials:
        """Raises ValueError when the token or project id is missing or malformed."""
        return ApiCredentials(
            token=self.optimizely_api_token or "",
            project_id=self.optimizely_project_id or "",
        )

    def to_sync_options(self) -> SyncOptions:
        return SyncOptions(
            dry_run=self.dry_run,
            max_concurrent_operations=self.concurrency_limit,
            operation_timeout_ms=self.operation_timeout,
            risk_tolerance=self.risk_tolerance,
            actor=self.github_actor or DEFAULT_ACTOR,
        )

    def to_validator_options(self) -> ValidatorOptions:
        return ValidatorOptions(validation_timeout_ms=max(1, int(self.api_timeout * 1000)))
