"""
Configuration loader with validation for racecheck runs.

Settings come from a JSON users file (api_url, project_name, users) with
environment variable overrides, optionally loaded from a .env file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from dotenv import load_dotenv

from ..models.client import SimulatedClient, SpikePhase
from ..models.enums import AdmissionMode, SelectionPolicy
from ..services.anomaly_classifier import DEFAULT_CONCURRENCY_PHRASES

logger = logging.getLogger(__name__)

DEFAULT_USERS_FILE = "users-config.json"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigurationError(ValueError):
    """Raised when run configuration or input is invalid. Fatal before dispatch."""
    pass


class RaceTestConfig(BaseModel):
    """Validated configuration for a racecheck run."""

    # Target service
    base_url: str = Field(..., description="Reservation API base URL")
    project_id: str = Field(..., description="Project whose tokens are reserved")
    clients: List[SimulatedClient] = Field(default_factory=list, description="Simulated clients, in order")
    token_amount: Optional[int] = Field(
        default=None, ge=1, description="Overrides every client's token quantity when set"
    )
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request HTTP timeout")

    # Dispatch
    concurrency_limit: int = Field(default=0, ge=0, description="In-flight ceiling, 0 for unbounded")
    admission_mode: AdmissionMode = Field(default=AdmissionMode.SLOTS, description="Ceiling enforcement mode")
    seed: Optional[int] = Field(default=None, description="Seed for deterministic plans")

    # Load patterns
    burst_window_ms: float = Field(default=2000.0, gt=0, description="Burst jitter window")
    sustained_interval_ms: float = Field(default=500.0, gt=0, description="Sustained probe interval")
    sustained_duration_ms: float = Field(default=10000.0, gt=0, description="Sustained total duration")
    selection_policy: SelectionPolicy = Field(
        default=SelectionPolicy.RANDOM, description="Sustained client selection policy"
    )
    spike_phases: Optional[List[SpikePhase]] = Field(
        default=None, description="Spike phases; 20%/100%/30% of the users over 2s/1s/3s when unset"
    )
    gradual_steps: int = Field(default=5, ge=1, description="Gradual ramp steps")
    gradual_step_pause_ms: float = Field(default=1000.0, gt=0, description="Pause between gradual steps")
    iteration_pause_ms: float = Field(default=3000.0, ge=0, description="Pause between scenario iterations")

    # Anomaly classification
    proximity_window_ms: float = Field(default=100.0, gt=0, description="Cohort proximity window")
    concurrency_phrases: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CONCURRENCY_PHRASES),
        description="Error phrases indicating concurrency failures",
    )

    # Diagnostics
    debug: bool = Field(default=False, description="Verbose logging and strict tracker")
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Rotating log file path")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        if v.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {VALID_LOG_LEVELS}")
        return v.upper()

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("concurrency_phrases")
    @classmethod
    def validate_phrases(cls, v: List[str]) -> List[str]:
        phrases = [phrase.strip() for phrase in v if phrase and phrase.strip()]
        if not phrases:
            raise ValueError("At least one concurrency phrase is required")
        return phrases

    @model_validator(mode="after")
    def apply_token_override(self) -> "RaceTestConfig":
        """Apply the global token amount to every client when configured."""
        if self.token_amount is not None:
            self.clients = [
                client.model_copy(update={"token_amount": self.token_amount})
                for client in self.clients
            ]
        return self


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


def _read_users_file(path: Path) -> Dict[str, Any]:
    """Read the JSON users file, raising ConfigurationError on any problem."""
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Error loading configuration from {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a JSON object")
    return data


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    env_file: Optional[str] = None,
    **overrides: Any,
) -> RaceTestConfig:
    """
    Load configuration from the users file, environment variables and .env file.

    Args:
        config_path: Path to the JSON users file. Defaults to RACECHECK_CONFIG
            or users-config.json in the current directory.
        env_file: Optional path to .env file. If None, looks for .env in current directory.
        **overrides: Explicit values (e.g. from CLI flags) that win over file and environment.
            None values are ignored.

    Returns:
        RaceTestConfig: Validated configuration object

    Raises:
        ConfigurationError: If the file is missing or unreadable, or validation fails
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    path = Path(config_path or os.getenv("RACECHECK_CONFIG", DEFAULT_USERS_FILE))
    file_data = _read_users_file(path)

    config_data: Dict[str, Any] = {
        "base_url": os.getenv("RACECHECK_API_URL") or file_data.get("api_url", ""),
        "project_id": os.getenv("RACECHECK_PROJECT_ID") or file_data.get("project_name", ""),
        "clients": file_data.get("users") or [],
        "request_timeout_seconds": float(os.getenv("RACECHECK_REQUEST_TIMEOUT", "30")),
        "concurrency_limit": int(os.getenv("RACECHECK_CONCURRENCY", "0")),
        "debug": _env_bool("RACECHECK_DEBUG"),
        "log_level": os.getenv("RACECHECK_LOG_LEVEL", "INFO"),
        "log_file": os.getenv("RACECHECK_LOG_FILE") or None,
    }

    if os.getenv("RACECHECK_TOKEN_AMOUNT"):
        config_data["token_amount"] = int(os.getenv("RACECHECK_TOKEN_AMOUNT"))
    if os.getenv("RACECHECK_ADMISSION"):
        config_data["admission_mode"] = os.getenv("RACECHECK_ADMISSION").strip().lower()
    if os.getenv("RACECHECK_SEED"):
        config_data["seed"] = int(os.getenv("RACECHECK_SEED"))

    config_data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        config = RaceTestConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e

    logger.debug(f"Loaded configuration from {path}: {len(config.clients)} clients")
    return config


def validate_required_settings(config: RaceTestConfig) -> None:
    """
    Validate that all settings required before dispatch are present.

    Args:
        config: Configuration object to validate

    Raises:
        ConfigurationError: If required settings are missing or invalid
    """
    if not config.base_url:
        raise ConfigurationError("API URL is required (api_url or RACECHECK_API_URL)")

    if not config.project_id:
        raise ConfigurationError("Project ID is required (project_name or RACECHECK_PROJECT_ID)")

    if not config.clients:
        raise ConfigurationError("No users found in configuration")

    logger.info("✓ Configuration validated successfully")
    logger.info(f"  API: {config.base_url}")
    logger.info(f"  Project: {config.project_id}")
    logger.info(f"  Users: {len(config.clients)}")
    logger.info(f"  Concurrency limit: {config.concurrency_limit or 'unbounded'}")


def select_clients(config: RaceTestConfig, count: int = 0) -> List[SimulatedClient]:
    """
    Select the clients taking part in a run.

    Args:
        config: Loaded configuration
        count: Number of clients to use from the start of the list, 0 for all

    Returns:
        List[SimulatedClient]: Selected clients
    """
    if count < 0:
        raise ConfigurationError(f"User count cannot be negative: {count}")
    if 0 < count < len(config.clients):
        logger.info(f"Using only the first {count} users for the simulation")
        return config.clients[:count]
    return list(config.clients)
