"""Configuration management for the press review generation pipeline.

This module provides centralized configuration for all pipeline components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Providers:
        OPENAI_API_KEY: API key for OpenAI models (read by pydantic-ai)
        EXA_API_KEY: API key for the Exa web search API
        EXA_BASE_URL: Exa API base URL

    Models (PydanticAI format - provider:model):
        CONTEXT_MODEL: Model deriving audience/persona/goal/news angles
        QUERY_MODEL: Model generating search queries
        EVALUATION_MODEL: Model judging source relevance
        EXTRACTION_MODEL: Model extracting facts and opinions
        SYNTHESIS_MODEL: Model writing the final press review
        A local OpenAI-compatible endpoint is selected with
        'openai:{model_name}@{base_url}'.

    Provider Calls:
        LLM_OUTPUT_RETRIES: Schema-validation retries per structured call
        LLM_TIMEOUT_SECONDS: Timeout for one structured-generation call
        SEARCH_RESULTS_LIMIT: Results requested per search query
        SEARCH_TIMEOUT_SECONDS: Timeout for one search call
        SEARCH_CONCURRENCY: Concurrent search calls
        SOURCE_CONCURRENCY: Concurrent evaluation/extraction calls
        MAX_SOURCE_CHARS: Source text included in prompts

    Storage & Handoff:
        DB_PATH: SQLite database file path
        DISPATCH_MODE: 'inline' (await next stage) or 'queue' (durable task table)
        POLL_INTERVAL_SECONDS: Delay between queue polls in continuous worker mode
        STALL_TIMEOUT_MINUTES: Age after which an in-progress record is re-triggered

    Notifications:
        NOTIFICATION_WEBHOOK_URL: HTTP endpoint for terminal-state alerts
        ALERTS_FILE: Path for JSONL alert file
        REPORTS_DIR: Directory for markdown press reviews

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing

    Logging:
        LOG_DIR: Directory for log files
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


DEFAULT_FAST_MODEL = "openai:gpt-4o-mini"
DEFAULT_WRITER_MODEL = "openai:gpt-4o"


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    Use Config.load() to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Providers ===
    openai_api_key: str = ""  # OPENAI_API_KEY
    exa_api_key: str = ""  # EXA_API_KEY
    exa_base_url: str = "https://api.exa.ai"  # EXA_BASE_URL

    # === AI Models ===
    context_model: str = DEFAULT_FAST_MODEL
    query_model: str = DEFAULT_FAST_MODEL
    evaluation_model: str = DEFAULT_FAST_MODEL
    extraction_model: str = DEFAULT_FAST_MODEL
    synthesis_model: str = DEFAULT_WRITER_MODEL

    # === Provider Calls ===
    llm_output_retries: int = 2  # LLM_OUTPUT_RETRIES - Re-asks on schema validation failure
    llm_timeout_seconds: float = 120.0  # LLM_TIMEOUT_SECONDS
    search_results_limit: int = 5  # SEARCH_RESULTS_LIMIT - Results per query
    search_timeout_seconds: float = 30.0  # SEARCH_TIMEOUT_SECONDS
    search_concurrency: int = 2  # SEARCH_CONCURRENCY
    source_concurrency: int = 5  # SOURCE_CONCURRENCY
    max_source_chars: int = 12000  # MAX_SOURCE_CHARS

    # === Storage & Handoff ===
    db_path: Path = field(default_factory=lambda: Path("press_reviews.db"))  # DB_PATH
    dispatch_mode: str = "inline"  # DISPATCH_MODE - 'inline' or 'queue'
    poll_interval_seconds: int = 10  # POLL_INTERVAL_SECONDS
    stall_timeout_minutes: int = 30  # STALL_TIMEOUT_MINUTES
    stage_lease_seconds: float = 300.0  # STAGE_LEASE_SECONDS - Renewed while a stage runs

    # === Notifications ===
    webhook_url: str = ""  # NOTIFICATION_WEBHOOK_URL - POST endpoint for alerts
    alerts_file: str = ""  # ALERTS_FILE - JSONL file path for alerts
    reports_dir: Path = field(default_factory=lambda: Path("reports"))  # REPORTS_DIR

    # === Logging Configuration ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json'

    # === Optional: Observability ===
    # Requires: pip install logfire
    enable_logfire: bool = False  # ENABLE_LOGFIRE
    logfire_token: str = ""  # LOGFIRE_TOKEN

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            openai_api_key=_env("OPENAI_API_KEY"),
            exa_api_key=_env("EXA_API_KEY"),
            exa_base_url=_env("EXA_BASE_URL", "https://api.exa.ai"),
            context_model=_env("CONTEXT_MODEL", DEFAULT_FAST_MODEL),
            query_model=_env("QUERY_MODEL", DEFAULT_FAST_MODEL),
            evaluation_model=_env("EVALUATION_MODEL", DEFAULT_FAST_MODEL),
            extraction_model=_env("EXTRACTION_MODEL", DEFAULT_FAST_MODEL),
            synthesis_model=_env("SYNTHESIS_MODEL", DEFAULT_WRITER_MODEL),
            llm_output_retries=_env_int("LLM_OUTPUT_RETRIES", 2),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 120.0),
            search_results_limit=_env_int("SEARCH_RESULTS_LIMIT", 5),
            search_timeout_seconds=_env_float("SEARCH_TIMEOUT_SECONDS", 30.0),
            search_concurrency=_env_int("SEARCH_CONCURRENCY", 2),
            source_concurrency=_env_int("SOURCE_CONCURRENCY", 5),
            max_source_chars=_env_int("MAX_SOURCE_CHARS", 12000),
            db_path=Path(_env("DB_PATH", "press_reviews.db")),
            dispatch_mode=_env("DISPATCH_MODE", "inline").lower(),
            poll_interval_seconds=_env_int("POLL_INTERVAL_SECONDS", 10),
            stall_timeout_minutes=_env_int("STALL_TIMEOUT_MINUTES", 30),
            stage_lease_seconds=_env_float("STAGE_LEASE_SECONDS", 300.0),
            webhook_url=_env("NOTIFICATION_WEBHOOK_URL"),
            alerts_file=_env("ALERTS_FILE"),
            reports_dir=Path(_env("REPORTS_DIR", "reports")),
            log_dir=Path(_env("LOG_DIR", "log")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
        )

    @property
    def models(self) -> list[str]:
        """All configured model strings."""
        return [
            self.context_model,
            self.query_model,
            self.evaluation_model,
            self.extraction_model,
            self.synthesis_model,
        ]

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Checks:
            - OPENAI_API_KEY is set when a hosted OpenAI model is configured
            - EXA_API_KEY is set
            - Numeric values are positive
            - Enumerated settings hold a known value

        Returns:
            Error message string if invalid, None if valid.
        """
        uses_hosted_openai = any(m.startswith("openai:") and "@" not in m for m in self.models)
        if uses_hosted_openai and not self.openai_api_key:
            return "OPENAI_API_KEY environment variable is required for openai: models"
        if not self.exa_api_key:
            return "EXA_API_KEY environment variable is required"
        if self.search_results_limit <= 0:
            return "SEARCH_RESULTS_LIMIT must be positive"
        if self.search_concurrency <= 0 or self.source_concurrency <= 0:
            return "SEARCH_CONCURRENCY and SOURCE_CONCURRENCY must be positive"
        if self.llm_timeout_seconds <= 0 or self.search_timeout_seconds <= 0:
            return "LLM_TIMEOUT_SECONDS and SEARCH_TIMEOUT_SECONDS must be positive"
        if self.llm_output_retries < 0:
            return "LLM_OUTPUT_RETRIES must be non-negative"
        if self.max_source_chars <= 0:
            return "MAX_SOURCE_CHARS must be positive"
        if self.dispatch_mode not in ("inline", "queue"):
            return f"Invalid DISPATCH_MODE '{self.dispatch_mode}' - must be 'inline' or 'queue'"
        if self.poll_interval_seconds <= 0:
            return "POLL_INTERVAL_SECONDS must be positive"
        if self.stall_timeout_minutes <= 0:
            return "STALL_TIMEOUT_MINUTES must be positive"
        if self.stage_lease_seconds <= 0:
            return "STAGE_LEASE_SECONDS must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
