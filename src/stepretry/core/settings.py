"""Environment-driven defaults for stepretry.

``StepRetrySettings`` supplies the values an orchestrator config falls
back to when a config file leaves them out, plus the logging knobs used
by the CLI.

Fields are read from ``STEPRETRY_*`` environment variables and an optional
``.env`` file::

    STEPRETRY_MAX_RETRIES=3
    STEPRETRY_INTER_ATTEMPT_DELAY_MS=500
    STEPRETRY_LOG_LEVEL=DEBUG

Tags:
    settings, configuration, pydantic, environment, stepretry
"""

from __future__ import annotations

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stepretry.core.errors import ConfigurationError


class StepRetrySettings(BaseSettings):
    """Defaults for orchestrator configuration and logging.

    Fields
    ──────
    max_retries             : Retries after the first attempt
    inter_attempt_delay_ms  : Blocking wait between attempts
    log_level               : Structlog log level
    log_json                : JSON output (None = auto-detect from tty)
    """

    model_config = SettingsConfigDict(
        env_prefix="STEPRETRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Retry loop ───────────────────────────────────────────────
    max_retries: int = Field(default=0, ge=0)
    inter_attempt_delay_ms: int = Field(default=0, ge=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value


def load_settings() -> StepRetrySettings:
    """Read ``StepRetrySettings`` from the environment.

    Raises:
        ConfigurationError: A ``STEPRETRY_*`` value fails validation.
    """
    try:
        return StepRetrySettings()
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        env_name = f"STEPRETRY_{field.upper()}" if field else "STEPRETRY_*"
        raise ConfigurationError(
            f"Invalid {env_name}: {first.get('msg', exc)}",
            field=field,
            cause=exc,
        ) from exc
