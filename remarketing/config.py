"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``     : committed static defaults
  2. ``config/local.toml``       : optional local overrides (gitignored)
  3. ``.env``                    : local secrets and env overrides (gitignored)
  4. Environment variables       : ``REMARKETING_*`` prefix (plus ``OPENAI_API_KEY``)

Entry point: ``load_config(config_path=None) -> AppConfig``

The scheduler, workflow runner, oracle factory, and CLI commands all receive
an ``AppConfig`` instance: never raw dicts or scattered env var lookups.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from remarketing.taxonomy.recommendation_taxonomy import RecommendationType

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/remarketing.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/remarketing.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class OracleConfig(BaseModel):
    """Recommendation oracle backend settings.

    ``backend = "llm"`` talks to an OpenAI-compatible chat-completions
    endpoint; ``backend = "heuristic"`` uses the offline rule-based scorer.
    """

    model_config = ConfigDict(frozen=True)

    backend: Literal["llm", "heuristic"] = "llm"
    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 1500
    timeout_seconds: float = 60.0
    suggest_products: bool = False

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"temperature must be in [0.0, 2.0], got {v}.")
        return v


class WorkflowConfig(BaseModel):
    """Generation pass parameters."""

    model_config = ConfigDict(frozen=True)

    expiry_days: int = 2
    allowed_types: Optional[list[str]] = None

    @field_validator("expiry_days")
    @classmethod
    def validate_expiry(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"expiry_days must be >= 0, got {v}.")
        return v

    @field_validator("allowed_types")
    @classmethod
    def validate_allowed_types(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        valid = {t.value for t in RecommendationType}
        unknown = [t for t in v if t not in valid]
        if unknown:
            raise ValueError(f"Unknown recommendation types {unknown}; valid: {sorted(valid)}.")
        return v


class MaintenanceConfig(BaseModel):
    """Expiry sweep and retention cleanup settings."""

    model_config = ConfigDict(frozen=True)

    retention_days: int = 30


class SchedulerConfig(BaseModel):
    """Recurring timer settings.

    ``schedule`` is either a cron expression (``"0 2 */2 * *"`` = every
    second day at 02:00) or an interval string such as ``"6h"``.
    """

    model_config = ConfigDict(frozen=True)

    schedule: str = "0 2 */2 * *"
    timezone: str = "America/New_York"
    autostart: bool = True


class NotificationConfig(BaseModel):
    """Admin notification channel after scheduled passes."""

    model_config = ConfigDict(frozen=True)

    webhook_url: Optional[str] = None
    timeout_seconds: float = 10.0


class AppConfig(BaseModel):
    """Complete application configuration: the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    oracle: OracleConfig = OracleConfig()
    workflow: WorkflowConfig = WorkflowConfig()
    maintenance: MaintenanceConfig = MaintenanceConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    notifications: NotificationConfig = NotificationConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply REMARKETING_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply REMARKETING_* env vars to the raw config dict.

    Supported overrides:
      REMARKETING_DB_PATH         → raw["database"]["db_path"]
      REMARKETING_LOG_LEVEL       → raw["logging"]["level"]
      REMARKETING_SCHEDULE        → raw["scheduler"]["schedule"]
      REMARKETING_ORACLE_BACKEND  → raw["oracle"]["backend"]
      REMARKETING_ORACLE_API_KEY  → raw["oracle"]["api_key"]
      OPENAI_API_KEY              → raw["oracle"]["api_key"] (if not already set)
      REMARKETING_DEBUG           → raw["debug"]
    """
    if db_path := os.environ.get("REMARKETING_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("REMARKETING_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if schedule := os.environ.get("REMARKETING_SCHEDULE"):
        raw.setdefault("scheduler", {})["schedule"] = schedule

    if backend := os.environ.get("REMARKETING_ORACLE_BACKEND"):
        raw.setdefault("oracle", {})["backend"] = backend

    api_key = os.environ.get("REMARKETING_ORACLE_API_KEY") or os.environ.get(
        "OPENAI_API_KEY"
    )
    if api_key and not raw.get("oracle", {}).get("api_key"):
        raw.setdefault("oracle", {})["api_key"] = api_key

    if debug := os.environ.get("REMARKETING_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        oracle=OracleConfig(**raw.get("oracle", {})),
        workflow=WorkflowConfig(**raw.get("workflow", {})),
        maintenance=MaintenanceConfig(**raw.get("maintenance", {})),
        scheduler=SchedulerConfig(**raw.get("scheduler", {})),
        notifications=NotificationConfig(**raw.get("notifications", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
