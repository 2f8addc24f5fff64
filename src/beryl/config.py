"""Settings loader for beryl generators."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import tomllib
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from beryl.crystal import PRODUCER_ID_MAX

CONFIG_PATH = Path("config.toml")


def _toml_settings_source() -> dict[str, Any]:
    """Load settings from config.toml with keys mapped to Settings fields.

    This source has LOWER priority than env/.env so those can override TOML.

    Example:
        [generator]
        id = 7
        epoch = "2024-01-01T00:00:00Z"
        blocking_strategy = "sleep"
        sleep_interval_ns = 100

        [logging]
        level = "DEBUG"
        console = "INFO"
        to_file = false
    """
    if not CONFIG_PATH.exists():
        return {}
    with CONFIG_PATH.open("rb") as f:
        t = tomllib.load(f)

    gen_cfg = t.get("generator", {}) or {}
    log_cfg = t.get("logging", {}) or {}
    out: dict[str, Any] = {}
    if "id" in gen_cfg:
        out["generator_id"] = gen_cfg["id"]
    if "epoch" in gen_cfg:
        out["epoch"] = gen_cfg["epoch"]
    if "blocking_strategy" in gen_cfg:
        out["blocking_strategy"] = gen_cfg["blocking_strategy"]
    if "sleep_interval_ns" in gen_cfg:
        out["sleep_interval_ns"] = gen_cfg["sleep_interval_ns"]

    overall = str(log_cfg.get("level", "INFO")).upper()
    out["logging_level"] = overall

    # Per-handler levels: strings INFO|DEBUG|WARNING|ERROR|CRITICAL|NONE
    # Booleans map True->overall level, False->NONE
    def _norm_level(v, default):
        if isinstance(v, str):
            return v.upper()
        if isinstance(v, bool):
            return default if v else "NONE"
        return default

    out["logging_console"] = _norm_level(log_cfg.get("console"), overall)
    out["logging_file"] = _norm_level(log_cfg.get("to_file", False), overall)
    if "file_path" in log_cfg:
        out["logging_file_path"] = log_cfg["file_path"]
    if "max_bytes" in log_cfg:
        out["logging_max_bytes"] = log_cfg["max_bytes"]
    if "backup_count" in log_cfg:
        out["logging_backup_count"] = log_cfg["backup_count"]
    return out


class Settings(BaseSettings):
    # --- Generator ---
    generator_id: int = Field(
        default=0, ge=0, le=PRODUCER_ID_MAX, description="Producer id embedded in every Crystal."
    )
    epoch: datetime = Field(
        default=datetime(1970, 1, 1, tzinfo=timezone.utc),
        description="Zero point of the 42-bit millisecond timestamp.",
    )
    blocking_strategy: Literal["spin", "sleep"] = "spin"
    sleep_interval_ns: int = Field(default=100, ge=0)

    # --- Logging ---
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "NONE"
    logging_file_path: str = "logs/beryl.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="BERYL_",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @field_validator("epoch")
    @classmethod
    def _epoch_utc(cls, v: datetime) -> datetime:
        # Naive epochs are UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Precedence (highest to lowest):
        # 1) init_settings (explicit overrides in code/tests)
        # 2) dotenv (.env in cwd)
        # 3) env_settings (OS env)
        # 4) TOML (config.toml in cwd)
        # 5) file_secret_settings
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings(**overrides: Any) -> Settings:
    return Settings(**overrides)
