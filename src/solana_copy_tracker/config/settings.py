"""Configuration management for the copy-trade position tracker."""

from __future__ import annotations

import os
import tomllib
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import BaseModel, Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ..utils.constants import (
    DEFAULT_FIXED_ENTRY_AMOUNT,
    ELIGIBLE_ENTRY_STATUSES,
    SOL_MINT,
    SOL_SYMBOL,
    SOLANA_CHAIN,
)

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
PROFILE_ENV_VAR = "TRACKER_PROFILE"
LEGACY_FIXED_AMOUNT_ENV_VAR = "SOLANA_FIXED_ENTRY_AMOUNT"
DEFAULT_PROFILE = "default"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
    if not data:
        return {}, DEFAULT_PROFILE
    base_section = cast(Dict[str, Any], data.get(DEFAULT_PROFILE, {}))
    requested = os.getenv(PROFILE_ENV_VAR)
    if not requested:
        profile_section = base_section.get("profile")
        if isinstance(profile_section, dict):
            requested = cast(Optional[str], profile_section.get("name"))
        elif isinstance(profile_section, str):
            requested = profile_section
    requested = (requested or DEFAULT_PROFILE).lower()

    if requested != DEFAULT_PROFILE and isinstance(data.get(requested), dict):
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested])), requested
    if base_section:
        return base_section, DEFAULT_PROFILE
    return data, DEFAULT_PROFILE


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    merged, profile_name = _select_profile(payload)
    merged = {k: v for k, v in merged.items()}
    profile_section = merged.get("profile")
    if isinstance(profile_section, dict):
        profile_section = dict(profile_section)
    else:
        profile_section = {}
    profile_section["name"] = profile_name
    profile_section.setdefault("config_file", str(path))
    merged["profile"] = profile_section
    return merged, path


class TomlProfileSettingsSource(PydanticBaseSettingsSource):
    """Settings source reading the active profile out of ``config/app.toml``."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        payload, _ = _load_toml_config()
        return payload


class LegacyFixedAmountSettingsSource(PydanticBaseSettingsSource):
    """Maps ``SOLANA_FIXED_ENTRY_AMOUNT`` onto ``tracking.fixed_entry_amount``.

    Sits below the init, environment and dotenv sources so any nested
    ``TRACKING__FIXED_ENTRY_AMOUNT`` value wins, and above the TOML profile.
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        legacy = os.getenv(LEGACY_FIXED_AMOUNT_ENV_VAR)
        if not legacy:
            return {}
        return {"tracking": {"fixed_entry_amount": legacy}}


class ProfileConfig(BaseModel):
    """Which TOML profile produced this configuration."""

    name: str = Field(default=DEFAULT_PROFILE)
    config_file: Optional[Path] = None


class TrackingConfig(BaseModel):
    """Position tracking and copy sizing policy."""

    chain: str = Field(default=SOLANA_CHAIN)
    native_symbol: str = Field(default=SOL_SYMBOL)
    native_mint: str = Field(default=SOL_MINT)
    fixed_entry_amount: str = Field(default=DEFAULT_FIXED_ENTRY_AMOUNT)
    eligible_statuses: List[str] = Field(default_factory=lambda: list(ELIGIBLE_ENTRY_STATUSES))

    @field_validator("fixed_entry_amount", mode="before")
    @classmethod
    def _parse_fixed_entry_amount(cls, value: Any) -> str:
        raw = str(value).strip()
        try:
            amount = Decimal(raw)
        except InvalidOperation as exc:
            raise ValueError(f"fixed_entry_amount must be a decimal string, got {value!r}") from exc
        if not amount.is_finite() or amount <= 0:
            raise ValueError(f"fixed_entry_amount must be positive, got {value!r}")
        return raw

    @field_validator("eligible_statuses", mode="before")
    @classmethod
    def _normalize_statuses(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = value.split(",")
        statuses = [str(item).strip().lower() for item in value if str(item).strip()]
        if not statuses:
            raise ValueError("eligible_statuses must contain at least one status code")
        return statuses


class StorageConfig(BaseModel):
    """Swap record persistence configuration."""

    database_path: Path = Field(default=Path("./swaps.sqlite3"))
    cache_ttl_seconds: int = Field(default=600, ge=0)
    query_retry_attempts: int = Field(default=3, ge=1, le=10)


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Ensure runtime environment variables win over static config file defaults.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            LegacyFixedAmountSettingsSource(settings_cls),
            TomlProfileSettingsSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "MonitoringConfig",
    "ProfileConfig",
    "StorageConfig",
    "TrackingConfig",
    "get_app_config",
]
