from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, field_validator
from pathlib import Path
from typing import Any
import os
import re
import yaml

CONFIG_ENV_VAR = "BUILDSWEEP_CONFIG"

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _resolve_env_vars(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_PATTERN.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)), value
        )
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


class EngineConfig(BaseModel):
    bookkeeping_dir: str = ".fingerprint"
    output_dirs: list[str] = ["deps", "build", "incremental", "examples"]
    toolchain_fields: list[str] = ["rustc", "toolchain", "compiler"]

    @field_validator("toolchain_fields")
    @classmethod
    def _require_field(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one toolchain field is required")
        return v


class LoggingConfig(BaseModel):
    level: str = "info"
    color: bool = True


class DiscoveryConfig(BaseModel):
    include_hidden: bool = False


class ToolchainConfig(BaseModel):
    rustup: str = "rustup"
    cargo: str = "cargo"
    probe_timeout: int = 120


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BUILDSWEEP_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineConfig = EngineConfig()
    logging: LoggingConfig = LoggingConfig()
    discovery: DiscoveryConfig = DiscoveryConfig()
    toolchains: ToolchainConfig = ToolchainConfig()

    @classmethod
    def from_yaml(cls, path: str | Path = "buildsweep.yaml") -> "Settings":
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        data = _resolve_env_vars(data)
        return cls(**data)


def load_settings(path: str | Path | None = None) -> Settings:
    """Settings from ``path``, $BUILDSWEEP_CONFIG or ./buildsweep.yaml, else defaults."""
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if path:
        return Settings.from_yaml(path)
    if Path("buildsweep.yaml").exists():
        return Settings.from_yaml("buildsweep.yaml")
    return Settings()
