"""Configuration models using Pydantic for validation."""
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import os

RUNNER_VERSION = "2.329.0"


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid log level: {v}")
        return level


class RunnerConfig(BaseModel):
    """Identity of the runner the metrics describe."""
    name: str = "unknown"
    type: str = "standard"


class ServerConfig(BaseModel):
    """HTTP endpoint configuration."""
    bind_address: str = "0.0.0.0"
    port: int = Field(default=9091, ge=1, le=65535)


class UpdaterConfig(BaseModel):
    """Background updater configuration."""
    interval_s: float = Field(default=5.0, gt=0)
    max_events_per_tick: int = Field(default=1000, ge=1)
    cache_window: int = Field(default=100, ge=1)
    feed_maxsize: int = Field(default=10000, ge=1)


class ExporterConfig(BaseModel):
    """Prometheus exposition configuration."""
    prefix: str = ""
    self_metrics: bool = True


class ControlConfig(BaseModel):
    """Control endpoints that publish synthetic job events."""
    enabled: bool = False


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    updater: UpdaterConfig = Field(default_factory=UpdaterConfig)
    exporter: ExporterConfig = Field(default_factory=ExporterConfig)
    control: ControlConfig = Field(default_factory=ControlConfig)


def _getenv(key: str) -> Optional[str]:
    """Read an environment variable, treating empty values as unset."""
    value = os.getenv(key)
    if value:
        return value
    return None


def _override(raw_config: dict, section: str, key: str, value: str):
    if not raw_config.get(section):
        raw_config[section] = {}
    raw_config[section][key] = value


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate configuration from an optional YAML file and the environment."""
    import yaml

    raw_config = {}
    if config_path is not None:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        if not isinstance(raw_config, dict):
            raise ValueError(f"Configuration file must contain a mapping: {config_path}")

    # Apply environment variable overrides
    if env_name := _getenv('RUNNER_NAME'):
        _override(raw_config, 'runner', 'name', env_name)

    if env_type := _getenv('RUNNER_TYPE'):
        _override(raw_config, 'runner', 'type', env_type)

    if env_log_level := _getenv('LOG_LEVEL'):
        _override(raw_config, 'global', 'log_level', env_log_level)

    try:
        return Config(**raw_config)
    except ValidationError as e:
        raise ValueError(f"Configuration validation failed: {e}")
