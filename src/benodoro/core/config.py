"""Configuration management with Pydantic and YAML support."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionConfig(BaseModel):
    """Session durations offered by the controls."""

    focus_minutes: float = Field(default=25, gt=0)
    break_minutes: float = Field(default=5, gt=0)


class LocalMirrorConfig(BaseModel):
    """Shared key-value store read by widgets."""

    backend: str = Field(default="sqlite", pattern="^(sqlite|memory)$")
    suite_name: str = Field(
        default="group.com.bryandebourbon.Pomodoro",
        description="App group identifier shared with widget processes",
    )


class CloudConfig(BaseModel):
    """Remote single-record store configuration."""

    provider: str = Field(default="none", pattern="^(http|memory|none)$")
    api_url: str = Field(default="http://127.0.0.1:8000")
    container_id: str = Field(default="iCloud.com.example.Pomodoro")
    record_type: str = Field(default="PomodoroState")
    record_name: str = Field(default="currentPomodoroState")
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    conflict_policy: str = Field(default="latest_wins", pattern="^(latest_wins|remote_wins)$")
    callback_url: str | None = Field(
        default=None,
        description="URL the store POSTs to on record changes (enables push subscription)",
    )


class CompanionConfig(BaseModel):
    """Paired device channel configuration."""

    enabled: bool = False
    peer_url: str = Field(default="http://127.0.0.1:8766")
    reachability_timeout_seconds: float = Field(default=1.0, gt=0)


class WidgetConfig(BaseModel):
    """Widget timeline configuration."""

    kind: str = Field(default="benodoroWatchWidget")
    entry_interval_seconds: int = Field(default=60, ge=1)


class WebConfig(BaseModel):
    """Control surface served by the app process."""

    enabled: bool = True
    host: str = Field(default="127.0.0.1", description="Bind to localhost only")
    port: int = Field(default=8765, ge=1024, le=65535)


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BENODORO_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/benodoro")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".local/state/benodoro/logs")
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config/benodoro")

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Sub-configurations
    session: SessionConfig = Field(default_factory=SessionConfig)
    local_mirror: LocalMirrorConfig = Field(default_factory=LocalMirrorConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)
    companion: CompanionConfig = Field(default_factory=CompanionConfig)
    widget: WidgetConfig = Field(default_factory=WidgetConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def shared_db_path(self) -> Path:
        """Path to the SQLite file backing the shared defaults."""
        return self.data_dir / f"{self.local_mirror.suite_name}.db"

    @property
    def config_file(self) -> Path:
        """Path to YAML config file."""
        return self.config_dir / "config.yaml"

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        os.chmod(self.data_dir, 0o700)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """Load configuration from YAML file, environment variables, and defaults.

        Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        """
        config_path = config_path or Path.home() / ".config/benodoro/config.yaml"

        yaml_config: dict[str, Any] = {}
        if config_path.exists():
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}

        # YAML is passed as init data; settings_customise_sources ranks env vars above it
        return cls(**yaml_config)

    def save(self, config_path: Path | None = None) -> None:
        """Save current configuration to YAML file."""
        config_path = config_path or self.config_file
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        os.chmod(config_path, 0o600)


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.load()
