"""
VHDForge configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path.home() / ".vhdforge" / "config.json"


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    workspace_log_enabled: bool = True
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".vhdforge" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class SafetyConfig(BaseModel):
    """Configuration for safety features."""

    preflight_checks_enabled: bool = True
    require_admin: bool = True
    power_check_enabled: bool = True
    confirm_destructive: bool = True


class WorkspaceConfig(BaseModel):
    """Configuration for the virtual disk workspace."""

    root: Path | None = None
    reserved_letters: str = "STUVWXYZ"
    vhd_extensions: list[str] = Field(default_factory=lambda: [".vhdx", ".vhd"])
    efi_size_mb: int = Field(default=100, ge=1, le=2048)
    msr_size_mb: int = Field(default=16, ge=0, le=1024)
    output_limit: int = Field(default=800, ge=80, le=100_000)

    @field_validator("root", mode="before")
    @classmethod
    def expand_root(cls, v: str | Path | None) -> Path | None:
        if v is None or v == "":
            return None
        return Path(v).expanduser().resolve()

    @field_validator("reserved_letters")
    @classmethod
    def validate_letters(cls, v: str) -> str:
        letters = v.strip().upper()
        if not letters:
            raise ValueError("at least one reserved drive letter is required")
        if not all("A" <= c <= "Z" for c in letters):
            raise ValueError(f"reserved letters must be A-Z, got {v!r}")
        if len(set(letters)) != len(letters):
            raise ValueError(f"reserved letters must be unique, got {v!r}")
        return letters

    @field_validator("vhd_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


class VhdForgeConfig(BaseModel):
    """Main VHDForge configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> VhdForgeConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if config_path.exists():
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)


def load_config(config_path: Path | None = None) -> VhdForgeConfig:
    """Load or create configuration."""
    config = VhdForgeConfig.load(config_path)
    config.ensure_directories()
    return config
