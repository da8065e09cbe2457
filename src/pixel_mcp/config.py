"""
Configuration module for pixel_mcp.
Handles environment variables, the workspace root and engine tunables.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class EngineConfig(BaseModel):
    """Algorithm tunables shared by the engine modules."""
    kmeans_epsilon: float = Field(default=0.5, gt=0, description="Stop when no centroid moves farther than this")
    kmeans_max_iterations: int = Field(default=100, ge=1, le=10000, description="Lloyd iteration cap")
    max_samples: Optional[int] = Field(default=None, ge=1, description="Subsample cap before clustering")
    major_edge_min_length: int = Field(default=5, ge=2, description="Shortest edge run reported as a major edge")
    focal_window: int = Field(default=0, ge=0, description="Focal point window size, 0 picks one from image size")
    max_focal_points: int = Field(default=3, ge=1, le=32, description="Maximum focal points reported")
    max_dithering_zones: int = Field(default=5, ge=0, le=64, description="Maximum dithering zones suggested")


DEFAULT_ENGINE_CONFIG = EngineConfig()


class Settings(BaseModel):
    """Application settings from environment variables."""
    workspace_root: Path = Field(description="Workspace root directory")
    output_dir: Path = Field(description="Default directory for written images")
    log_level: str = Field(default="INFO", description="Logging level name")
    engine: EngineConfig = Field(default_factory=EngineConfig)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value) -> str:
        if value is None:
            return "INFO"
        level = str(value).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @classmethod
    def from_env(cls, workspace_override: Optional[Path] = None) -> "Settings":
        """Create settings from environment variables."""
        if workspace_override:
            workspace_root = workspace_override
        else:
            workspace_env = os.environ.get("PIXEL_MCP_WORKSPACE")
            if workspace_env:
                workspace_root = Path(workspace_env)
            else:
                workspace_root = Path.cwd() / "workspace"

        workspace_root = workspace_root.resolve()

        engine_kwargs = {}
        max_samples_env = os.environ.get("PIXEL_MCP_MAX_SAMPLES")
        if max_samples_env:
            engine_kwargs["max_samples"] = int(max_samples_env)

        return cls(
            workspace_root=workspace_root,
            output_dir=workspace_root / "out",
            log_level=os.environ.get("PIXEL_MCP_LOG_LEVEL", "INFO"),
            engine=EngineConfig(**engine_kwargs),
        )

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)

    def ensure_directories(self) -> None:
        """Create workspace directories if they don't exist."""
        for d in [self.workspace_root, self.output_dir]:
            d.mkdir(parents=True, exist_ok=True)


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def get_settings(workspace_override: Optional[Path] = None) -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None or workspace_override:
        _settings = Settings.from_env(workspace_override)
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
