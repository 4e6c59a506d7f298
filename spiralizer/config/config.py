"""Configuration management."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.validation import SpiralLimits

logger = structlog.get_logger()

BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_FILE = BASE_DIR / "config.yml"
ENV_FILE = BASE_DIR / ".env"

PROFILE_ENV_VAR = "SPIRALIZER_ENV"
CONFIG_FILE_ENV_VAR = "SPIRALIZER_CONFIG_FILE"
DEFAULT_PROFILE = "default"


class SpiralSettings(BaseModel):
    """Spiral parameter bounds."""

    min_points: int = Field(default=3, ge=2, description="Minimum points for a Voronoi diagram")
    max_points: int = Field(default=5000, description="Maximum points for spiral generation")
    max_angle_range: float = Field(default=1000, description="Maximum angle_end - angle_start")
    default_points: int = Field(default=300, description="Default number of points")
    min_angle: float = Field(default=0, ge=0, description="Smallest allowed start angle")


class SliderSettings(BaseModel):
    """Ranges offered by the parameter controls."""

    angle_min: int = Field(default=0, description="Slider minimum for angles")
    angle_max: int = Field(default=1000, description="Slider maximum for angles")
    density_min: int = Field(default=3, description="Slider minimum for density")
    density_max: int = Field(default=2000, description="Slider maximum for density")


class PlotSettings(BaseModel):
    default_limits: Tuple[float, float] = Field(default=(-10.0, 10.0), description="Fallback plot limits")
    limit_padding: float = Field(default=1.1, description="Plot limit padding factor")


class ExportSettings(BaseModel):
    """Raster and vector export settings."""

    png_size: int = Field(default=3000, description="PNG export size in pixels")
    png_resolution: int = Field(default=300, description="PNG export resolution in DPI")
    svg_size: float = Field(default=10, description="SVG export size in inches")
    alpha: float = Field(default=0.8, description="Cell fill opacity")
    line_width: float = Field(default=1.0, description="Cell border width")


class WarmPattern(BaseModel):
    angle_start: float
    angle_end: float
    num_points: int


class CacheSettings(BaseModel):
    """Cache tier settings."""

    max_size_mb: int = Field(default=100, description="Memoized compute cache size ceiling")
    max_age_seconds: int = Field(default=3600, description="Memoized compute cache TTL")
    session_max_entries: int = Field(default=256, description="Session cache entry limit")
    precomputed_path: Optional[str] = Field(default=None, description="Directory or file of a precomputed store")
    warm_on_startup: bool = Field(default=True, description="Pre-compute common patterns at startup")
    warm_patterns: List[WarmPattern] = Field(
        default=[
            WarmPattern(angle_start=0, angle_end=100, num_points=300),
            WarmPattern(angle_start=0, angle_end=50, num_points=200),
            WarmPattern(angle_start=0, angle_end=200, num_points=400),
            WarmPattern(angle_start=0, angle_end=500, num_points=500),
            WarmPattern(angle_start=111, angle_end=222, num_points=333),
            WarmPattern(angle_start=0, angle_end=666, num_points=999),
        ],
        description="Patterns computed by cache warming",
    )


class PaletteSettings(BaseModel):
    default: str = Field(default="turbo", description="Default color palette")


class TruncationSettings(BaseModel):
    factor_default: float = Field(default=2.0, description="Default truncation factor")


class ModeLimits(BaseModel):
    max_points: int
    debounce_ms: int
    cache_size_mb: int


class PerformanceSettings(BaseModel):
    """Estimator constants and host classification thresholds."""

    base_time_ms: float = Field(default=50.0, description="Fixed computation overhead")
    per_point_ms: float = Field(default=0.3, description="Computation time per point")
    high_memory_gb: float = Field(default=16, description="Memory needed for high mode")
    high_cores: int = Field(default=8, description="Cores needed for high mode")
    medium_memory_gb: float = Field(default=8, description="Memory needed for medium mode")
    medium_cores: int = Field(default=4, description="Cores needed for medium mode")
    modes: Dict[str, ModeLimits] = Field(
        default={
            "high": ModeLimits(max_points=5000, debounce_ms=150, cache_size_mb=200),
            "medium": ModeLimits(max_points=3000, debounce_ms=300, cache_size_mb=100),
            "low": ModeLimits(max_points=1000, debounce_ms=500, cache_size_mb=50),
        },
        description="Limits per performance mode",
    )


class ComputeSettings(BaseModel):
    timeout_seconds: float = Field(default=30.0, description="Upper bound on a single tessellation")
    max_workers: int = Field(default=2, description="Threads running tessellations")


class Settings(BaseSettings):
    """Application settings from config.yml, .env and the environment."""

    model_config = SettingsConfigDict(
        env_prefix="SPIRALIZER_",
        env_nested_delimiter="__",
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    profile: str = Field(default=DEFAULT_PROFILE, description="Active configuration profile")

    spiral: SpiralSettings = Field(default_factory=SpiralSettings)
    sliders: SliderSettings = Field(default_factory=SliderSettings)
    plot: PlotSettings = Field(default_factory=PlotSettings)
    export: ExportSettings = Field(default_factory=ExportSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    palette: PaletteSettings = Field(default_factory=PaletteSettings)
    truncation: TruncationSettings = Field(default_factory=TruncationSettings)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    compute: ComputeSettings = Field(default_factory=ComputeSettings)

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="plain", description="Logging format (plain or json)")

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        # Environment beats the YAML values passed in as init kwargs
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def spiral_limits(self, profile=None) -> SpiralLimits:
        """Validation bounds, with max_points capped by a performance profile."""
        max_points = self.spiral.max_points
        if profile is not None:
            max_points = min(max_points, profile.max_points)
        return SpiralLimits(
            min_points=self.spiral.min_points,
            max_points=max_points,
            max_angle_range=self.spiral.max_angle_range,
            min_angle=self.spiral.min_angle,
        )


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config_name() -> str:
    """Name of the active profile (default, development, production)."""
    if PROFILE_ENV_VAR in os.environ:
        return os.environ[PROFILE_ENV_VAR]
    if ENV_FILE.exists():
        return dotenv_values(ENV_FILE).get(PROFILE_ENV_VAR) or DEFAULT_PROFILE
    return DEFAULT_PROFILE


def load_yaml_config(path: Path, profile: str) -> Dict[str, Any]:
    """Read config.yml and merge the profile section over ``default``."""
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    values = dict(raw.get(DEFAULT_PROFILE) or {})
    if profile != DEFAULT_PROFILE:
        if profile in raw:
            values = _deep_merge(values, raw[profile] or {})
        else:
            logger.warning("Profile not found in config file, using default",
                           profile=profile, path=str(path))
    return values


def load_settings(profile: Optional[str] = None,
                  config_file: Optional[Path] = None) -> Settings:
    """
    Build Settings for a profile.

    Values come from config.yml (profile merged over default), then .env
    and SPIRALIZER_* environment variables. Without a config file the
    hard-coded defaults apply.
    """
    profile = profile or get_config_name()
    if config_file is None:
        config_file = Path(os.environ.get(CONFIG_FILE_ENV_VAR, CONFIG_FILE))

    values: Dict[str, Any] = {}
    if config_file.exists():
        values = load_yaml_config(config_file, profile)
    else:
        logger.warning("config.yml not found, using hardcoded defaults", path=str(config_file))

    values["profile"] = profile
    return Settings(**values)


settings = load_settings()


def get_settings() -> Settings:
    """Currently active settings."""
    return settings


def reload_settings(profile: Optional[str] = None,
                    config_file: Optional[Path] = None) -> Settings:
    """Reload settings from disk and make them the active settings."""
    global settings
    settings = load_settings(profile, config_file)
    logger.info("Configuration reloaded", profile=settings.profile)
    return settings


def get_setting(*path: str, default: Any = None, source: Optional[Settings] = None) -> Any:
    """
    Look up a setting by key path, e.g. ``get_setting("spiral", "max_points")``.

    Returns ``default`` when any segment is missing.
    """
    node: Any = source or settings
    for key in path:
        if isinstance(node, dict):
            if key not in node:
                return default
            node = node[key]
        elif hasattr(node, key):
            node = getattr(node, key)
        else:
            return default
    return node
