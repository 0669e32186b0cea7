"""
CrowdCountFusion Configuration
==============================

This module handles configuration loading for the analysis service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CROWD_FUSION_BACKEND              -> estimators.backend
    CROWD_FUSION_LOAD_TIMEOUT         -> estimators.load_timeout_seconds
    CROWD_FUSION_SCORE_THRESHOLD      -> estimators.detection.score_threshold
    CROWD_FUSION_DENSITY_MODEL_PATH   -> estimators.density.model_path
    CROWD_FUSION_ZERO_SHOT_MAX_SAMPLES -> estimators.zero_shot.max_samples
    CROWD_FUSION_ENABLED              -> estimators.enabled (comma separated)
    CROWD_FUSION_DENSE_RATIO          -> fusion.dense_crowd_ratio
    CROWD_FUSION_PORT                 -> server.port
    CROWD_FUSION_LOG_LEVEL            -> logging.level
    PORT                              -> server.port (Cloud Run)

Example:
    from crowd_fusion.config import settings

    print(settings.estimators.backend)
    print(settings.estimators.detection.score_threshold)
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from crowd_fusion.models.estimate import KIND_ORDER, EstimatorKind


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="crowd-count-fusion", description="Service name")
    version: str = Field(default="v0.1.0", description="API version")


class DetectionConfig(BaseModel):
    """Direct object detection configuration."""

    model: str = Field(
        default="facebook/detr-resnet-50",
        description="Hugging Face object-detection model id",
    )
    score_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum detection score kept by the adapter",
    )


class DensityConfig(BaseModel):
    """Density regression configuration."""

    model_path: str = Field(
        default="./models/density.pt",
        description="Path to a TorchScript density model",
    )
    input_width: int = Field(default=1024, ge=1, description="Model input width")
    input_height: int = Field(default=768, ge=1, description="Model input height")


class FaceConfig(BaseModel):
    """Face demographic configuration."""

    age_model: str = Field(
        default="nateraw/vit-age-classifier",
        description="Hugging Face age classification model id",
    )
    gender_model: str = Field(
        default="rizvandwiki/gender-classification",
        description="Hugging Face gender classification model id",
    )
    child_age: float = Field(
        default=18.0,
        gt=0,
        description="Faces younger than this are counted as children",
    )
    min_face_size: int = Field(default=30, ge=8, description="Minimum face size in pixels")


class ZeroShotConfig(BaseModel):
    """Zero-shot crop classification configuration."""

    model: str = Field(
        default="openai/clip-vit-base-patch32",
        description="Hugging Face zero-shot image classification model id",
    )
    labels: List[str] = Field(
        default_factory=lambda: ["man", "woman", "child"],
        description="Candidate labels",
    )
    max_samples: int = Field(
        default=20,
        ge=1,
        description="Maximum person crops classified per image",
    )


class MockBackendConfig(BaseModel):
    """Mock backend configuration (deterministic outputs)."""

    person_count: int = Field(default=8, ge=0, description="Person boxes returned")
    density_total: float = Field(default=12.0, ge=0, description="Density grid sum")
    face_count: int = Field(default=5, ge=0, description="Faces returned")


class EstimatorsConfig(BaseModel):
    """Estimator backend and per-kind configuration."""

    backend: str = Field(
        default="mock",
        description="Model backend: 'mock' or 'transformers'",
    )
    load_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Bounded wait for a model to become ready",
    )
    device: str = Field(default="cpu", description="Torch device for all models")
    enabled: List[EstimatorKind] = Field(
        default_factory=lambda: list(KIND_ORDER),
        description="Kinds enabled by default for each analysis",
    )
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    density: DensityConfig = Field(default_factory=DensityConfig)
    face: FaceConfig = Field(default_factory=FaceConfig)
    zero_shot: ZeroShotConfig = Field(default_factory=ZeroShotConfig)
    mock: MockBackendConfig = Field(default_factory=MockBackendConfig)


class FusionConfig(BaseModel):
    """Fusion policy configuration."""

    dense_crowd_ratio: float = Field(
        default=2.0,
        gt=1.0,
        description="Density count above ratio * detection count is a dense scene",
    )


class DisplayConfig(BaseModel):
    """Display toggles applied by the presentation projector."""

    show_people: bool = Field(default=True, description="Show person category and boxes")
    show_animals: bool = Field(default=True, description="Show animal categories")
    animal_labels: List[str] = Field(
        default_factory=lambda: [
            "bird", "cat", "dog", "horse", "sheep",
            "cow", "elephant", "bear", "zebra", "giraffe",
        ],
        description="Detection labels grouped as animals",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")
    max_upload_bytes: int = Field(
        default=20 * 1024 * 1024,
        ge=1024,
        description="Largest accepted image upload",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for CrowdCountFusion.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    estimators: EstimatorsConfig = Field(default_factory=EstimatorsConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    # Build settings object
    settings = Settings.model_validate(config_data)

    return settings


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Estimator settings
    if env_backend := os.environ.get("CROWD_FUSION_BACKEND"):
        config_data.setdefault("estimators", {})["backend"] = env_backend
    if env_timeout := os.environ.get("CROWD_FUSION_LOAD_TIMEOUT"):
        config_data.setdefault("estimators", {})["load_timeout_seconds"] = float(env_timeout)
    if env_enabled := os.environ.get("CROWD_FUSION_ENABLED"):
        config_data.setdefault("estimators", {})["enabled"] = [k.strip() for k in env_enabled.split(",") if k.strip()]
    if env_thr := os.environ.get("CROWD_FUSION_SCORE_THRESHOLD"):
        config_data.setdefault("estimators", {}).setdefault("detection", {})["score_threshold"] = float(env_thr)
    if env_path := os.environ.get("CROWD_FUSION_DENSITY_MODEL_PATH"):
        config_data.setdefault("estimators", {}).setdefault("density", {})["model_path"] = env_path
    if env_samples := os.environ.get("CROWD_FUSION_ZERO_SHOT_MAX_SAMPLES"):
        config_data.setdefault("estimators", {}).setdefault("zero_shot", {})["max_samples"] = int(env_samples)

    # Fusion settings
    if env_ratio := os.environ.get("CROWD_FUSION_DENSE_RATIO"):
        config_data.setdefault("fusion", {})["dense_crowd_ratio"] = float(env_ratio)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("CROWD_FUSION_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("CROWD_FUSION_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
