"""Fusion settings: every tunable number of the tracking pipeline."""

import json
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from utils.matrix import world_to_bgr_transform


class SettingsError(Exception):
    """Error loading or validating fusion settings."""
    pass


class FusionSettings(BaseModel):
    """Pydantic model for fusion pipeline settings."""

    # Volume
    voxels_per_meter: float = Field(default=256.0, gt=0)
    voxels_x: int = Field(default=384, gt=0)
    voxels_y: int = Field(default=384, gt=0)
    voxels_z: int = Field(default=384, gt=0)
    translate_reset_pose_by_min_depth: bool = True

    # Depth conversion (meters)
    min_depth_clip: float = Field(default=0.35, ge=0)
    max_depth_clip: float = Field(default=8.0, gt=0)

    # Coarse tracking
    downsample_factor: int = Field(default=2, ge=1)
    smoothing_kernel_width: int = Field(default=1, ge=0)
    smoothing_distance_threshold: float = Field(default=0.04, gt=0)
    align_iteration_count: int = Field(default=7, ge=1)
    # Scalar for all axes or per-axis (x, y, z)
    max_translation_delta: Union[float, Tuple[float, float, float]] = 0.3
    max_rotation_delta: Union[float, Tuple[float, float, float]] = 20.0  # degrees
    delta_frame_interval: int = Field(default=2, ge=1)

    # Integration
    integration_weight: int = Field(default=200, ge=1, le=1000)
    min_successful_frames_after_failure: int = Field(default=200, ge=0)

    # Camera pose finder
    min_successful_frames_for_pose_finder: int = Field(default=45, ge=0)
    pose_finder_process_interval: int = Field(default=5, ge=1)
    pose_finder_distance_accept: float = Field(default=0.4, ge=0)
    pose_finder_distance_reject: float = Field(default=1.0, ge=0)
    max_pose_finder_tests: int = Field(default=5, ge=1)
    min_align_energy_for_success: float = Field(default=0.0, ge=0)
    max_align_energy_for_success: float = Field(default=0.006, gt=0)
    track_from_fallback_pose: bool = True

    model_config = {"extra": "forbid"}

    @field_validator("downsample_factor")
    @classmethod
    def validate_downsample_factor(cls, v):
        if v & (v - 1) != 0:
            raise ValueError(f"Downsample factor must be a power of two, got {v}")
        return v

    @field_validator("max_translation_delta", "max_rotation_delta")
    @classmethod
    def validate_motion_threshold(cls, v):
        values = v if isinstance(v, tuple) else (v,)
        if any(value <= 0 for value in values):
            raise ValueError(f"Motion thresholds must be positive, got {v}")
        return v

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.min_depth_clip >= self.max_depth_clip:
            raise ValueError("min_depth_clip must be smaller than max_depth_clip")
        if self.min_align_energy_for_success >= self.max_align_energy_for_success:
            raise ValueError("min_align_energy_for_success must be smaller than max_align_energy_for_success")
        if self.pose_finder_distance_accept > self.pose_finder_distance_reject:
            raise ValueError("pose_finder_distance_accept must not exceed pose_finder_distance_reject")
        return self

    def world_to_bgr(self) -> np.ndarray:
        """Colour mapping for shading the raycast surface."""
        return world_to_bgr_transform(
            self.voxels_per_meter, self.voxels_x, self.voxels_y, self.voxels_z
        )


def load_settings(path: Path) -> FusionSettings:
    """
    Load and validate fusion settings from a JSON file.

    Args:
        path: Path to a JSON object with FusionSettings fields

    Returns:
        Parsed FusionSettings object
    """
    if not path.exists():
        raise SettingsError(f"Settings file not found: {path}")

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SettingsError(f"Invalid JSON in settings: {e}")

    if not isinstance(data, dict):
        raise SettingsError(f"Settings must be a JSON object, got {type(data).__name__}")

    try:
        return FusionSettings(**data)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings: {e}")


def save_settings(settings: FusionSettings, path: Path) -> Path:
    """Write settings as indented JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(settings.model_dump(), f, indent=2)
    return path
