"""Utility functions for the depth fusion tracker."""

from .matrix import (
    check_transform_change,
    euler_angles,
    extract_position,
    extract_rotation,
    make_transform,
    rotation_from_euler,
    validate_transform,
)
from .validation import (
    validate_color_buffer,
    validate_depth_buffer,
    validate_pose,
)

__all__ = [
    "check_transform_change",
    "euler_angles",
    "extract_position",
    "extract_rotation",
    "make_transform",
    "rotation_from_euler",
    "validate_transform",
    "validate_color_buffer",
    "validate_depth_buffer",
    "validate_pose",
]
