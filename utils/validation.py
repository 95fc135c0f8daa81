"""Validation utilities for sensor buffers and poses."""

from typing import List, Tuple

import numpy as np

from .matrix import validate_transform


def validate_depth_buffer(
    depth: np.ndarray,
    width: int,
    height: int
) -> Tuple[bool, List[str]]:
    """
    Validate a raw depth buffer against the negotiated dimensions.

    Depth is expected as a (height, width) array of unsigned integer
    millimeters.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if depth is None:
        return False, ["Depth buffer is missing"]

    if depth.ndim != 2:
        errors.append(f"Depth buffer must be 2-D, got {depth.ndim} dimensions")
    elif depth.shape != (height, width):
        errors.append(
            f"Size of depth frame does not match. Expected: {width}x{height}, "
            f"Actual: {depth.shape[1]}x{depth.shape[0]}"
        )

    if not np.issubdtype(depth.dtype, np.unsignedinteger):
        errors.append(f"Depth buffer must hold unsigned millimeters, got {depth.dtype}")

    return len(errors) == 0, errors


def validate_color_buffer(
    color: np.ndarray,
    width: int,
    height: int
) -> Tuple[bool, List[str]]:
    """
    Validate a colour buffer against the negotiated dimensions.

    Colour is expected as a (height, width, 4) RGBA uint8 array.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if color is None:
        return False, ["Color buffer is missing"]

    if color.ndim != 3 or color.shape[2] != 4:
        errors.append(f"Color buffer must be (height, width, 4), got {color.shape}")
    elif color.shape[:2] != (height, width):
        errors.append(
            f"Size of color frame does not match. Expected: {width}x{height}, "
            f"Actual: {color.shape[1]}x{color.shape[0]}"
        )

    if color.dtype != np.uint8:
        errors.append(f"Color buffer must be uint8, got {color.dtype}")

    return len(errors) == 0, errors


def validate_pose(pose: np.ndarray) -> Tuple[bool, List[str]]:
    """
    Validate a camera pose supplied from outside the tracker.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    pose = np.asarray(pose, dtype=float)
    if not validate_transform(pose):
        return False, [f"Invalid camera pose: {pose.tolist()}"]
    return True, []
