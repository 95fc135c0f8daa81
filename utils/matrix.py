"""Matrix transformation utilities for camera pose tracking."""

import math

import numpy as np
from typing import Optional, Sequence, Tuple, Union


def make_transform(
    rotation: Optional[np.ndarray] = None,
    translation: Sequence[float] = (0.0, 0.0, 0.0)
) -> np.ndarray:
    """Compose a 4x4 rigid transform from a 3x3 rotation and a translation."""
    matrix = np.eye(4)
    if rotation is not None:
        matrix[:3, :3] = rotation
    matrix[:3, 3] = np.asarray(translation, dtype=float).reshape(3)
    return matrix


def rotation_from_euler(phi: float, theta: float, psi: float) -> np.ndarray:
    """
    Build a rotation matrix from Euler angles in radians.

    Rotations are applied about X (phi), then Y (theta), then Z (psi),
    i.e. R = Rz(psi) @ Ry(theta) @ Rx(phi). This is the inverse of
    euler_angles().
    """
    cx, sx = math.cos(phi), math.sin(phi)
    cy, sy = math.cos(theta), math.sin(theta)
    cz, sz = math.cos(psi), math.sin(psi)

    rx = np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]])
    ry = np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]])
    rz = np.array([[cz, -sz, 0], [sz, cz, 0], [0, 0, 1]])

    return rz @ ry @ rx


def validate_transform(matrix: np.ndarray) -> bool:
    """
    Validate that a 4x4 matrix is a valid rigid transformation matrix.

    Checks:
    - Shape is (4, 4)
    - No NaN or Inf values
    - Bottom row is [0, 0, 0, 1]
    - Rotation part is orthonormal (within tolerance)
    """
    if matrix.shape != (4, 4):
        return False

    if np.any(np.isnan(matrix)) or np.any(np.isinf(matrix)):
        return False

    if not np.allclose(matrix[3, :], [0, 0, 0, 1], atol=1e-6):
        return False

    rotation = matrix[:3, :3]
    if not np.allclose(rotation @ rotation.T, np.eye(3), atol=1e-4):
        return False

    # A determinant of -1 would be a reflection
    if not np.isclose(np.linalg.det(rotation), 1.0, atol=1e-4):
        return False

    return True


def extract_position(matrix: np.ndarray) -> np.ndarray:
    """Extract translation from 4x4 transform matrix."""
    return matrix[:3, 3].copy()


def extract_rotation(matrix: np.ndarray) -> np.ndarray:
    """Extract 3x3 rotation matrix from 4x4 transform matrix."""
    return matrix[:3, :3].copy()


def euler_angles(matrix: np.ndarray) -> np.ndarray:
    """
    Convert the rotation block of a transform to Euler angles (radians).

    Returns:
        Array [phi, theta, psi] of rotations about x, y and z.
    """
    return np.array([
        math.atan2(matrix[2, 1], matrix[2, 2]),
        math.asin(max(-1.0, min(1.0, -matrix[2, 0]))),
        math.atan2(matrix[1, 0], matrix[0, 0]),
    ])


def unwrap_angle_pair(initial: float, final: float, max_rot: float) -> Tuple[float, float]:
    """
    Bring two angles onto the same side of the +/-pi seam.

    When one angle lies within max_rot of +pi and the other within max_rot
    of -pi, the one near +pi is shifted down by 2*pi so their difference is
    the short way round.
    """
    if initial >= math.pi - max_rot and final < max_rot - math.pi:
        initial -= 2 * math.pi
    elif final >= math.pi - max_rot and initial < max_rot - math.pi:
        final -= 2 * math.pi
    return initial, final


def check_transform_change(
    initial: np.ndarray,
    final: np.ndarray,
    max_trans: Union[float, Sequence[float]],
    max_rot_degrees: Union[float, Sequence[float]]
) -> bool:
    """
    Test whether the camera moved a plausible amount between two frames.

    Each axis is checked independently: the Euler angle delta about x, y
    and z must not exceed max_rot_degrees, and the translation delta along
    x, y and z must not exceed max_trans. Either threshold may be a scalar
    applied to all three axes or a per-axis (x, y, z) sequence.

    Args:
        initial: Pose of the previous frame (4x4)
        final: Candidate pose of the current frame (4x4)
        max_trans: Maximum translation in meters per axis
        max_rot_degrees: Maximum rotation in degrees per axis

    Returns:
        True if the change is within the thresholds, False if it is too far
    """
    max_trans = np.broadcast_to(np.asarray(max_trans, dtype=float), (3,))
    max_rot = np.radians(np.broadcast_to(np.asarray(max_rot_degrees, dtype=float), (3,)))

    euler_initial = euler_angles(initial)
    euler_final = euler_angles(final)

    trans_initial = extract_position(initial)
    trans_final = extract_position(final)

    for i in range(3):
        angle_initial, angle_final = unwrap_angle_pair(
            euler_initial[i], euler_final[i], float(max_rot[i])
        )

        if abs(angle_initial - angle_final) > max_rot[i]:
            return False
        if abs(trans_initial[i] - trans_final[i]) > max_trans[i]:
            return False

    return True


def world_to_bgr_transform(
    voxels_per_meter: float,
    voxels_x: int,
    voxels_y: int,
    voxels_z: int
) -> np.ndarray:
    """
    Compute the world-to-colour mapping used when shading the raycast surface.

    World X maps to blue, Y to green and Z to red, each normalized to [0, 1]
    over the volume extent. X and Y are shifted by 0.5 because the world
    origin sits at the centre of the volume's front face.
    """
    matrix = np.eye(4)
    matrix[0, 0] = voxels_per_meter / voxels_x
    matrix[1, 1] = voxels_per_meter / voxels_y
    matrix[2, 2] = voxels_per_meter / voxels_z
    matrix[0, 3] = 0.5
    matrix[1, 3] = 0.5
    return matrix
