"""Rigid transforms that level a point cloud and move its ground to z = 0."""

from __future__ import annotations

import logging
import math

import numpy as np

log = logging.getLogger(__name__)

_APPROX_TOLERANCE = 1e-4
_MIN_ANGLE = 1e-6


def _as_points(points) -> np.ndarray:
    cloud = np.asarray(points, dtype=float)
    if cloud.size == 0:
        return np.empty((0, 3))
    if cloud.ndim != 2 or cloud.shape[1] != 3:
        raise ValueError(f"points must have shape (N, 3), got {cloud.shape}")
    return cloud


def _as_matrix(matrix) -> np.ndarray:
    array = np.asarray(matrix, dtype=float)
    if array.shape != (4, 4):
        raise ValueError(f"transform must be a 4x4 matrix, got shape {array.shape}")
    return array


def apply_transform(points, matrix) -> np.ndarray:
    """Apply a homogeneous 4x4 transform to an (N, 3) array of points."""
    cloud = _as_points(points)
    transform = _as_matrix(matrix)
    if len(cloud) == 0:
        return cloud.copy()
    return cloud @ transform[:3, :3].T + transform[:3, 3]


def _axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    x, y, z = axis
    skew = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    return np.eye(3) + math.sin(angle) * skew + (1.0 - math.cos(angle)) * (skew @ skew)


def _translation(offset) -> np.ndarray:
    matrix = np.eye(4)
    matrix[:3, 3] = offset
    return matrix


def rotate_to_horizontal(points, coefficients) -> tuple[np.ndarray, np.ndarray]:
    """Rotate ``points`` about their centroid so the plane normal becomes vertical.

    ``coefficients`` are (a, b, c, d) of the plane a*x + b*y + c*z + d = 0.
    The normal is turned towards +z, or towards -z when it points downwards.
    Returns the rotated points and the 4x4 transform that was applied.
    """
    cloud = _as_points(points)
    if len(cloud) == 0:
        raise ValueError("input point cloud is empty")
    coeffs = np.asarray(coefficients, dtype=float).ravel()
    if coeffs.size != 4:
        raise ValueError(f"plane needs 4 coefficients, got {coeffs.size}")
    normal = coeffs[:3]
    length = float(np.linalg.norm(normal))
    if not math.isfinite(length) or length == 0.0:
        raise ValueError(f"plane normal is not usable: {normal.tolist()}")
    normal = normal / length

    centroid = cloud.mean(axis=0)
    target = np.array([0.0, 0.0, 1.0])
    if normal[2] < 0.0:
        target[2] = -1.0

    if np.linalg.norm(normal - target) <= _APPROX_TOLERANCE:
        log.info("cloud is already horizontal; no rotation applied")
        return cloud.copy(), np.eye(4)

    if np.linalg.norm(normal + target) <= _APPROX_TOLERANCE:
        log.info("cloud is horizontal but upside down; rotating 180 degrees about x")
        rotation = _axis_angle(np.array([1.0, 0.0, 0.0]), math.pi)
    else:
        angle = math.acos(float(np.clip(normal @ target, -1.0, 1.0)))
        if angle < _MIN_ANGLE:
            log.info("rotation angle is negligible; no rotation applied")
            return cloud.copy(), np.eye(4)
        axis = np.cross(normal, target)
        axis = axis / np.linalg.norm(axis)
        log.info("rotating %.6g rad (%.4g deg) about %s", angle, math.degrees(angle), axis)
        rotation = _axis_angle(axis, angle)

    rotation4 = np.eye(4)
    rotation4[:3, :3] = rotation
    matrix = _translation(centroid) @ rotation4 @ _translation(-centroid)
    return apply_transform(cloud, matrix), matrix


def translate_to_z_zero(points) -> tuple[np.ndarray, np.ndarray]:
    """Shift ``points`` along z so their mean height becomes zero.

    Returns the shifted points and the 4x4 transform that was applied.
    """
    cloud = _as_points(points)
    if len(cloud) == 0:
        raise ValueError("input point cloud is empty")
    shift = -float(cloud[:, 2].mean())
    matrix = _translation([0.0, 0.0, shift])
    log.info("translating cloud by %.6g along z", shift)
    return apply_transform(cloud, matrix), matrix