"""Map origin and size derived from a point cloud."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np


@dataclass
class MapParameters:
    """Geometry of a grid map: origin in metres, size in pixels, resolution in m/pixel."""

    origin_x: float = 0.0
    origin_y: float = 0.0
    width_pixels: int = 0
    height_pixels: int = 0
    resolution: float = 0.05


def calculate_map_parameters(points, resolution: float) -> MapParameters:
    """Compute a map covering the XY extent of ``points`` at ``resolution``.

    ``points`` is an (N, 2+) array-like; the first two columns are x and y.
    Width and height are at least one pixel.
    """
    if points is None:
        raise ValueError("point cloud is missing")
    cloud = np.asarray(points, dtype=float)
    if cloud.size == 0:
        raise ValueError("point cloud is empty")
    if cloud.ndim != 2 or cloud.shape[1] < 2:
        raise ValueError(f"points must have shape (N, 2) or wider, got {cloud.shape}")
    if not resolution > 0.0:
        raise ValueError(f"resolution must be positive, got {resolution}")

    min_x, min_y = cloud[:, 0].min(), cloud[:, 1].min()
    max_x, max_y = cloud[:, 0].max(), cloud[:, 1].max()

    width = int(math.ceil((max_x - min_x) / resolution))
    height = int(math.ceil((max_y - min_y) / resolution))

    return MapParameters(
        origin_x=float(min_x),
        origin_y=float(min_y),
        width_pixels=max(width, 1),
        height_pixels=max(height, 1),
        resolution=float(resolution),
    )