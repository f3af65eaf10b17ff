"""Building occupancy grids from ground and obstacle points."""

from __future__ import annotations

import logging

import numpy as np

from .map_parameters import MapParameters, calculate_map_parameters
from .map_processor import (
    GRID_FREE,
    GRID_OCCUPIED,
    GRID_UNKNOWN,
    OccupancyGrid,
    fill_free_space,
    fill_obstacle_space,
    to_grid_data,
    to_image,
)

log = logging.getLogger(__name__)


def _as_xy(points) -> np.ndarray:
    if points is None:
        return np.empty((0, 2))
    cloud = np.asarray(points, dtype=float)
    if cloud.size == 0:
        return np.empty((0, 2))
    if cloud.ndim != 2 or cloud.shape[1] < 2:
        raise ValueError(f"points must have shape (N, 2) or wider, got {cloud.shape}")
    return cloud[:, :2]


def _cells(points: np.ndarray, params: MapParameters) -> np.ndarray:
    finite = np.isfinite(points).all(axis=1)
    points = points[finite]
    col = np.floor((points[:, 0] - params.origin_x) / params.resolution).astype(np.int64)
    row = params.height_pixels - 1 - np.floor(
        (points[:, 1] - params.origin_y) / params.resolution
    ).astype(np.int64)
    inside = (
        (col >= 0) & (col < params.width_pixels) & (row >= 0) & (row < params.height_pixels)
    )
    return row[inside] * params.width_pixels + col[inside]


def rasterize(ground_points, obstacle_points, params: MapParameters) -> list[int]:
    """Mark cells hit by ground points free and cells hit by obstacle points occupied.

    Rows run from the top of the map (largest y) down. Obstacles win over
    ground in a shared cell; points outside the map are ignored.
    """
    size = max(params.width_pixels, 0) * max(params.height_pixels, 0)
    grid = np.full(size, GRID_UNKNOWN, dtype=np.int16)
    if size == 0:
        return []
    ground = _as_xy(ground_points)
    obstacles = _as_xy(obstacle_points)
    if len(ground):
        grid[_cells(ground, params)] = GRID_FREE
    if len(obstacles):
        grid[_cells(obstacles, params)] = GRID_OCCUPIED
    return [int(v) for v in grid]


def build_occupancy_grid(
    ground_points,
    obstacle_points,
    resolution: float,
    free_kernel_size: int = 3,
    obstacle_kernel_size: int = 3,
) -> tuple[MapParameters, list[int]]:
    """Size a map around all points, rasterise them and clean up the result.

    Unknown cells near free ones are filled as free, then gaps between
    obstacles are closed. Raises ValueError when there are no points at all.
    """
    ground = _as_xy(ground_points)
    obstacles = _as_xy(obstacle_points)
    combined = np.vstack([ground, obstacles])
    log.info(
        "map bounds from %d ground and %d obstacle points", len(ground), len(obstacles)
    )
    params = calculate_map_parameters(combined, resolution)
    log.info(
        "map origin (%g, %g), %d x %d pixels",
        params.origin_x,
        params.origin_y,
        params.width_pixels,
        params.height_pixels,
    )

    data = rasterize(ground, obstacles, params)
    if not data:
        log.info("map is empty; skipping post-processing")
        return params, data

    grid = OccupancyGrid(
        width=params.width_pixels,
        height=params.height_pixels,
        resolution=params.resolution,
        data=data,
    )
    image = to_image(grid)
    image = fill_free_space(image, free_kernel_size)
    image = fill_obstacle_space(image, obstacle_kernel_size)
    return params, to_grid_data(image)