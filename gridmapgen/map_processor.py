"""Morphological clean-up of occupancy grids."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from scipy import ndimage

GRID_FREE = 0
GRID_OCCUPIED = 100
GRID_UNKNOWN = -1

FREE_PIXEL = 255
OCCUPIED_PIXEL = 0
UNKNOWN_PIXEL = 128


@dataclass
class OccupancyGrid:
    """Row-major occupancy values: -1 unknown, 0 free, 100 occupied."""

    width: int = 0
    height: int = 0
    resolution: float = 0.0
    data: list[int] = field(default_factory=list)


def to_image(grid: OccupancyGrid) -> np.ndarray:
    """Render a grid as an 8-bit image: free white, occupied black, the rest grey."""
    if grid.width < 0 or grid.height < 0:
        raise ValueError(f"grid size must not be negative: {grid.width}x{grid.height}")
    values = np.asarray(grid.data, dtype=np.int16)
    if values.size != grid.width * grid.height:
        raise ValueError(
            f"grid holds {values.size} cells, expected {grid.width * grid.height}"
        )
    values = values.reshape(grid.height, grid.width)
    image = np.full(values.shape, UNKNOWN_PIXEL, dtype=np.uint8)
    image[values == GRID_FREE] = FREE_PIXEL
    image[values == GRID_OCCUPIED] = OCCUPIED_PIXEL
    return image


def _as_image(image) -> np.ndarray:
    array = np.asarray(image)
    if array.ndim != 2:
        raise ValueError(f"image must be two-dimensional, got shape {array.shape}")
    return array.astype(np.uint8, copy=False)


def _check_kernel(kernel_size: int) -> int:
    if kernel_size < 1:
        raise ValueError(f"kernel size must be at least 1, got {kernel_size}")
    return int(kernel_size)


def _dilate(mask: np.ndarray, size: int) -> np.ndarray:
    return ndimage.maximum_filter(mask, size=size, mode="constant", cval=0)


def _erode(mask: np.ndarray, size: int) -> np.ndarray:
    return ndimage.minimum_filter(mask, size=size, mode="constant", cval=1)


def fill_free_space(image, kernel_size: int) -> np.ndarray:
    """Turn unknown pixels within a square kernel of free pixels into free ones."""
    image = _as_image(image)
    size = _check_kernel(kernel_size)
    result = image.copy()
    if image.size == 0:
        return result
    free = (image == FREE_PIXEL).astype(np.uint8)
    near_free = _dilate(free, size).astype(bool)
    result[(image == UNKNOWN_PIXEL) & near_free] = FREE_PIXEL
    return result


def fill_obstacle_space(image, kernel_size: int) -> np.ndarray:
    """Close gaps between obstacles with a square kernel, never overwriting free pixels."""
    image = _as_image(image)
    size = _check_kernel(kernel_size)
    result = image.copy()
    if image.size == 0:
        return result
    obstacles = (image == OCCUPIED_PIXEL).astype(np.uint8)
    closed = _erode(_dilate(obstacles, size), size).astype(bool)
    result[closed & (image != FREE_PIXEL)] = OCCUPIED_PIXEL
    return result


def to_grid_data(image) -> list[int]:
    """Convert an image back to row-major occupancy values."""
    image = _as_image(image)
    values = np.full(image.shape, GRID_UNKNOWN, dtype=np.int16)
    values[image == FREE_PIXEL] = GRID_FREE
    values[image == OCCUPIED_PIXEL] = GRID_OCCUPIED
    return [int(v) for v in values.ravel()]