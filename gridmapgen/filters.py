"""Voxel down-sampling, statistical outlier removal and height filtering."""

from __future__ import annotations

import logging

import numpy as np
from scipy.spatial import cKDTree

log = logging.getLogger(__name__)


def _as_cloud(points) -> np.ndarray:
    cloud = np.asarray(points, dtype=float)
    if cloud.size == 0:
        return np.empty((0, 3))
    if cloud.ndim != 2 or cloud.shape[1] != 3:
        raise ValueError(f"points must have shape (N, 3), got {cloud.shape}")
    return cloud


def _leaf_sizes(leaf_size) -> np.ndarray:
    sizes = np.broadcast_to(np.asarray(leaf_size, dtype=float), (3,)).copy()
    if not np.all(sizes > 0):
        raise ValueError(f"leaf size must be positive, got {sizes.tolist()}")
    return sizes


def voxel_downsample(points, leaf_size) -> np.ndarray:
    """Replace the points in each voxel by their centroid.

    ``leaf_size`` is one edge length or three (x, y, z). Points with
    non-finite coordinates are dropped. Voxels come out ordered by z, then
    y, then x index.
    """
    cloud = _as_cloud(points)
    sizes = _leaf_sizes(leaf_size)
    cloud = cloud[np.isfinite(cloud).all(axis=1)]
    if len(cloud) == 0:
        return np.empty((0, 3))

    keys = np.floor(cloud * (1.0 / sizes)).astype(np.int64)
    relative = keys - keys.min(axis=0)
    dims = relative.max(axis=0) + 1
    linear = relative[:, 0] + relative[:, 1] * dims[0] + relative[:, 2] * dims[0] * dims[1]

    _, inverse, counts = np.unique(linear, return_inverse=True, return_counts=True)
    inverse = inverse.ravel()
    centroids = np.column_stack(
        [np.bincount(inverse, weights=cloud[:, axis]) for axis in range(3)]
    )
    result = centroids / counts[:, None]
    log.info("voxel grid reduced %d points to %d", len(cloud), len(result))
    return result


def remove_statistical_outliers(points, mean_k: int, std_mul: float) -> np.ndarray:
    """Drop points whose mean distance to their ``mean_k`` nearest neighbours is large.

    A point is kept when its mean distance is at most the mean over all
    points plus ``std_mul`` sample standard deviations.
    """
    cloud = _as_cloud(points)
    if mean_k < 1:
        raise ValueError(f"mean_k must be at least 1, got {mean_k}")
    if len(cloud) < 2:
        return cloud.copy()

    k = min(int(mean_k) + 1, len(cloud))
    distances, _ = cKDTree(cloud).query(cloud, k=k)
    mean_distances = distances[:, 1:].mean(axis=1)

    mean = float(mean_distances.mean())
    std = float(mean_distances.std(ddof=1))
    threshold = mean + std_mul * std
    result = cloud[mean_distances <= threshold]
    log.info(
        "outlier removal kept %d of %d points (threshold %g)",
        len(result),
        len(cloud),
        threshold,
    )
    return result


def downsample(
    points,
    leaf_size,
    outlier_removal: bool = True,
    mean_k: int = 50,
    std_mul: float = 1.0,
) -> np.ndarray:
    """Voxel down-sample ``points`` and optionally remove statistical outliers.

    Raises ValueError for an empty cloud or a non-positive leaf size.
    """
    cloud = _as_cloud(points)
    if len(cloud) == 0:
        raise ValueError("input point cloud is empty")
    result = voxel_downsample(cloud, leaf_size)
    if outlier_removal:
        if len(result) == 0:
            log.info("down-sampled cloud is empty; skipping outlier removal")
        else:
            result = remove_statistical_outliers(result, mean_k, std_mul)
    log.info("down-sampling finished with %d points", len(result))
    return result


def filter_by_height(points, min_z: float, max_z: float) -> np.ndarray:
    """Keep the points with ``min_z <= z <= max_z``.

    Raises ValueError for an empty cloud or when ``min_z >= max_z``.
    """
    cloud = _as_cloud(points)
    if len(cloud) == 0:
        raise ValueError("input point cloud is empty")
    if min_z >= max_z:
        raise ValueError(f"min_z ({min_z}) must be smaller than max_z ({max_z})")
    finite = np.isfinite(cloud).all(axis=1)
    z = cloud[:, 2]
    with np.errstate(invalid="ignore"):
        keep = finite & (z >= min_z) & (z <= max_z)
    result = cloud[keep]
    log.info("height filter kept %d of %d points", len(result), len(cloud))
    return result