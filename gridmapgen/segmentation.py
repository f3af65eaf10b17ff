"""Normal estimation, ground extraction, clustering and plane fitting for point clouds."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree

log = logging.getLogger(__name__)

_RANSAC_PROBABILITY = 0.99


@dataclass
class PlaneFit:
    """A plane a*x + b*y + c*z + d = 0 with a unit normal, and the indices of its inliers."""

    coefficients: tuple[float, float, float, float]
    inliers: np.ndarray


def _as_cloud(points) -> np.ndarray:
    cloud = np.asarray(points, dtype=float)
    if cloud.size == 0:
        return np.empty((0, 3))
    if cloud.ndim != 2 or cloud.shape[1] != 3:
        raise ValueError(f"points must have shape (N, 3), got {cloud.shape}")
    return cloud


def estimate_normals(points, radius: float) -> np.ndarray:
    """Estimate a unit normal per point from neighbours within ``radius``.

    Normals point towards the origin as viewpoint. Points with fewer than
    three neighbours (themselves included) get a NaN normal.
    """
    cloud = _as_cloud(points)
    if len(cloud) == 0:
        raise ValueError("input point cloud is empty")
    if not radius > 0:
        raise ValueError(f"search radius must be positive, got {radius}")

    tree = cKDTree(cloud)
    normals = np.full(cloud.shape, np.nan)
    for row, point, neighbourhood in zip(normals, cloud, tree.query_ball_point(cloud, r=radius)):
        if len(neighbourhood) < 3:
            continue
        covariance = np.cov(cloud[neighbourhood], rowvar=False, bias=True)
        _, vectors = np.linalg.eigh(covariance)
        normal = vectors[:, 0]
        if np.dot(-point, normal) < 0:
            normal = -normal
        row[:] = normal

    invalid = int((~np.isfinite(normals).all(axis=1)).sum())
    if invalid:
        log.warning("%d of %d normals are not finite", invalid, len(normals))
    log.info("estimated %d normals (radius %g)", len(normals), radius)
    return normals


def extract_ground_candidates(points, normals, z_threshold: float) -> np.ndarray:
    """Return indices of points whose finite normal has ``|n_z| > z_threshold``."""
    cloud = _as_cloud(points)
    normal_array = _as_cloud(normals)
    if len(cloud) == 0:
        raise ValueError("input point cloud is empty")
    if len(normal_array) == 0:
        raise ValueError("normals are empty")
    if len(cloud) != len(normal_array):
        raise ValueError(
            f"point count {len(cloud)} does not match normal count {len(normal_array)}"
        )
    if not 0.0 <= z_threshold <= 1.0:
        log.warning("ground normal z threshold %g is outside [0, 1]", z_threshold)

    finite = np.isfinite(normal_array).all(axis=1)
    z = np.where(finite, np.abs(normal_array[:, 2]), -np.inf)
    indices = np.flatnonzero(finite & (z > z_threshold))
    if len(indices) == 0:
        log.warning("no ground candidates found")
    log.info("found %d ground candidates", len(indices))
    return indices


def extract_non_horizontal_points(points, ground_indices) -> np.ndarray:
    """Return the points not listed in ``ground_indices``, in their original order."""
    cloud = _as_cloud(points)
    if len(cloud) == 0:
        return cloud
    indices = np.asarray(ground_indices, dtype=np.intp).ravel()
    keep = np.ones(len(cloud), dtype=bool)
    keep[indices] = False
    result = cloud[keep]
    log.info("extracted %d non-horizontal points", len(result))
    return result


def extract_main_ground_cluster(
    points, tolerance: float, min_size: int, max_size: int
) -> np.ndarray:
    """Return the largest Euclidean cluster whose size lies in [min_size, max_size].

    Points closer than ``tolerance`` are connected. Clusters outside the size
    bounds are discarded; if none remain the result is empty.
    """
    cloud = _as_cloud(points)
    if len(cloud) == 0:
        log.info("no ground candidates; skipping clustering")
        return cloud

    count = len(cloud)
    pairs = cKDTree(cloud).query_pairs(tolerance, output_type="ndarray")
    graph = coo_matrix(
        (np.ones(len(pairs), dtype=np.int8), (pairs[:, 0], pairs[:, 1])),
        shape=(count, count),
    )
    _, labels = connected_components(graph, directed=False)
    sizes = np.bincount(labels)
    valid = (sizes >= min_size) & (sizes <= max_size)
    if not valid.any():
        log.warning("no cluster between %d and %d points", min_size, max_size)
        return np.empty((0, 3))

    best = int(np.argmax(np.where(valid, sizes, -1)))
    log.info(
        "%d clusters qualify; the largest has %d points", int(valid.sum()), int(sizes[best])
    )
    return cloud[labels == best]


def _plane_through(sample: np.ndarray) -> np.ndarray | None:
    normal = np.cross(sample[1] - sample[0], sample[2] - sample[0])
    norm = np.linalg.norm(normal)
    if norm < 1e-12:
        return None
    normal = normal / norm
    return np.append(normal, -normal @ sample[0])


def _least_squares_plane(points: np.ndarray) -> np.ndarray | None:
    if len(points) < 3:
        return None
    centroid = points.mean(axis=0)
    _, vectors = np.linalg.eigh(np.cov(points, rowvar=False, bias=True))
    normal = vectors[:, 0]
    return np.append(normal, -normal @ centroid)


def _within(cloud: np.ndarray, model: np.ndarray, threshold: float) -> np.ndarray:
    return np.flatnonzero(np.abs(cloud @ model[:3] + model[3]) <= threshold)


def fit_plane(points, distance_threshold: float, max_iterations: int = 50, seed=None) -> PlaneFit:
    """Fit a plane with RANSAC followed by a least-squares refinement of the inliers.

    Raises ValueError if there are fewer than three points or no plane is found.
    """
    cloud = _as_cloud(points)
    if len(cloud) < 3:
        raise ValueError(f"at least 3 points are needed to fit a plane, got {len(cloud)}")

    rng = np.random.default_rng(seed)
    best_model: np.ndarray | None = None
    best_count = 0
    needed = float(max_iterations)
    iterations = 0
    skipped = 0
    max_skipped = 10 * max(max_iterations, 1)

    while iterations < needed and skipped < max_skipped:
        model = _plane_through(cloud[rng.choice(len(cloud), 3, replace=False)])
        if model is None:
            skipped += 1
            continue
        count = len(_within(cloud, model, distance_threshold))
        if count > best_count:
            best_model, best_count = model, count
            eps = np.finfo(float).eps
            p_fail = min(max(1.0 - (count / len(cloud)) ** 3, eps), 1.0 - eps)
            needed = min(float(max_iterations), math.log(1.0 - _RANSAC_PROBABILITY) / math.log(p_fail))
        iterations += 1

    if best_model is None or best_count == 0:
        raise ValueError("no plane could be fitted")

    inliers = _within(cloud, best_model, distance_threshold)
    model = best_model
    refined = _least_squares_plane(cloud[inliers])
    if refined is not None and np.all(np.isfinite(refined)):
        if refined[:3] @ best_model[:3] < 0:
            refined = -refined
        refined_inliers = _within(cloud, refined, distance_threshold)
        if len(refined_inliers):
            model, inliers = refined, refined_inliers

    log.info(
        "plane %.4g, %.4g, %.4g, %.4g with %d inliers",
        *model,
        len(inliers),
    )
    return PlaneFit(coefficients=tuple(float(v) for v in model), inliers=inliers)