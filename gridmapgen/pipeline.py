"""The processing chain from a raw point cloud to a saved occupancy grid map."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from .config import Config
from .filters import downsample, filter_by_height
from .map_io import ensure_directory_exists, save_map_as_pgm, save_map_metadata_yaml
from .map_parameters import MapParameters
from .occupancy import build_occupancy_grid
from .segmentation import (
    PlaneFit,
    estimate_normals,
    extract_ground_candidates,
    extract_main_ground_cluster,
    extract_non_horizontal_points,
    fit_plane,
)
from .transforms import apply_transform, rotate_to_horizontal, translate_to_z_zero

log = logging.getLogger(__name__)

PLANE_DISTANCE_THRESHOLD = 0.02
MIN_OBSTACLE_HEIGHT = -1.0
PGM_FILENAME = "map.pgm"
METADATA_FILENAME = "map_metadata.yaml"


class PipelineError(Exception):
    """Raised when a stage of the map generation cannot go on."""


def _empty_cloud() -> np.ndarray:
    return np.empty((0, 3))


def _empty_indices() -> np.ndarray:
    return np.empty(0, dtype=np.intp)


@dataclass
class PipelineData:
    """Inputs, intermediate clouds and the resulting map of one run."""

    pointcloud_file_path: str = ""
    config_file_path: str = ""
    app_config: Config = field(default_factory=Config)

    raw_cloud: np.ndarray = field(default_factory=_empty_cloud)
    normals: np.ndarray = field(default_factory=_empty_cloud)
    ground_candidate_indices: np.ndarray = field(default_factory=_empty_indices)
    ground_candidates: np.ndarray = field(default_factory=_empty_cloud)
    non_horizontal_cloud: np.ndarray = field(default_factory=_empty_cloud)
    main_ground_cluster: np.ndarray = field(default_factory=_empty_cloud)

    plane: PlaneFit | None = None
    rotation_matrix: np.ndarray = field(default_factory=lambda: np.eye(4))
    translation_matrix: np.ndarray = field(default_factory=lambda: np.eye(4))

    ground_transformed_cloud: np.ndarray = field(default_factory=_empty_cloud)
    all_ground_candidates_transformed_cloud: np.ndarray = field(default_factory=_empty_cloud)
    non_horizontal_transformed_cloud: np.ndarray = field(default_factory=_empty_cloud)
    non_horizontal_downsampled_cloud: np.ndarray = field(default_factory=_empty_cloud)
    non_horizontal_filtered_cloud: np.ndarray = field(default_factory=_empty_cloud)

    map_params: MapParameters = field(default_factory=MapParameters)
    occupancy_grid: list[int] = field(default_factory=list)


def _estimate_normals(data: PipelineData) -> None:
    try:
        data.normals = estimate_normals(
            data.raw_cloud, data.app_config.normal_estimation_radius
        )
    except ValueError as exc:
        raise PipelineError(f"normal estimation failed: {exc}") from exc
    log.info("normal estimation finished with %d normals", len(data.normals))


def _extract_ground_and_non_horizontal(data: PipelineData) -> None:
    try:
        indices = extract_ground_candidates(
            data.raw_cloud, data.normals, data.app_config.ground_normal_z_threshold
        )
    except ValueError as exc:
        raise PipelineError(f"ground candidate extraction failed: {exc}") from exc
    data.ground_candidate_indices = indices
    data.ground_candidates = data.raw_cloud[indices]
    log.info("%d ground candidates", len(data.ground_candidates))

    try:
        data.non_horizontal_cloud = extract_non_horizontal_points(data.raw_cloud, indices)
    except (ValueError, IndexError) as exc:
        log.warning("non-horizontal extraction failed: %s", exc)
        data.non_horizontal_cloud = _empty_cloud()
    else:
        log.info("%d non-horizontal points", len(data.non_horizontal_cloud))
    if len(data.ground_candidates) == 0:
        log.info("no ground candidates were found")


def _extract_main_ground_cluster(data: PipelineData) -> None:
    config = data.app_config
    tolerance = 2.0 * config.map_resolution
    try:
        data.main_ground_cluster = extract_main_ground_cluster(
            data.ground_candidates,
            tolerance,
            config.min_cluster_size,
            config.max_cluster_size,
        )
    except ValueError as exc:
        raise PipelineError(f"main ground cluster extraction failed: {exc}") from exc
    log.info("main ground cluster holds %d points", len(data.main_ground_cluster))


def _fit_global_ground_plane(data: PipelineData) -> None:
    data.plane = None
    if len(data.main_ground_cluster) == 0:
        log.info("main ground cluster is empty; skipping plane fitting")
        return
    try:
        data.plane = fit_plane(data.main_ground_cluster, PLANE_DISTANCE_THRESHOLD)
    except ValueError as exc:
        log.info("no global ground plane found: %s", exc)
    else:
        log.info("global ground plane fitted: %s", data.plane.coefficients)


def _transform_clouds(data: PipelineData) -> None:
    data.ground_transformed_cloud = _empty_cloud()
    data.non_horizontal_transformed_cloud = _empty_cloud()
    if len(data.main_ground_cluster) == 0 or data.plane is None:
        log.info("no ground cluster or plane; skipping the levelling transform")
        data.rotation_matrix = np.eye(4)
        data.translation_matrix = np.eye(4)
        return

    try:
        rotated, data.rotation_matrix = rotate_to_horizontal(
            data.main_ground_cluster, data.plane.coefficients
        )
    except ValueError as exc:
        log.warning("rotating the main cluster to horizontal failed: %s", exc)
        return
    try:
        data.ground_transformed_cloud, data.translation_matrix = translate_to_z_zero(rotated)
    except ValueError as exc:
        log.warning("moving the levelled cluster to z = 0 failed: %s", exc)
        return

    if len(data.non_horizontal_cloud):
        data.non_horizontal_transformed_cloud = apply_transform(
            apply_transform(data.non_horizontal_cloud, data.rotation_matrix),
            data.translation_matrix,
        )
        log.info(
            "transformed %d non-horizontal points", len(data.non_horizontal_transformed_cloud)
        )
    else:
        log.info("no non-horizontal points to transform")


def _transform_all_ground_candidates(data: PipelineData) -> None:
    if len(data.ground_candidates) and len(data.ground_transformed_cloud):
        data.all_ground_candidates_transformed_cloud = apply_transform(
            apply_transform(data.ground_candidates, data.rotation_matrix),
            data.translation_matrix,
        )
        log.info(
            "transformed %d ground candidates",
            len(data.all_ground_candidates_transformed_cloud),
        )
    else:
        log.info("skipping ground candidate transform (no candidates or no levelled ground)")
        data.all_ground_candidates_transformed_cloud = _empty_cloud()


def _process_non_horizontal_cloud(data: PipelineData) -> None:
    config = data.app_config
    source = data.non_horizontal_transformed_cloud
    if len(source) == 0:
        log.info("no transformed non-horizontal points; skipping down-sampling and filtering")
        data.non_horizontal_downsampled_cloud = _empty_cloud()
        data.non_horizontal_filtered_cloud = _empty_cloud()
        return

    try:
        data.non_horizontal_downsampled_cloud = downsample(
            source,
            config.map_resolution,
            config.outlier_removal_enable,
            config.outlier_removal_mean_k,
            config.outlier_removal_std_dev_mul_thresh,
        )
    except ValueError as exc:
        log.warning("down-sampling non-horizontal points failed: %s", exc)
        data.non_horizontal_downsampled_cloud = source
    else:
        log.info("down-sampled to %d points", len(data.non_horizontal_downsampled_cloud))

    if len(data.non_horizontal_downsampled_cloud) == 0:
        log.info("no down-sampled points; skipping height filter")
        data.non_horizontal_filtered_cloud = _empty_cloud()
        return
    try:
        data.non_horizontal_filtered_cloud = filter_by_height(
            data.non_horizontal_downsampled_cloud, MIN_OBSTACLE_HEIGHT, config.robot_height
        )
    except ValueError as exc:
        log.warning("height filtering failed: %s", exc)
        data.non_horizontal_filtered_cloud = data.non_horizontal_downsampled_cloud
    else:
        log.info("height filter left %d points", len(data.non_horizontal_filtered_cloud))


def process_point_cloud(data: PipelineData) -> None:
    """Split the raw cloud into levelled ground and obstacle points, in place.

    Raises PipelineError when normal estimation, ground extraction or
    clustering cannot be done.
    """
    log.info("point cloud processing started")
    _estimate_normals(data)
    _extract_ground_and_non_horizontal(data)
    _extract_main_ground_cluster(data)
    _fit_global_ground_plane(data)
    _transform_clouds(data)
    _transform_all_ground_candidates(data)
    _process_non_horizontal_cloud(data)
    log.info("point cloud processing finished")


def generate_occupancy_grid(data: PipelineData) -> None:
    """Build the occupancy grid from the processed clouds, in place.

    Raises PipelineError when there are no points to bound the map.
    """
    config = data.app_config
    try:
        data.map_params, data.occupancy_grid = build_occupancy_grid(
            data.all_ground_candidates_transformed_cloud,
            data.non_horizontal_filtered_cloud,
            config.map_resolution,
            config.free_space_kernel_size,
            config.obstacle_space_kernel_size,
        )
    except ValueError as exc:
        raise PipelineError(f"cannot compute map parameters: {exc}") from exc
    log.info("occupancy grid built with %d cells", len(data.occupancy_grid))


def save_map(data: PipelineData, output_dir: str | Path = "output") -> tuple[Path, Path]:
    """Write the map image and its metadata into ``output_dir``.

    Returns the paths of the PGM and YAML files. Raises PipelineError when
    they cannot be written.
    """
    output_dir = Path(output_dir)
    pgm_path = output_dir / PGM_FILENAME
    yaml_path = output_dir / METADATA_FILENAME
    try:
        ensure_directory_exists(output_dir)
        save_map_as_pgm(data.occupancy_grid, data.map_params, pgm_path)
        save_map_metadata_yaml(data.map_params, PGM_FILENAME, yaml_path)
    except OSError as exc:
        raise PipelineError(f"cannot save map to {output_dir}: {exc}") from exc
    log.info("map written to %s", output_dir)
    if data.app_config.preview_map_on_exit:
        log.info("map preview is enabled but cannot be shown here: %s", pgm_path)
    return pgm_path, yaml_path