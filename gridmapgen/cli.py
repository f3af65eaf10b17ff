"""Command line entry point: point cloud in, occupancy grid map out."""

from __future__ import annotations

import logging
import sys

from .cloud_io import CloudFormatError, load_point_cloud
from .config import Config, ConfigError, load_config
from .pipeline import (
    PipelineData,
    PipelineError,
    generate_occupancy_grid,
    process_point_cloud,
    save_map,
)

log = logging.getLogger(__name__)

USAGE = "usage: gridmapgen <pointcloud_file_path> <config_file_path>"


def parse_arguments(argv) -> tuple[str, str]:
    """Return the point cloud path and the configuration path.

    Raises ValueError with a usage message unless exactly two are given.
    """
    arguments = list(argv)
    if len(arguments) != 2:
        raise ValueError(USAGE)
    pointcloud_path, config_path = arguments
    return pointcloud_path, config_path


def _log_config(config: Config) -> None:
    log.info("settings:")
    log.info("  map resolution: %g [m/pixel]", config.map_resolution)
    log.info("  robot height: %g [m]", config.robot_height)
    log.info("  normal estimation radius: %g [m]", config.normal_estimation_radius)
    log.info("  ground normal z threshold: %g", config.ground_normal_z_threshold)
    log.info("  block size: %g [m]", config.block_size)
    log.info("  min cluster size: %d", config.min_cluster_size)
    log.info("  max cluster size: %d", config.max_cluster_size)


def main(argv=None) -> int:
    """Run the whole map generation; return the process exit status."""
    if argv is None:
        argv = sys.argv[1:]
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    try:
        pointcloud_path, config_path = parse_arguments(argv)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    log.info("point cloud file: %s", pointcloud_path)
    log.info("configuration file: %s", config_path)

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    _log_config(config)

    try:
        cloud = load_point_cloud(pointcloud_path)
    except CloudFormatError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    log.info("loaded %d points", len(cloud))

    data = PipelineData(
        pointcloud_file_path=pointcloud_path,
        config_file_path=config_path,
        app_config=config,
        raw_cloud=cloud,
    )
    try:
        process_point_cloud(data)
        generate_occupancy_grid(data)
        save_map(data)
    except PipelineError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    log.info("finished successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())