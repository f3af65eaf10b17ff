"""Writing occupancy grids as PGM images with map metadata YAML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .map_parameters import MapParameters
from .map_processor import GRID_FREE, GRID_OCCUPIED, GRID_UNKNOWN

log = logging.getLogger(__name__)

PGM_UNKNOWN = 205
PGM_FREE = 254
PGM_OCCUPIED = 0

_PGM_VALUES = {
    GRID_UNKNOWN: PGM_UNKNOWN,
    GRID_OCCUPIED: PGM_OCCUPIED,
    GRID_FREE: PGM_FREE,
}


def ensure_directory_exists(path: str | Path) -> Path:
    """Create ``path`` as a directory unless it already is one.

    The parent must exist. A path that exists but is not a directory
    raises NotADirectoryError.
    """
    path = Path(path)
    if path.exists():
        if not path.is_dir():
            raise NotADirectoryError(f"{path} exists but is not a directory")
        log.info("output directory %s already exists", path)
        return path
    try:
        path.mkdir()
    except FileExistsError:
        if not path.is_dir():
            raise NotADirectoryError(f"{path} exists but is not a directory") from None
        log.info("directory %s was created concurrently", path)
    else:
        log.info("created output directory %s", path)
    return path


def grid_to_pgm_bytes(grid: Iterable[int], params: MapParameters) -> bytes:
    """Encode occupancy values as a binary (P5) PGM image.

    Unknown cells become 205, free 254 and occupied 0; any other value is
    written as unknown.
    """
    header = f"P5\n{params.width_pixels} {params.height_pixels}\n255\n".encode("ascii")
    body = bytearray()
    for value in grid:
        pixel = _PGM_VALUES.get(int(value))
        if pixel is None:
            log.warning(
                "unexpected grid value %d; writing it as unknown (%d)",
                int(value),
                PGM_UNKNOWN,
            )
            pixel = PGM_UNKNOWN
        body.append(pixel)
    return header + bytes(body)


def save_map_as_pgm(grid: Iterable[int], params: MapParameters, path: str | Path) -> Path:
    """Write the grid to ``path`` as a PGM image."""
    path = Path(path)
    log.info("saving map as PGM: %s", path)
    path.write_bytes(grid_to_pgm_bytes(grid, params))
    log.info("PGM file saved")
    return path


def _number(value: float) -> str:
    return f"{value:g}"


def save_map_metadata_yaml(
    params: MapParameters, pgm_filename: str, yaml_path: str | Path
) -> Path:
    """Write map metadata in the YAML layout used by map servers."""
    yaml_path = Path(yaml_path)
    log.info("saving map metadata: %s", yaml_path)
    lines = [
        f"image: {pgm_filename}",
        f"resolution: {_number(params.resolution)}",
        f"origin: [{_number(params.origin_x)}, {_number(params.origin_y)}, 0.0]",
        "negate: 0",
        "occupied_thresh: 0.65",
        "free_thresh: 0.196",
        "mode: trinary",
    ]
    yaml_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    log.info("map metadata saved")
    return yaml_path