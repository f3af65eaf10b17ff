"""Occupancy grid maps (PGM + YAML) from PCD and PLY point clouds: loading, ground segmentation, levelling, filtering, rasterising and saving."""

__version__ = "0.1.0"