[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gridmapgen"
version = "0.1.0"
description = "Generate 2D occupancy grid maps (PGM + YAML) from 3D point clouds"
requires-python = ">=3.10"
keywords = ["occupancy grid", "point cloud", "mapping", "robotics", "pcd", "ply", "pgm"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: GIS",
]
dependencies = [
    "numpy",
    "scipy",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
gridmapgen = "gridmapgen.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["gridmapgen"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
