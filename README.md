# gridmapgen

Turn a 3D point cloud (`.pcd` or `.ply`) into a 2D occupancy grid map.
The result is a PGM image and a YAML metadata file, in the layout that
map servers of robot navigation stacks read.

## How it works

1. Estimate a normal for each point from its neighbours within
   `normal_estimation_radius`.
2. Points whose normal has `|z|` above `ground_normal_z_threshold` are
   ground candidates. Every other point is non-horizontal.
3. Keep the largest Euclidean cluster of ground candidates whose size lies
   between `min_cluster_size` and `max_cluster_size`. The clustering
   tolerance is twice `map_resolution`. Fit a plane to this cluster with
   RANSAC, then refine it by least squares.
4. Rotate the clouds so that this plane is horizontal. Then shift them so the
   cluster's mean height is z = 0.
5. Voxel-downsample the non-horizontal points with `map_resolution` as the
   voxel edge. If enabled, remove statistical outliers. Keep only points with
   `-1.0 <= z <= robot_height`.
6. Mark cells hit by ground candidates as free. Mark cells hit by the
   remaining obstacle points as occupied; where both hit a cell, occupied wins.
7. Fill unknown cells within `free_space_kernel_size` of free space as free.
   Then close gaps between obstacles with a morphological close of size
   `obstacle_space_kernel_size`. This never overwrites free cells.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

```
gridmapgen <pointcloud_file_path> <config_file_path>
```

The program writes `output/map.pgm` and `output/map_metadata.yaml` under
the current directory. It creates `output` if needed. Progress is logged to
standard error.

The exit status is 0 on success. It is 1 when:

- the arguments are wrong;
- the configuration cannot be read;
- the point cloud cannot be read or is empty;
- a processing stage fails.

## Configuration

The configuration is a YAML mapping. Any key you leave out keeps its default:

```yaml
map_resolution: 0.05               # metres per pixel
robot_height: 0.5                  # obstacles above this height are ignored
normal_estimation_radius: 0.1
ground_normal_z_threshold: 0.9
block_size: 10.0                   # read and logged, not otherwise used
min_cluster_size: 50
max_cluster_size: 25000
outlier_removal_enable: true
outlier_removal_mean_k: 50
outlier_removal_std_dev_mul_thresh: 1.0
preview_map_on_exit: false
free_space_kernel_size: 3
obstacle_space_kernel_size: 3
```

A value of the wrong type logs a warning and keeps the default. A file that
cannot be read, or is not valid YAML, raises `gridmapgen.config.ConfigError`.

## Input formats

- **PCD**: `ascii`, `binary` and `binary_compressed` data. The file needs
  `x`, `y` and `z` fields.
- **PLY**: `ascii`, `binary_little_endian` and `binary_big_endian`. Only the
  `x`, `y` and `z` vertex properties are read.

Other extensions raise `gridmapgen.cloud_io.CloudFormatError`. Files that
hold no points raise the same error.

## Output

In `map.pgm` (binary P5), pixel values mean:

- 254: free
- 0: occupied
- 205: unknown

Row 0 is the top of the map, at the largest y.

`map_metadata.yaml` records:

- the image name
- the resolution
- the origin (the minimum x and y of the mapped points)
- `negate: 0`
- `occupied_thresh: 0.65`
- `free_thresh: 0.196`
- `mode: trinary`

## Library use

You can also call the steps from Python:

```python
from gridmapgen.config import load_config
from gridmapgen.cloud_io import load_point_cloud
from gridmapgen.pipeline import (
    PipelineData,
    process_point_cloud,
    generate_occupancy_grid,
    save_map,
)

data = PipelineData(
    raw_cloud=load_point_cloud("scan.pcd"),
    app_config=load_config("config.yaml"),
)
process_point_cloud(data)
generate_occupancy_grid(data)
pgm_path, yaml_path = save_map(data, "output")
```

Stages that cannot go on raise `gridmapgen.pipeline.PipelineError`.

The separate steps are available too:

- `gridmapgen.segmentation`: `estimate_normals`, `extract_ground_candidates`,
  `extract_non_horizontal_points`, `extract_main_ground_cluster` and
  `fit_plane`, which returns a `PlaneFit`.
- `gridmapgen.transforms`: `apply_transform`, `rotate_to_horizontal` and
  `translate_to_z_zero`.
- `gridmapgen.filters`: `voxel_downsample`, `remove_statistical_outliers`,
  `downsample` and `filter_by_height`.
- `gridmapgen.occupancy`: `rasterize` and `build_occupancy_grid`.
- `gridmapgen.map_parameters`: `calculate_map_parameters`, which returns
  `MapParameters`.
- `gridmapgen.map_io`: `ensure_directory_exists`, `grid_to_pgm_bytes`,
  `save_map_as_pgm` and `save_map_metadata_yaml`.

The grid post-processing functions work on their own as well:

```python
from gridmapgen.map_processor import (
    OccupancyGrid,
    to_image,
    fill_free_space,
    fill_obstacle_space,
    to_grid_data,
)

grid = OccupancyGrid(width=5, height=1, resolution=1.0, data=[0, -1, -1, -1, 0])
image = fill_free_space(to_image(grid), 5)
print(to_grid_data(image))  # [0, 0, 0, 0, 0]
```

## What it does not do

- There is no interactive viewer. Point clouds, fitted planes and finished
  maps are never displayed.
- `preview_map_on_exit` only logs the path of the saved map.
- The output directory is always `output` when run as a command. Choosing
  another one takes a call to `save_map` from Python.