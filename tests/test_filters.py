import numpy as np
import pytest

from gridmapgen.filters import (
    downsample,
    filter_by_height,
    remove_statistical_outliers,
    voxel_downsample,
)


def _grid_cluster():
    axis = np.arange(3) * 0.1
    return np.array([[x, y, z] for x in axis for y in axis for z in axis])


def test_voxel_merges_points_in_one_voxel_to_centroid():
    points = np.array([[0.1, 0.1, 0.1], [0.3, 0.2, 0.4], [0.5, 0.6, 0.2]])
    result = voxel_downsample(points, 1.0)
    assert result.shape == (1, 3)
    np.testing.assert_allclose(result[0], points.mean(axis=0))


def test_voxel_keeps_points_in_separate_voxels():
    points = np.array([[0.5, 0.5, 0.5], [2.5, 0.5, 0.5], [0.5, 0.5, 2.5]])
    result = voxel_downsample(points, 1.0)
    assert sorted(map(tuple, result)) == sorted(map(tuple, points))


def test_voxel_orders_by_z_first():
    points = np.array([[0.5, 0.5, 2.5], [2.5, 0.5, 0.5]])
    result = voxel_downsample(points, 1.0)
    np.testing.assert_allclose(result, points[::-1])


def test_voxel_drops_non_finite_points():
    points = np.array([[0.5, 0.5, 0.5], [np.nan, 0.0, 0.0]])
    result = voxel_downsample(points, 1.0)
    np.testing.assert_allclose(result, points[:1])


@pytest.mark.parametrize("leaf", [0.0, -1.0])
def test_voxel_rejects_bad_leaf(leaf):
    with pytest.raises(ValueError):
        voxel_downsample([[0.0, 0.0, 0.0]], leaf)


def test_outlier_is_removed_and_cluster_kept():
    cluster = _grid_cluster()
    points = np.vstack([cluster, [[10.0, 10.0, 10.0]]])
    result = remove_statistical_outliers(points, 5, 1.0)
    assert len(result) == len(cluster)
    assert (10.0, 10.0, 10.0) not in set(map(tuple, result))


def test_outlier_result_is_subset():
    rng = np.random.default_rng(1)
    points = rng.normal(size=(60, 3))
    result = remove_statistical_outliers(points, 8, 0.5)
    originals = set(map(tuple, points))
    assert all(tuple(p) in originals for p in result)
    assert len(result) <= len(points)


def test_outlier_rejects_bad_mean_k():
    with pytest.raises(ValueError):
        remove_statistical_outliers(_grid_cluster(), 0, 1.0)


def test_downsample_without_outlier_removal_matches_voxel():
    rng = np.random.default_rng(2)
    points = rng.uniform(0, 2, size=(100, 3))
    result = downsample(points, 0.5, False, 10, 1.0)
    np.testing.assert_allclose(result, voxel_downsample(points, 0.5))


def test_downsample_with_outlier_removal_drops_outlier():
    points = np.vstack([_grid_cluster(), [[50.0, 50.0, 50.0]]])
    result = downsample(points, 0.01, True, 5, 1.0)
    assert len(result) == len(_grid_cluster())
    assert np.all(result < 1.0)


def test_downsample_rejects_empty():
    with pytest.raises(ValueError):
        downsample(np.empty((0, 3)), 0.1, True, 5, 1.0)


def test_filter_by_height_is_inclusive():
    points = np.array(
        [[0.0, 0.0, -1.0], [0.0, 0.0, 0.5], [0.0, 0.0, 1.0], [0.0, 0.0, 1.5]]
    )
    result = filter_by_height(points, -1.0, 1.0)
    np.testing.assert_allclose(result, points[:3])


@pytest.mark.parametrize("bounds", [(1.0, 1.0), (2.0, 1.0)])
def test_filter_by_height_rejects_bad_bounds(bounds):
    with pytest.raises(ValueError):
        filter_by_height([[0.0, 0.0, 0.0]], *bounds)


def test_filter_by_height_rejects_empty():
    with pytest.raises(ValueError):
        filter_by_height(np.empty((0, 3)), -1.0, 1.0)