import numpy as np
import pytest

from gridmapgen.segmentation import (
    PlaneFit,
    estimate_normals,
    extract_ground_candidates,
    extract_main_ground_cluster,
    extract_non_horizontal_points,
    fit_plane,
)


def _grid(z, n=5, spacing=0.1, offset=(0.0, 0.0)):
    xs, ys = np.meshgrid(np.arange(n) * spacing, np.arange(n) * spacing)
    return np.column_stack(
        [xs.ravel() + offset[0], ys.ravel() + offset[1], np.full(n * n, float(z))]
    )


def test_normals_of_plane_below_origin_point_up():
    normals = estimate_normals(_grid(-1.0), 0.15)
    assert normals.shape == (25, 3)
    assert np.allclose(normals, [0.0, 0.0, 1.0], atol=1e-6)


def test_normals_are_unit_length():
    cloud = _grid(-1.0)
    normals = estimate_normals(cloud, 0.25)
    assert np.allclose(np.linalg.norm(normals, axis=1), 1.0)


def test_isolated_point_gets_nan_normal():
    cloud = np.vstack([_grid(-1.0), [[10.0, 10.0, 10.0]]])
    normals = estimate_normals(cloud, 0.15)
    assert np.isnan(normals[-1]).all()
    assert np.isfinite(normals[:-1]).all()


def test_estimate_normals_rejects_bad_input():
    with pytest.raises(ValueError):
        estimate_normals([], 0.1)
    with pytest.raises(ValueError):
        estimate_normals(_grid(0.0), 0.0)


def test_ground_candidates_by_normal_z():
    points = np.zeros((4, 3))
    normals = np.array(
        [[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, 0.0, -1.0], [np.nan, np.nan, np.nan]]
    )
    assert extract_ground_candidates(points, normals, 0.9).tolist() == [0, 2]


def test_ground_candidates_threshold_is_strict():
    points = np.zeros((1, 3))
    normals = np.array([[0.0, 0.6, 0.8]])
    assert extract_ground_candidates(points, normals, 0.8).tolist() == []


def test_ground_candidates_errors():
    with pytest.raises(ValueError):
        extract_ground_candidates([], [[0.0, 0.0, 1.0]], 0.9)
    with pytest.raises(ValueError):
        extract_ground_candidates([[0.0, 0.0, 0.0]], [], 0.9)
    with pytest.raises(ValueError):
        extract_ground_candidates(np.zeros((2, 3)), np.zeros((3, 3)), 0.9)


def test_non_horizontal_is_complement_in_order():
    cloud = np.arange(15, dtype=float).reshape(5, 3)
    result = extract_non_horizontal_points(cloud, [1, 3])
    assert np.array_equal(result, cloud[[0, 2, 4]])


def test_non_horizontal_of_empty_cloud_is_empty():
    assert extract_non_horizontal_points([], []).shape == (0, 3)


def test_ground_and_non_horizontal_partition_cloud():
    cloud = np.vstack([_grid(-1.0), [[5.0, 5.0, 5.0]]])
    normals = estimate_normals(cloud, 0.15)
    ground = extract_ground_candidates(cloud, normals, 0.9)
    rest = extract_non_horizontal_points(cloud, ground)
    assert len(ground) + len(rest) == len(cloud)
    assert np.array_equal(rest, cloud[[-1]])


def _two_clusters():
    big = _grid(0.0, n=3)  # 9 points
    small = _grid(0.0, n=2, offset=(5.0, 5.0))  # 4 points
    return big, small, np.vstack([small, big])


def test_main_cluster_is_largest():
    big, _, cloud = _two_clusters()
    result = extract_main_ground_cluster(cloud, 0.15, 2, 100)
    assert np.array_equal(result, big)


def test_main_cluster_discards_oversized_clusters():
    _, small, cloud = _two_clusters()
    result = extract_main_ground_cluster(cloud, 0.15, 2, len(small))
    assert np.array_equal(result, small)


def test_main_cluster_empty_when_none_qualify():
    _, _, cloud = _two_clusters()
    assert extract_main_ground_cluster(cloud, 0.15, 50, 100).shape == (0, 3)
    assert extract_main_ground_cluster([], 0.15, 1, 10).shape == (0, 3)


def test_fit_plane_finds_horizontal_plane():
    plane = _grid(2.0)
    outliers = np.array([[0.1, 0.1, 5.0], [0.2, 0.3, -3.0], [0.4, 0.0, 7.0]])
    fit = fit_plane(np.vstack([plane, outliers]), 0.02, seed=0)
    assert isinstance(fit, PlaneFit)
    a, b, c, d = fit.coefficients
    assert abs(a) < 1e-6 and abs(b) < 1e-6
    assert abs(c) == pytest.approx(1.0)
    assert np.allclose(plane @ np.array([a, b, c]) + d, 0.0, atol=1e-9)
    assert sorted(fit.inliers.tolist()) == list(range(len(plane)))


def test_fit_plane_tilted_residuals_small():
    xs, ys = np.meshgrid(np.linspace(0, 1, 6), np.linspace(0, 1, 6))
    zs = 0.5 * xs - 0.25 * ys + 1.0
    cloud = np.column_stack([xs.ravel(), ys.ravel(), zs.ravel()])
    fit = fit_plane(cloud, 0.01, seed=1)
    coeffs = np.array(fit.coefficients)
    assert np.linalg.norm(coeffs[:3]) == pytest.approx(1.0)
    assert np.allclose(cloud @ coeffs[:3] + coeffs[3], 0.0, atol=1e-9)
    assert len(fit.inliers) == len(cloud)


def test_fit_plane_needs_three_points():
    with pytest.raises(ValueError):
        fit_plane([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]], 0.02)


def test_fit_plane_collinear_points_fail():
    line = np.column_stack([np.arange(10.0), np.zeros(10), np.zeros(10)])
    with pytest.raises(ValueError):
        fit_plane(line, 0.02, seed=0)