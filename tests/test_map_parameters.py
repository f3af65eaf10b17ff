import pytest

from gridmapgen.map_parameters import MapParameters, calculate_map_parameters


def test_single_point_gives_one_pixel():
    params = calculate_map_parameters([(2.5, -1.5, 0.3)], 0.05)
    assert params.origin_x == 2.5
    assert params.origin_y == -1.5
    assert params.width_pixels == 1
    assert params.height_pixels == 1
    assert params.resolution == 0.05


def test_origin_is_minimum_corner():
    points = [(3.0, 1.0, 0.0), (-2.0, 4.0, 1.0), (0.5, -3.0, 2.0)]
    params = calculate_map_parameters(points, 0.1)
    assert params.origin_x == -2.0
    assert params.origin_y == -3.0


def test_exact_multiple_of_resolution():
    params = calculate_map_parameters([(0.0, 0.0, 0.0), (1.0, 0.5, 0.0)], 0.25)
    assert params.width_pixels == 4
    assert params.height_pixels == 2


def test_line_along_x_has_height_one():
    points = [(0.0, 1.0, 0.0), (2.0, 1.0, 0.0)]
    params = calculate_map_parameters(points, 0.5)
    assert params.height_pixels == 1
    assert params.width_pixels >= 1


def test_map_covers_all_points():
    points = [(0.13, -0.7, 0.0), (1.91, 2.34, 0.5), (-0.42, 0.05, 1.0)]
    resolution = 0.07
    params = calculate_map_parameters(points, resolution)
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    extent_x = max(xs) - min(xs)
    extent_y = max(ys) - min(ys)
    assert params.width_pixels * resolution >= extent_x - 1e-12
    assert (params.width_pixels - 1) * resolution < extent_x
    assert params.height_pixels * resolution >= extent_y - 1e-12
    assert (params.height_pixels - 1) * resolution < extent_y


def test_default_parameters():
    params = MapParameters()
    assert (params.width_pixels, params.height_pixels) == (0, 0)
    assert params.resolution == 0.05


def test_empty_cloud_raises():
    with pytest.raises(ValueError):
        calculate_map_parameters([], 0.05)


def test_missing_cloud_raises():
    with pytest.raises(ValueError):
        calculate_map_parameters(None, 0.05)


@pytest.mark.parametrize("resolution", [0.0, -0.1])
def test_non_positive_resolution_raises(resolution):
    with pytest.raises(ValueError):
        calculate_map_parameters([(0.0, 0.0, 0.0)], resolution)