import numpy as np
import pytest

from gridmapgen.cli import main, parse_arguments

CONFIG_TEXT = (
    "map_resolution: 0.05\n"
    "normal_estimation_radius: 0.1\n"
    "min_cluster_size: 10\n"
    "outlier_removal_enable: false\n"
)


def _scene():
    ticks = np.linspace(0.0, 1.0, 21)
    xs, ys = np.meshgrid(ticks, ticks)
    ground = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(xs.size)])
    wy, wz = np.meshgrid(ticks, np.linspace(0.05, 0.4, 8))
    wall = np.column_stack([np.full(wy.size, 1.225), wy.ravel(), wz.ravel()])
    return np.vstack([ground, wall])


def _write_pcd(path, points):
    header = (
        "VERSION .7\n"
        "FIELDS x y z\n"
        "SIZE 4 4 4\n"
        "TYPE F F F\n"
        "COUNT 1 1 1\n"
        f"WIDTH {len(points)}\n"
        "HEIGHT 1\n"
        "VIEWPOINT 0 0 0 1 0 0 0\n"
        f"POINTS {len(points)}\n"
        "DATA ascii\n"
    )
    body = "".join(f"{x:.6f} {y:.6f} {z:.6f}\n" for x, y, z in points)
    path.write_text(header + body, encoding="ascii")
    return path


def _write_ply(path, points):
    header = (
        "ply\n"
        "format ascii 1.0\n"
        f"element vertex {len(points)}\n"
        "property float x\n"
        "property float y\n"
        "property float z\n"
        "end_header\n"
    )
    body = "".join(f"{x:.6f} {y:.6f} {z:.6f}\n" for x, y, z in points)
    path.write_text(header + body, encoding="ascii")
    return path


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = tmp_path / "config.yaml"
    config.write_text(CONFIG_TEXT, encoding="utf-8")
    return tmp_path, config


def test_parse_arguments_returns_both_paths():
    assert parse_arguments(["cloud.pcd", "config.yaml"]) == ("cloud.pcd", "config.yaml")


@pytest.mark.parametrize("argv", [[], ["cloud.pcd"], ["a", "b", "c"]])
def test_parse_arguments_rejects_wrong_count(argv):
    with pytest.raises(ValueError, match="usage"):
        parse_arguments(argv)


def test_main_rejects_wrong_argument_count(workspace):
    assert main(["only-one"]) == 1


def test_main_generates_map_from_pcd(workspace):
    root, config = workspace
    cloud = _write_pcd(root / "scene.pcd", _scene())
    assert main([str(cloud), str(config)]) == 0

    pgm = root / "output" / "map.pgm"
    metadata = root / "output" / "map_metadata.yaml"
    assert pgm.read_bytes().startswith(b"P5\n")
    text = metadata.read_text(encoding="utf-8")
    assert "image: map.pgm" in text
    assert "resolution: 0.05" in text


def test_main_generates_map_from_ply(workspace):
    root, config = workspace
    cloud = _write_ply(root / "scene.ply", _scene())
    assert main([str(cloud), str(config)]) == 0
    assert (root / "output" / "map.pgm").read_bytes().startswith(b"P5\n")


def test_main_rejects_unsupported_extension(workspace):
    root, config = workspace
    other = root / "scene.xyz"
    other.write_text("0 0 0\n", encoding="ascii")
    assert main([str(other), str(config)]) == 1
    assert not (root / "output").exists()


def test_main_fails_on_missing_config(workspace):
    root, _ = workspace
    cloud = _write_pcd(root / "scene.pcd", _scene())
    assert main([str(cloud), str(root / "missing.yaml")]) == 1
    assert not (root / "output").exists()


def test_main_fails_on_invalid_yaml(workspace):
    root, _ = workspace
    broken = root / "broken.yaml"
    broken.write_text("map_resolution: [0.05\n", encoding="utf-8")
    cloud = _write_pcd(root / "scene.pcd", _scene())
    assert main([str(cloud), str(broken)]) == 1


def test_main_fails_on_missing_cloud(workspace):
    root, config = workspace
    assert main([str(root / "absent.pcd"), str(config)]) == 1