"""Reading point clouds from PCD and PLY files."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

log = logging.getLogger(__name__)


class CloudFormatError(Exception):
    """Raised when a point cloud file cannot be read or holds no usable points."""


def file_extension(path: str | Path) -> str:
    """Return the lower-cased extension of ``path``, dot included, or ''."""
    return Path(path).suffix.lower()


# --- PCD -----------------------------------------------------------------

_PCD_TYPES = {
    ("F", 4): "f4",
    ("F", 8): "f8",
    ("I", 1): "i1",
    ("I", 2): "i2",
    ("I", 4): "i4",
    ("I", 8): "i8",
    ("U", 1): "u1",
    ("U", 2): "u2",
    ("U", 4): "u4",
    ("U", 8): "u8",
}


@dataclass
class _PcdField:
    name: str
    size: int
    kind: str
    count: int

    @property
    def dtype(self) -> np.dtype:
        try:
            return np.dtype("<" + _PCD_TYPES[(self.kind, self.size)])
        except KeyError:
            raise CloudFormatError(
                f"unsupported PCD field type {self.kind}{self.size} for '{self.name}'"
            ) from None


def _read_pcd_header(raw: bytes) -> tuple[dict[str, list[str]], int]:
    header: dict[str, list[str]] = {}
    pos = 0
    while True:
        end = raw.find(b"\n", pos)
        if end == -1:
            raise CloudFormatError("PCD header has no DATA line")
        line = raw[pos:end].decode("ascii", errors="replace").strip()
        pos = end + 1
        if not line or line.startswith("#"):
            continue
        key, *values = line.split()
        header[key.upper()] = values
        if key.upper() == "DATA":
            return header, pos


def _pcd_fields(header: dict[str, list[str]]) -> list[_PcdField]:
    try:
        names = header["FIELDS"]
        sizes = [int(v) for v in header["SIZE"]]
        kinds = [v.upper() for v in header["TYPE"]]
    except KeyError as exc:
        raise CloudFormatError(f"PCD header lacks {exc.args[0]}") from None
    except ValueError as exc:
        raise CloudFormatError(f"bad PCD SIZE entry: {exc}") from None
    try:
        counts = [int(v) for v in header.get("COUNT", ["1"] * len(names))]
    except ValueError as exc:
        raise CloudFormatError(f"bad PCD COUNT entry: {exc}") from None
    if not len(names) == len(sizes) == len(kinds) == len(counts):
        raise CloudFormatError("PCD FIELDS, SIZE, TYPE and COUNT differ in length")
    return [_PcdField(*spec) for spec in zip(names, sizes, kinds, counts)]


def _pcd_point_count(header: dict[str, list[str]]) -> int:
    try:
        if "POINTS" in header:
            return int(header["POINTS"][0])
        return int(header["WIDTH"][0]) * int(header.get("HEIGHT", ["1"])[0])
    except (KeyError, IndexError, ValueError):
        raise CloudFormatError("PCD header has no valid point count") from None


def _xyz_field_indices(fields: list[_PcdField]) -> list[int]:
    names = [f.name for f in fields]
    try:
        return [names.index(axis) for axis in ("x", "y", "z")]
    except ValueError:
        raise CloudFormatError(f"PCD fields {names} do not include x, y and z") from None


def _lzf_decompress(data: bytes, expected: int) -> bytes:
    out = bytearray()
    pos = 0
    try:
        while pos < len(data):
            ctrl = data[pos]
            pos += 1
            if ctrl < 32:
                length = ctrl + 1
                if pos + length > len(data):
                    raise CloudFormatError("LZF literal runs past end of data")
                out += data[pos:pos + length]
                pos += length
                continue
            length = ctrl >> 5
            ref = len(out) - ((ctrl & 0x1F) << 8) - 1
            if length == 7:
                length += data[pos]
                pos += 1
            ref -= data[pos]
            pos += 1
            length += 2
            if ref < 0:
                raise CloudFormatError("LZF back reference points before start of data")
            for offset in range(length):
                out.append(out[ref + offset])
    except IndexError:
        raise CloudFormatError("LZF data is truncated") from None
    if len(out) != expected:
        raise CloudFormatError(
            f"LZF data expanded to {len(out)} bytes, expected {expected}"
        )
    return bytes(out)


def _pcd_ascii(body: bytes, fields: list[_PcdField], points: int) -> np.ndarray:
    lines = [line for line in body.decode("ascii", errors="replace").splitlines() if line.strip()]
    if len(lines) < points:
        raise CloudFormatError(f"PCD holds {len(lines)} data lines, expected {points}")
    starts = np.cumsum([0] + [f.count for f in fields])
    columns = [int(starts[i]) for i in _xyz_field_indices(fields)]
    total = int(starts[-1])
    result = np.empty((points, 3))
    for row, line in zip(result, lines[:points]):
        tokens = line.split()
        if len(tokens) < total:
            raise CloudFormatError(f"PCD data line has {len(tokens)} values, expected {total}")
        try:
            row[:] = [float(tokens[c]) for c in columns]
        except ValueError as exc:
            raise CloudFormatError(f"bad PCD value: {exc}") from None
    return result


def _pcd_binary(body: bytes, fields: list[_PcdField], points: int) -> np.ndarray:
    layout = np.dtype(
        [
            (f"f{i}", f.dtype, (f.count,)) if f.count > 1 else (f"f{i}", f.dtype)
            for i, f in enumerate(fields)
        ]
    )
    try:
        records = np.frombuffer(body, dtype=layout, count=points)
    except ValueError as exc:
        raise CloudFormatError(f"PCD binary data is truncated: {exc}") from None
    columns = []
    for i in _xyz_field_indices(fields):
        values = records[f"f{i}"]
        columns.append(values if values.ndim == 1 else values[:, 0])
    return np.column_stack(columns).astype(float) if points else np.empty((0, 3))


def _pcd_binary_compressed(body: bytes, fields: list[_PcdField], points: int) -> np.ndarray:
    if len(body) < 8:
        raise CloudFormatError("PCD compressed data lacks its size header")
    compressed, uncompressed = struct.unpack_from("<II", body, 0)
    payload = body[8:8 + compressed]
    if len(payload) < compressed:
        raise CloudFormatError("PCD compressed data is truncated")
    data = _lzf_decompress(payload, uncompressed) if compressed else b""
    wanted = set(_xyz_field_indices(fields))
    offset = 0
    columns: dict[int, np.ndarray] = {}
    for i, f in enumerate(fields):
        nbytes = f.size * f.count * points
        if i in wanted:
            if offset + nbytes > len(data):
                raise CloudFormatError("PCD compressed data holds too few values")
            values = np.frombuffer(data, dtype=f.dtype, count=f.count * points, offset=offset)
            columns[i] = values.reshape(points, f.count)[:, 0]
        offset += nbytes
    if points == 0:
        return np.empty((0, 3))
    return np.column_stack([columns[i] for i in _xyz_field_indices(fields)]).astype(float)


def load_pcd(path: str | Path) -> np.ndarray:
    """Read x, y, z of every point in a PCD file (ascii, binary or binary_compressed)."""
    raw = Path(path).read_bytes()
    header, pos = _read_pcd_header(raw)
    fields = _pcd_fields(header)
    points = _pcd_point_count(header)
    mode = (header["DATA"] or [""])[0].lower()
    body = raw[pos:]
    if mode == "ascii":
        cloud = _pcd_ascii(body, fields, points)
    elif mode == "binary":
        cloud = _pcd_binary(body, fields, points)
    elif mode == "binary_compressed":
        cloud = _pcd_binary_compressed(body, fields, points)
    else:
        raise CloudFormatError(f"unsupported PCD data mode '{mode}'")
    log.info("read %d points from PCD file %s", len(cloud), path)
    return cloud


# --- PLY -----------------------------------------------------------------

_PLY_TYPES = {
    "char": "i1", "int8": "i1",
    "uchar": "u1", "uint8": "u1",
    "short": "i2", "int16": "i2",
    "ushort": "u2", "uint16": "u2",
    "int": "i4", "int32": "i4",
    "uint": "u4", "uint32": "u4",
    "float": "f4", "float32": "f4",
    "double": "f8", "float64": "f8",
}


@dataclass
class _PlyProperty:
    name: str
    kind: str
    count_kind: str | None = None


@dataclass
class _PlyElement:
    name: str
    count: int
    properties: list[_PlyProperty] = field(default_factory=list)


def _ply_code(kind: str) -> str:
    try:
        return _PLY_TYPES[kind]
    except KeyError:
        raise CloudFormatError(f"unsupported PLY property type '{kind}'") from None


def _read_ply_header(raw: bytes) -> tuple[str, list[_PlyElement], int]:
    if not raw.startswith(b"ply"):
        raise CloudFormatError("file does not start with a PLY magic line")
    fmt = ""
    elements: list[_PlyElement] = []
    pos = 0
    while True:
        end = raw.find(b"\n", pos)
        if end == -1:
            raise CloudFormatError("PLY header has no end_header line")
        line = raw[pos:end].decode("ascii", errors="replace").strip()
        pos = end + 1
        parts = line.split()
        if not parts or parts[0] in ("ply", "comment", "obj_info"):
            continue
        keyword = parts[0]
        try:
            if keyword == "format":
                fmt = parts[1]
            elif keyword == "element":
                elements.append(_PlyElement(parts[1], int(parts[2])))
            elif keyword == "property":
                if not elements:
                    raise CloudFormatError("PLY property declared before any element")
                if parts[1] == "list":
                    prop = _PlyProperty(parts[4], _ply_code(parts[3]), _ply_code(parts[2]))
                else:
                    prop = _PlyProperty(parts[2], _ply_code(parts[1]))
                elements[-1].properties.append(prop)
            elif keyword == "end_header":
                return fmt, elements, pos
        except (IndexError, ValueError):
            raise CloudFormatError(f"malformed PLY header line: {line!r}") from None


def _vertex_columns(element: _PlyElement) -> list[int]:
    names = [p.name for p in element.properties]
    try:
        return [names.index(axis) for axis in ("x", "y", "z")]
    except ValueError:
        raise CloudFormatError(f"PLY vertex properties {names} lack x, y and z") from None


def _ply_ascii(body: bytes, elements: list[_PlyElement]) -> np.ndarray:
    tokens = iter(body.split())
    try:
        for element in elements:
            is_vertex = element.name == "vertex"
            columns = _vertex_columns(element) if is_vertex else []
            rows = []
            for _ in range(element.count):
                values = []
                for prop in element.properties:
                    if prop.count_kind is None:
                        values.append(float(next(tokens)))
                    else:
                        for _ in range(int(next(tokens))):
                            next(tokens)
                        values.append(0.0)
                if is_vertex:
                    rows.append([values[c] for c in columns])
            if is_vertex:
                return np.array(rows, dtype=float).reshape(-1, 3)
    except StopIteration:
        raise CloudFormatError("PLY ascii data ends early") from None
    except ValueError as exc:
        raise CloudFormatError(f"bad PLY value: {exc}") from None
    raise CloudFormatError("PLY file has no vertex element")


def _ply_binary_element(
    body: bytes, offset: int, element: _PlyElement, endian: str
) -> tuple[list[np.ndarray], int]:
    props = element.properties
    if all(p.count_kind is None for p in props):
        layout = np.dtype([(f"p{i}", endian + p.kind) for i, p in enumerate(props)])
        try:
            records = np.frombuffer(body, dtype=layout, count=element.count, offset=offset)
        except ValueError as exc:
            raise CloudFormatError(f"PLY binary data is truncated: {exc}") from None
        columns = [records[f"p{i}"].astype(float) for i in range(len(props))]
        return columns, offset + layout.itemsize * element.count

    values: list[list[float]] = [[] for _ in props]
    try:
        for _ in range(element.count):
            for column, prop in zip(values, props):
                if prop.count_kind is None:
                    (value,) = struct.unpack_from(endian + np.dtype(prop.kind).char, body, offset)
                    offset += np.dtype(prop.kind).itemsize
                    column.append(float(value))
                else:
                    (length,) = struct.unpack_from(
                        endian + np.dtype(prop.count_kind).char, body, offset
                    )
                    offset += np.dtype(prop.count_kind).itemsize
                    offset += int(length) * np.dtype(prop.kind).itemsize
                    column.append(0.0)
    except struct.error:
        raise CloudFormatError("PLY binary data is truncated") from None
    if offset > len(body):
        raise CloudFormatError("PLY binary data is truncated")
    return [np.array(column, dtype=float) for column in values], offset


def _ply_binary(body: bytes, elements: list[_PlyElement], endian: str) -> np.ndarray:
    offset = 0
    for element in elements:
        columns, offset = _ply_binary_element(body, offset, element, endian)
        if element.name == "vertex":
            if element.count == 0:
                return np.empty((0, 3))
            return np.column_stack([columns[c] for c in _vertex_columns(element)])
    raise CloudFormatError("PLY file has no vertex element")


def load_ply(path: str | Path) -> np.ndarray:
    """Read x, y, z of every vertex in a PLY file (ascii or binary)."""
    raw = Path(path).read_bytes()
    fmt, elements, pos = _read_ply_header(raw)
    body = raw[pos:]
    if fmt == "ascii":
        cloud = _ply_ascii(body, elements)
    elif fmt == "binary_little_endian":
        cloud = _ply_binary(body, elements, "<")
    elif fmt == "binary_big_endian":
        cloud = _ply_binary(body, elements, ">")
    else:
        raise CloudFormatError(f"unsupported PLY format '{fmt}'")
    log.info("read %d points from PLY file %s", len(cloud), path)
    return cloud


def load_point_cloud(path: str | Path) -> np.ndarray:
    """Load a .pcd or .ply file as an (N, 3) array.

    Raises CloudFormatError for other extensions, unreadable files and
    files that hold no points.
    """
    extension = file_extension(path)
    if extension == ".pcd":
        reader = load_pcd
    elif extension == ".ply":
        reader = load_ply
    else:
        raise CloudFormatError(
            f"unsupported file extension '{extension}'; give a .pcd or .ply file"
        )
    try:
        cloud = reader(path)
    except OSError as exc:
        raise CloudFormatError(f"cannot read point cloud file {path}: {exc}") from exc
    if len(cloud) == 0:
        raise CloudFormatError(f"point cloud file {path} holds no points")
    return cloud