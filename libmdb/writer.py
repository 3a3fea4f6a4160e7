"""libmdb.writer

OBJ model -> mdb encoder.

The file is assembled in memory: block lengths are written as zero
placeholders and back-patched once the block content is known, and the
finished bytes are handed to write_mdb in one go. A failed encode therefore
never leaves a half-written .mdb on disk.
"""

from __future__ import annotations

import io
import math
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import CapacityError, MdbWriteError
from .model import (
    MAX_BOX_LEVEL, MAX_INDEX_COUNT, CollisionBox, Corner, MaterialTable, ObjMaterialGroup,
    ObjModel, ObjTriangle, Vec2, Vec3,
)
from .names import file_name
from .reader import STRING_ENCODING, VERTEX_RECORD_SIZE

# Field names the engine reads back to describe the box/hitbox blocks.
SCHEMA_STRINGS: Tuple[str, ...] = (
    "MeshData",
    "Root",
    "LocalBasis",
    "Position",
    "LookAt Vector Length",
    "Orientation - Cross",
    "Orientation - Forward",
    "Orientation - Up",
    "Length",
    "Radius",
    "Level",
    "HasLeftChild",
    "HasRightChild",
    "Valid Collision Triangle Indices - Size",
    "Valid Collision Triangle Indices - Element",
    "MaxLevel",
    "CollisionTriangles - Size",
    "CollisionTriangles - Element",
    "P0",
    "P1",
    "P2",
)

TRIANGLE_RECORD_SIZE = 8
MATERIAL_BLOCK_BASE = 76   # length + 72 bytes of shading defaults
HITBOX_RECORD_SIZE = 48


class _BinWriter:
    def __init__(self) -> None:
        self.buf = io.BytesIO()

    def tell(self) -> int:
        return self.buf.tell()

    def raw(self, data: bytes) -> None:
        self.buf.write(data)

    def s32(self, v: int) -> None:
        self.buf.write(struct.pack("<i", v))

    def u32(self, v: int) -> None:
        self.buf.write(struct.pack("<I", v))

    def s64(self, v: int) -> None:
        self.buf.write(struct.pack("<q", v))

    def u16(self, v: int) -> None:
        self.buf.write(struct.pack("<H", v))

    def f32(self, v: float) -> None:
        try:
            self.buf.write(struct.pack("<f", v))
        except (struct.error, OverflowError) as e:
            raise MdbWriteError(f"Value {v!r} doesn't fit in a 32-bit float.") from e

    def boolean(self, v: bool) -> None:
        self.buf.write(b"\x01" if v else b"\x00")

    def string(self, s: str) -> None:
        data = s.encode(STRING_ENCODING, errors="replace")
        self.s32(len(data))
        self.raw(data)

    def vec3_mdb(self, v: Vec3) -> None:
        # OBJ (x, y, z) -> stored (x, -z, y)
        self.f32(v[0])
        self.f32(-v[2])
        self.f32(v[1])

    def patch_s32(self, ofs: int, v: int) -> None:
        end = self.buf.tell()
        self.buf.seek(ofs)
        self.s32(v)
        self.buf.seek(end)

    def getvalue(self) -> bytes:
        return self.buf.getvalue()


# ----------------------------
# Geometry packing
# ----------------------------

@dataclass
class PackedGroup:
    """One model's deduplicated corners and triangles in file order."""

    points: List[Corner] = field(default_factory=list)
    runs: List[Tuple[int, List[Tuple[int, int, int]]]] = field(default_factory=list)

    @property
    def triangle_count(self) -> int:
        return sum(len(tris) for _, tris in self.runs)


def pack_group(mat_groups: Sequence[ObjMaterialGroup], materials: MaterialTable) -> PackedGroup:
    """Deduplicate (v, vt, vn) corners into one compact 16-bit point list."""
    packed = PackedGroup()
    index: Dict[Corner, int] = {}
    tri_total = 0

    def point(corner: Corner) -> int:
        i = index.get(corner)
        if i is None:
            if len(packed.points) >= MAX_INDEX_COUNT:
                raise CapacityError(f"Model vertex count exceeded {MAX_INDEX_COUNT}.")
            i = len(packed.points)
            index[corner] = i
            packed.points.append(corner)
        return i

    for mg in mat_groups:
        mat_index = materials.find_index(mg.mat_name)
        tris: List[Tuple[int, int, int]] = []
        for tri in mg.triangles:
            i2 = point(tri.p2)
            i1 = point(tri.p1)
            i0 = point(tri.p0)
            tris.append((i0, i1, i2))
        if not tris:
            continue
        tri_total += len(tris)
        if tri_total > MAX_INDEX_COUNT:
            raise CapacityError(f"Model triangle count exceeded {MAX_INDEX_COUNT}.")
        packed.runs.append((mat_index, tris))
    return packed


def normal_angles(n: Vec3) -> Vec2:
    """Direction -> the two stored angles; inverse of (-sin a, sin b, -cos a)."""
    x, y, z = n
    z = min(1.0, max(-1.0, z))
    y = min(1.0, max(-1.0, y))
    theta = math.acos(-z)
    if x > 0:
        theta = -theta
    return (theta, math.asin(y))


def _lookup(items: Sequence, index: int, what: str, default=None):
    if index == 0 and default is not None:
        return default
    if 1 <= index <= len(items):
        return items[index - 1]
    raise MdbWriteError(f"{what} index {index} out of range.")


# ----------------------------
# Blocks
# ----------------------------

def write_model(w: _BinWriter, packed: PackedGroup, model_index: int, obj: ObjModel) -> Tuple[Vec3, Vec3]:
    """Write one model block; returns the OBJ-space (min, max) of its points."""
    pos = w.tell()
    w.s32(0)
    w.s32(model_index)
    w.s32(len(packed.points))
    mins = [math.inf, math.inf, math.inf]
    maxs = [-math.inf, -math.inf, -math.inf]
    for vi, ti, ni in packed.points:
        p = _lookup(obj.positions, vi, "Point")
        t = _lookup(obj.texcoords, ti, "Texture coordinate", (0.0, 0.0))
        n = _lookup(obj.normals, ni, "Normal", (0.0, 0.0, 0.0))
        for i in range(3):
            if p[i] < mins[i]:
                mins[i] = p[i]
            if p[i] > maxs[i]:
                maxs[i] = p[i]
        w.s32(VERTEX_RECORD_SIZE)
        w.vec3_mdb(p)
        w.f32(t[0])
        w.f32(-t[1])
        a, b = normal_angles(n)
        w.f32(a)
        w.f32(b)
        w.s32(-1)

    w.s32(packed.triangle_count)
    for mat_index, tris in packed.runs:
        for i0, i1, i2 in tris:
            w.s32(TRIANGLE_RECORD_SIZE)
            # engine winding is the reverse of OBJ
            w.u16(i2)
            w.u16(i1)
            w.u16(i0)
            w.u16(mat_index)
    w.s32(0)  # animation count
    w.patch_s32(pos, w.tell() - (pos + 4))

    if not packed.points:
        return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
    return (mins[0], mins[1], mins[2]), (maxs[0], maxs[1], maxs[2])


def write_materials(w: _BinWriter, materials: MaterialTable) -> None:
    w.s32(len(materials))
    for mat in materials:
        texture = file_name(mat.texture).encode(STRING_ENCODING, errors="replace")
        w.s32(MATERIAL_BLOCK_BASE + len(texture))
        w.s32(len(texture))
        w.raw(texture)
        for _ in range(8):
            w.f32(1.0)
        for _ in range(3):
            w.s32(0)
        w.f32(1.0)
        for _ in range(3):
            w.s32(0)
        w.f32(1.0)
        for _ in range(2):
            w.s32(0)
    w.s32(0)  # bone count


def write_bounds(w: _BinWriter, mins: Vec3, maxs: Vec3) -> None:
    center = tuple((mins[i] + maxs[i]) / 2.0 for i in range(3))
    size = tuple(maxs[i] - mins[i] for i in range(3))
    # stored min/max after the (x, -z, y) swap
    w.f32(mins[0]); w.f32(-maxs[2]); w.f32(mins[1])
    w.f32(maxs[0]); w.f32(-mins[2]); w.f32(maxs[1])
    w.f32(center[0]); w.f32(-center[2]); w.f32(center[1])
    w.f32(math.sqrt(size[0] ** 2 + size[1] ** 2 + size[2] ** 2) / 2.0)


def write_box(w: _BinWriter, box: CollisionBox, tri_count: int) -> None:
    pos = w.tell()
    w.s32(0)
    w.s32(2)
    w.s32(72)
    w.s32(3)
    w.vec3_mdb(box.position)
    w.s32(4)
    w.s32(0)
    w.s32(5)
    w.vec3_mdb(box.cross)
    w.s32(6)
    w.vec3_mdb(box.up)
    w.s32(7)
    w.vec3_mdb(box.forward)
    w.s32(8)
    w.f32(box.length[0]); w.f32(box.length[1]); w.f32(box.length[2])
    w.s32(9)
    w.f32(max(box.length))
    w.s32(10)
    w.u32(box.level)
    w.s32(11)
    w.boolean(box.left is not None)
    w.s32(12)
    w.boolean(box.right is not None)
    if box.left is not None:
        w.s32(13)
        write_box(w, box.left, tri_count)
    if box.right is not None:
        w.s32(16)
        write_box(w, box.right, tri_count)
    w.s32(14)
    if box.level != 0:
        w.s32(0)
    else:
        # root carries every triangle as a fallback hit list
        w.s32(tri_count)
        for i in range(tri_count):
            w.s32(15)
            w.s32(i)
    w.patch_s32(pos, w.tell() - pos)


def write_hitbox(w: _BinWriter, triangles: Sequence[ObjTriangle], positions: Sequence[Vec3]) -> None:
    w.s32(18)
    w.s32(len(triangles))
    for tri in triangles:
        w.s32(19)
        w.s32(HITBOX_RECORD_SIZE)
        w.s32(20)
        w.vec3_mdb(_lookup(positions, tri.p2[0], "Point"))
        w.s32(21)
        w.vec3_mdb(_lookup(positions, tri.p1[0], "Point"))
        w.s32(22)
        w.vec3_mdb(_lookup(positions, tri.p0[0], "Point"))


def write_strings(w: _BinWriter) -> None:
    w.s32(len(SCHEMA_STRINGS))
    for s in SCHEMA_STRINGS:
        w.string(s)


# ----------------------------
# Whole file
# ----------------------------

class MdbFileWriter:
    """Accumulates the models of one output file.

    The first model fixes the file-level bounds, the hitbox list and the
    triangle set the collision boxes are generated from.
    """

    def __init__(self, obj: ObjModel, materials: MaterialTable) -> None:
        self.obj = obj
        self.materials = materials
        self.w = _BinWriter()
        self.w.raw(b"\x00" * 16)
        self.model_count = 0
        self.bounds: Optional[Tuple[Vec3, Vec3]] = None
        self.first_triangles: List[ObjTriangle] = []
        self.first_tri_count = 0

    def add_group(self, mat_groups: Sequence[ObjMaterialGroup]) -> PackedGroup:
        packed = pack_group(mat_groups, self.materials)
        bounds = write_model(self.w, packed, self.model_count, self.obj)
        if self.model_count == 0:
            self.bounds = bounds
            self.first_triangles = [t for mg in mat_groups for t in mg.triangles]
            self.first_tri_count = packed.triangle_count
        self.model_count += 1
        return packed

    def finish(self, box: CollisionBox) -> bytes:
        if self.model_count == 0:
            raise MdbWriteError("No model to write.")
        w = self.w
        write_materials(w, self.materials)
        mins, maxs = self.bounds or ((0.0, 0.0, 0.0), (0.0, 0.0, 0.0))
        write_bounds(w, mins, maxs)

        pos = w.tell()
        w.s32(0)
        w.s32(1)
        write_box(w, box, self.first_tri_count)
        w.s32(17)
        w.s32(MAX_BOX_LEVEL)
        write_hitbox(w, self.first_triangles, self.obj.positions)
        end = w.tell()
        w.boolean(False)

        w.buf.seek(0)
        w.s64(end + 1)
        w.s32(end - 11)
        w.s32(self.model_count)
        w.buf.seek(0, io.SEEK_END)
        w.patch_s32(pos, end - pos)
        write_strings(w)
        return w.getvalue()


def write_mdb(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)
