"""libmdb.reader

mdb -> MdbModel decoder.

File layout (little-endian), as far as we need it:

  int64  file length          (covers everything up to the string table)
  int32  data length
  int32  model count
  model blocks                (int32 length, then index/points/triangles,
                               possibly trailing animation data)
  int32  material count, material blocks
  int32  bone count, bone blocks (skipped opaquely)
  40 bytes object bounds, 8 bytes box-block header
  collision box tree          (recursive, each node length-framed)
  ...                         (hitbox triangles and field-name strings; unused)

Every read failure is re-raised as MdbReadError naming the stage, so the
caller can log it and move on to the next file.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from .errors import MdbReadError
from .model import CollisionBox, MaterialRun, Material, MdbGroup, MdbModel, MdbTriangle, Vec3
from .names import material_name

STRING_ENCODING = "latin-1"

HEADER_SIZE = 12          # int64 file length + int32 data length
VERTEX_RECORD_SIZE = 32   # 7 floats + 0xFFFFFFFF
MATERIAL_TAIL_SIZE = 72   # shading parameters after the texture name
BOUNDS_SKIP = 52          # bounds (40) + block header (8) + root box length (4)
MAX_BOX_DEPTH = 64        # files written by the engine stop at level 5


@dataclass
class _Bin:
    data: bytes
    ofs: int = 0

    def tell(self) -> int:
        return self.ofs

    def seek(self, ofs: int) -> None:
        if ofs < 0 or ofs > len(self.data):
            raise MdbReadError(f"Seek outside file to {ofs} (size {len(self.data)})")
        self.ofs = ofs

    def skip(self, n: int) -> None:
        self.seek(self.ofs + n)

    def read(self, n: int) -> bytes:
        b = self.data[self.ofs : self.ofs + n]
        if len(b) != n:
            raise MdbReadError(f"Unexpected EOF at {self.ofs}, need {n}")
        self.ofs += n
        return b

    def u8(self) -> int:
        return self.read(1)[0]

    def boolean(self) -> bool:
        return self.u8() != 0

    def u16(self) -> int:
        return struct.unpack("<H", self.read(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.read(4))[0]

    def s32(self) -> int:
        return struct.unpack("<i", self.read(4))[0]

    def f32(self) -> float:
        return struct.unpack("<f", self.read(4))[0]

    def string(self) -> str:
        n = self.s32()
        if n < 0:
            n = -n - 1
        return self.read(n).decode(STRING_ENCODING)


def _read_vec3_obj(b: _Bin) -> Vec3:
    # stored (x, y, z) -> OBJ (x, z, -y)
    x = b.f32()
    y = b.f32()
    z = b.f32()
    return (x, z, -y)


def read_box(b: _Bin, box: CollisionBox, depth: int = 0) -> CollisionBox:
    """Read one box node (its length field already consumed) and its children."""
    if depth > MAX_BOX_DEPTH:
        raise MdbReadError(f"Collision box tree deeper than {MAX_BOX_DEPTH} levels.")
    b.skip(12)               # 2, 72, 3
    box.position = _read_vec3_obj(b)
    b.skip(12)               # 4, 0, 5
    box.cross = _read_vec3_obj(b)
    b.skip(4)                # 6: stored forward, OBJ up
    box.up = _read_vec3_obj(b)
    b.skip(4)                # 7: stored up, OBJ forward
    box.forward = _read_vec3_obj(b)
    b.skip(4)                # 8
    box.length = (b.f32(), b.f32(), b.f32())
    b.skip(4)                # 9
    b.skip(4)                # radius
    b.skip(4)                # 10
    box.level = b.u32()
    b.skip(4)                # 11
    has_left = b.boolean()
    b.skip(4)                # 12
    has_right = b.boolean()
    if has_left:
        b.skip(8)            # 13 + child length
        box.left = read_box(b, CollisionBox(level=box.level + 1), depth + 1)
    if has_right:
        b.skip(8)            # 16 + child length
        box.right = read_box(b, CollisionBox(level=box.level + 1), depth + 1)
    b.skip(4)                # 14
    tri_count = b.u32()
    b.skip(tri_count * 8)    # (15, index) pairs
    return box


def _read_models(b: _Bin, model: MdbModel, group_name: str) -> None:
    try:
        b.seek(HEADER_SIZE)
        model_count = b.u32()
    except MdbReadError as e:
        raise MdbReadError("Unable to read the number of model in the file.") from e

    for i in range(model_count):
        try:
            model_length = b.u32()
            model_start = b.tell()
            b.skip(4)        # model index
            v_count = b.u32()
        except MdbReadError as e:
            raise MdbReadError(f"Unable to read point count of model number {i} in the file.") from e

        for j in range(v_count):
            try:
                b.skip(4)    # vertex record length
                model.positions.append((b.f32(), b.f32(), b.f32()))
                model.texcoords.append((b.f32(), b.f32()))
                model.normals.append((b.f32(), b.f32()))
                b.skip(4)    # FF FF FF FF
            except MdbReadError as e:
                raise MdbReadError(f"Unable to read point number {j} of model number {i} in the file.") from e

        try:
            t_count = b.u32()
        except MdbReadError as e:
            raise MdbReadError(f"Unable to read triangle count of model number {i} in the file.") from e

        group = MdbGroup(name=f"{group_name}_{i}", vertex_count=v_count)
        run = None
        for j in range(t_count):
            try:
                b.skip(4)    # triangle record length
                tri = MdbTriangle(b.u16(), b.u16(), b.u16())
                mat = b.u16()
            except MdbReadError as e:
                raise MdbReadError(f"Unable to read triangle number {j} of model number {i}.") from e
            if run is None or run.mat_index != mat:
                run = MaterialRun(mat_index=mat)
                group.runs.append(run)
            run.triangles.append(tri)
        model.groups.append(group)

        try:
            b.skip(4)        # animation count, format unknown
            used = b.tell() - model_start
            if used < model_length:
                b.skip(model_length - used)
        except MdbReadError as e:
            raise MdbReadError(f"Unable to reach the end of model {i} in the file.") from e


def _read_materials(b: _Bin, model: MdbModel) -> None:
    try:
        mat_count = b.u32()
    except MdbReadError as e:
        raise MdbReadError("Unable to read texture count in the file.") from e

    for i in range(mat_count):
        try:
            b.skip(4)        # block length
            texture = b.string()
            b.skip(MATERIAL_TAIL_SIZE)
        except MdbReadError as e:
            raise MdbReadError(f"Unable to read material {i}.") from e
        model.materials.append(Material(material_name(texture), texture))


def _skip_bones(b: _Bin, model: MdbModel) -> None:
    try:
        model.bone_count = b.u32()
    except MdbReadError as e:
        raise MdbReadError("Unable to read bones count in the file.") from e
    for i in range(model.bone_count):
        try:
            b.skip(b.u32())
        except MdbReadError as e:
            raise MdbReadError(f"Unable to read bone {i}.") from e


def parse_mdb(data: bytes, group_name: str) -> MdbModel:
    """Decode mdb bytes; groups are named <group_name>_<model index>."""
    b = _Bin(data)
    model = MdbModel()
    _read_models(b, model, group_name)
    _read_materials(b, model)
    _skip_bones(b, model)
    try:
        b.skip(BOUNDS_SKIP)
    except MdbReadError as e:
        raise MdbReadError("Unable to reach collision box block in the file.") from e
    try:
        read_box(b, model.box)
    except MdbReadError as e:
        raise MdbReadError("Unable to read collision box.") from e
    return model


def read_mdb(path: str, group_name: str) -> MdbModel:
    with open(path, "rb") as f:
        data = f.read()
    return parse_mdb(data, group_name)
