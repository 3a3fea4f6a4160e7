"""libmdb.objreader

Line-oriented decoders for the text side: OBJ geometry, MTL materials and
the tab-separated collision box description (.txt).

Parsing is forgiving the way modelling tools expect: a directive whose
numbers do not parse is dropped and reading goes on with the next line.
"""

from __future__ import annotations

import posixpath
from typing import Dict, Iterable, List, Optional

from .cbox import parse_hierarchy
from .model import (
    CboxHierarchy, Corner, Material, MaterialTable, ObjGroup, ObjMaterialGroup, ObjModel,
    ObjTriangle,
)
from .names import change_extension, file_name

DEFAULT_GROUP_NAME = "UnnamedMesh"


def _rest(line: str, parts: List[str]) -> str:
    return line[len(parts[0]):].strip()


def _corner(token: str) -> Corner:
    # v, v/vt, v//vn, v/vt/vn; anything unparsable counts as missing (0)
    out = [0, 0, 0]
    for i, part in enumerate(token.split("/")[:3]):
        try:
            out[i] = int(part)
        except ValueError:
            pass
    return (out[0], out[1], out[2])


class _ObjState:
    """Current group / material bookkeeping while scanning an OBJ."""

    def __init__(self, model: ObjModel) -> None:
        self.model = model
        self.by_name: Dict[str, ObjGroup] = {}
        self.group = ObjGroup(DEFAULT_GROUP_NAME)
        self.mat = ObjMaterialGroup("")

    def flush_mat(self) -> None:
        if self.mat.triangles:
            self.group.mat_groups.append(self.mat)
            self.mat = ObjMaterialGroup(self.mat.mat_name)

    def flush_group(self) -> None:
        self.flush_mat()
        if self.group.mat_groups and self.group.name not in self.by_name:
            self.by_name[self.group.name] = self.group
            self.model.groups.append(self.group)

    def use_material(self, name: str) -> None:
        self.flush_mat()
        self.mat = ObjMaterialGroup(name)

    def use_group(self, name: str) -> None:
        if name == self.group.name:
            return
        self.flush_group()
        self.group = self.by_name.get(name) or ObjGroup(name)


def parse_obj(lines: Iterable[str]) -> ObjModel:
    """Decode OBJ text into positions, texcoords, normals and named groups.

    Triangles are bucketed per group, then per usemtl block. Coming back to
    a group name that was already seen appends to that group. Polygons with
    more than three corners are fanned into triangles.
    """
    model = ObjModel()
    st = _ObjState(model)

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        tag = parts[0].lower()
        try:
            if tag == "v":
                model.positions.append((float(parts[1]), float(parts[2]), float(parts[3])))
            elif tag == "vt":
                model.texcoords.append((float(parts[1]), float(parts[2])))
            elif tag == "vn":
                model.normals.append((float(parts[1]), float(parts[2]), float(parts[3])))
            elif tag == "f":
                corners = [_corner(t) for t in parts[1:]]
                if len(corners) < 3:
                    continue
                for i in range(1, len(corners) - 1):
                    st.mat.triangles.append(ObjTriangle(corners[0], corners[i], corners[i + 1]))
            elif tag == "usemtl":
                st.use_material(_rest(line, parts))
            elif tag == "mtllib":
                model.mtllib = _rest(line, parts)
            elif tag in ("g", "o"):
                st.use_group(_rest(line, parts))
        except (IndexError, ValueError):
            continue

    st.flush_group()
    return model


def read_obj(path: str) -> ObjModel:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_obj(f)


def mtl_path_for(obj_path: str, model: ObjModel) -> str:
    """Where the materials of obj_path live: its mtllib, else <obj>.mtl."""
    if model.mtllib:
        return posixpath.join(posixpath.dirname(obj_path), model.mtllib)
    return change_extension(obj_path, "mtl")


def parse_mtl(lines: Iterable[str], table: MaterialTable) -> MaterialTable:
    """Add every newmtl block to table.

    The texture is the map_Kd file with its extension forced to .tga, or
    NULL when the block has none.
    """
    mat: Optional[Material] = None
    for raw in lines:
        line = raw.strip()
        low = line.lower()
        if low.startswith("newmtl "):
            if mat is not None:
                table.add(mat)
            mat = Material(line[7:].strip())
        elif low.startswith("map_kd ") and mat is not None:
            mat.texture = change_extension(line[7:].strip(), "tga")
    if mat is not None:
        table.add(mat)
    return table


def read_mtl(path: str, table: MaterialTable) -> MaterialTable:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_mtl(f, table)


def read_hierarchy(path: str) -> List[CboxHierarchy]:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_hierarchy(f)


def hierarchy_for(hierarchies: List[CboxHierarchy], obj_base: str) -> Optional[CboxHierarchy]:
    """First MESH block whose name (extension ignored) is obj_base."""
    for h in hierarchies:
        if h.mesh_name == obj_base:
            return h
    for h in hierarchies:
        if posixpath.splitext(file_name(h.mesh_name))[0] == obj_base:
            return h
    return None


def box_names(hierarchies: Iterable[CboxHierarchy]) -> List[str]:
    return [name for h in hierarchies for name in h.names]
