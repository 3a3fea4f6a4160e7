"""libmdb.objwriter

MdbModel -> OBJ / MTL / collision box description text.

Indices in the OBJ are global to the file, so every write takes the running
ObjCounters and returns the advanced ones; several mdb files can then be
appended to one OBJ without collisions.
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Callable, List, Optional, TextIO

from .cbox import BOX_FACES, box_corners
from .model import CollisionBox, Material, MaterialTable, MdbModel, ObjCounters
from .names import change_extension

LogSink = Callable[[str], None]


def register_materials(model: MdbModel, table: MaterialTable) -> List[Material]:
    """Merge the file's materials into table; returns the canonical entry per file index."""
    return [table.add(mat) for mat in model.materials]


def _write_points(out: TextIO, model: MdbModel) -> None:
    for x, y, z in model.positions:
        out.write(f"v {x:.6f} {z:.6f} {-y:.6f}\n")
    for u, v in model.texcoords:
        out.write(f"vt {u:.6f} {-v:.6f}\n")
    for theta, phi in model.normals:
        out.write(f"vn {-math.sin(theta):.6f} {math.sin(phi):.6f} {-math.cos(theta):.6f}\n")


def write_obj_model(out: TextIO, model: MdbModel, materials: MaterialTable, counters: ObjCounters,
                    mesh_name: str, cbox_out: Optional[TextIO] = None,
                    logs: Optional[LogSink] = None) -> ObjCounters:
    """Append one decoded mdb to an OBJ stream.

    Faces are written P2 P1 P0 to turn the engine winding into OBJ winding.
    When cbox_out is given the box tree is appended as wireframe objects and
    its shape is recorded there under a MESH line.
    """
    canonical = register_materials(model, materials)
    _write_points(out, model)

    v, vt, vn = counters.v, counters.vt, counters.vn
    for group in model.groups:
        out.write(f"g {group.name}\n")
        out.write(f"o {group.name}\n")
        for run in group.runs:
            if run.mat_index < len(canonical):
                mat = canonical[run.mat_index]
            else:
                if logs:
                    logs(f"Material index {run.mat_index} in {group.name} out of range.")
                mat = materials[materials.null_index()]
            out.write(f"usemtl {mat.name}\n")
            for tri in run.triangles:
                out.write("f")
                for p in (tri.p2, tri.p1, tri.p0):
                    out.write(f" {p + v}/{p + vt}/{p + vn}")
                out.write("\n")
        v += group.vertex_count
        vt += group.vertex_count
        vn += group.vertex_count

    counters = replace(counters, v=v, vt=vt, vn=vn)
    if cbox_out is not None:
        cbox_out.write(f"MESH\t{mesh_name}\n")
        counters = write_boxes(out, cbox_out, model.box, counters)
    return counters


def _name_boxes(box: Optional[CollisionBox], counters: ObjCounters) -> ObjCounters:
    if box is None:
        return counters
    box.name = f"_BOX{counters.box}"
    counters = replace(counters, box=counters.box + 1)
    counters = _name_boxes(box.left, counters)
    return _name_boxes(box.right, counters)


def write_boxes(out: TextIO, cbox_out: TextIO, root: CollisionBox, counters: ObjCounters) -> ObjCounters:
    """Write the box tree as 8-point/12-face objects plus its CBOX lines."""
    counters = _name_boxes(root, counters)
    return _write_box(out, cbox_out, root, counters)


def _write_box(out: TextIO, cbox_out: TextIO, box: CollisionBox, counters: ObjCounters) -> ObjCounters:
    for x, y, z in box_corners(box):
        out.write(f"v {x:.6f} {y:.6f} {z:.6f}\n")
    out.write(f"o {box.name}\n")
    out.write(f"g {box.name}\n")
    base = counters.v
    for a, b, c in BOX_FACES:
        out.write(f"f {base + a} {base + b} {base + c}\n")
    counters = replace(counters, v=base + 8)

    left, right = box.left, box.right
    if left is not None and right is not None:
        cbox_out.write(f"CBOX\t{box.name}\t{left.name}\t{right.name}\n")
    elif left is not None:
        cbox_out.write(f"CBOX\t{box.name}\t{left.name}\n")
    elif right is not None:
        cbox_out.write(f"CBOX\t{box.name}\t\t{right.name}\n")
    else:
        cbox_out.write(f"CBOX\t{box.name}\n")
    if left is not None:
        counters = _write_box(out, cbox_out, left, counters)
    if right is not None:
        counters = _write_box(out, cbox_out, right, counters)
    return counters


def write_mtl(out: TextIO, materials: MaterialTable, texture_directory: str = "") -> None:
    for mat in materials:
        out.write(f"newmtl {mat.name}\n")
        out.write("Ka 0.200000 0.200000 0.200000\n")
        out.write("Kd 1.000000 1.000000 1.000000\n")
        out.write("Ks 0.000000 0.000000 0.000000\n")
        out.write("illum 2\n")
        out.write("Ns 8.000000\n")
        if not mat.is_null:
            out.write(f"map_Kd {texture_directory}{change_extension(mat.texture, 'dds')}\n")
        out.write("\n")
