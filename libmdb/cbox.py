"""libmdb.cbox

Collision box engine.

Two ways to get a box tree for a mesh:

  - auto_generate: fit a box to a triangle set by PCA, split the triangles
    across the longest axis and recurse down to MAX_BOX_LEVEL.
  - parse_hierarchy + apply_hierarchy: take the tree shape from a side-channel
    description file and refit every node to the OBJ group carrying its name.
    No repartitioning happens in this mode.

All positions here are OBJ-space; the mdb writer converts axes on output.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .geometry import (
    dot, mean_and_covariance, principal_axes, project_extents, v_add, v_scale,
)
from .model import (
    MAX_BOX_LEVEL, CboxHierarchy, CollisionBox, ObjGroup, ObjTriangle, Vec3,
)

LogSink = Callable[[str], None]

# Offsets into the 8 corners of box_corners(), one row per triangle.
BOX_FACES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2), (3, 4, 2), (5, 6, 2), (4, 7, 5),
    (6, 7, 0), (1, 7, 3), (6, 0, 2), (7, 1, 0),
    (1, 3, 2), (4, 5, 2), (7, 6, 5), (7, 4, 3),
)

# (cross, up, forward) sign of each corner
_CORNER_SIGNS: Tuple[Tuple[int, int, int], ...] = (
    (1, 1, 1), (1, -1, 1), (1, 1, -1), (1, -1, -1),
    (-1, -1, -1), (-1, 1, -1), (-1, 1, 1), (-1, -1, 1),
)


def _position(positions: Sequence[Vec3], index: int) -> Optional[Vec3]:
    if 1 <= index <= len(positions):
        return positions[index - 1]
    return None


def points_from_triangles(positions: Sequence[Vec3], triangles: Iterable[ObjTriangle]) -> List[Vec3]:
    """Distinct referenced positions, in first-use order.

    Corners pointing outside the position list are skipped.
    """
    seen = set()
    out: List[Vec3] = []
    for tri in triangles:
        for corner in (tri.p0, tri.p1, tri.p2):
            vi = corner[0]
            if vi in seen:
                continue
            seen.add(vi)
            p = _position(positions, vi)
            if p is not None:
                out.append(p)
    return out


def fit_box(box: CollisionBox, points: List[Vec3]) -> Vec3:
    """Refit center/axes/half-lengths of box to points; returns the mean.

    An empty point set leaves a zero-sized box at the origin.
    """
    mean, cov = mean_and_covariance(points)
    if not points:
        box.position = mean
        box.length = (0.0, 0.0, 0.0)
        return mean

    axes = principal_axes(cov)
    box.cross, box.up, box.forward = axes
    mins, maxs = project_extents(points, axes)
    local = tuple((mins[i] + maxs[i]) / 2.0 for i in range(3))
    box.length = tuple((maxs[i] - mins[i]) / 2.0 for i in range(3))  # type: ignore[assignment]
    pos = v_scale(box.cross, local[0])
    pos = v_add(pos, v_scale(box.up, local[1]))
    box.position = v_add(pos, v_scale(box.forward, local[2]))
    return mean


def _tri_center(positions: Sequence[Vec3], tri: ObjTriangle) -> Optional[Vec3]:
    # midpoint of the triangle's axis-aligned bounds
    pts = [_position(positions, c[0]) for c in (tri.p0, tri.p1, tri.p2)]
    if any(p is None for p in pts):
        return None
    return tuple(  # type: ignore[return-value]
        (min(p[i] for p in pts) + max(p[i] for p in pts)) / 2.0 for i in range(3)
    )


def auto_generate(box: CollisionBox, triangles: Sequence[ObjTriangle], positions: Sequence[Vec3]) -> CollisionBox:
    """Build a full PCA box tree below box, down to MAX_BOX_LEVEL."""
    mean = fit_box(box, points_from_triangles(positions, triangles))
    if box.level >= MAX_BOX_LEVEL:
        return box

    box.left = CollisionBox(level=box.level + 1)
    box.right = CollisionBox(level=box.level + 1)

    lx, ly, lz = box.length
    longest = max(lx, ly, lz)
    if longest == lx:
        axis = box.cross
    elif longest == ly:
        axis = box.up
    else:
        axis = box.forward
    split = dot(axis, mean)

    left: List[ObjTriangle] = []
    right: List[ObjTriangle] = []
    for tri in triangles:
        c = _tri_center(positions, tri)
        if c is None:
            continue
        if dot(axis, c) < split:
            left.append(tri)
        else:
            right.append(tri)

    auto_generate(box.left, left, positions)
    auto_generate(box.right, right, positions)
    return box


def iter_boxes(box: Optional[CollisionBox]) -> Iterator[CollisionBox]:
    """Depth-first, parent before children, left before right."""
    if box is None:
        return
    yield box
    yield from iter_boxes(box.left)
    yield from iter_boxes(box.right)


def box_corners(box: CollisionBox) -> List[Vec3]:
    out: List[Vec3] = []
    lx, ly, lz = box.length
    for sc, su, sf in _CORNER_SIGNS:
        p = box.position
        p = v_add(p, v_scale(box.cross, sc * lx))
        p = v_add(p, v_scale(box.up, su * ly))
        p = v_add(p, v_scale(box.forward, sf * lz))
        out.append(p)
    return out


# ----------------------------
# Side-channel hierarchy
# ----------------------------

def parse_hierarchy(lines: Iterable[str]) -> List[CboxHierarchy]:
    """Read MESH/CBOX lines into one box tree per mesh.

    Children only hang off boxes above MAX_BOX_LEVEL, and a name that is
    already in the tree is never linked twice, so the result is a tree.
    """
    result: List[CboxHierarchy] = []
    mesh_name = ""
    boxes: Dict[str, CollisionBox] = {}
    order: List[str] = []

    def flush() -> None:
        if order:
            result.append(CboxHierarchy(mesh_name=mesh_name, root=boxes[order[0]], names=list(order)))

    def child(parent: CollisionBox, name: str) -> Optional[CollisionBox]:
        if not name or name in boxes:
            return None
        box = CollisionBox(name=name, level=parent.level + 1)
        boxes[name] = box
        order.append(name)
        return box

    for raw in lines:
        line = raw.rstrip("\r\n")
        if line.startswith("MESH\t"):
            flush()
            mesh_name = line[5:]
            boxes = {}
            order = []
        elif line.startswith("CBOX\t"):
            if not mesh_name.strip():
                continue
            parts = line.split("\t")
            name = parts[1]
            if not name:
                continue
            box = boxes.get(name)
            if box is None:
                if order:
                    # a second root would be unreachable
                    continue
                box = CollisionBox(name=name)
                boxes[name] = box
                order.append(name)
            elif box.level >= MAX_BOX_LEVEL:
                continue
            if len(parts) > 2 and box.left is None:
                box.left = child(box, parts[2])
            if len(parts) > 3 and box.right is None:
                box.right = child(box, parts[3])
    flush()
    return result


def apply_hierarchy(root: CollisionBox, groups: List[ObjGroup], positions: Sequence[Vec3],
                    logs: Optional[LogSink] = None) -> None:
    """Refit every named box to the group of the same name.

    Matched groups are removed from groups: they are wireframes, not mesh
    data. A box without a group keeps its default axes.
    """
    by_name = {g.name: g for g in groups}
    for box in iter_boxes(root):
        group = by_name.pop(box.name, None)
        if group is None:
            if logs:
                logs(f"Warning : the group {box.name} doesn't exist.")
            continue
        fit_box(box, points_from_triangles(positions, group.triangles()))
        groups[:] = [g for g in groups if g is not group]
