from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import CapacityError

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]

# OBJ face corner: (position, texcoord, normal), 1-based, 0 = missing
Corner = Tuple[int, int, int]

MAX_INDEX_COUNT = 65535
MAX_BOX_LEVEL = 5
NULL_TEXTURE = "NULL"


# -----------------------------
# Materials
# -----------------------------

@dataclass
class Material:
    name: str
    texture: str = NULL_TEXTURE

    @property
    def is_null(self) -> bool:
        return self.texture == NULL_TEXTURE


class MaterialTable:
    """Ordered material list deduplicated by case-insensitive display name.

    One table is shared by every input that contributes to the same output,
    which is what keeps the mtl (or the mdb material block) free of
    duplicates.
    """

    def __init__(self) -> None:
        self._items: List[Material] = []
        self._by_name: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __getitem__(self, i: int) -> Material:
        return self._items[i]

    def add(self, mat: Material) -> Material:
        """Register mat and return the canonical entry for its name."""
        key = mat.name.lower()
        if key in self._by_name:
            return self._items[self._by_name[key]]
        if len(self._items) >= MAX_INDEX_COUNT:
            raise CapacityError(f"Material count can't exceed {MAX_INDEX_COUNT}.")
        self._by_name[key] = len(self._items)
        self._items.append(mat)
        return mat

    def null_index(self) -> int:
        # first texture-less material wins; create one only if none exists
        for i, mat in enumerate(self._items):
            if mat.is_null:
                return i
        if len(self._items) >= MAX_INDEX_COUNT:
            raise CapacityError(f"Material count can't exceed {MAX_INDEX_COUNT}.")
        self._items.append(Material("", NULL_TEXTURE))
        self._by_name.setdefault("", len(self._items) - 1)
        return len(self._items) - 1

    def find_index(self, name: str) -> int:
        """Exact-name lookup falling back to the null material."""
        for i, mat in enumerate(self._items):
            if mat.name == name:
                return i
        return self.null_index()


# -----------------------------
# Collision boxes
# -----------------------------

@dataclass
class CollisionBox:
    name: str = ""
    level: int = 0
    position: Vec3 = (0.0, 0.0, 0.0)
    cross: Vec3 = (1.0, 0.0, 0.0)
    up: Vec3 = (0.0, 1.0, 0.0)
    forward: Vec3 = (0.0, 0.0, 1.0)
    length: Vec3 = (0.0, 0.0, 0.0)
    left: Optional["CollisionBox"] = None
    right: Optional["CollisionBox"] = None


@dataclass
class CboxHierarchy:
    """One MESH block of the side-channel description file."""

    mesh_name: str
    root: CollisionBox
    names: List[str] = field(default_factory=list)


# -----------------------------
# mdb side of the intermediate model
# -----------------------------

@dataclass
class MdbTriangle:
    p0: int
    p1: int
    p2: int


@dataclass
class MaterialRun:
    """Consecutive triangles sharing one per-file material index."""

    mat_index: int
    triangles: List[MdbTriangle] = field(default_factory=list)


@dataclass
class MdbGroup:
    name: str
    vertex_count: int
    runs: List[MaterialRun] = field(default_factory=list)

    @property
    def triangle_count(self) -> int:
        return sum(len(r.triangles) for r in self.runs)


@dataclass
class MdbModel:
    """Everything read from one mdb file.

    Positions, texcoords and normal angles are kept in the file's own axes;
    conversion happens when the OBJ text is written.
    """

    positions: List[Vec3] = field(default_factory=list)
    texcoords: List[Vec2] = field(default_factory=list)
    normals: List[Vec2] = field(default_factory=list)
    groups: List[MdbGroup] = field(default_factory=list)
    materials: List[Material] = field(default_factory=list)
    bone_count: int = 0
    box: CollisionBox = field(default_factory=CollisionBox)


# -----------------------------
# OBJ side of the intermediate model
# -----------------------------

@dataclass
class ObjTriangle:
    p0: Corner
    p1: Corner
    p2: Corner


@dataclass
class ObjMaterialGroup:
    mat_name: str
    triangles: List[ObjTriangle] = field(default_factory=list)


@dataclass
class ObjGroup:
    name: str
    mat_groups: List[ObjMaterialGroup] = field(default_factory=list)

    def triangles(self) -> List[ObjTriangle]:
        return [t for mg in self.mat_groups for t in mg.triangles]


@dataclass
class ObjModel:
    positions: List[Vec3] = field(default_factory=list)
    texcoords: List[Vec2] = field(default_factory=list)
    normals: List[Vec3] = field(default_factory=list)
    groups: List[ObjGroup] = field(default_factory=list)
    mtllib: str = ""


# -----------------------------
# Running OBJ offsets
# -----------------------------

@dataclass(frozen=True)
class ObjCounters:
    """1-based offsets of the next v/vt/vn line, plus the next box number.

    Threaded through every OBJ write so several mdb files can be appended
    to one OBJ without index collisions.
    """

    v: int = 1
    vt: int = 1
    vn: int = 1
    box: int = 0


# -----------------------------
# High-level DTOs
# -----------------------------

@dataclass
class MdbModelInfo:
    name: str
    vertices: int
    triangles: int
    material_runs: int


@dataclass
class MdbSummary:
    path: str
    file_size: int
    model_count: int
    models: List[MdbModelInfo]
    materials: List[Material]
    bone_count: int
    box_count: int
    max_box_level: int


@dataclass
class BatchResult:
    done: int = 0
    failed: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
