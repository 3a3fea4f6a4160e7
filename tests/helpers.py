# helpers.py
"""Hand-packed mdb files and a temp-dir TestCase shared by the test modules."""

import os
import shutil
import struct
import sys
import tempfile
import unittest

# Make libmdb importable when the tests run from a source checkout
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if parent_dir not in sys.path:
    sys.path.append(parent_dir)


def _s32(v):
    return struct.pack("<i", v)


def _f32(*vals):
    return b"".join(struct.pack("<f", v) for v in vals)


def pack_box(level, max_level, tri_count=0, position=(0.0, 0.0, 0.0), length=(1.0, 1.0, 1.0)):
    """One box node (length field included) with full children down to max_level."""
    body = _s32(2) + _s32(72) + _s32(3) + _f32(*position)
    body += _s32(4) + _s32(0) + _s32(5) + _f32(1.0, 0.0, 0.0)
    body += _s32(6) + _f32(0.0, 0.0, 1.0)
    body += _s32(7) + _f32(0.0, -1.0, 0.0)
    body += _s32(8) + _f32(*length)
    body += _s32(9) + _f32(max(length))
    body += _s32(10) + struct.pack("<I", level)
    has_children = level < max_level
    body += _s32(11) + (b"\x01" if has_children else b"\x00")
    body += _s32(12) + (b"\x01" if has_children else b"\x00")
    if has_children:
        half = tuple(x / 2.0 for x in length)
        body += _s32(13) + pack_box(level + 1, max_level, tri_count, position, half)
        body += _s32(16) + pack_box(level + 1, max_level, tri_count, position, half)
    body += _s32(14)
    if level == 0:
        body += _s32(tri_count) + b"".join(_s32(15) + _s32(i) for i in range(tri_count))
    else:
        body += _s32(0)
    return _s32(len(body) + 4) + body


def pack_box_chain(depth):
    """A left-only chain of depth nodes, built bottom-up."""
    child = b""
    for level in reversed(range(depth)):
        body = _s32(2) + _s32(72) + _s32(3) + _f32(0.0, 0.0, 0.0)
        body += _s32(4) + _s32(0) + _s32(5) + _f32(1.0, 0.0, 0.0)
        body += _s32(6) + _f32(0.0, 0.0, 1.0)
        body += _s32(7) + _f32(0.0, -1.0, 0.0)
        body += _s32(8) + _f32(1.0, 1.0, 1.0)
        body += _s32(9) + _f32(1.0)
        body += _s32(10) + struct.pack("<I", level)
        body += _s32(11) + (b"\x01" if child else b"\x00")
        body += _s32(12) + b"\x00"
        if child:
            body += _s32(13) + child
        body += _s32(14) + _s32(0)
        child = _s32(len(body) + 4) + body
    return child


def pack_model(index, vertices, triangles, tail=b""):
    """vertices: (pos3, uv2, angles2) tuples; triangles: (i0, i1, i2, mat)."""
    body = _s32(index) + _s32(len(vertices))
    for pos, uv, angles in vertices:
        body += _s32(32) + _f32(*pos) + _f32(*uv) + _f32(*angles) + _s32(-1)
    body += _s32(len(triangles))
    for i0, i1, i2, mat in triangles:
        body += _s32(8) + struct.pack("<4H", i0, i1, i2, mat)
    body += _s32(len(tail) // 4) + tail
    return _s32(len(body)) + body


def pack_mdb(models, textures, bones=(), box_levels=1, tri_count=0, box=None):
    """models: list of (vertices, triangles[, tail]); textures: texture names.

    box replaces the generated box tree with already packed bytes.
    """
    out = b""
    for i, m in enumerate(models):
        out += pack_model(i, *m)
    out += _s32(len(textures))
    for tex in textures:
        raw = tex.encode("latin-1")
        out += _s32(76 + len(raw)) + _s32(len(raw)) + raw + _f32(*([1.0] * 18))
    out += _s32(len(bones))
    for bone in bones:
        out += _s32(len(bone)) + bone
    out += _f32(*([0.0] * 10))
    if box is None:
        box = pack_box(0, box_levels, tri_count)
    out += _s32(len(box) + 4) + _s32(1) + box
    out += _s32(17) + _s32(5) + _s32(18) + _s32(0) + b"\x00"
    header = struct.pack("<qii", len(out) + 16, len(out) + 4, len(models))
    return header + out


def quad_model(z=0.0, mat=0, size=1.0):
    """Two triangles over a unit square, every vertex used."""
    verts = [
        ((0.0, 0.0, z), (0.0, 0.0), (0.0, 0.0)),
        ((size, 0.0, z), (1.0, 0.0), (0.0, 0.0)),
        ((size, size, z), (1.0, 1.0), (0.0, 0.0)),
        ((0.0, size, z), (0.0, 1.0), (0.0, 0.0)),
    ]
    tris = [(0, 1, 2, mat), (0, 2, 3, mat)]
    return verts, tris


def sample_mdb():
    """Two models, a material change inside model 0, one bone and trailing animation bytes."""
    verts0, _ = quad_model()
    tris0 = [(0, 1, 2, 0), (0, 2, 3, 1)]
    verts1, tris1 = quad_model(z=2.0, mat=1)
    return pack_mdb(
        [(verts0, tris0, b"\xAA" * 8), (verts1, tris1)],
        ["Textures\\Hull.tga", "deck plate.tga"],
        bones=[b"\x00" * 12],
        box_levels=2,
        tri_count=2,
    )


def truncated_mdb():
    """Valid header, then cut in the middle of the third vertex."""
    data = sample_mdb()
    return data[:16 + 12 + 36 * 2 + 20]


class MdbTestBase(unittest.TestCase):
    """Gives every test its own scratch folder."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="mdbtest_")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.tmp, name)

    def write_bytes(self, name, data):
        p = self.path(name)
        with open(p, "wb") as f:
            f.write(data)
        return p

    def write_text(self, name, text):
        p = self.path(name)
        with open(p, "w", encoding="utf-8") as f:
            f.write(text)
        return p

    def read_text(self, name):
        with open(self.path(name), "r", encoding="utf-8") as f:
            return f.read()
