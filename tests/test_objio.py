import io
import unittest

import helpers

from libmdb.model import Material, MaterialTable, ObjCounters
from libmdb.objreader import DEFAULT_GROUP_NAME, hierarchy_for, parse_mtl, parse_obj
from libmdb.cbox import parse_hierarchy
from libmdb.objwriter import write_mtl, write_obj_model
from libmdb.reader import parse_mdb, read_mdb

OBJ_TEXT = """# exported
mtllib ship.mtl
v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 x
v 0 1 0
vt 0 0
vt 1 0
vn 0 0 1
f 1/1/1 2/2/1 3/2/1
g Hull_0
usemtl hull
f 1//1 2//1 3//1
f 1 2 3 4
usemtl deck
f 1/1 2/2 3/1
g Gun_0
f 2 3 4
g Hull_0
f 3 2 1
"""


class TestParseObj(unittest.TestCase):
    def setUp(self):
        self.obj = parse_obj(OBJ_TEXT.splitlines(True))

    def test_vertex_lists_skip_bad_lines(self):
        self.assertEqual(len(self.obj.positions), 4)
        self.assertEqual(self.obj.positions[3], (0.0, 1.0, 0.0))
        self.assertEqual(len(self.obj.texcoords), 2)
        self.assertEqual(len(self.obj.normals), 1)
        self.assertEqual(self.obj.mtllib, "ship.mtl")

    def test_groups_and_resume(self):
        names = [g.name for g in self.obj.groups]
        self.assertEqual(names, [DEFAULT_GROUP_NAME, "Hull_0", "Gun_0"])
        hull = self.obj.groups[1]
        self.assertEqual([mg.mat_name for mg in hull.mat_groups], ["hull", "deck", "deck"])
        self.assertEqual(len(hull.triangles()), 5)

    def test_material_carries_across_groups(self):
        gun = self.obj.groups[2]
        self.assertEqual(gun.mat_groups[0].mat_name, "deck")

    def test_missing_components_are_zero(self):
        hull = self.obj.groups[1]
        first = hull.mat_groups[0].triangles[0]
        self.assertEqual(first.p0, (1, 0, 1))
        quad_second = hull.mat_groups[0].triangles[2]
        self.assertEqual((quad_second.p0[0], quad_second.p1[0], quad_second.p2[0]), (1, 3, 4))
        deck = hull.mat_groups[1].triangles[0]
        self.assertEqual(deck.p1, (2, 2, 0))


class TestParseMtl(unittest.TestCase):
    def test_textures_and_dedup(self):
        text = [
            "newmtl hull\n", "map_Kd textures/hull.dds\n", "\n",
            "newmtl HULL\n", "MAP_KD other.dds\n",
            "newmtl glass\n", "Kd 1 1 1\n",
        ]
        table = parse_mtl(text, MaterialTable())
        self.assertEqual([(m.name, m.texture) for m in table],
                         [("hull", "textures/hull.tga"), ("glass", "NULL")])
        self.assertEqual(table.find_index("glass"), 1)
        self.assertEqual(table.find_index("missing"), 1)


class TestWriteObj(unittest.TestCase):
    def setUp(self):
        self.model = parse_mdb(helpers.sample_mdb(), "ship")
        self.out = io.StringIO()
        self.cbox = io.StringIO()
        self.table = MaterialTable()
        self.counters = write_obj_model(self.out, self.model, self.table, ObjCounters(), "ship", self.cbox)
        self.lines = self.out.getvalue().splitlines()

    def test_axes_are_converted(self):
        v = [l for l in self.lines if l.startswith("v ")]
        # 8 mesh points + 7 boxes * 8 corners
        self.assertEqual(len(v), 8 + 7 * 8)
        self.assertEqual(v[6], "v 1.000000 2.000000 -1.000000")
        vt = [l for l in self.lines if l.startswith("vt ")]
        self.assertEqual(vt[2], "vt 1.000000 -1.000000")
        vn = [l for l in self.lines if l.startswith("vn ")]
        self.assertEqual(vn[0], "vn -0.000000 0.000000 -1.000000")

    def test_faces_and_offsets(self):
        f = [l for l in self.lines if l.startswith("f ") and "/" in l]
        self.assertEqual(f[0], "f 3/3/3 2/2/2 1/1/1")
        # second model is offset by the 4 points of the first
        self.assertEqual(f[2], "f 7/7/7 6/6/6 5/5/5")
        self.assertEqual(self.counters.vt, 9)
        self.assertEqual(self.counters.v, 9 + 7 * 8)
        self.assertEqual(self.counters.box, 7)

    def test_groups_and_materials(self):
        self.assertIn("g ship_0", self.lines)
        self.assertIn("o ship_1", self.lines)
        usemtl = [l for l in self.lines if l.startswith("usemtl ")]
        self.assertEqual(usemtl, ["usemtl Hull", "usemtl deck_plate", "usemtl deck_plate"])
        self.assertEqual([m.name for m in self.table], ["Hull", "deck_plate"])

    def test_box_wireframes(self):
        self.assertIn("o _BOX0", self.lines)
        self.assertIn("g _BOX6", self.lines)
        first_box = self.lines.index("o _BOX0")
        self.assertEqual(self.lines[first_box + 2], "f 9 10 11")
        box_faces = [l for l in self.lines if l.startswith("f ") and "/" not in l]
        self.assertEqual(len(box_faces), 7 * 12)

    def test_hierarchy_file(self):
        self.assertEqual(self.cbox.getvalue().splitlines(), [
            "MESH\tship",
            "CBOX\t_BOX0\t_BOX1\t_BOX4",
            "CBOX\t_BOX1\t_BOX2\t_BOX3",
            "CBOX\t_BOX2",
            "CBOX\t_BOX3",
            "CBOX\t_BOX4\t_BOX5\t_BOX6",
            "CBOX\t_BOX5",
            "CBOX\t_BOX6",
        ])
        (h,) = parse_hierarchy(self.cbox.getvalue().splitlines())
        self.assertIs(hierarchy_for([h], "ship"), h)
        self.assertIsNone(hierarchy_for([h], "gun"))

    def test_counters_continue_across_files(self):
        out = io.StringIO()
        cbox = io.StringIO()
        counters = write_obj_model(out, self.model, self.table, self.counters, "again", cbox)
        self.assertIn("o _BOX7", out.getvalue().splitlines())
        self.assertEqual(len(self.table), 2)
        self.assertEqual(counters.box, 14)

    def test_materials_deduplicate_across_case(self):
        table = MaterialTable()
        table.add(Material("hull", "hull.tga"))
        canonical = table.add(Material("HULL", "Hull.TGA"))
        self.assertEqual(canonical.name, "hull")
        self.assertEqual(len(table), 1)


class TestMaterialNamesFromMdb(helpers.MdbTestBase):
    def test_case_and_separator_variants_share_one_material(self):
        verts, _ = helpers.quad_model()
        data = helpers.pack_mdb([(verts, [(0, 1, 2, 0), (0, 2, 3, 1)])], ["Hull Plate.tga", "hull;plate.tga"])
        model = read_mdb(self.write_bytes("plate.mdb", data), "plate")
        table = MaterialTable()
        out = io.StringIO()
        write_obj_model(out, model, table, ObjCounters(), "plate")
        mtl = io.StringIO()
        write_mtl(mtl, table)

        usemtl = [l for l in out.getvalue().splitlines() if l.startswith("usemtl ")]
        self.assertEqual(usemtl, ["usemtl Hull_Plate", "usemtl Hull_Plate"])
        newmtl = [l for l in mtl.getvalue().splitlines() if l.startswith("newmtl ")]
        self.assertEqual(newmtl, ["newmtl Hull_Plate"])
        self.assertIn("map_Kd Hull Plate.dds", mtl.getvalue())


class TestWriteMtl(unittest.TestCase):
    def test_blocks(self):
        table = MaterialTable()
        table.add(Material("hull", "hull.tga"))
        table.add(Material("glass", "NULL"))
        out = io.StringIO()
        write_mtl(out, table, "textures/")
        self.assertEqual(out.getvalue().splitlines(), [
            "newmtl hull",
            "Ka 0.200000 0.200000 0.200000",
            "Kd 1.000000 1.000000 1.000000",
            "Ks 0.000000 0.000000 0.000000",
            "illum 2",
            "Ns 8.000000",
            "map_Kd textures/hull.dds",
            "",
            "newmtl glass",
            "Ka 0.200000 0.200000 0.200000",
            "Kd 1.000000 1.000000 1.000000",
            "Ks 0.000000 0.000000 0.000000",
            "illum 2",
            "Ns 8.000000",
            "",
        ])


if __name__ == "__main__":
    unittest.main()
