import unittest

import helpers

from libmdb.cbox import iter_boxes
from libmdb.errors import MdbReadError
from libmdb.reader import MAX_BOX_DEPTH, parse_mdb


class TestParseMdb(unittest.TestCase):
    def setUp(self):
        self.model = parse_mdb(helpers.sample_mdb(), "ship")

    def test_models_become_numbered_groups(self):
        self.assertEqual([g.name for g in self.model.groups], ["ship_0", "ship_1"])
        self.assertEqual([g.vertex_count for g in self.model.groups], [4, 4])
        self.assertEqual(len(self.model.positions), 8)
        self.assertEqual(len(self.model.texcoords), 8)
        self.assertEqual(len(self.model.normals), 8)

    def test_positions_kept_in_file_axes(self):
        self.assertEqual(self.model.positions[2], (1.0, 1.0, 0.0))
        self.assertEqual(self.model.positions[6], (1.0, 1.0, 2.0))

    def test_material_runs_follow_encounter_order(self):
        g0, g1 = self.model.groups
        self.assertEqual([r.mat_index for r in g0.runs], [0, 1])
        self.assertEqual([r.mat_index for r in g1.runs], [1])
        self.assertEqual(g1.triangle_count, 2)
        tri = g0.runs[1].triangles[0]
        self.assertEqual((tri.p0, tri.p1, tri.p2), (0, 2, 3))

    def test_materials_and_bones(self):
        self.assertEqual([m.name for m in self.model.materials], ["Hull", "deck_plate"])
        self.assertEqual(self.model.materials[0].texture, "Textures\\Hull.tga")
        self.assertEqual(self.model.bone_count, 1)

    def test_box_tree(self):
        boxes = list(iter_boxes(self.model.box))
        self.assertEqual(len(boxes), 7)
        self.assertEqual(max(b.level for b in boxes), 2)
        root = self.model.box
        # stored (x, y, z) comes back as (x, z, -y)
        self.assertEqual(root.cross, (1.0, 0.0, 0.0))
        self.assertEqual(root.up, (0.0, 1.0, 0.0))
        self.assertEqual(root.forward, (0.0, 0.0, 1.0))
        self.assertEqual(root.left.length, (0.5, 0.5, 0.5))

    def test_animation_tail_is_skipped(self):
        # model 1 starts right after model 0's tail; its data must still line up
        self.assertEqual(self.model.texcoords[5], (1.0, 0.0))


class TestCorruptMdb(unittest.TestCase):
    def test_truncated_vertex(self):
        with self.assertRaises(MdbReadError) as cm:
            parse_mdb(helpers.truncated_mdb(), "broken")
        self.assertIn("point number 2 of model number 0", str(cm.exception))

    def test_empty_file(self):
        with self.assertRaises(MdbReadError) as cm:
            parse_mdb(b"", "empty")
        self.assertIn("number of model", str(cm.exception))

    def test_box_chain_too_deep(self):
        data = helpers.pack_mdb([helpers.quad_model()], ["a.tga"], box=helpers.pack_box_chain(MAX_BOX_DEPTH + 10))
        with self.assertRaises(MdbReadError) as cm:
            parse_mdb(data, "deep")
        self.assertIn("collision box", str(cm.exception))
        self.assertIn("deeper than", str(cm.exception.__cause__))

    def test_long_box_chain_within_limit(self):
        data = helpers.pack_mdb([helpers.quad_model()], ["a.tga"], box=helpers.pack_box_chain(12))
        boxes = list(iter_boxes(parse_mdb(data, "chain").box))
        self.assertEqual(len(boxes), 12)
        self.assertEqual(boxes[-1].level, 11)
        self.assertIsNone(boxes[-1].left)

    def test_cut_before_materials(self):
        data = helpers.pack_mdb([helpers.quad_model()], ["a.tga"])
        model_end = 16 + 4 + 8 + 4 * 36 + 4 + 2 * 12 + 4
        with self.assertRaises(MdbReadError) as cm:
            parse_mdb(data[:model_end + 2], "cut")
        self.assertIn("texture count", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
