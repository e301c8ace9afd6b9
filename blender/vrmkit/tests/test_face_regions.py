import itertools
import unittest
from pathlib import Path
import sys


# Allow `import vrmkit.*` from repo root.
_BLENDER_DIR = Path(__file__).resolve().parents[2]
if str(_BLENDER_DIR) not in sys.path:
    sys.path.insert(0, str(_BLENDER_DIR))


class TestAssignTriangle(unittest.TestCase):
    def test_majority_wins(self) -> None:
        from vrmkit.face_regions import FACE, LEFT_EYE, MOUTH, assign_triangle

        self.assertEqual(assign_triangle([MOUTH, MOUTH, None]), MOUTH)
        self.assertEqual(assign_triangle([LEFT_EYE, None, LEFT_EYE]), LEFT_EYE)
        self.assertEqual(assign_triangle([MOUTH, None, None]), FACE)
        self.assertEqual(assign_triangle([None, None, None]), FACE)

    def test_mouth_majority_beats_eye_in_any_order(self) -> None:
        from vrmkit.face_regions import LEFT_EYE, MOUTH, RIGHT_EYE, assign_triangle

        for other in (LEFT_EYE, RIGHT_EYE):
            for labels in set(itertools.permutations([MOUTH, MOUTH, other])):
                self.assertEqual(assign_triangle(list(labels)), MOUTH)

    def test_custom_region_names(self) -> None:
        from vrmkit.face_regions import assign_triangle

        self.assertEqual(assign_triangle(["a", "a", "b"], priority=("b", "a")), "a")
        self.assertEqual(assign_triangle(["a", "b", "b"], priority=("a", "b")), "b")


class TestSegmentTriangles(unittest.TestCase):
    def test_partition_and_contiguous_groups(self) -> None:
        from vrmkit.face_regions import FACE, LEFT_EYE, MOUTH, RIGHT_EYE, segment_triangles

        labels = [None, MOUTH, MOUTH, LEFT_EYE, LEFT_EYE, None]
        indices = [
            0, 1, 2,   # mouth
            0, 3, 4,   # left eye
            0, 5, 3,   # face
            1, 2, 3,   # mouth
        ]
        seg = segment_triangles(indices, labels)

        self.assertEqual(list(seg.groups), [FACE, MOUTH, LEFT_EYE, RIGHT_EYE])
        self.assertEqual(seg.groups[FACE], [2])
        self.assertEqual(seg.groups[MOUTH], [0, 3])
        self.assertEqual(seg.groups[LEFT_EYE], [1])
        self.assertEqual(seg.groups[RIGHT_EYE], [])

        all_triangles = sorted(t for tris in seg.groups.values() for t in tris)
        self.assertEqual(all_triangles, [0, 1, 2, 3])
        self.assertEqual(seg.triangle_count, 4)

        self.assertEqual(seg.indices.tolist(), [0, 5, 3, 0, 1, 2, 1, 2, 3, 0, 3, 4])
        starts = [(g.start, g.count, g.material_index) for g in seg.draw_groups]
        self.assertEqual(starts, [(0, 3, 0), (3, 6, 1), (9, 3, 2), (12, 0, 3)])
        self.assertEqual(seg.group_of(3), MOUTH)

    def test_non_indexed_input(self) -> None:
        from vrmkit.face_regions import FACE, RIGHT_EYE, segment_triangles

        labels = [RIGHT_EYE, RIGHT_EYE, None, None, None, None]
        seg = segment_triangles(None, labels)
        self.assertEqual(seg.groups[RIGHT_EYE], [0])
        self.assertEqual(seg.groups[FACE], [1])
        self.assertEqual(seg.indices.tolist(), [3, 4, 5, 0, 1, 2])

    def test_duplicate_region_names_rejected(self) -> None:
        from vrmkit.face_regions import segment_triangles

        with self.assertRaises(ValueError):
            segment_triangles([0, 1, 2], [None] * 3, priority=("face",), default="face")

    def test_apply_segmentation_checks_triangle_count(self) -> None:
        from vrmkit.face_regions import apply_segmentation, segment_triangles
        from vrmkit.geometry import box

        geometry = box()
        seg = segment_triangles([0, 1, 2], [None] * geometry.vertex_count)
        with self.assertRaises(ValueError):
            apply_segmentation(geometry, seg)


class TestHeadClassification(unittest.TestCase):
    def test_classify_head_vertex(self) -> None:
        from vrmkit.face_regions import LEFT_EYE, MOUTH, RIGHT_EYE, classify_head_vertex

        self.assertEqual(classify_head_vertex((0.0, -0.2, 0.3), (0.5, 0.2)), MOUTH)
        self.assertEqual(classify_head_vertex((0.0, 0.1, 0.3), (0.45, 0.07)), LEFT_EYE)
        self.assertEqual(classify_head_vertex((0.0, 0.1, 0.3), (0.55, 0.07)), RIGHT_EYE)
        self.assertIsNone(classify_head_vertex((0.0, 0.1, 0.3), (0.5, 0.07)))
        # Behind the face
        self.assertIsNone(classify_head_vertex((0.0, -0.2, -0.3), (0.0, 0.2)))

    def test_mouth_wins_over_eye_uv(self) -> None:
        from vrmkit.face_regions import MOUTH, classify_head_vertex

        self.assertEqual(classify_head_vertex((0.0, -0.2, 0.3), (0.45, 0.07)), MOUTH)

    def test_segment_head_conserves_triangles(self) -> None:
        import math
        from vrmkit.atlas import remap_uvs_to_first_slot
        from vrmkit.face_regions import HEAD_GROUP_ORDER, segment_head
        from vrmkit.geometry import sphere

        geometry = sphere(0.35, 64, 64)
        geometry.scale(1, 1, 0.83)
        geometry.rotate_y(math.pi * 1.5)
        geometry.uvs = remap_uvs_to_first_slot(geometry.uvs)
        before = sorted(map(tuple, geometry.triangles().tolist()))

        seg = segment_head(geometry)

        after = sorted(map(tuple, geometry.triangles().tolist()))
        self.assertEqual(before, after)
        self.assertEqual(sum(len(t) for t in seg.groups.values()), len(before))
        self.assertEqual([g.material_index for g in geometry.groups], [0, 1, 2, 3])
        self.assertEqual(sum(g.count for g in geometry.groups), len(geometry.indices))
        for region in HEAD_GROUP_ORDER:
            self.assertGreater(len(seg.groups[region]), 0, region)


if __name__ == "__main__":
    unittest.main()
