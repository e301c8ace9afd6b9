import unittest
import warnings
from pathlib import Path
import sys


# Allow `import vrmkit.*` from repo root.
_BLENDER_DIR = Path(__file__).resolve().parents[2]
if str(_BLENDER_DIR) not in sys.path:
    sys.path.insert(0, str(_BLENDER_DIR))


class TestSmoothstep(unittest.TestCase):
    def test_weights_sum_to_one_and_stay_in_range(self) -> None:
        from vrmkit.skin_weights import blend_weights

        intervals = [(0.0, 1.0), (-0.4, 0.0), (0.1, 0.4), (-2.5, 7.25)]
        for edge0, edge1 in intervals:
            for i in range(-10, 111):
                v = edge0 + (edge1 - edge0) * i / 100.0
                a, b = blend_weights(v, edge0, edge1)
                self.assertAlmostEqual(a + b, 1.0, delta=1e-6)
                self.assertGreaterEqual(a, 0.0)
                self.assertLessEqual(a, 1.0)
                self.assertGreaterEqual(b, 0.0)
                self.assertLessEqual(b, 1.0)

    def test_boundary_values(self) -> None:
        from vrmkit.skin_weights import blend_weights

        self.assertEqual(blend_weights(0.1, 0.1, 0.4), (1.0, 0.0))
        self.assertEqual(blend_weights(0.4, 0.1, 0.4), (0.0, 1.0))
        # Outside the interval binds fully to the nearest bone
        self.assertEqual(blend_weights(-5.0, 0.1, 0.4), (1.0, 0.0))
        self.assertEqual(blend_weights(5.0, 0.1, 0.4), (0.0, 1.0))

    def test_midpoint_is_half(self) -> None:
        from vrmkit.skin_weights import smoothstep

        self.assertAlmostEqual(smoothstep(0.0, 2.0, 1.0), 0.5)

    def test_zero_derivative_at_both_ends(self) -> None:
        from vrmkit.skin_weights import smoothstep

        edge0, edge1 = -0.4, 0.0
        h = 1e-6
        for edge in (edge0, edge1):
            derivative = (smoothstep(edge0, edge1, edge + h) - smoothstep(edge0, edge1, edge - h)) / (2 * h)
            self.assertAlmostEqual(derivative, 0.0, delta=1e-4)

        # Away from the ends the ramp is strictly increasing
        mid = (edge0 + edge1) / 2
        derivative = (smoothstep(edge0, edge1, mid + h) - smoothstep(edge0, edge1, mid - h)) / (2 * h)
        self.assertGreater(derivative, 1.0)

    def test_degenerate_interval_warns_and_falls_back(self) -> None:
        from vrmkit.errors import DegenerateBlendRegionError
        from vrmkit.skin_weights import blend_weights, skin_binding

        with self.assertWarns(DegenerateBlendRegionError):
            self.assertEqual(blend_weights(0.3, 0.2, 0.2), (1.0, 0.0))
        with self.assertWarns(DegenerateBlendRegionError):
            binding = skin_binding(0.2, 3, 4, 0.2, 0.2)
        self.assertEqual(binding.indices, (3, 4, 0, 0))
        self.assertEqual(binding.weights, (1.0, 0.0, 0.0, 0.0))

    def test_degenerate_interval_can_be_escalated(self) -> None:
        from vrmkit.errors import DegenerateBlendRegionError
        from vrmkit.skin_weights import smoothstep

        with warnings.catch_warnings():
            warnings.simplefilter("error", DegenerateBlendRegionError)
            with self.assertRaises(DegenerateBlendRegionError):
                smoothstep(1.0, 1.0, 1.0)


class TestAssignWeights(unittest.TestCase):
    def _line(self, values, axis=1):
        import numpy as np
        from vrmkit.geometry import Geometry

        positions = np.zeros((len(values), 3))
        positions[:, axis] = values
        return Geometry(
            positions=positions,
            normals=np.tile([0.0, 1.0, 0.0], (len(values), 1)),
            uvs=np.zeros((len(values), 2)),
            indices=[],
        )

    def test_assign_rigid(self) -> None:
        from vrmkit.skin_weights import assign_rigid, validate_skin

        geometry = assign_rigid(self._line([0.0, 1.0, 2.0]), 7)
        self.assertEqual(geometry.skin_indices[:, 0].tolist(), [7, 7, 7])
        self.assertEqual(geometry.skin_weights[:, 0].tolist(), [1.0, 1.0, 1.0])
        self.assertIsNone(validate_skin(geometry.skin_indices, geometry.skin_weights, bone_count=8))

    def test_assign_blend_uses_two_slots(self) -> None:
        from vrmkit.skin_weights import assign_blend, validate_skin

        geometry = assign_blend(self._line([0.0, 0.1, 0.25, 0.4, 0.5]), "y", 2, 1, 0.1, 0.4)
        self.assertEqual(geometry.skin_indices[0].tolist(), [2, 1, 0, 0])
        self.assertEqual(geometry.skin_weights[0].tolist(), [1.0, 0.0, 0.0, 0.0])
        self.assertEqual(geometry.skin_weights[-1].tolist(), [0.0, 1.0, 0.0, 0.0])
        self.assertAlmostEqual(float(geometry.skin_weights[2, 1]), 0.5, places=6)
        self.assertTrue((geometry.skin_weights[:, 2:] == 0).all())
        self.assertIsNone(validate_skin(geometry.skin_indices, geometry.skin_weights))

    def test_assign_blend_axis_scale_mirrors(self) -> None:
        from vrmkit.skin_weights import assign_blend

        left = assign_blend(self._line([-0.5, -0.1], axis=0), "x", 0, 1, -0.4, 0.0)
        right = assign_blend(self._line([0.5, 0.1], axis=0), "x", 0, 1, -0.4, 0.0, axis_scale=-1)
        self.assertEqual(left.skin_weights.tolist(), right.skin_weights.tolist())

    def test_assign_banded_chain(self) -> None:
        import numpy as np
        from vrmkit.skin_weights import assign_banded, validate_skin

        edges = [0.0, 1.0, 2.0, 3.0]
        geometry = assign_banded(self._line([-1.0, 0.5, 1.0, 1.5, 2.5, 4.0]), "y", [10, 11, 12, 13], edges)

        self.assertIsNone(validate_skin(geometry.skin_indices, geometry.skin_weights))
        self.assertEqual(geometry.skin_indices[0, :2].tolist(), [10, 11])
        self.assertEqual(geometry.skin_weights[0, :2].tolist(), [1.0, 0.0])
        self.assertEqual(geometry.skin_indices[3, :2].tolist(), [11, 12])
        self.assertEqual(geometry.skin_indices[-1, :2].tolist(), [12, 13])
        self.assertEqual(geometry.skin_weights[-1, :2].tolist(), [0.0, 1.0])
        self.assertTrue(np.isclose(geometry.skin_weights[1, 1], 0.5))

    def test_assign_banded_validates_arguments(self) -> None:
        from vrmkit.skin_weights import assign_banded

        geometry = self._line([0.0])
        with self.assertRaises(ValueError):
            assign_banded(geometry, "y", [0], [0.0])
        with self.assertRaises(ValueError):
            assign_banded(geometry, "y", [0, 1], [0.0, 1.0, 2.0])
        with self.assertRaises(ValueError):
            assign_banded(geometry, "y", [0, 1, 2], [0.0, 2.0, 1.0])

    def test_validate_skin_reports_problems(self) -> None:
        import numpy as np
        from vrmkit.skin_weights import validate_skin

        indices = np.zeros((2, 4), dtype=np.uint16)
        self.assertIn("shape", validate_skin(indices[:, :2], np.zeros((2, 2))))
        self.assertIn("sum", validate_skin(indices, np.zeros((2, 4))))
        weights = np.array([[1.2, -0.2, 0, 0], [1, 0, 0, 0]])
        self.assertIn("negative", validate_skin(indices, weights))
        indices[0, 0] = 5
        weights = np.array([[1.0, 0, 0, 0], [1, 0, 0, 0]])
        self.assertIn("out of range", validate_skin(indices, weights, bone_count=3))


if __name__ == "__main__":
    unittest.main()
