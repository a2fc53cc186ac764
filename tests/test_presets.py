import unittest
import numpy as np

from reconedit import EditorConfig, Plane, Reconstruction, Sim3d, TransformPreset
from reconedit.geometry import rotate_vector
from reconedit.presets import (
    compute_center_at_origin,
    compute_distance_scale,
    compute_distances_to_plane,
    compute_normal_alignment,
    compute_normalize_scale,
    compute_plane_alignment,
    compute_preset,
)

from .mock_data import create_mock_reconstruction


class TestPresets(unittest.TestCase):
    """Tests for transforms computed from scene positions."""

    def setUp(self):
        self.reconstruction = create_mock_reconstruction()

    def test_center_at_origin_uses_point_mean(self):
        sim3d = compute_center_at_origin(self.reconstruction)
        self.assertEqual(sim3d.scale, 1.0)
        np.testing.assert_array_equal(sim3d.qvec, (1.0, 0.0, 0.0, 0.0))
        np.testing.assert_allclose(sim3d.tvec, (-5.0, 0.0, 0.0), atol=1e-12)

    def test_center_at_origin_from_cameras(self):
        # Camera centres are (0, 0, 0), (1, 0, 0) and (1, -2, 0)
        sim3d = compute_center_at_origin(self.reconstruction, use_images=True)
        np.testing.assert_allclose(sim3d.tvec, (-1.0, 0.0, 0.0), atol=1e-12)

    def test_presets_on_empty_reconstruction(self):
        empty = Reconstruction.empty()
        self.assertTrue(compute_center_at_origin(empty).is_identity())
        self.assertTrue(compute_center_at_origin(empty, use_images=True).is_identity())
        self.assertTrue(compute_normalize_scale(empty).is_identity())

    def test_normalize_scale_on_points(self):
        sim3d = compute_normalize_scale(self.reconstruction, extent=1.0, min_percentile=0.0,
                                        max_percentile=1.0, use_images=False)
        # Box (4, -2, -1) .. (6, 1, 1): diagonal sqrt(4 + 9 + 4)
        self.assertAlmostEqual(sim3d.scale, 1.0 / np.sqrt(17.0))
        np.testing.assert_allclose(sim3d.transform_point((5.0, -0.5, 0.0)), (0.0, 0.0, 0.0), atol=1e-12)

    def test_normalize_scale_degenerate_box(self):
        single = self.reconstruction.replace(points3D={1: self.reconstruction.points3D[1]})
        sim3d = compute_normalize_scale(single, use_images=False)
        self.assertEqual(sim3d.scale, 1.0)
        np.testing.assert_allclose(sim3d.tvec, (-4.0, 0.0, -1.0))

    def test_distance_scale(self):
        sim3d = compute_distance_scale((0.0, 0.0, 0.0), (2.0, 0.0, 0.0), 1.0)
        self.assertAlmostEqual(sim3d.scale, 0.5)
        np.testing.assert_allclose(sim3d.transform_point((0.0, 0.0, 0.0)), (0.5, 0.0, 0.0))
        np.testing.assert_allclose(sim3d.transform_point((2.0, 0.0, 0.0)), (1.5, 0.0, 0.0))
        self.assertTrue(compute_distance_scale((1.0, 1.0, 1.0), (1.0, 1.0, 1.0), 5.0).is_identity())

    def test_normal_alignment(self):
        points = [(0.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)]
        sim3d = compute_normal_alignment(*points)
        np.testing.assert_allclose(rotate_vector(sim3d.qvec, (1.0, 0.0, 0.0)), (0.0, 1.0, 0.0), atol=1e-12)
        centroid = np.mean(points, axis=0)
        np.testing.assert_allclose(sim3d.transform_point(centroid), centroid, atol=1e-12)

    def test_normal_alignment_flipped_normal(self):
        # Normal (0, -1, 0) needs a half turn
        sim3d = compute_normal_alignment((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 1.0))
        np.testing.assert_allclose(rotate_vector(sim3d.qvec, (0.0, -1.0, 0.0)), (0.0, 1.0, 0.0), atol=1e-12)

    def test_normal_alignment_degenerate(self):
        self.assertTrue(compute_normal_alignment((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)).is_identity())
        self.assertTrue(compute_normal_alignment((0.0, 0.0, 0.0), (0.0, 0.0, 1.0), (1.0, 0.0, 0.0)).is_identity())

    def test_plane_alignment(self):
        plane = Plane(normal=(0.0, 0.0, 1.0), d=-2.0, centroid=(0.5, 0.5, 2.0), inlier_count=100, radius=3.0)
        for axis, target in (("X", (1.0, 0.0, 0.0)), ("Y", (0.0, 1.0, 0.0)), ("Z", (0.0, 0.0, 1.0))):
            sim3d = compute_plane_alignment(plane, target_axis=axis)
            np.testing.assert_allclose(rotate_vector(sim3d.qvec, plane.normal), target, atol=1e-12)
            moved = sim3d.transform_point(plane.centroid)
            self.assertAlmostEqual(float(np.dot(moved, target)), 0.0, places=12)

        with self.assertRaises(ValueError):
            compute_plane_alignment(plane, target_axis="W")

    def test_plane_distances(self):
        plane = Plane(normal=(0.0, 1.0, 0.0), d=-1.0)
        distances = compute_distances_to_plane(np.array([[0.0, 3.0, 0.0], [5.0, 1.0, 2.0], [0.0, -1.0, 0.0]]), plane)
        np.testing.assert_allclose(distances, (2.0, 0.0, -2.0))
        np.testing.assert_allclose(compute_distances_to_plane([[0.0, 3.0, 0.0]], plane.flipped()), (-2.0,))

    def test_compute_preset_uses_config(self):
        config = EditorConfig(center_use_images=True)
        sim3d = compute_preset(TransformPreset.CENTER_AT_ORIGIN, self.reconstruction, config)
        np.testing.assert_allclose(sim3d.tvec, (-1.0, 0.0, 0.0), atol=1e-12)
        self.assertEqual(compute_preset(TransformPreset.IDENTITY, self.reconstruction), Sim3d.identity())


if __name__ == "__main__":
    unittest.main()
