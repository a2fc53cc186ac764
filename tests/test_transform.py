import unittest
import numpy as np

from reconedit import (
    EditorConfig,
    Reconstruction,
    Sim3d,
    Sim3dEuler,
    TransformPipeline,
    TransformPreset,
    TransformState,
    transform_reconstruction,
)
from reconedit.geometry import quaternion_from_axis_angle

from .mock_data import create_mock_reconstruction, create_random_reconstruction


class TestTransformReconstruction(unittest.TestCase):
    """Tests for applying a similarity transform to a whole reconstruction."""

    def setUp(self):
        self.reconstruction = create_mock_reconstruction()
        self.sim3d = Sim3d(scale=3.0,
                           qvec=quaternion_from_axis_angle((0.0, 1.0, 0.0), 0.4),
                           tvec=(1.0, -2.0, 0.5))

    def test_points_and_cameras_move(self):
        transformed = transform_reconstruction(self.sim3d, self.reconstruction)
        np.testing.assert_allclose(transformed.get_point_positions(),
                                   self.sim3d.transform_points(self.reconstruction.get_point_positions()), atol=1e-9)
        np.testing.assert_allclose(transformed.get_camera_centers(),
                                   self.sim3d.transform_points(self.reconstruction.get_camera_centers()), atol=1e-9)

    def test_topology_is_shared(self):
        transformed = transform_reconstruction(self.sim3d, self.reconstruction)
        self.assertIs(transformed.cameras[1], self.reconstruction.cameras[1])
        self.assertIs(transformed.images[2].point3D_ids, self.reconstruction.images[2].point3D_ids)
        self.assertIs(transformed.points3D[1].image_ids, self.reconstruction.points3D[1].image_ids)
        self.assertEqual(dict(transformed.connected_images_index), dict(self.reconstruction.connected_images_index))
        self.assertEqual(transformed.verify_consistency(), [])

    def test_source_is_untouched(self):
        before = self.reconstruction.get_point_positions().copy()
        transform_reconstruction(self.sim3d, self.reconstruction)
        np.testing.assert_array_equal(self.reconstruction.get_point_positions(), before)

    def test_inverse_restores_positions(self):
        reconstruction = create_random_reconstruction(seed=4)
        there = transform_reconstruction(self.sim3d, reconstruction)
        back = transform_reconstruction(self.sim3d.inverse(), there)
        np.testing.assert_allclose(back.get_point_positions(), reconstruction.get_point_positions(), atol=1e-9)
        np.testing.assert_allclose(back.get_camera_centers(), reconstruction.get_camera_centers(), atol=1e-9)

    def test_empty_reconstruction(self):
        transformed = transform_reconstruction(self.sim3d, Reconstruction.empty())
        self.assertEqual(transformed.num_points3D, 0)


class TestTransformPipeline(unittest.TestCase):
    """Tests for the preview transform and committing it."""

    def setUp(self):
        self.reconstruction = create_mock_reconstruction()
        self.pipeline = TransformPipeline()

    def test_initial_state(self):
        self.assertEqual(self.pipeline.state, TransformState.IDENTITY)
        self.assertEqual(self.pipeline.transform, Sim3dEuler.identity())
        self.assertFalse(self.pipeline.has_active_transform())

    def test_set_transform_merges(self):
        self.pipeline.set_transform(scale=2.0)
        self.pipeline.set_transform(translation_z=-1.0)
        self.assertEqual(self.pipeline.transform, Sim3dEuler(scale=2.0, translation_z=-1.0))
        self.assertEqual(self.pipeline.state, TransformState.PREVIEW_ACTIVE)

        # Dialing back to identity leaves the preview state
        self.pipeline.set_transform(scale=1.0, translation_z=0.0)
        self.assertEqual(self.pipeline.state, TransformState.IDENTITY)

        with self.assertRaises(TypeError):
            self.pipeline.set_transform(shear=1.0)

    def test_reset(self):
        self.pipeline.set_transform(rotation_x=0.3)
        self.pipeline.reset()
        self.assertEqual(self.pipeline.transform, Sim3dEuler.identity())
        self.assertEqual(self.pipeline.state, TransformState.IDENTITY)

    def test_center_at_origin_preset(self):
        """Points centred at (5, 0, 0) get a pure (-5, 0, 0) translation."""
        np.testing.assert_allclose(self.reconstruction.get_point_positions().mean(axis=0), (5.0, 0.0, 0.0))

        transform = self.pipeline.apply_preset(TransformPreset.CENTER_AT_ORIGIN, self.reconstruction)
        self.assertEqual(transform.scale, 1.0)
        self.assertEqual(transform.rotation, (0.0, 0.0, 0.0))
        np.testing.assert_allclose(transform.translation, (-5.0, 0.0, 0.0), atol=1e-12)

        transformed = self.pipeline.apply_to_data(self.reconstruction)
        np.testing.assert_allclose(transformed.get_point_positions().mean(axis=0), (0.0, 0.0, 0.0), atol=1e-9)

    def test_preset_is_computed_on_previewed_data(self):
        self.pipeline.set_transform(translation_x=1.0)
        transform = self.pipeline.apply_preset(TransformPreset.CENTER_AT_ORIGIN, self.reconstruction)
        np.testing.assert_allclose(transform.translation, (-5.0, 0.0, 0.0), atol=1e-12)

    def test_preset_composes_with_rotation_and_scale(self):
        self.pipeline.set_transform(scale=2.0, rotation_z=0.5, translation_y=3.0)
        self.pipeline.apply_preset(TransformPreset.CENTER_AT_ORIGIN, self.reconstruction)
        self.assertAlmostEqual(self.pipeline.transform.scale, 2.0)
        self.assertAlmostEqual(self.pipeline.transform.rotation_z, 0.5)

        transformed = self.pipeline.apply_to_data(self.reconstruction)
        np.testing.assert_allclose(transformed.get_point_positions().mean(axis=0), (0.0, 0.0, 0.0), atol=1e-9)

    def test_normalize_scale_preset(self):
        reconstruction = create_random_reconstruction(seed=2)
        self.pipeline.apply_preset(TransformPreset.NORMALIZE_SCALE, reconstruction)
        transformed = self.pipeline.apply_to_data(reconstruction)

        centers = transformed.get_camera_centers()
        lower = np.percentile(centers, 10, axis=0)
        upper = np.percentile(centers, 90, axis=0)
        self.assertAlmostEqual(float(np.linalg.norm(upper - lower)), 10.0, places=9)
        np.testing.assert_allclose((lower + upper) / 2.0, (0.0, 0.0, 0.0), atol=1e-9)

    def test_identity_preset_resets(self):
        self.pipeline.set_transform(scale=3.0)
        self.pipeline.apply_preset(TransformPreset.IDENTITY, self.reconstruction)
        self.assertEqual(self.pipeline.transform, Sim3dEuler.identity())
        self.assertEqual(self.pipeline.state, TransformState.IDENTITY)

    def test_custom_sim3d_preset(self):
        self.pipeline.set_transform(translation_x=2.0)
        self.pipeline.apply_preset(Sim3d(scale=3.0), self.reconstruction)
        # Preview applied first, then the preset: x -> 3 * (x + 2)
        self.assertAlmostEqual(self.pipeline.transform.scale, 3.0)
        np.testing.assert_allclose(self.pipeline.transform.translation, (6.0, 0.0, 0.0), atol=1e-12)

    def test_apply_to_data_commits_and_resets(self):
        self.pipeline.set_transform(translation_y=4.0)
        transformed = self.pipeline.apply_to_data(self.reconstruction)

        self.assertEqual(self.pipeline.state, TransformState.COMMITTED)
        self.assertEqual(self.pipeline.transform, Sim3dEuler.identity())
        self.assertFalse(self.pipeline.has_active_transform())
        np.testing.assert_allclose(transformed.get_point_positions(),
                                   self.reconstruction.get_point_positions() + (0.0, 4.0, 0.0), atol=1e-12)

        self.pipeline.reset()
        self.assertEqual(self.pipeline.state, TransformState.IDENTITY)

    def test_editing_after_commit(self):
        self.pipeline.set_transform(scale=2.0)
        self.pipeline.apply_to_data(self.reconstruction)
        self.pipeline.set_transform(rotation_y=0.1)
        self.assertEqual(self.pipeline.state, TransformState.PREVIEW_ACTIVE)

    def test_apply_identity_to_data(self):
        transformed = self.pipeline.apply_to_data(self.reconstruction)
        np.testing.assert_array_equal(transformed.get_point_positions(), self.reconstruction.get_point_positions())
        self.assertEqual(self.pipeline.state, TransformState.COMMITTED)

    def test_zero_scale_is_accepted(self):
        self.pipeline.set_transform(scale=0.0, translation_x=1.0)
        self.assertEqual(self.pipeline.state, TransformState.PREVIEW_ACTIVE)

        transformed = self.pipeline.apply_to_data(self.reconstruction)
        for point in transformed.points3D.values():
            np.testing.assert_allclose(point.xyz, (1.0, 0.0, 0.0))
        for image in transformed.images.values():
            self.assertTrue(np.all(np.isfinite(image.qvec)) and np.all(np.isfinite(image.tvec)))

    def test_identity_epsilon_from_config(self):
        pipeline = TransformPipeline(EditorConfig(identity_epsilon=1e-3))
        pipeline.set_transform(translation_x=1e-4)
        self.assertFalse(pipeline.has_active_transform())
        self.assertEqual(pipeline.state, TransformState.IDENTITY)

    def test_compose_with(self):
        self.pipeline.compose_with(Sim3d(tvec=(1.0, 0.0, 0.0)))
        self.pipeline.compose_with(Sim3d(tvec=(0.0, 2.0, 0.0)))
        np.testing.assert_allclose(self.pipeline.get_sim3d().tvec, (1.0, 2.0, 0.0), atol=1e-12)


if __name__ == "__main__":
    unittest.main()
