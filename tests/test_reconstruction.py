import unittest
import numpy as np

from reconedit import Camera, Image, Point3D, Reconstruction, ConsistencyError
from reconedit.stats import ImageStats, GlobalStats, compute_image_stats

from .mock_data import create_mock_reconstruction, create_random_reconstruction


class TestReconstructionBuild(unittest.TestCase):
    """Tests for building a reconstruction and its derived indices."""

    def setUp(self):
        self.reconstruction = create_mock_reconstruction()

    def test_counts(self):
        self.assertEqual(self.reconstruction.num_cameras, 2)
        self.assertEqual(self.reconstruction.num_images, 3)
        self.assertEqual(self.reconstruction.num_points3D, 4)

    def test_image_stats(self):
        stats = self.reconstruction.image_stats
        self.assertEqual(stats[1], ImageStats(num_points3D=3, avg_error=0.75, covisible_count=2))
        self.assertEqual(stats[2], ImageStats(num_points3D=3, avg_error=1.0, covisible_count=2))
        self.assertEqual(stats[3], ImageStats(num_points3D=2, avg_error=0.5, covisible_count=2))

    def test_connected_images_index(self):
        index = self.reconstruction.connected_images_index
        self.assertEqual(dict(index[1]), {2: 2, 3: 2})
        self.assertEqual(dict(index[2]), {1: 2, 3: 1})
        self.assertEqual(dict(index[3]), {1: 2, 2: 1})
        self.assertEqual(self.reconstruction.get_connected_images(2), {1: 2, 3: 1})
        self.assertEqual(self.reconstruction.get_connected_images(42), {})

    def test_image_to_point3D_ids(self):
        memberships = self.reconstruction.image_to_point3D_ids
        self.assertEqual(memberships[1], frozenset({1, 2, 4}))
        self.assertEqual(memberships[2], frozenset({1, 2, 3}))
        self.assertEqual(memberships[3], frozenset({1, 4}))

    def test_global_stats(self):
        self.assertEqual(self.reconstruction.global_stats, GlobalStats(
            min_error=0.5,
            max_error=1.5,
            avg_error=1.0,
            min_track_length=1,
            max_track_length=3,
            avg_track_length=2.0,
            total_observations=8,
            total_points=4,
        ))

    def test_empty(self):
        empty = Reconstruction.empty()
        self.assertEqual(empty.num_images, 0)
        self.assertEqual(empty.global_stats, GlobalStats())
        self.assertEqual(empty.get_point_positions().shape, (0, 3))
        self.assertEqual(empty.get_camera_centers().shape, (0, 3))
        self.assertEqual(empty.verify_consistency(), [])

    def test_duplicate_ids_rejected(self):
        camera = Camera(id=1, model="SIMPLE_PINHOLE", width=10, height=10, params=[5.0, 5.0, 5.0])
        with self.assertRaises(ValueError):
            Reconstruction.from_entities([camera, camera], [], [])

    def test_maps_are_read_only(self):
        with self.assertRaises(TypeError):
            self.reconstruction.images[99] = self.reconstruction.images[1]
        with self.assertRaises(ValueError):
            self.reconstruction.points3D[1].xyz[0] = 0.0
        with self.assertRaises(TypeError):
            self.reconstruction.connected_images_index[1][2] = 5
        self.assertEqual(self.reconstruction.connected_images_index[1][2], 2)

    def test_replace(self):
        replaced = self.reconstruction.replace(points3D={})
        self.assertEqual(replaced.num_points3D, 0)
        self.assertIs(replaced.images[1], self.reconstruction.images[1])
        self.assertEqual(self.reconstruction.num_points3D, 4)
        with self.assertRaises(TypeError):
            self.reconstruction.replace(not_a_field={})

    def test_get_image_and_points(self):
        self.assertEqual(self.reconstruction.get_image(name="image3.jpg").id, 3)
        self.assertIsNone(self.reconstruction.get_image(image_id=42))
        with self.assertRaises(ValueError):
            self.reconstruction.get_image()

        points = self.reconstruction.get_points3D(image_id=3)
        self.assertEqual([p.id for p in points], [1, 4])
        points = self.reconstruction.get_points3D(point_ids=[4, -1, 99])
        self.assertEqual([p.id for p in points], [4])
        with self.assertRaises(ValueError):
            self.reconstruction.get_points3D(point_ids=[1], image_id=1)

    def test_camera_centers(self):
        centers = self.reconstruction.get_camera_centers()
        self.assertEqual(centers.shape, (3, 3))
        np.testing.assert_allclose(centers[0], (0.0, 0.0, 0.0), atol=1e-12)
        # 180 degrees about Y: C = -R^T t = (1, 0, 0)
        np.testing.assert_allclose(centers[1], (1.0, 0.0, 0.0), atol=1e-12)

    def test_statistics(self):
        stats = self.reconstruction.get_statistics()
        self.assertEqual(stats["num_points3D"], 4.0)
        self.assertAlmostEqual(stats["mean_track_length"], 2.0)
        self.assertAlmostEqual(stats["mean_reprojection_error"], 1.0)
        self.assertIn("images=3", str(self.reconstruction))

    def test_equality(self):
        self.assertEqual(self.reconstruction, create_mock_reconstruction())
        self.assertNotEqual(self.reconstruction, self.reconstruction.replace(points3D={}))


class TestConsistency(unittest.TestCase):
    """Tests for the invariant checker."""

    def test_mock_is_consistent(self):
        self.assertEqual(create_mock_reconstruction().verify_consistency(), [])

    def test_random_is_consistent(self):
        for seed in range(3):
            reconstruction = create_random_reconstruction(seed=seed)
            self.assertEqual(reconstruction.verify_consistency(), [])

    def test_detects_missing_camera(self):
        reconstruction = create_mock_reconstruction()
        broken = reconstruction.replace(cameras={1: reconstruction.cameras[1]})
        errors = broken.verify_consistency()
        self.assertTrue(any("missing camera 2" in error for error in errors))
        with self.assertRaises(ConsistencyError) as ctx:
            broken.assert_consistent()
        self.assertEqual(ctx.exception.errors, errors)

    def test_detects_orphan_camera(self):
        reconstruction = create_mock_reconstruction()
        extra = Camera(id=7, model="SIMPLE_PINHOLE", width=10, height=10, params=[5.0, 5.0, 5.0])
        broken = reconstruction.replace(cameras={**reconstruction.cameras, 7: extra})
        self.assertTrue(any("not used by any image" in error for error in broken.verify_consistency()))

    def test_detects_dangling_track(self):
        reconstruction = create_mock_reconstruction()
        images = dict(reconstruction.images)
        del images[3]
        broken = reconstruction.replace(images=images)
        errors = broken.verify_consistency()
        self.assertTrue(any("track references missing image 3" in error for error in errors))
        self.assertTrue(any("connected_images_index" in error for error in errors))

    def test_detects_track_observation_mismatch(self):
        reconstruction = create_mock_reconstruction()
        points = dict(reconstruction.points3D)
        points[2] = Point3D(id=2, xyz=(6.0, 1.0, -1.0), error=1.0, image_ids=[1], point2D_idxs=[1])
        broken = reconstruction.replace(points3D=points)
        self.assertTrue(any("track lacks (2, 1)" in error for error in broken.verify_consistency()))

    def test_loading_inconsistent_data_warns(self):
        camera = Camera(id=1, model="SIMPLE_PINHOLE", width=10, height=10, params=[5.0, 5.0, 5.0])
        image = Image(id=1, name="a.jpg", camera_id=1, xys=[(1.0, 1.0)], point3D_ids=[5])
        with self.assertLogs("reconedit.reconstruction", level="WARNING"):
            Reconstruction.from_entities([camera], [image], [])


class TestComputeImageStats(unittest.TestCase):

    def test_ignores_unknown_images_and_self_loops(self):
        image = Image(id=1, name="a.jpg", camera_id=1, xys=[(0.0, 0.0), (1.0, 1.0)], point3D_ids=[1, 1])
        point = Point3D(id=1, xyz=(0.0, 0.0, 0.0), error=0.2, image_ids=[1, 1, 9], point2D_idxs=[0, 1, 0])
        result = compute_image_stats({1: image}, {1: point})

        self.assertEqual(result.connected_images_index, {})
        self.assertEqual(result.image_to_point3D_ids, {1: frozenset({1})})
        self.assertEqual(result.image_stats[1].covisible_count, 0)
        self.assertEqual(result.global_stats.total_observations, 3)

    def test_image_without_points(self):
        image = Image(id=1, name="a.jpg", camera_id=1)
        result = compute_image_stats({1: image}, {})
        self.assertEqual(result.image_stats[1], ImageStats(num_points3D=0, avg_error=0.0, covisible_count=0))
        self.assertNotIn(1, result.image_to_point3D_ids)
        self.assertNotIn(1, result.connected_images_index)


if __name__ == "__main__":
    unittest.main()
