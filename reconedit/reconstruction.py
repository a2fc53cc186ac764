import logging
import numpy as np
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from .image import Image
from .camera import Camera
from .point3d import Point3D
from .stats import (
    ConnectedImagesIndex,
    GlobalStats,
    ImageStats,
    ImageToPoint3DIds,
    compute_image_stats,
)
from .types import INVALID_POINT3D_ID, ConsistencyError

logger = logging.getLogger(__name__)

_FIELDS = (
    "cameras",
    "images",
    "points3D",
    "image_stats",
    "connected_images_index",
    "image_to_point3D_ids",
    "global_stats",
)


def _frozen_links(links: Mapping[int, int]) -> Mapping[int, int]:
    # Already frozen link maps are shared between graphs as they are
    if isinstance(links, MappingProxyType):
        return links
    return MappingProxyType(dict(links))


def _by_id(entities: Iterable, kind: str) -> Dict[int, object]:
    result: Dict[int, object] = {}
    for entity in entities:
        if entity.id in result:
            raise ValueError(f"Duplicate {kind} ID {entity.id}.")
        result[entity.id] = entity
    return result


class Reconstruction:
    """
    Immutable reconstruction graph: cameras, posed images and 3D points kept
    in flat id-keyed maps, plus the derived indices used for fast lookups.

    Instances are never edited in place. Deleting images or transforming the
    scene builds a new Reconstruction that shares every untouched entity with
    the old one (see `filtering.filter_by_image_ids` and
    `transform.transform_reconstruction`).

    Attributes:
        cameras (Mapping[int, Camera]): Camera ID -> Camera.
        images (Mapping[int, Image]): Image ID -> Image.
        points3D (Mapping[int, Point3D]): Point3D ID -> Point3D.
        image_stats (Mapping[int, ImageStats]): Per image statistics.
        connected_images_index (Mapping[int, Mapping[int, int]]): Covisibility graph,
            with read-only link maps.
        image_to_point3D_ids (Mapping[int, FrozenSet[int]]): Points seen by each image.
        global_stats (GlobalStats): Aggregates computed when the graph was built.
    """

    cameras: Mapping[int, Camera]
    images: Mapping[int, Image]
    points3D: Mapping[int, Point3D]
    image_stats: Mapping[int, ImageStats]
    connected_images_index: Mapping[int, Mapping[int, int]]
    image_to_point3D_ids: ImageToPoint3DIds
    global_stats: GlobalStats

    def __init__(self,
                 cameras: Mapping[int, Camera],
                 images: Mapping[int, Image],
                 points3D: Mapping[int, Point3D],
                 image_stats: Mapping[int, ImageStats],
                 connected_images_index: ConnectedImagesIndex,
                 image_to_point3D_ids: ImageToPoint3DIds,
                 global_stats: GlobalStats) -> None:
        """
        Wraps already consistent maps. Use `from_entities` to build a graph
        (and its indices) from loaded cameras, images and points.
        """
        self.cameras = MappingProxyType(dict(cameras))
        self.images = MappingProxyType(dict(images))
        self.points3D = MappingProxyType(dict(points3D))
        self.image_stats = MappingProxyType(dict(image_stats))
        self.connected_images_index = MappingProxyType({
            image_id: _frozen_links(links) for image_id, links in connected_images_index.items()
        })
        self.image_to_point3D_ids = MappingProxyType(dict(image_to_point3D_ids))
        self.global_stats = global_stats

    @classmethod
    def from_entities(cls,
                      cameras: Iterable[Camera],
                      images: Iterable[Image],
                      points3D: Iterable[Point3D],
                      verify_integrity: bool = True) -> 'Reconstruction':
        """
        Builds the first graph of a session from loaded entities, computing
        every derived index.

        Args:
            cameras: Loaded cameras.
            images: Loaded images.
            points3D: Loaded 3D points.
            verify_integrity: If True, log a warning listing any invariant
                              violations found in the loaded data.

        Raises:
            ValueError: If two entities of the same kind share an ID.
        """
        camera_map = _by_id(cameras, "camera")
        image_map = _by_id(images, "image")
        point_map = _by_id(points3D, "point3D")

        result = compute_image_stats(image_map, point_map)
        reconstruction = cls(
            cameras=camera_map,
            images=image_map,
            points3D=point_map,
            image_stats=result.image_stats,
            connected_images_index=result.connected_images_index,
            image_to_point3D_ids=result.image_to_point3D_ids,
            global_stats=result.global_stats,
        )
        logger.debug("Built reconstruction: %s", reconstruction)

        if verify_integrity:
            errors = reconstruction.verify_consistency()
            if errors:
                logger.warning("Inconsistencies found in the loaded reconstruction:")
                for error in errors[:10]: logger.warning("  - %s", error)
                if len(errors) > 10: logger.warning("  ... (%d more)", len(errors) - 10)

        return reconstruction

    @classmethod
    def empty(cls) -> 'Reconstruction':
        return cls({}, {}, {}, {}, {}, {}, GlobalStats())

    def replace(self, **changes) -> 'Reconstruction':
        """Returns a new Reconstruction with the given fields swapped out."""
        unknown = set(changes) - set(_FIELDS)
        if unknown:
            raise TypeError(f"Unknown reconstruction field(s): {', '.join(sorted(unknown))}")
        fields = {name: getattr(self, name) for name in _FIELDS}
        fields.update(changes)
        return Reconstruction(**fields)

    @property
    def num_cameras(self) -> int:
        return len(self.cameras)

    @property
    def num_images(self) -> int:
        return len(self.images)

    @property
    def num_points3D(self) -> int:
        return len(self.points3D)

    def get_image(self, image_id: Optional[int] = None, name: Optional[str] = None) -> Optional[Image]:
        """
        Retrieves an Image by id or by file name.
        """
        if image_id is None and name is None:
            raise ValueError("Must provide either image_id or name.")
        if image_id is not None:
            return self.images.get(image_id)
        for image in self.images.values():
            if image.name == name:
                return image
        return None

    def get_connected_images(self, image_id: int) -> Dict[int, int]:
        """
        Returns {other_image_id: shared_point_count} for the images that share
        triangulated points with `image_id`. Empty if there are none.
        """
        return dict(self.connected_images_index.get(image_id, {}))

    def get_points3D(self, point_ids: Optional[Iterable[int]] = None, image_id: Optional[int] = None) -> List[Point3D]:
        """
        Retrieves Point3D objects by their IDs or by the image that observes them.
        """
        if point_ids is None and image_id is None:
            raise ValueError("Must provide either point_ids or image_id.")
        if point_ids is not None and image_id is not None:
            raise ValueError("Cannot provide both point_ids and image_id.")

        if image_id is not None:
            point_ids = sorted(self.image_to_point3D_ids.get(image_id, ()))

        return [self.points3D[point_id] for point_id in point_ids  # type: ignore[union-attr]
                if point_id != INVALID_POINT3D_ID and point_id in self.points3D]

    def get_point_positions(self) -> np.ndarray:
        """Returns an (N, 3) array with the positions of all points, in map order."""
        if not self.points3D:
            return np.empty((0, 3), dtype=np.float64)
        return np.stack([point.xyz for point in self.points3D.values()])

    def get_camera_centers(self) -> np.ndarray:
        """Returns an (N, 3) array with the world position of every image, in map order."""
        if not self.images:
            return np.empty((0, 3), dtype=np.float64)
        return np.stack([image.get_camera_center() for image in self.images.values()])

    def get_statistics(self) -> Dict[str, float]:
        """
        Calculates basic statistics from the current data. Unlike
        `global_stats`, these are exact after edits.
        """
        num_points = len(self.points3D)
        num_images = len(self.images)

        mean_track_length = 0.0
        mean_reprojection_error = 0.0
        if num_points > 0:
            track_lengths = [point.get_track_length() for point in self.points3D.values()]
            mean_track_length = float(np.mean(track_lengths))
            errors = [point.error for point in self.points3D.values() if point.has_valid_error()]
            mean_reprojection_error = float(np.mean(errors)) if errors else 0.0

        mean_observations = 0.0
        mean_valid_observations = 0.0
        if num_images > 0:
            mean_observations = float(np.mean([image.num_observations() for image in self.images.values()]))
            mean_valid_observations = float(np.mean([image.num_valid_observations() for image in self.images.values()]))

        return {
            "num_cameras": float(len(self.cameras)),
            "num_images": float(num_images),
            "num_points3D": float(num_points),
            "mean_track_length": mean_track_length,
            "mean_observations_per_image": mean_observations,
            "mean_valid_observations_per_image": mean_valid_observations,
            "mean_reprojection_error": mean_reprojection_error,
        }

    def __str__(self) -> str:
        stats = self.get_statistics()
        return (
            f"Reconstruction(cameras={int(stats['num_cameras'])}, images={int(stats['num_images'])}, "
            f"points3D={int(stats['num_points3D'])}, "
            f"mean_track_len={stats['mean_track_length']:.2f}, "
            f"mean_reproj_err={stats['mean_reprojection_error']:.2f})"
        )

    def __repr__(self) -> str:
        return self.__str__()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Reconstruction):
            return NotImplemented
        return all(dict(getattr(self, name)) == dict(getattr(other, name)) for name in _FIELDS[:-1]) and \
               self.global_stats == other.global_stats

    __hash__ = None  # type: ignore[assignment]

    def assert_consistent(self) -> None:
        """Raises ConsistencyError if any invariant is violated."""
        errors = self.verify_consistency()
        if errors:
            raise ConsistencyError(errors)

    def verify_consistency(self) -> List[str]:
        """
        Checks the referential invariants of the graph. Intended for tests
        and debugging; the edit operations assume a consistent input.

        Returns:
            List of error messages. Empty if no errors found.
        """
        errors: List[str] = []
        prefix = "Consistency check failed:"

        # --- Cameras ---
        used_camera_ids = set()
        for image_id, image in self.images.items():
            if image.id != image_id:
                errors.append(f"{prefix} image keyed {image_id} has id {image.id}")
            if image.camera_id not in self.cameras:
                errors.append(f"{prefix} image {image_id} references missing camera {image.camera_id}")
            used_camera_ids.add(image.camera_id)
        orphan_cameras = set(self.cameras) - used_camera_ids
        if orphan_cameras:
            errors.append(f"{prefix} cameras not used by any image: {sorted(orphan_cameras)}")

        # --- Observations -> points ---
        for image_id, image in self.images.items():
            for p2d_idx, p3d_id in enumerate(image.point3D_ids):
                if p3d_id == INVALID_POINT3D_ID:
                    continue
                point = self.points3D.get(int(p3d_id))
                if point is None:
                    errors.append(f"{prefix} image {image_id} observation {p2d_idx} references missing Point3D {p3d_id}")
                    continue
                in_track = np.any((point.image_ids == image_id) & (point.point2D_idxs == p2d_idx))
                if not in_track:
                    errors.append(f"{prefix} Point3D {p3d_id} track lacks ({image_id}, {p2d_idx})")

        # --- Tracks -> observations ---
        for p3d_id, point in self.points3D.items():
            for img_id, p2d_idx in point.get_track():
                image = self.images.get(img_id)
                if image is None:
                    errors.append(f"{prefix} Point3D {p3d_id} track references missing image {img_id}")
                    continue
                if not (0 <= p2d_idx < image.num_observations()):
                    errors.append(f"{prefix} Point3D {p3d_id} track references out-of-bounds point2D index {p2d_idx} for image {img_id}")
                    continue
                feature_p3d_id = int(image.point3D_ids[p2d_idx])
                if feature_p3d_id != p3d_id:
                    errors.append(f"{prefix} Point3D {p3d_id} track inconsistency: image {img_id} feature {p2d_idx} points to Point3D {feature_p3d_id} instead.")

        # --- Derived indices ---
        stale_stats = set(self.image_stats) - set(self.images)
        if stale_stats:
            errors.append(f"{prefix} image_stats has entries for missing images {sorted(stale_stats)}")

        for image_id, links in self.connected_images_index.items():
            if image_id not in self.images:
                errors.append(f"{prefix} connected_images_index has entry for missing image {image_id}")
            if not links:
                errors.append(f"{prefix} connected_images_index entry for image {image_id} is empty")
            for other_id, count in links.items():
                if other_id == image_id:
                    errors.append(f"{prefix} connected_images_index has self loop on image {image_id}")
                elif other_id not in self.images:
                    errors.append(f"{prefix} connected_images_index links image {image_id} to missing image {other_id}")
                elif self.connected_images_index.get(other_id, {}).get(image_id) != count:
                    errors.append(f"{prefix} connected_images_index is not symmetric for ({image_id}, {other_id})")

        for image_id, point_ids in self.image_to_point3D_ids.items():
            if image_id not in self.images:
                errors.append(f"{prefix} image_to_point3D_ids has entry for missing image {image_id}")
            if not point_ids:
                errors.append(f"{prefix} image_to_point3D_ids entry for image {image_id} is empty")
            for point_id in point_ids:
                point = self.points3D.get(point_id)
                if point is None:
                    errors.append(f"{prefix} image_to_point3D_ids of image {image_id} references missing Point3D {point_id}")
                elif not np.any(point.image_ids == image_id):
                    errors.append(f"{prefix} image_to_point3D_ids says image {image_id} sees Point3D {point_id} but its track disagrees")

        return errors
