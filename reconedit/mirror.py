import logging
import numpy as np
from numpy.typing import NDArray
from typing import Dict, Optional

from .presets import Plane, compute_distances_to_plane
from .reconstruction import Reconstruction
from .store import ReconstructionStore

logger = logging.getLogger(__name__)


class ReconstructionMirror:
    """
    Packed NumPy copy of a reconstruction for bulk numeric work (rendering,
    plane fitting, distance colouring). Points and tracks are stored as flat
    arrays, tracks concatenated with per-point [start, end) ranges.

    A mirror stays valid as long as positions do not change: deleting images
    leaves it usable (its tracks may still name deleted images), while
    committing a transform makes it stale.
    """
    __slots__ = ['num_points', 'point_ids', 'xyzs', 'rgbs', 'errors',
                 'all_track_image_ids', 'all_track_point2D_idxs', 'track_indices',
                 'num_images', 'image_ids', 'camera_centers',
                 '_point_id_to_row', '_disposed']

    num_points: int
    point_ids: NDArray[np.int64]               # (M,)
    xyzs: NDArray[np.float64]                  # (M, 3)
    rgbs: NDArray[np.uint8]                    # (M, 3)
    errors: NDArray[np.float64]                # (M,)
    all_track_image_ids: NDArray[np.int64]     # (TotalTrackLen,)
    all_track_point2D_idxs: NDArray[np.int64]  # (TotalTrackLen,)
    track_indices: NDArray[np.int64]           # (M, 2) [start, end)
    num_images: int
    image_ids: NDArray[np.int64]               # (N,)
    camera_centers: NDArray[np.float64]        # (N, 3)

    def __init__(self):
        self.num_points = 0
        self.num_images = 0
        self._point_id_to_row: Dict[int, int] = {}
        self._disposed = False

    @classmethod
    def from_reconstruction(cls, reconstruction: Reconstruction) -> 'ReconstructionMirror':
        mirror = cls()
        points = list(reconstruction.points3D.values())

        mirror.num_points = len(points)
        mirror.point_ids = np.array([p.id for p in points], dtype=np.int64)
        mirror.xyzs = reconstruction.get_point_positions()
        mirror.rgbs = np.array([p.rgb for p in points], dtype=np.uint8).reshape(-1, 3)
        mirror.errors = np.array([p.error for p in points], dtype=np.float64)

        track_lengths = np.array([p.get_track_length() for p in points], dtype=np.int64)
        ends = np.cumsum(track_lengths)
        mirror.track_indices = np.stack([ends - track_lengths, ends], axis=1) if len(points) else np.empty((0, 2), dtype=np.int64)
        if len(points) and ends[-1] > 0:
            mirror.all_track_image_ids = np.concatenate([p.image_ids for p in points])
            mirror.all_track_point2D_idxs = np.concatenate([p.point2D_idxs for p in points])
        else:
            mirror.all_track_image_ids = np.empty((0,), dtype=np.int64)
            mirror.all_track_point2D_idxs = np.empty((0,), dtype=np.int64)

        mirror.num_images = reconstruction.num_images
        mirror.image_ids = np.array(list(reconstruction.images.keys()), dtype=np.int64)
        mirror.camera_centers = reconstruction.get_camera_centers()

        mirror._point_id_to_row = {int(id_): i for i, id_ in enumerate(mirror.point_ids)}
        logger.debug("Built mirror with %d points, %d track elements, %d images",
                     mirror.num_points, len(mirror.all_track_image_ids), mirror.num_images)
        return mirror

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get_positions(self) -> NDArray[np.float64]:
        """(M, 3) point positions in mirror order (the graph's point order at build time)."""
        return self.xyzs

    def get_track_image_ids(self, point3D_id: int) -> NDArray[np.int64]:
        if point3D_id not in self._point_id_to_row:
            raise KeyError(f"Point3D with ID {point3D_id} not found.")
        start, end = self.track_indices[self._point_id_to_row[point3D_id]]
        return self.all_track_image_ids[start:end]

    def dispose(self) -> None:
        """Releases the packed buffers."""
        if self._disposed:
            return
        self._disposed = True
        self.num_points = 0
        self.num_images = 0
        self._point_id_to_row = {}
        for name in ('point_ids', 'all_track_image_ids', 'all_track_point2D_idxs', 'image_ids', 'errors'):
            setattr(self, name, np.empty((0,), dtype=np.int64 if name != 'errors' else np.float64))
        self.xyzs = np.empty((0, 3), dtype=np.float64)
        self.camera_centers = np.empty((0, 3), dtype=np.float64)
        self.rgbs = np.empty((0, 3), dtype=np.uint8)
        self.track_indices = np.empty((0, 2), dtype=np.int64)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"{self.num_points} points, {self.num_images} images"
        return f"ReconstructionMirror({state})"


class MirrorCoordinator:
    """
    Publishes edits to a ReconstructionStore and decides, in the same step,
    what happens to the store's mirror and to caches derived from it.

    * Deletion: positions of whatever survives are unchanged, so the mirror
      is kept. Caches that depend on the set of visible entities (floor-plane
      distances) are cleared.
    * Transform commit: every position moved, so the mirror is dropped and
      consumers fall back to the primary graph until a new one is built.
    """

    def __init__(self, store: ReconstructionStore):
        self.store = store
        self._point_distances: Optional[NDArray[np.float64]] = None

    @property
    def point_distances(self) -> Optional[NDArray[np.float64]]:
        """Cached signed distances of every point to the last requested plane."""
        return self._point_distances

    def compute_point_distances(self, plane: Plane) -> NDArray[np.float64]:
        """
        Computes and caches point-to-plane distances, reading positions from
        the mirror when there is one and from the graph otherwise.
        """
        mirror = self.store.mirror
        if isinstance(mirror, ReconstructionMirror) and not mirror.disposed:
            positions = mirror.get_positions()
        else:
            reconstruction = self.store.get()
            positions = reconstruction.get_point_positions() if reconstruction is not None else np.empty((0, 3))
        self._point_distances = compute_distances_to_plane(positions, plane)
        return self._point_distances

    def invalidate_derived_caches(self) -> None:
        self._point_distances = None

    def apply_deletion(self, reconstruction: Reconstruction) -> None:
        """Publishes the result of an image deletion, keeping the mirror."""
        self.invalidate_derived_caches()
        self.store.replace(reconstruction)

    def apply_transform_commit(self, reconstruction: Reconstruction) -> None:
        """Publishes the result of a committed transform, dropping the mirror."""
        self.invalidate_derived_caches()
        self.store.replace(reconstruction, mirror=None)

    def build_mirror(self) -> Optional[ReconstructionMirror]:
        """Builds a fresh mirror of the current graph and attaches it to the store."""
        reconstruction = self.store.get()
        if reconstruction is None:
            return None
        mirror = ReconstructionMirror.from_reconstruction(reconstruction)
        self.invalidate_derived_caches()
        self.store.replace(reconstruction, mirror=mirror)
        return mirror
