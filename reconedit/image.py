import numpy as np
from typing import Tuple, List, Union, Sequence
from numpy.typing import NDArray

from .geometry import qvec2rotmat, quaternion_conjugate
from .types import INVALID_POINT3D_ID


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


class Image:
    """
    Represents image extrinsic parameters and 2D observations.

    The pose is stored COLMAP style as cam_from_world: a unit quaternion
    `qvec` [w, x, y, z] and a translation `tvec`. Observations (`xys`,
    `point3D_ids`) are parallel read-only NumPy arrays; a point3D id equal to
    INVALID_POINT3D_ID marks an unmatched observation.
    """

    id: int
    name: str
    camera_id: int

    xys: NDArray[np.float64] # Shape: (N, 2)
    point3D_ids: NDArray[np.int64] # Shape: (N,)

    qvec: NDArray[np.float64] # Shape: (4,) [w, x, y, z]
    tvec: NDArray[np.float64] # Shape: (3,) [x, y, z]

    def __init__(self, id: int, name: str, camera_id: int,
                 qvec: Union[NDArray[np.float64], Sequence[float]] = (1.0, 0.0, 0.0, 0.0),
                 tvec: Union[NDArray[np.float64], Sequence[float]] = (0.0, 0.0, 0.0),
                 xys: Union[NDArray[np.float64], Sequence[Sequence[float]], None] = None,
                 point3D_ids: Union[NDArray[np.int64], Sequence[int], None] = None):
        """
        Initializes an Image instance.

        Args:
            id: Unique image identifier.
            name: Image file name.
            camera_id: ID of the camera used for this image.
            qvec: Quaternion rotation (4,) [w, x, y, z].
            tvec: Translation vector (3,) [x, y, z].
            xys: (N, 2) 2D observation coordinates. Defaults to no observations.
            point3D_ids: (N,) corresponding 3D point IDs.
        """
        qvec_arr = np.array(qvec, dtype=np.float64)
        tvec_arr = np.array(tvec, dtype=np.float64)
        xys_arr = np.empty((0, 2), dtype=np.float64) if xys is None else np.array(xys, dtype=np.float64)
        ids_arr = np.empty((0,), dtype=np.int64) if point3D_ids is None else np.array(point3D_ids, dtype=np.int64)
        if xys_arr.size == 0:
            xys_arr = xys_arr.reshape(0, 2)

        if qvec_arr.shape != (4,) or tvec_arr.shape != (3,):
            raise ValueError("qvec must have shape (4,) and tvec shape (3,)")
        if xys_arr.ndim != 2 or xys_arr.shape[1] != 2:
            raise ValueError("xys must be an Nx2 array")
        if ids_arr.ndim != 1 or ids_arr.shape[0] != xys_arr.shape[0]:
            raise ValueError(f"Number of 2D points ({xys_arr.shape[0]}) does not match number of 3D point IDs ({ids_arr.shape[0]})")

        self.id = int(id)
        self.name = name
        self.camera_id = int(camera_id)
        self.qvec = _frozen(qvec_arr)
        self.tvec = _frozen(tvec_arr)
        self.xys = _frozen(xys_arr)
        self.point3D_ids = _frozen(ids_arr)

    def with_pose(self, qvec: NDArray[np.float64], tvec: NDArray[np.float64]) -> 'Image':
        """Returns a copy of this image with a new pose. Observations are shared."""
        image = Image.__new__(Image)
        image.id = self.id
        image.name = self.name
        image.camera_id = self.camera_id
        image.qvec = _frozen(np.array(qvec, dtype=np.float64))
        image.tvec = _frozen(np.array(tvec, dtype=np.float64))
        image.xys = self.xys
        image.point3D_ids = self.point3D_ids
        return image

    def get_rotation_matrix(self) -> np.ndarray:
        """Get the world-to-camera rotation matrix."""
        return qvec2rotmat(self.qvec)

    def get_world_quaternion(self) -> np.ndarray:
        """Orientation of the camera in world space (camera-to-world rotation)."""
        return quaternion_conjugate(self.qvec)

    def get_camera_center(self) -> np.ndarray:
        """Get camera center in world coordinates: C = -R^T t."""
        R = self.get_rotation_matrix()
        return -R.T @ self.tvec

    def num_observations(self) -> int:
        """Counts the number of 2D features in this image."""
        return int(self.xys.shape[0])

    def num_valid_observations(self) -> int:
        """Counts the number of 2D features with valid 3D correspondences."""
        return int(np.sum(self.point3D_ids != INVALID_POINT3D_ID))

    def get_valid_points3D(self) -> List[Tuple[int, Tuple[float, float]]]:
        """
        Returns (point3D_id, (x, y)) for every observation that has a 3D point.
        """
        valid_mask = self.point3D_ids != INVALID_POINT3D_ID
        valid_ids = self.point3D_ids[valid_mask]
        valid_xys = self.xys[valid_mask]
        return [(int(p3d_id), (float(xy[0]), float(xy[1]))) for p3d_id, xy in zip(valid_ids, valid_xys)]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Image):
            return NotImplemented

        if self.xys.shape != other.xys.shape or self.point3D_ids.shape != other.point3D_ids.shape:
            return False

        return self.id == other.id and \
               self.name == other.name and \
               self.camera_id == other.camera_id and \
               np.allclose(self.qvec, other.qvec) and \
               np.allclose(self.tvec, other.tvec) and \
               np.allclose(self.xys, other.xys) and \
               np.array_equal(self.point3D_ids, other.point3D_ids)

    def __hash__(self) -> int:
        # Pose may change across edits, identity does not
        return hash((self.id, self.name))

    def __repr__(self) -> str:
        return f"Image(id={self.id}, name='{self.name}', camera_id={self.camera_id}, {self.num_observations()} features)"
