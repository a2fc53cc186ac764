"""
Preset transforms computed from the positions of a reconstruction.

Every function here only reads positions and returns a `Sim3d`; how the
result is combined with an active preview is up to `TransformPipeline`.
"""
import enum
import numpy as np
from dataclasses import dataclass, replace
from typing import Optional, Sequence, TYPE_CHECKING

from .geometry import (
    median,
    percentile,
    quaternion_from_axis_angle,
    quaternion_from_unit_vectors,
    rotate_vector,
)
from .config import EditorConfig
from .sim3d import Sim3d

if TYPE_CHECKING:
    from .reconstruction import Reconstruction

AXES = {
    "X": np.array([1.0, 0.0, 0.0]),
    "Y": np.array([0.0, 1.0, 0.0]),
    "Z": np.array([0.0, 0.0, 1.0]),
}


class TransformPreset(enum.Enum):
    IDENTITY = "identity"
    CENTER_AT_ORIGIN = "centerAtOrigin"
    NORMALIZE_SCALE = "normalizeScale"


@dataclass(frozen=True)
class Plane:
    """
    Plane n.x + d = 0 as produced by the plane-detection routine.

    Attributes:
        normal: Unit normal, pointing to the "up" side.
        d: Plane constant.
        centroid: Centre of the inlier points.
        inlier_count: Number of points within the detection threshold.
        radius: Approximate extent of the inliers.
    """
    normal: Sequence[float]
    d: float
    centroid: Sequence[float] = (0.0, 0.0, 0.0)
    inlier_count: int = 0
    radius: float = 0.0

    def flipped(self) -> 'Plane':
        """Same plane with the normal pointing the other way."""
        return replace(self, normal=tuple(-float(v) for v in self.normal), d=-self.d)


def compute_distances_to_plane(positions: np.ndarray, plane: Plane) -> np.ndarray:
    """Signed distances of an (N, 3) array of positions to `plane`."""
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    return positions @ np.asarray(plane.normal, dtype=np.float64) + plane.d


def compute_center_at_origin(reconstruction: 'Reconstruction', use_images: bool = False) -> Sim3d:
    """
    Translation moving the scene centre to the origin.

    Args:
        reconstruction: Source of the positions.
        use_images: If False (default), the centre is the mean of the 3D point
                    positions. If True, the per-axis median of the camera
                    centres, which is robust to outlier cameras.
    """
    if use_images:
        centers = reconstruction.get_camera_centers()
        if len(centers) == 0:
            return Sim3d.identity()
        center = np.array([median(centers[:, axis]) for axis in range(3)])
    else:
        positions = reconstruction.get_point_positions()
        if len(positions) == 0:
            return Sim3d.identity()
        center = positions.mean(axis=0)

    return Sim3d(scale=1.0, tvec=-center)


def compute_normalize_scale(reconstruction: 'Reconstruction',
                            extent: float = 10.0,
                            min_percentile: float = 0.1,
                            max_percentile: float = 0.9,
                            use_images: bool = True) -> Sim3d:
    """
    Scales and centres the scene so that its percentile bounding box has a
    diagonal of `extent`.

    Args:
        reconstruction: Source of the positions.
        extent: Target bounding box diagonal.
        min_percentile: Lower bound of the box, in [0, 1].
        max_percentile: Upper bound of the box, in [0, 1].
        use_images: Use camera centres (True) or 3D points (False).
    """
    coords = reconstruction.get_camera_centers() if use_images else reconstruction.get_point_positions()
    if len(coords) == 0:
        return Sim3d.identity()

    lower = np.array([percentile(coords[:, axis], min_percentile) for axis in range(3)])
    upper = np.array([percentile(coords[:, axis], max_percentile) for axis in range(3)])
    center = (lower + upper) / 2.0
    diagonal = float(np.linalg.norm(upper - lower))

    scale = extent / diagonal if diagonal > 1e-6 else 1.0
    # p_new = scale * (p - center)
    return Sim3d(scale=scale, tvec=-center * scale)


def compute_distance_scale(point1: Sequence[float], point2: Sequence[float], target_distance: float) -> Sim3d:
    """
    Uniform scale about the midpoint of two points so that their distance
    becomes `target_distance`. Identity if the points coincide.
    """
    p1 = np.asarray(point1, dtype=np.float64)
    p2 = np.asarray(point2, dtype=np.float64)
    current_distance = float(np.linalg.norm(p2 - p1))
    if current_distance < 1e-10:
        return Sim3d.identity()

    scale = target_distance / current_distance
    midpoint = (p1 + p2) / 2.0
    return Sim3d(scale=scale, tvec=midpoint * (1.0 - scale))


def compute_normal_alignment(point1: Sequence[float], point2: Sequence[float], point3: Sequence[float]) -> Sim3d:
    """
    Rotation about the centroid of three points taking the normal of their
    triangle onto +Y. Identity for collinear points.
    """
    p1, p2, p3 = (np.asarray(p, dtype=np.float64) for p in (point1, point2, point3))
    normal = np.cross(p2 - p1, p3 - p1)
    if float(np.dot(normal, normal)) < 1e-10:
        return Sim3d.identity()
    normal = normal / np.linalg.norm(normal)

    y_up = AXES["Y"]
    dot = float(np.dot(normal, y_up))
    if abs(dot - 1.0) < 1e-6:
        return Sim3d.identity()
    if abs(dot + 1.0) < 1e-6:
        qvec = quaternion_from_axis_angle(AXES["X"], np.pi)
    else:
        qvec = quaternion_from_unit_vectors(normal, y_up)

    # p_new = R * (p - c) + c
    centroid = (p1 + p2 + p3) / 3.0
    return Sim3d(scale=1.0, qvec=qvec, tvec=centroid - rotate_vector(qvec, centroid))


def compute_plane_alignment(plane: Plane, target_axis: str = "Y") -> Sim3d:
    """
    Rotates the plane normal onto `target_axis` ("X", "Y" or "Z") and then
    translates along that axis so the plane passes through the origin.
    """
    if target_axis not in AXES:
        raise ValueError(f"Unknown target axis '{target_axis}'. Use one of {sorted(AXES)}.")
    target = AXES[target_axis]

    normal = np.asarray(plane.normal, dtype=np.float64)
    normal = normal / np.linalg.norm(normal)
    qvec = quaternion_from_unit_vectors(normal, target)

    rotated_centroid = rotate_vector(qvec, np.asarray(plane.centroid, dtype=np.float64))
    distance_along_axis = float(np.dot(rotated_centroid, target))
    return Sim3d(scale=1.0, qvec=qvec, tvec=-distance_along_axis * target)


def compute_preset(preset: TransformPreset,
                   reconstruction: 'Reconstruction',
                   config: Optional[EditorConfig] = None) -> Sim3d:
    """Computes the transform for a named preset with the given settings."""
    config = config or EditorConfig()

    if preset is TransformPreset.IDENTITY:
        return Sim3d.identity()
    if preset is TransformPreset.CENTER_AT_ORIGIN:
        return compute_center_at_origin(reconstruction, use_images=config.center_use_images)
    if preset is TransformPreset.NORMALIZE_SCALE:
        return compute_normalize_scale(
            reconstruction,
            extent=config.normalize_extent,
            min_percentile=config.normalize_min_percentile,
            max_percentile=config.normalize_max_percentile,
            use_images=config.normalize_use_images,
        )
    raise ValueError(f"Unknown transform preset: {preset}")
