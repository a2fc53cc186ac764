"""
Derived indices of a reconstruction.

These are caches over the primary maps (images, points3D): always rebuildable
with `compute_image_stats`, but carried and filtered incrementally by edits so
that lookups such as "which images share points with image X" never require
rescanning every track.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping, NamedTuple, Set, Tuple

from .image import Image
from .point3d import Point3D

# image_id -> {other_image_id: shared_point_count}, symmetric, no self loops
ConnectedImagesIndex = Dict[int, Mapping[int, int]]
# image_id -> ids of the 3D points observed by that image, never empty
ImageToPoint3DIds = Dict[int, FrozenSet[int]]


@dataclass(frozen=True)
class ImageStats:
    num_points3D: int
    avg_error: float
    covisible_count: int


@dataclass(frozen=True)
class GlobalStats:
    """
    Reconstruction-wide aggregates, computed once when the graph is built.
    Edits carry these over unchanged, so after a deletion they are an
    approximation of the current data.
    """
    min_error: float = 0.0
    max_error: float = 0.0
    avg_error: float = 0.0
    min_track_length: int = 0
    max_track_length: int = 0
    avg_track_length: float = 0.0
    total_observations: int = 0
    total_points: int = 0


class ImageStatsResult(NamedTuple):
    image_stats: Dict[int, ImageStats]
    connected_images_index: ConnectedImagesIndex
    global_stats: GlobalStats
    image_to_point3D_ids: ImageToPoint3DIds


class _Accumulator:
    __slots__ = ['num_points3D', 'total_error', 'error_count', 'covisible']

    def __init__(self):
        self.num_points3D = 0
        self.total_error = 0.0
        self.error_count = 0
        self.covisible: Set[int] = set()


def _iterate_tracks(points3D: Mapping[int, Point3D]) -> Iterable[Tuple[int, float, Tuple[int, ...]]]:
    for point_id, point in points3D.items():
        yield point_id, point.error, tuple(int(i) for i in point.image_ids)


def compute_image_stats(images: Mapping[int, Image], points3D: Mapping[int, Point3D]) -> ImageStatsResult:
    """
    Computes per-image statistics, the covisibility index, the image to
    point membership index and the global statistics in a single pass over
    all point tracks.

    Track elements referring to images not present in `images` are ignored.
    Negative reprojection errors mean "unknown" and are left out of the
    error averages.
    """
    accumulators = {image_id: _Accumulator() for image_id in images}
    connected: Dict[int, Dict[int, int]] = {}
    memberships: Dict[int, Set[int]] = {}

    total_error = 0.0
    error_count = 0
    total_observations = 0
    min_error, max_error = float('inf'), float('-inf')
    min_track, max_track = None, None

    for point_id, error, track_image_ids in _iterate_tracks(points3D):
        track_length = len(track_image_ids)
        has_valid_error = error >= 0

        total_observations += track_length
        min_track = track_length if min_track is None else min(min_track, track_length)
        max_track = track_length if max_track is None else max(max_track, track_length)
        if has_valid_error:
            total_error += error
            error_count += 1
            min_error = min(min_error, error)
            max_error = max(max_error, error)

        visible = [image_id for image_id in track_image_ids if image_id in accumulators]
        for image_id in visible:
            acc = accumulators[image_id]
            acc.num_points3D += 1
            if has_valid_error:
                acc.total_error += error
                acc.error_count += 1
            acc.covisible.update(other for other in visible if other != image_id)
            memberships.setdefault(image_id, set()).add(point_id)

        for i in range(len(visible)):
            for j in range(i + 1, len(visible)):
                id1, id2 = visible[i], visible[j]
                if id1 == id2:
                    continue
                links1 = connected.setdefault(id1, {})
                links2 = connected.setdefault(id2, {})
                links1[id2] = links1.get(id2, 0) + 1
                links2[id1] = links2.get(id1, 0) + 1

    image_stats = {
        image_id: ImageStats(
            num_points3D=acc.num_points3D,
            avg_error=acc.total_error / acc.error_count if acc.error_count > 0 else 0.0,
            covisible_count=len(acc.covisible),
        )
        for image_id, acc in accumulators.items()
    }

    total_points = len(points3D)
    global_stats = GlobalStats(
        min_error=min_error if error_count > 0 else 0.0,
        max_error=max_error if error_count > 0 else 0.0,
        avg_error=total_error / error_count if error_count > 0 else 0.0,
        min_track_length=min_track if total_points > 0 else 0,
        max_track_length=max_track if total_points > 0 else 0,
        avg_track_length=total_observations / total_points if total_points > 0 else 0.0,
        total_observations=total_observations,
        total_points=total_points,
    )

    image_to_point3D_ids = {image_id: frozenset(ids) for image_id, ids in memberships.items()}
    return ImageStatsResult(image_stats, connected, global_stats, image_to_point3D_ids)
