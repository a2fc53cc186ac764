import logging
import numpy as np
from typing import AbstractSet, Iterable, Optional, Set

from .reconstruction import Reconstruction
from .stats import ConnectedImagesIndex, ImageToPoint3DIds

logger = logging.getLogger(__name__)


def filter_by_image_ids(reconstruction: Reconstruction,
                        image_ids_to_remove: Iterable[int]) -> Optional[Reconstruction]:
    """
    Derives a new, consistent reconstruction with the given images removed.

    Cameras no longer used by any surviving image are dropped, and every
    derived index is filtered from the index itself rather than by rescanning
    all tracks. 3D points are always kept, even when their track becomes
    empty; only the track elements naming removed images go away.
    `global_stats` is carried over as is.

    Args:
        reconstruction: The source graph. It is not modified.
        image_ids_to_remove: IDs of the images to delete. IDs that are not in
                             the reconstruction are ignored.

    Returns:
        The new Reconstruction, or None if `image_ids_to_remove` is empty.
    """
    removed: AbstractSet[int] = frozenset(int(i) for i in image_ids_to_remove)
    if not removed:
        return None

    new_images = {image_id: image for image_id, image in reconstruction.images.items()
                  if image_id not in removed}

    used_camera_ids = {image.camera_id for image in new_images.values()}
    new_cameras = {camera_id: camera for camera_id, camera in reconstruction.cameras.items()
                   if camera_id in used_camera_ids}

    new_image_stats = {image_id: stats for image_id, stats in reconstruction.image_stats.items()
                       if image_id not in removed}

    new_connected = _filter_connected_images(reconstruction.connected_images_index, removed)
    # Tracks only lose elements naming removed images, so the membership sets
    # of surviving images stay valid as they are
    new_memberships: ImageToPoint3DIds = {
        image_id: point_ids for image_id, point_ids in reconstruction.image_to_point3D_ids.items()
        if image_id not in removed
    }

    # Only points observed by a removed image can have their track altered
    affected_point_ids: Set[int] = set()
    for image_id in removed:
        affected_point_ids.update(reconstruction.image_to_point3D_ids.get(image_id, ()))

    removed_array = np.fromiter(removed, dtype=np.int64, count=len(removed))
    new_points3D = dict(reconstruction.points3D)
    for point_id in affected_point_ids:
        point = new_points3D.get(point_id)
        if point is None:
            continue
        keep_mask = ~np.isin(point.image_ids, removed_array)
        if keep_mask.all():
            continue
        new_points3D[point_id] = point.with_track(keep_mask)

    logger.debug("Removed %d image(s), %d camera(s); %d point track(s) updated",
                 len(reconstruction.images) - len(new_images),
                 len(reconstruction.cameras) - len(new_cameras),
                 len(affected_point_ids))

    return Reconstruction(
        cameras=new_cameras,
        images=new_images,
        points3D=new_points3D,
        image_stats=new_image_stats,
        connected_images_index=new_connected,
        image_to_point3D_ids=new_memberships,
        global_stats=reconstruction.global_stats,
    )


def _filter_connected_images(index: ConnectedImagesIndex, removed: AbstractSet[int]) -> ConnectedImagesIndex:
    filtered: ConnectedImagesIndex = {}
    for image_id, links in index.items():
        if image_id in removed:
            continue
        if removed.isdisjoint(links):
            filtered[image_id] = links
            continue
        kept = {other_id: count for other_id, count in links.items() if other_id not in removed}
        if kept:
            filtered[image_id] = kept
    return filtered
