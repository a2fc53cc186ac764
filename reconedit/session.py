"""
Entry points a host application calls for the two kinds of edits:
deleting images and committing the scene transform.
"""
import logging
from typing import AbstractSet, FrozenSet, Iterable, Iterator, Optional, Set, Union

from .config import EditorConfig
from .filtering import filter_by_image_ids
from .mirror import MirrorCoordinator
from .presets import TransformPreset
from .reconstruction import Reconstruction
from .sim3d import Sim3d
from .store import ReconstructionStore
from .transform import TransformPipeline

logger = logging.getLogger(__name__)


class DeletionQueue:
    """Images marked for deletion but not yet removed from the data."""

    def __init__(self, image_ids: Iterable[int] = ()):
        self._ids: Set[int] = {int(i) for i in image_ids}

    def add(self, image_id: int) -> None:
        self._ids.add(int(image_id))

    def discard(self, image_id: int) -> None:
        self._ids.discard(int(image_id))

    def toggle(self, image_id: int) -> bool:
        """Marks or unmarks an image. Returns True if it is now pending."""
        image_id = int(image_id)
        if image_id in self._ids:
            self._ids.remove(image_id)
            return False
        self._ids.add(image_id)
        return True

    def clear(self) -> None:
        self._ids.clear()

    @property
    def ids(self) -> FrozenSet[int]:
        return frozenset(self._ids)

    def __contains__(self, image_id: object) -> bool:
        return image_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._ids))

    def __repr__(self) -> str:
        return f"DeletionQueue({sorted(self._ids)})"


class ReconstructionEditor:
    """
    Wires the consistency filter and the transform pipeline to a store.

    Each edit computes a new graph from the current one and publishes it
    through the MirrorCoordinator, which settles the mirror in the same step.
    All methods return False when there is nothing loaded or nothing to do.
    """

    def __init__(self,
                 store: ReconstructionStore,
                 pipeline: Optional[TransformPipeline] = None,
                 config: Optional[EditorConfig] = None):
        self.config = config or (pipeline.config if pipeline is not None else EditorConfig())
        self.store = store
        self.pipeline = pipeline or TransformPipeline(self.config)
        self.coordinator = MirrorCoordinator(store)
        self.pending_deletions = DeletionQueue()

    def _check(self, reconstruction: Reconstruction) -> Reconstruction:
        if self.config.verify_after_edit:
            reconstruction.assert_consistent()
        return reconstruction

    def has_pending_deletions(self) -> bool:
        return len(self.pending_deletions) > 0

    def apply_deletions(self, image_ids: Union[None, DeletionQueue, AbstractSet[int], Iterable[int]] = None) -> bool:
        """
        Removes images from the data permanently.

        Args:
            image_ids: Images to remove. Defaults to the pending deletion
                       queue, which is cleared on success.

        Returns:
            True if a new graph was published.
        """
        reconstruction = self.store.get()
        if reconstruction is None:
            return False

        queue = self.pending_deletions if image_ids is None else image_ids
        ids = queue.ids if isinstance(queue, DeletionQueue) else frozenset(queue)

        new_reconstruction = filter_by_image_ids(reconstruction, ids)
        if new_reconstruction is None:
            return False

        self.coordinator.apply_deletion(self._check(new_reconstruction))
        if isinstance(queue, DeletionQueue):
            queue.clear()
        logger.info("Deleted %d image(s); %s", len(ids), new_reconstruction)
        return True

    def apply_preset(self, preset: Union[TransformPreset, Sim3d]) -> bool:
        """Folds a preset into the preview transform."""
        reconstruction = self.store.get()
        if reconstruction is None:
            return False
        self.pipeline.apply_preset(preset, reconstruction)
        return True

    def apply_transform_to_data(self) -> bool:
        """Commits the preview transform into the data and drops the mirror."""
        reconstruction = self.store.get()
        if reconstruction is None:
            return False
        transformed = self.pipeline.apply_to_data(reconstruction)
        self.coordinator.apply_transform_commit(self._check(transformed))
        logger.info("Applied transform to data; %s", transformed)
        return True

    def reset_transform(self) -> None:
        self.pipeline.reset()
