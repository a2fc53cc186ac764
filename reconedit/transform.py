import enum
import logging
from typing import Optional, Union

from .config import EditorConfig
from .presets import TransformPreset, compute_preset
from .reconstruction import Reconstruction
from .sim3d import Sim3d, Sim3dEuler, compose_sim3d, sim3d_from_euler, sim3d_to_euler, transform_camera_pose

logger = logging.getLogger(__name__)


def transform_reconstruction(sim3d: Sim3d, reconstruction: Reconstruction) -> Reconstruction:
    """
    Applies a similarity transform to every image pose and 3D point position.

    Returns a new Reconstruction; cameras, observations, tracks and all
    derived indices are shared with the input, which is left untouched.
    """
    new_images = {}
    for image_id, image in reconstruction.images.items():
        qvec, tvec = transform_camera_pose(sim3d, image.qvec, image.tvec)
        new_images[image_id] = image.with_pose(qvec, tvec)

    new_points3D = {}
    if reconstruction.points3D:
        point_ids = list(reconstruction.points3D.keys())
        xyzs = sim3d.transform_points(reconstruction.get_point_positions())
        for point_id, xyz in zip(point_ids, xyzs):
            new_points3D[point_id] = reconstruction.points3D[point_id].with_xyz(xyz)

    return reconstruction.replace(images=new_images, points3D=new_points3D)


class TransformState(enum.Enum):
    IDENTITY = "identity"
    PREVIEW_ACTIVE = "preview_active"
    COMMITTED = "committed"


class TransformPipeline:
    """
    Holds the preview transform of the scene and commits it into the data.

    The preview is kept in editable Euler form and is never applied to the
    stored reconstruction until `apply_to_data` is called, which returns the
    transformed graph and resets the preview to identity.

    States:
        IDENTITY: no preview.
        PREVIEW_ACTIVE: a non-identity preview is dialed in, nothing committed.
        COMMITTED: the last preview was baked into the data; the preview is
                   identity again.
    """

    def __init__(self, config: Optional[EditorConfig] = None):
        self.config = config or EditorConfig()
        self._transform = Sim3dEuler.identity()
        self._state = TransformState.IDENTITY

    @property
    def transform(self) -> Sim3dEuler:
        """The current preview transform."""
        return self._transform

    @property
    def state(self) -> TransformState:
        return self._state

    def has_active_transform(self) -> bool:
        return not self._transform.is_identity(self.config.identity_epsilon)

    def get_sim3d(self) -> Sim3d:
        """The preview in quaternion form."""
        return sim3d_from_euler(self._transform)

    def _set(self, transform: Sim3dEuler) -> None:
        self._transform = transform
        if self.has_active_transform():
            self._state = TransformState.PREVIEW_ACTIVE
        elif self._state is TransformState.PREVIEW_ACTIVE:
            self._state = TransformState.IDENTITY

    def set_transform(self, **partial: float) -> Sim3dEuler:
        """
        Merges the given Euler fields (scale, rotation_x, ..., translation_z)
        into the preview. Values are taken as entered; a zero scale is valid.

        Raises:
            TypeError: If a field name is unknown.
        """
        self._set(self._transform.merge(**partial))
        return self._transform

    def reset(self) -> None:
        """Sets the preview back to identity without touching any data."""
        self._transform = Sim3dEuler.identity()
        self._state = TransformState.IDENTITY

    def compose_with(self, sim3d: Sim3d) -> Sim3dEuler:
        """
        Composes an externally computed transform on top of the preview:
        the preview is applied first, then `sim3d`.
        """
        if self.has_active_transform():
            combined = compose_sim3d(sim3d, self.get_sim3d())
        else:
            combined = sim3d
        self._set(sim3d_to_euler(combined))
        return self._transform

    def apply_preset(self, preset: Union[TransformPreset, Sim3d], reconstruction: Reconstruction) -> Sim3dEuler:
        """
        Folds a preset into the preview.

        A named preset is computed against the reconstruction as it looks
        with the current preview applied, then composed as
        compose(preset, current). A ready `Sim3d` (e.g. from plane fitting)
        is composed the same way. IDENTITY resets the preview.
        """
        if preset is TransformPreset.IDENTITY:
            self.reset()
            return self._transform

        if isinstance(preset, Sim3d):
            preset_sim3d = preset
        else:
            previewed = reconstruction
            if self.has_active_transform():
                previewed = transform_reconstruction(self.get_sim3d(), reconstruction)
            preset_sim3d = compute_preset(preset, previewed, self.config)

        logger.debug("Applying preset %s: %r", getattr(preset, "value", "custom"), preset_sim3d)
        return self.compose_with(preset_sim3d)

    def apply_to_data(self, reconstruction: Reconstruction) -> Reconstruction:
        """
        Bakes the preview into the geometry and resets the preview.

        Returns:
            The transformed reconstruction, to be published through the store.
        """
        sim3d = self.get_sim3d()
        logger.debug("Committing transform %r to %d image(s) and %d point(s)",
                     sim3d, reconstruction.num_images, reconstruction.num_points3D)
        transformed = transform_reconstruction(sim3d, reconstruction)
        self._transform = Sim3dEuler.identity()
        self._state = TransformState.COMMITTED
        return transformed
