import logging
import numpy as np
from typing import Union, List
from numpy.typing import NDArray

from .types import CAMERA_MODEL_NAMES, CameraModelType

logger = logging.getLogger(__name__)


class Camera:
    """
    Represents a camera of a reconstruction, holding intrinsic parameters.
    NOTE: Cameras are never edited. Deleting images prunes whole cameras and
    transforming the scene leaves intrinsics untouched.
    """

    id: int
    model: str
    width: int
    height: int
    params: NDArray[np.float64] # Shape (N,) where N is fixed by the model

    def __init__(self, id: int, model: str, width: int, height: int, params: Union[NDArray[np.float64], List[float]]):
        """
        Initializes a Camera instance.

        Args:
            id: Unique camera identifier.
            model: Camera model name (must be a valid COLMAP model name).
            width: Image width in pixels.
            height: Image height in pixels.
            params: Numpy array or list of camera intrinsic parameters.

        Raises:
            ValueError: If the model name is unknown, the size is not positive
                        or the number of parameters does not match the model.
        """
        if model not in CAMERA_MODEL_NAMES:
            raise ValueError(f"Unknown camera model name: {model}")
        if width <= 0 or height <= 0:
            raise ValueError("Camera width and height must be positive integers.")

        expected_params = CAMERA_MODEL_NAMES[model].num_params
        params_array = np.asarray(params, dtype=np.float64).ravel()

        if len(params_array) < expected_params:
            raise ValueError(
                f"Camera model '{model}' expects {expected_params} parameters, "
                f"but received array of length {len(params_array)}."
            )
        if len(params_array) > expected_params and np.any(params_array[expected_params:] != 0.0):
            # Zero-valued extras are treated as padding
            logger.warning("Camera model '%s' expects %d parameters, but %d were provided. Ignoring extra values.",
                           model, expected_params, len(params_array))

        self.id = int(id)
        self.model = model
        self.width = int(width)
        self.height = int(height)
        self.params = params_array[:expected_params].copy()
        self.params.setflags(write=False)

    def get_model_id(self) -> int:
        """Returns the numeric ID of the camera model."""
        return CAMERA_MODEL_NAMES[self.model].model_id

    def get_num_params(self) -> int:
        """Returns the number of parameters for this camera model."""
        return CAMERA_MODEL_NAMES[self.model].num_params

    def has_distortion(self) -> bool:
        """Checks if the camera model includes distortion parameters."""
        return self.get_model_id() not in (CameraModelType.SIMPLE_PINHOLE.value, CameraModelType.PINHOLE.value)

    def __repr__(self) -> str:
        params_str = np.array2string(self.params, precision=3, separator=', ', suppress_small=True)
        return (f"Camera(id={self.id}, model='{self.model}', "
                f"width={self.width}, height={self.height}, "
                f"params={params_str})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Camera):
            return NotImplemented
        return self.id == other.id and \
               self.model == other.model and \
               self.width == other.width and \
               self.height == other.height and \
               np.allclose(self.params, other.params)

    def __hash__(self) -> int:
        return hash((self.id, self.model, self.width, self.height, self.params.tobytes()))
