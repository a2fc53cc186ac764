from enum import Enum

# A special value marking a 2D observation without a triangulated 3D point
INVALID_POINT3D_ID = -1

class CameraModelType(Enum):
    """Enumeration of camera model types supported by COLMAP."""
    SIMPLE_PINHOLE = 0
    PINHOLE = 1
    SIMPLE_RADIAL = 2
    RADIAL = 3
    OPENCV = 4
    OPENCV_FISHEYE = 5
    FULL_OPENCV = 6
    FOV = 7
    SIMPLE_RADIAL_FISHEYE = 8
    RADIAL_FISHEYE = 9
    THIN_PRISM_FISHEYE = 10
    RAD_TAN_THIN_PRISM_FISHEYE = 11

class CameraModel:
    """Intrinsic parameterization: fixes the arity of a camera's params."""

    model_id: int
    model_name: str
    num_params: int

    def __init__(self, model_id: int, model_name: str, num_params: int):
        self.model_id = model_id
        self.model_name = model_name
        self.num_params = num_params

    def __repr__(self) -> str:
        return f"CameraModel(id={self.model_id}, name='{self.model_name}', num_params={self.num_params})"

CAMERA_MODELS = [
    CameraModel(CameraModelType.SIMPLE_PINHOLE.value, "SIMPLE_PINHOLE", 3),
    CameraModel(CameraModelType.PINHOLE.value, "PINHOLE", 4),
    CameraModel(CameraModelType.SIMPLE_RADIAL.value, "SIMPLE_RADIAL", 4),
    CameraModel(CameraModelType.RADIAL.value, "RADIAL", 5),
    CameraModel(CameraModelType.OPENCV.value, "OPENCV", 8),
    CameraModel(CameraModelType.OPENCV_FISHEYE.value, "OPENCV_FISHEYE", 8),
    CameraModel(CameraModelType.FULL_OPENCV.value, "FULL_OPENCV", 12),
    CameraModel(CameraModelType.FOV.value, "FOV", 5),
    CameraModel(CameraModelType.SIMPLE_RADIAL_FISHEYE.value, "SIMPLE_RADIAL_FISHEYE", 4),
    CameraModel(CameraModelType.RADIAL_FISHEYE.value, "RADIAL_FISHEYE", 5),
    CameraModel(CameraModelType.THIN_PRISM_FISHEYE.value, "THIN_PRISM_FISHEYE", 12),
    CameraModel(CameraModelType.RAD_TAN_THIN_PRISM_FISHEYE.value, "RAD_TAN_THIN_PRISM_FISHEYE", 16),
]

CAMERA_MODEL_IDS = {model.model_id: model for model in CAMERA_MODELS}
CAMERA_MODEL_NAMES = {model.model_name: model for model in CAMERA_MODELS}


class ConsistencyError(ValueError):
    """Raised when a reconstruction violates one of its referential invariants."""

    def __init__(self, errors):
        self.errors = list(errors)
        shown = "; ".join(self.errors[:5])
        more = f" (+{len(self.errors) - 5} more)" if len(self.errors) > 5 else ""
        super().__init__(f"Reconstruction is inconsistent: {shown}{more}")
