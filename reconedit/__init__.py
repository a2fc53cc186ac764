__version__ = "0.1.0"

__all__ = [
    # Core classes
    "Camera",
    "Image",
    "Point3D",
    "Reconstruction",
    "ImageStats",
    "GlobalStats",
    # Types & Constants
    "CameraModel",
    "CameraModelType",
    "CAMERA_MODELS",
    "CAMERA_MODEL_IDS",
    "CAMERA_MODEL_NAMES",
    "INVALID_POINT3D_ID",
    "ConsistencyError",
    # Editing
    "filter_by_image_ids",
    "Sim3d",
    "Sim3dEuler",
    "compose_sim3d",
    "sim3d_from_euler",
    "sim3d_to_euler",
    "transform_reconstruction",
    "TransformPipeline",
    "TransformState",
    "TransformPreset",
    "Plane",
    "ReconstructionStore",
    "KEEP_MIRROR",
    "ReconstructionMirror",
    "MirrorCoordinator",
    "DeletionQueue",
    "ReconstructionEditor",
    "EditorConfig",
    # Utility functions
    "compute_image_stats",
    "qvec2rotmat",
    "rotmat2qvec",
]

from .camera import Camera
from .image import Image
from .point3d import Point3D
from .reconstruction import Reconstruction
from .stats import ImageStats, GlobalStats, compute_image_stats
from .types import (
    CameraModel,
    CameraModelType,
    CAMERA_MODELS,
    CAMERA_MODEL_IDS,
    CAMERA_MODEL_NAMES,
    INVALID_POINT3D_ID,
    ConsistencyError,
)
from .config import EditorConfig
from .filtering import filter_by_image_ids
from .geometry import qvec2rotmat, rotmat2qvec
from .sim3d import Sim3d, Sim3dEuler, compose_sim3d, sim3d_from_euler, sim3d_to_euler
from .presets import TransformPreset, Plane
from .transform import TransformPipeline, TransformState, transform_reconstruction
from .store import ReconstructionStore, KEEP_MIRROR
from .mirror import ReconstructionMirror, MirrorCoordinator
from .session import DeletionQueue, ReconstructionEditor

# Library code only emits records; handlers are up to the host application
import logging
logging.getLogger(__name__).addHandler(logging.NullHandler())
