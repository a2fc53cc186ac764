"""
Similarity transforms (rotation + uniform scale + translation).

A `Sim3d` maps a point as x_new = scale * (R * x_old) + translation and is
the form all composition math is done in. `Sim3dEuler` is the editable form
with one angle per axis, meant for sliders and text fields; conversions
between both forms go through `sim3d_from_euler` / `sim3d_to_euler`.
"""
import dataclasses
import numpy as np
from typing import Sequence, Tuple, Union
from numpy.typing import NDArray

from .geometry import (
    IDENTITY_QVEC,
    canonical_quaternion,
    euler_to_qvec,
    normalize_quaternion,
    qvec2rotmat,
    quaternion_conjugate,
    quaternion_multiply,
    qvec_to_euler,
    rotate_vector,
    rotate_vectors,
)

Vector = Union[NDArray[np.float64], Sequence[float]]


class Sim3d:
    """
    Quaternion form of a similarity transform.

    Attributes:
        scale (float): Uniform scale. Zero is accepted but not invertible.
        qvec (np.ndarray): Unit rotation quaternion (w, x, y, z).
        tvec (np.ndarray): Translation (x, y, z).
    """

    scale: float
    qvec: NDArray[np.float64]
    tvec: NDArray[np.float64]

    def __init__(self, scale: float = 1.0, qvec: Vector = IDENTITY_QVEC, tvec: Vector = (0.0, 0.0, 0.0)):
        qvec_arr = np.array(qvec, dtype=np.float64)
        tvec_arr = np.array(tvec, dtype=np.float64)
        if qvec_arr.shape != (4,) or tvec_arr.shape != (3,):
            raise ValueError("qvec must have shape (4,) and tvec shape (3,)")

        self.scale = float(scale)
        self.qvec = normalize_quaternion(qvec_arr)
        self.tvec = tvec_arr
        self.qvec.setflags(write=False)
        self.tvec.setflags(write=False)

    @classmethod
    def identity(cls) -> 'Sim3d':
        return cls()

    def get_rotation_matrix(self) -> np.ndarray:
        return qvec2rotmat(self.qvec)

    def to_matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix [s*R | t]."""
        matrix = np.eye(4, dtype=np.float64)
        matrix[:3, :3] = self.scale * self.get_rotation_matrix()
        matrix[:3, 3] = self.tvec
        return matrix

    def transform_point(self, xyz: Vector) -> np.ndarray:
        """x_new = scale * (R * x) + t"""
        return self.scale * rotate_vector(self.qvec, xyz) + self.tvec

    def transform_points(self, xyzs: np.ndarray) -> np.ndarray:
        """Vectorised `transform_point` over an (N, 3) array."""
        return self.scale * rotate_vectors(self.qvec, xyzs) + self.tvec

    def compose(self, other: 'Sim3d') -> 'Sim3d':
        """
        Returns self * other: the transform applying `other` first, then self.

        scale = s_self * s_other
        rotation = q_self * q_other
        translation = s_self * R_self * t_other + t_self
        """
        return Sim3d(
            scale=self.scale * other.scale,
            qvec=quaternion_multiply(self.qvec, other.qvec),
            tvec=self.scale * rotate_vector(self.qvec, other.tvec) + self.tvec,
        )

    def __mul__(self, other: 'Sim3d') -> 'Sim3d':
        if not isinstance(other, Sim3d):
            return NotImplemented
        return self.compose(other)

    def inverse(self) -> 'Sim3d':
        """
        Returns the transform undoing this one.

        Raises:
            ValueError: If the scale is zero.
        """
        if self.scale == 0.0:
            raise ValueError("Cannot invert a Sim3d with zero scale.")
        scale_inv = 1.0 / self.scale
        qvec_inv = quaternion_conjugate(self.qvec)
        return Sim3d(
            scale=scale_inv,
            qvec=qvec_inv,
            tvec=-scale_inv * rotate_vector(qvec_inv, self.tvec),
        )

    def is_identity(self, eps: float = 1e-9) -> bool:
        return self.allclose(Sim3d.identity(), atol=eps)

    def allclose(self, other: 'Sim3d', atol: float = 1e-9) -> bool:
        """Field-wise comparison; q and -q are the same rotation."""
        q_self = canonical_quaternion(self.qvec)
        q_other = canonical_quaternion(other.qvec)
        return bool(abs(self.scale - other.scale) <= atol and
                    np.allclose(q_self, q_other, rtol=0.0, atol=atol) and
                    np.allclose(self.tvec, other.tvec, rtol=0.0, atol=atol))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sim3d):
            return NotImplemented
        return self.allclose(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        q_str = np.array2string(self.qvec, precision=4, separator=', ', suppress_small=True)
        t_str = np.array2string(self.tvec, precision=4, separator=', ', suppress_small=True)
        return f"Sim3d(scale={self.scale:.6g}, qvec={q_str}, tvec={t_str})"


def compose_sim3d(c_from_b: Sim3d, b_from_a: Sim3d) -> Sim3d:
    """c_from_a = c_from_b * b_from_a (apply `b_from_a` first)."""
    return c_from_b.compose(b_from_a)


@dataclasses.dataclass(frozen=True)
class Sim3dEuler:
    """Editable form of a similarity transform. Angles are intrinsic XYZ, in radians."""

    scale: float = 1.0
    rotation_x: float = 0.0
    rotation_y: float = 0.0
    rotation_z: float = 0.0
    translation_x: float = 0.0
    translation_y: float = 0.0
    translation_z: float = 0.0

    @classmethod
    def identity(cls) -> 'Sim3dEuler':
        return cls()

    def merge(self, **partial: float) -> 'Sim3dEuler':
        """
        Returns a copy with the given fields overwritten.

        Raises:
            TypeError: If a field name is unknown.
        """
        return dataclasses.replace(self, **{name: float(value) for name, value in partial.items()})

    def is_identity(self, eps: float = 1e-9) -> bool:
        return (abs(self.scale - 1.0) < eps and
                abs(self.rotation_x) < eps and
                abs(self.rotation_y) < eps and
                abs(self.rotation_z) < eps and
                abs(self.translation_x) < eps and
                abs(self.translation_y) < eps and
                abs(self.translation_z) < eps)

    @property
    def rotation(self) -> Tuple[float, float, float]:
        return self.rotation_x, self.rotation_y, self.rotation_z

    @property
    def translation(self) -> Tuple[float, float, float]:
        return self.translation_x, self.translation_y, self.translation_z


def sim3d_from_euler(euler: Sim3dEuler) -> Sim3d:
    return Sim3d(
        scale=euler.scale,
        qvec=euler_to_qvec(*euler.rotation),
        tvec=euler.translation,
    )


def sim3d_to_euler(sim3d: Sim3d) -> Sim3dEuler:
    rotation_x, rotation_y, rotation_z = qvec_to_euler(sim3d.qvec)
    tx, ty, tz = (float(v) for v in sim3d.tvec)
    return Sim3dEuler(
        scale=sim3d.scale,
        rotation_x=rotation_x,
        rotation_y=rotation_y,
        rotation_z=rotation_z,
        translation_x=tx,
        translation_y=ty,
        translation_z=tz,
    )


def transform_camera_pose(new_from_old: Sim3d,
                          qvec: Vector,
                          tvec: Vector) -> Tuple[np.ndarray, np.ndarray]:
    """
    Re-expresses a cam_from_world pose in the transformed world.

    cam_from_new = cam_from_old * inverse(new_from_old), with the resulting
    translation multiplied by the scale so that the camera stays metric:

        q' = q * conj(R)
        t' = s * t - R_cam * R^T * t_sim

    The camera centre moves as C' = s * R * C + t_sim and its world
    orientation is rotated by R. Stays finite for a zero scale.
    """
    q_cam = np.asarray(qvec, dtype=np.float64)
    t_cam = np.asarray(tvec, dtype=np.float64)

    q_new = normalize_quaternion(quaternion_multiply(q_cam, quaternion_conjugate(new_from_old.qvec)))
    t_new = new_from_old.scale * t_cam - qvec2rotmat(q_new) @ new_from_old.tvec
    return q_new, t_new
