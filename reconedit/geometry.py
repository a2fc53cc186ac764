import warnings
import numpy as np
from typing import Sequence, Tuple, Union
from scipy.spatial.transform import Rotation

# Quaternions follow the COLMAP convention: (w, x, y, z)
ArrayLike3 = Union[np.ndarray, Sequence[float]]

IDENTITY_QVEC = np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)
IDENTITY_QVEC.setflags(write=False)


def qvec2rotmat(qvec: np.ndarray) -> np.ndarray:
    """Convert quaternion to rotation matrix.

    Args:
        qvec: Quaternion as (w, x, y, z)

    Returns:
        3x3 rotation matrix
    """
    qvec = np.asarray(qvec, dtype=np.float64)
    if qvec.shape != (4,):
        raise ValueError("qvec must have shape (4,)")

    w, x, y, z = qvec
    R = np.zeros((3, 3), dtype=np.float64)

    R[0, 0] = 1 - 2 * y**2 - 2 * z**2
    R[0, 1] = 2 * x * y - 2 * w * z
    R[0, 2] = 2 * x * z + 2 * w * y

    R[1, 0] = 2 * x * y + 2 * w * z
    R[1, 1] = 1 - 2 * x**2 - 2 * z**2
    R[1, 2] = 2 * y * z - 2 * w * x

    R[2, 0] = 2 * x * z - 2 * w * y
    R[2, 1] = 2 * y * z + 2 * w * x
    R[2, 2] = 1 - 2 * x**2 - 2 * y**2

    return R


def rotmat2qvec(R: np.ndarray) -> np.ndarray:
    """Convert rotation matrix to quaternion.

    Args:
        R: 3x3 rotation matrix

    Returns:
        Quaternion as (w, x, y, z) with w >= 0
    """
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        raise ValueError("R must have shape (3, 3)")

    trace = np.trace(R)
    q = np.zeros(4, dtype=np.float64)

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        q[0] = 0.25 / s
        q[1] = (R[2, 1] - R[1, 2]) * s
        q[2] = (R[0, 2] - R[2, 0]) * s
        q[3] = (R[1, 0] - R[0, 1]) * s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        q[0] = (R[2, 1] - R[1, 2]) / s
        q[1] = 0.25 * s
        q[2] = (R[0, 1] + R[1, 0]) / s
        q[3] = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        q[0] = (R[0, 2] - R[2, 0]) / s
        q[1] = (R[0, 1] + R[1, 0]) / s
        q[2] = 0.25 * s
        q[3] = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        q[0] = (R[1, 0] - R[0, 1]) / s
        q[1] = (R[0, 2] + R[2, 0]) / s
        q[2] = (R[1, 2] + R[2, 1]) / s
        q[3] = 0.25 * s

    return canonical_quaternion(q)


def normalize_quaternion(qvec: ArrayLike3) -> np.ndarray:
    """Returns the unit quaternion along `qvec` (identity for a zero quaternion)."""
    q = np.asarray(qvec, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm == 0.0:
        return IDENTITY_QVEC.copy()
    return q / norm


def canonical_quaternion(qvec: ArrayLike3) -> np.ndarray:
    """Flips the sign of `qvec` so that w >= 0. q and -q are the same rotation."""
    q = np.asarray(qvec, dtype=np.float64)
    return -q if q[0] < 0 else q.copy()


def quaternion_multiply(q1: ArrayLike3, q2: ArrayLike3) -> np.ndarray:
    """Hamilton product q1 * q2 (rotation q2 applied first, then q1)."""
    w1, x1, y1, z1 = np.asarray(q1, dtype=np.float64)
    w2, x2, y2, z2 = np.asarray(q2, dtype=np.float64)
    return np.array([
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
    ], dtype=np.float64)


def quaternion_conjugate(qvec: ArrayLike3) -> np.ndarray:
    """Inverse rotation of a unit quaternion."""
    w, x, y, z = np.asarray(qvec, dtype=np.float64)
    return np.array([w, -x, -y, -z], dtype=np.float64)


def rotate_vector(qvec: ArrayLike3, vector: ArrayLike3) -> np.ndarray:
    """Rotates a single 3-vector by a unit quaternion."""
    v = np.asarray(vector, dtype=np.float64)
    if v.shape != (3,):
        raise ValueError("vector must have shape (3,)")
    return qvec2rotmat(np.asarray(qvec, dtype=np.float64)) @ v


def rotate_vectors(qvec: ArrayLike3, vectors: np.ndarray) -> np.ndarray:
    """Rotates an (N, 3) array of vectors by a unit quaternion."""
    V = np.asarray(vectors, dtype=np.float64).reshape(-1, 3)
    return V @ qvec2rotmat(np.asarray(qvec, dtype=np.float64)).T


def quaternion_from_axis_angle(axis: ArrayLike3, angle: float) -> np.ndarray:
    """Quaternion for a rotation of `angle` radians about `axis`."""
    a = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(a)
    if norm == 0.0:
        return IDENTITY_QVEC.copy()
    a = a / norm
    half = 0.5 * angle
    return np.array([np.cos(half), *(a * np.sin(half))], dtype=np.float64)


def quaternion_from_unit_vectors(v_from: ArrayLike3, v_to: ArrayLike3) -> np.ndarray:
    """
    Shortest-arc rotation taking unit vector `v_from` onto unit vector `v_to`.
    Opposite vectors yield a half turn about an arbitrary perpendicular axis.
    """
    a = np.asarray(v_from, dtype=np.float64)
    b = np.asarray(v_to, dtype=np.float64)
    r = float(np.dot(a, b)) + 1.0

    if r < 1e-8:
        if abs(a[0]) > abs(a[2]):
            q = np.array([0.0, -a[1], a[0], 0.0])
        else:
            q = np.array([0.0, 0.0, -a[2], a[1]])
    else:
        c = np.cross(a, b)
        q = np.array([r, c[0], c[1], c[2]])

    return normalize_quaternion(q)


def euler_to_qvec(rotation_x: float, rotation_y: float, rotation_z: float) -> np.ndarray:
    """
    Converts intrinsic XYZ Euler angles (radians) to a (w, x, y, z) quaternion.
    All-zero angles give the identity quaternion exactly.
    """
    if rotation_x == 0.0 and rotation_y == 0.0 and rotation_z == 0.0:
        return IDENTITY_QVEC.copy()
    x, y, z, w = Rotation.from_euler("XYZ", [rotation_x, rotation_y, rotation_z]).as_quat()
    return canonical_quaternion([w, x, y, z])


def qvec_to_euler(qvec: ArrayLike3) -> Tuple[float, float, float]:
    """Converts a (w, x, y, z) quaternion to intrinsic XYZ Euler angles in radians."""
    q = canonical_quaternion(normalize_quaternion(qvec))
    if np.array_equal(q, IDENTITY_QVEC):
        return 0.0, 0.0, 0.0
    w, x, y, z = q
    with warnings.catch_warnings():
        # Still a valid decomposition at rotation_y = +-90 degrees
        warnings.filterwarnings("ignore", message="Gimbal lock detected", category=UserWarning)
        angles = Rotation.from_quat([x, y, z, w]).as_euler("XYZ")
    return float(angles[0]), float(angles[1]), float(angles[2])


def median(values: Sequence[float]) -> float:
    return float(np.median(np.asarray(values, dtype=np.float64)))


def percentile(values: Sequence[float], fraction: float) -> float:
    """
    Linearly interpolated percentile with `fraction` in [0, 1], i.e. the value
    at position fraction * (n - 1) of the sorted data.
    """
    return float(np.percentile(np.asarray(values, dtype=np.float64), fraction * 100.0))
