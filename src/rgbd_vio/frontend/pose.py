"""SE(3) pose representation for rigid body transformations."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np
from scipy.spatial.transform import Rotation


@dataclass
class SE3:
    """Rigid body transformation (rotation + translation) in SE(3).

    Used both for the odometry output T_world_camera and for fixed sensor
    extrinsics such as the IMU local transform:

        p_target = R @ p_source + t

    Attributes:
        rotation: 3x3 orthonormal rotation matrix (det = +1)
        translation: 3D translation vector
    """

    rotation: np.ndarray  # 3x3 rotation matrix
    translation: np.ndarray  # (3,) translation vector

    def __post_init__(self) -> None:
        """Validate and normalize inputs."""
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).flatten()

        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(
                f"Translation must be (3,), got {self.translation.shape}"
            )

    @classmethod
    def identity(cls) -> SE3:
        """Create identity transformation (no rotation, no translation)."""
        return cls(rotation=np.eye(3), translation=np.zeros(3))

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Create SE3 from a 4x4 homogeneous or 3x4 [R|t] matrix.

        Args:
            T: 4x4 matrix [[R, t], [0, 1]] or 3x4 matrix [R | t]

        Returns:
            SE3 transformation
        """
        T = np.asarray(T, dtype=np.float64)
        if T.shape not in ((4, 4), (3, 4)):
            raise ValueError(f"Transform must be 4x4 or 3x4, got {T.shape}")

        return cls(rotation=T[:3, :3], translation=T[:3, 3])

    @classmethod
    def from_rows(cls, *values: float) -> SE3:
        """Create SE3 from twelve row-major values of a 3x4 [R|t] matrix.

        Example:
            SE3.from_rows(0, -1, 0, 0.0525,
                          1,  0, 0, 0.013662,
                          0,  0, 1, 0)
        """
        if len(values) != 12:
            raise ValueError(f"Expected 12 values for a 3x4 transform, got {len(values)}")
        return cls.from_matrix(np.array(values, dtype=np.float64).reshape(3, 4))

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> SE3:
        """Create SE3 from OpenCV Rodrigues vector and translation.

        cv2.solvePnP returns T_camera_world; invert the result to get the
        camera pose in world coordinates.
        """
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).flatten())
        return cls(rotation=R, translation=np.asarray(tvec).flatten())

    @classmethod
    def from_quaternion(
        cls,
        qw: float,
        qx: float,
        qy: float,
        qz: float,
        translation: np.ndarray | None = None,
    ) -> SE3:
        """Create SE3 from a Hamilton quaternion (w, x, y, z) and translation.

        The quaternion does not need to be normalized.
        """
        norm = np.sqrt(qw * qw + qx * qx + qy * qy + qz * qz)
        if norm < 1e-12:
            raise ValueError("Quaternion has zero norm")

        # scipy uses scalar-last ordering
        R = Rotation.from_quat([qx / norm, qy / norm, qz / norm, qw / norm]).as_matrix()
        if translation is None:
            translation = np.zeros(3)
        return cls(rotation=R, translation=np.asarray(translation).flatten())

    def to_matrix(self) -> np.ndarray:
        """Convert to 4x4 homogeneous transformation matrix."""
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def to_rvec_tvec(self) -> tuple[np.ndarray, np.ndarray]:
        """Convert to OpenCV Rodrigues vector and translation."""
        rvec, _ = cv2.Rodrigues(self.rotation)
        return rvec.flatten(), self.translation.copy()

    def to_euler(self) -> tuple[float, float, float]:
        """Return (roll, pitch, yaw) in radians.

        Angles are extrinsic rotations about x, y and z, the same convention
        used to report translation and Euler angles of an odometry pose.
        """
        roll, pitch, yaw = Rotation.from_matrix(self.rotation).as_euler("xyz")
        return float(roll), float(pitch), float(yaw)

    def inverse(self) -> SE3:
        """Compute the inverse transformation T^{-1} = [R^T, -R^T @ t]."""
        R_inv = self.rotation.T
        return SE3(rotation=R_inv, translation=-R_inv @ self.translation)

    def compose(self, other: SE3) -> SE3:
        """Compose with another transformation: self @ other.

        Example:
            T_world_prev.compose(T_prev_curr) gives T_world_curr
        """
        R = self.rotation @ other.rotation
        t = self.rotation @ other.translation + self.translation
        return SE3(rotation=R, translation=t)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Apply the transform to an Nx3 array of points."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points.reshape(1, 3)

        if points.shape[1] != 3:
            raise ValueError(f"Points must be Nx3, got {points.shape}")

        return (self.rotation @ points.T).T + self.translation

    @property
    def position(self) -> np.ndarray:
        """Return the translation component (origin of the frame)."""
        return self.translation.copy()

    def __repr__(self) -> str:
        """Return string representation."""
        pos = self.position
        return f"SE3(position=[{pos[0]:.3f}, {pos[1]:.3f}, {pos[2]:.3f}])"

    def __matmul__(self, other: SE3) -> SE3:
        """Allow T_result = T1 @ T2."""
        return self.compose(other)
