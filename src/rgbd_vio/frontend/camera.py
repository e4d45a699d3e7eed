"""Pinhole camera model used by the calibration gate and the estimator."""

from __future__ import annotations

from dataclasses import dataclass, field

import cv2
import numpy as np


@dataclass
class DistortionCoeffs:
    """Radial-tangential distortion coefficients."""

    k1: float = 0.0  # Radial distortion coefficient 1
    k2: float = 0.0  # Radial distortion coefficient 2
    p1: float = 0.0  # Tangential distortion coefficient 1
    p2: float = 0.0  # Tangential distortion coefficient 2

    def to_array(self) -> np.ndarray:
        """Return distortion coefficients as (4,) array for OpenCV."""
        return np.array([self.k1, self.k2, self.p1, self.p2], dtype=np.float64)


@dataclass
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole model) at a given resolution."""

    fx: float  # Focal length x (pixels)
    fy: float  # Focal length y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)
    width: int
    height: int
    distortion: DistortionCoeffs = field(default_factory=DistortionCoeffs)

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def scaled(self, width: int, height: int) -> CameraIntrinsics:
        """Return intrinsics rescaled to another output resolution.

        Args:
            width: Target image width in pixels
            height: Target image height in pixels

        Raises:
            ValueError: If either dimension is not positive
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid resolution {width}x{height}")

        sx = width / self.width
        sy = height / self.height
        return CameraIntrinsics(
            fx=self.fx * sx,
            fy=self.fy * sy,
            cx=self.cx * sx,
            cy=self.cy * sy,
            width=width,
            height=height,
            distortion=self.distortion,
        )

    def with_alpha(self, alpha: float) -> CameraIntrinsics:
        """Return the rectified camera for a free-scaling parameter.

        alpha=0 keeps only valid pixels, alpha=1 keeps all source pixels.
        The returned intrinsics have no distortion.
        """
        size = (self.width, self.height)
        K_new, _roi = cv2.getOptimalNewCameraMatrix(
            self.to_matrix(), self.distortion.to_array(), size, alpha, size
        )
        return CameraIntrinsics(
            fx=float(K_new[0, 0]),
            fy=float(K_new[1, 1]),
            cx=float(K_new[0, 2]),
            cy=float(K_new[1, 2]),
            width=self.width,
            height=self.height,
        )

    def backproject(self, points_2d: np.ndarray, depths: np.ndarray) -> np.ndarray:
        """Lift Nx2 pixel coordinates with metric depths to Nx3 camera points."""
        points_2d = np.asarray(points_2d, dtype=np.float64).reshape(-1, 2)
        z = np.asarray(depths, dtype=np.float64).reshape(-1)
        x = (points_2d[:, 0] - self.cx) * z / self.fx
        y = (points_2d[:, 1] - self.cy) * z / self.fy
        return np.column_stack([x, y, z])
