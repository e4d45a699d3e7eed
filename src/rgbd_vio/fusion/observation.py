"""Value objects produced and consumed within one fusion cycle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from ..frontend.camera import CameraIntrinsics
    from ..frontend.pose import SE3
    from ..io.messages import TrackedFeatures
    from .inertial_aligner import AlignedInertial

KEYPOINT_SIZE = 3.0


def keypoints_from_features(features: TrackedFeatures) -> tuple[cv2.KeyPoint, ...]:
    """Convert device-tracked features to OpenCV keypoints."""
    return tuple(
        cv2.KeyPoint(float(f.x), float(f.y), KEYPOINT_SIZE) for f in features.features
    )


@dataclass
class Observation:
    """Synchronized multi-modal input for one estimator call.

    Attributes:
        image: Rectified image
        depth: Depth map aligned to image
        intrinsics: Camera model of the image at its resolution
        timestamp: Capture timestamp in seconds
        sequence_num: Frame sequence number
        keypoints: Device-tracked keypoints, None when no features arrived
        inertial: Inertial triple aligned to timestamp, None when vision-only
        imu_to_camera: IMU local transform of the board
    """

    image: np.ndarray
    depth: np.ndarray
    intrinsics: CameraIntrinsics
    timestamp: float
    sequence_num: int
    keypoints: tuple[cv2.KeyPoint, ...] | None = None
    inertial: AlignedInertial | None = None
    imu_to_camera: SE3 | None = None

    @property
    def has_inertial(self) -> bool:
        """Return True if the observation carries inertial data."""
        return self.inertial is not None

    @property
    def keypoint_array(self) -> np.ndarray:
        """Return Nx2 array of keypoint coordinates (empty if none)."""
        if not self.keypoints:
            return np.empty((0, 2), dtype=np.float32)
        return np.array([kp.pt for kp in self.keypoints], dtype=np.float32)


@dataclass
class StampedPose:
    """Pose estimate published for one fused frame.

    Attributes:
        pose: Camera pose T_world_camera
        timestamp: Capture timestamp of the source frame in seconds
        sequence_num: Sequence number of the source frame
    """

    pose: SE3
    timestamp: float
    sequence_num: int

    def translation_and_euler(self) -> tuple[float, float, float, float, float, float]:
        """Return (x, y, z, roll, pitch, yaw)."""
        x, y, z = (float(v) for v in self.pose.translation)
        roll, pitch, yaw = self.pose.to_euler()
        return x, y, z, roll, pitch, yaw
