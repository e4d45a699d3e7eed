"""Frontend components: pose type, camera model and the RGB-D estimator."""

from .pose import SE3
from .camera import CameraIntrinsics, DistortionCoeffs
from .rgbd_odometry import RGBDOdometry, RGBDOdometryConfig, TrackingStatus

__all__ = [
    # Pose
    "SE3",
    # Camera
    "CameraIntrinsics",
    "DistortionCoeffs",
    # Estimator
    "RGBDOdometry",
    "RGBDOdometryConfig",
    "TrackingStatus",
]
