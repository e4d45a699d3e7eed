"""Frame-to-frame RGB-D odometry.

Features of the previous frame are lifted to 3D with its depth map, tracked
into the current image with pyramidal Lucas-Kanade optical flow, and the
relative motion is solved with PnP + RANSAC. When the observation carries
inertial data, the gyroscope seeds the PnP rotation and the first frame's
orientation is aligned with the IMU orientation.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import TYPE_CHECKING, Any

import cv2
import numpy as np

from .pose import SE3

if TYPE_CHECKING:
    from ..fusion.observation import Observation


class TrackingStatus(Enum):
    """Status of visual tracking."""

    INITIALIZING = "INITIALIZING"
    OK = "OK"
    LOST = "LOST"


@dataclass
class RGBDOdometryConfig:
    """Named parameters of the RGB-D odometry."""

    max_features: int = 500  # Corners detected when no keypoints are given
    quality_level: float = 0.01  # goodFeaturesToTrack quality level
    min_feature_distance: float = 8.0  # Min pixel distance between corners
    lk_window: int = 21  # Optical flow window size (pixels)
    lk_levels: int = 3  # Optical flow pyramid levels
    min_inliers: int = 15  # Min PnP inliers for a valid motion
    reprojection_threshold: float = 2.0  # RANSAC inlier threshold (pixels)
    ransac_confidence: float = 0.99
    max_iterations: int = 100  # RANSAC iterations
    depth_scale: float = 0.001  # Integer depth units to meters (mm)
    min_depth: float = 0.1  # Meters
    max_depth: float = 10.0  # Meters
    align_with_gravity: bool = True  # Seed first orientation from the IMU
    use_gyro_prior: bool = True  # Seed PnP rotation from the gyroscope

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> RGBDOdometryConfig:
        """Build a config from a map of named parameters.

        Values may be given as strings and are converted to the type of the
        field's default.

        Raises:
            ValueError: On unknown names or unconvertible values
        """
        defaults = cls()
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for name, raw in params.items():
            if name not in known:
                raise ValueError(
                    f"Unknown estimator parameter '{name}'. Known: {sorted(known)}"
                )
            default = getattr(defaults, name)
            try:
                values[name] = _convert(raw, type(default))
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for '{name}': {raw!r}") from e
        return cls(**values)


def _convert(raw: Any, kind: type) -> Any:
    if kind is bool:
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        return bool(raw)
    return kind(raw)


@dataclass
class _Reference:
    """Previous frame data needed to track into the next one."""

    gray: np.ndarray
    points_2d: np.ndarray  # (N, 2) float32
    points_3d: np.ndarray  # (N, 3) in the reference camera frame
    timestamp: float


class RGBDOdometry:
    """RGB-D visual(-inertial) odometry estimator.

    Always returns a pose: when tracking fails the last pose is kept, the
    status becomes LOST and the current frame becomes the new reference.
    """

    def __init__(self, config: RGBDOdometryConfig | None = None) -> None:
        """Initialize the estimator.

        Args:
            config: Parameters (defaults if omitted)
        """
        self._config = config if config is not None else RGBDOdometryConfig()
        self._pose = SE3.identity()
        self._reference: _Reference | None = None
        self._status = TrackingStatus.INITIALIZING
        self._trajectory: list[SE3] = []
        self._num_inliers = 0
        self._last_process_ms = 0.0
        self._closed = False

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> RGBDOdometry:
        """Create an estimator from a map of named parameters."""
        return cls(RGBDOdometryConfig.from_params(params))

    def process(self, observation: Observation) -> SE3:
        """Estimate the camera pose T_world_camera for an observation."""
        if self._closed:
            raise RuntimeError("RGBDOdometry has been closed")
        if observation.intrinsics is None:
            raise ValueError("Observation has no camera intrinsics")

        start_time = time.perf_counter()
        gray = _to_gray(observation.image)
        depth = self._depth_to_meters(observation.depth)

        if self._reference is None:
            self._initialize_orientation(observation)
            self._status = TrackingStatus.INITIALIZING
        else:
            motion = self._estimate_motion(gray, observation)
            if motion is None:
                self._status = TrackingStatus.LOST
            else:
                # T_world_curr = T_world_prev @ T_prev_curr
                self._pose = self._pose @ motion.inverse()
                self._status = TrackingStatus.OK

        self._reference = self._make_reference(gray, depth, observation)
        self._trajectory.append(self._pose)
        self._last_process_ms = (time.perf_counter() - start_time) * 1000
        return self._pose

    def _initialize_orientation(self, observation: Observation) -> None:
        """Align the first camera orientation with the IMU orientation."""
        if not self._config.align_with_gravity:
            return
        if observation.inertial is None or observation.imu_to_camera is None:
            return

        # imu_to_camera maps IMU axes into the camera frame
        R_world_imu = observation.inertial.orientation_matrix()
        R_cam_imu = observation.imu_to_camera.rotation
        self._pose = SE3(rotation=R_world_imu @ R_cam_imu.T, translation=np.zeros(3))

    def _estimate_motion(self, gray: np.ndarray, observation: Observation) -> SE3 | None:
        """Return T_curr_prev, or None if tracking failed."""
        ref = self._reference
        cfg = self._config
        self._num_inliers = 0
        if len(ref.points_2d) < max(4, cfg.min_inliers):
            return None

        next_pts, status, _err = cv2.calcOpticalFlowPyrLK(
            ref.gray,
            gray,
            ref.points_2d.reshape(-1, 1, 2),
            None,
            winSize=(cfg.lk_window, cfg.lk_window),
            maxLevel=cfg.lk_levels,
        )
        if next_pts is None or status is None:
            return None

        next_pts = next_pts.reshape(-1, 2)
        h, w = gray.shape[:2]
        valid = (
            (status.reshape(-1) == 1)
            & (next_pts[:, 0] >= 0)
            & (next_pts[:, 0] < w)
            & (next_pts[:, 1] >= 0)
            & (next_pts[:, 1] < h)
        )
        if int(np.sum(valid)) < max(4, cfg.min_inliers):
            return None

        points_3d = ref.points_3d[valid].reshape(-1, 1, 3).astype(np.float64)
        points_2d = next_pts[valid].reshape(-1, 1, 2).astype(np.float64)
        K = observation.intrinsics.to_matrix()

        rvec_init = np.zeros((3, 1))
        tvec_init = np.zeros((3, 1))
        use_guess = False
        prior = self._gyro_prior(observation, ref.timestamp)
        if prior is not None:
            rvec_init = prior.reshape(3, 1)
            use_guess = True

        try:
            success, rvec, tvec, inliers = cv2.solvePnPRansac(
                objectPoints=points_3d,
                imagePoints=points_2d,
                cameraMatrix=K,
                distCoeffs=None,
                rvec=rvec_init,
                tvec=tvec_init,
                useExtrinsicGuess=use_guess,
                iterationsCount=cfg.max_iterations,
                reprojectionError=cfg.reprojection_threshold,
                confidence=cfg.ransac_confidence,
                flags=cv2.SOLVEPNP_ITERATIVE,
            )
        except cv2.error:
            return None

        if not success or inliers is None or len(inliers) < cfg.min_inliers:
            return None
        if not np.isfinite(rvec).all() or not np.isfinite(tvec).all():
            return None

        self._num_inliers = len(inliers)
        return SE3.from_rvec_tvec(rvec, tvec)

    def _gyro_prior(self, observation: Observation, prev_timestamp: float) -> np.ndarray | None:
        """Rotation vector of T_curr_prev predicted from the gyroscope."""
        if not self._config.use_gyro_prior:
            return None
        if observation.inertial is None or observation.imu_to_camera is None:
            return None

        dt = observation.timestamp - prev_timestamp
        if dt <= 0 or dt > 0.5:
            return None

        omega_cam = observation.imu_to_camera.rotation @ observation.inertial.gyroscope
        # Camera rotates by omega*dt, so points rotate the other way
        return -omega_cam * dt

    def _make_reference(
        self, gray: np.ndarray, depth: np.ndarray, observation: Observation
    ) -> _Reference:
        """Select features with valid depth and lift them to 3D."""
        cfg = self._config
        points_2d = observation.keypoint_array
        if len(points_2d) < cfg.min_inliers:
            corners = cv2.goodFeaturesToTrack(
                gray,
                maxCorners=cfg.max_features,
                qualityLevel=cfg.quality_level,
                minDistance=cfg.min_feature_distance,
            )
            if corners is None:
                points_2d = np.empty((0, 2), dtype=np.float32)
            else:
                points_2d = corners.reshape(-1, 2).astype(np.float32)

        h, w = depth.shape[:2]
        cols = np.clip(np.round(points_2d[:, 0]).astype(int), 0, w - 1)
        rows = np.clip(np.round(points_2d[:, 1]).astype(int), 0, h - 1)
        z = depth[rows, cols] if len(points_2d) else np.empty(0)
        valid = np.isfinite(z) & (z > cfg.min_depth) & (z < cfg.max_depth)

        points_2d = points_2d[valid]
        points_3d = observation.intrinsics.backproject(points_2d, z[valid])
        return _Reference(
            gray=gray,
            points_2d=points_2d.astype(np.float32),
            points_3d=points_3d,
            timestamp=observation.timestamp,
        )

    def _depth_to_meters(self, depth: np.ndarray) -> np.ndarray:
        """Convert integer depth maps to float meters."""
        depth = np.asarray(depth)
        if np.issubdtype(depth.dtype, np.integer):
            return depth.astype(np.float64) * self._config.depth_scale
        return depth.astype(np.float64)

    def reset(self) -> None:
        """Forget the reference frame and restart from the identity pose."""
        self._pose = SE3.identity()
        self._reference = None
        self._status = TrackingStatus.INITIALIZING
        self._trajectory = []
        self._num_inliers = 0

    def close(self) -> None:
        """Release tracking state. Further process() calls are errors."""
        self.reset()
        self._closed = True

    def get_trajectory_positions(self) -> np.ndarray:
        """Return estimated positions as Nx3 array."""
        if not self._trajectory:
            return np.zeros((0, 3))
        return np.array([pose.translation for pose in self._trajectory])

    @property
    def config(self) -> RGBDOdometryConfig:
        """Estimator parameters."""
        return self._config

    @property
    def current_pose(self) -> SE3:
        """Latest pose estimate."""
        return self._pose

    @property
    def status(self) -> TrackingStatus:
        """Tracking status of the latest frame."""
        return self._status

    @property
    def num_inliers(self) -> int:
        """PnP inliers of the latest frame."""
        return self._num_inliers

    @property
    def last_process_ms(self) -> float:
        """Processing time of the latest frame in milliseconds."""
        return self._last_process_ms

    @property
    def closed(self) -> bool:
        """Return True once close() has been called."""
        return self._closed


def _to_gray(image: np.ndarray) -> np.ndarray:
    """Return an 8-bit single-channel image."""
    if image.ndim == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.dtype != np.uint8:
        image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return image
