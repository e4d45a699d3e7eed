"""Python RGB-D VIO - visual-inertial odometry node with temporal sensor fusion."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import CalibrationConfig, FusionConfig, InertialConfig
from .dataset_reader import RGBDDatasetReader
from .frontend import SE3, CameraIntrinsics, RGBDOdometry, RGBDOdometryConfig, TrackingStatus
from .fusion import (
    AlignedInertial,
    CalibrationGate,
    CalibrationState,
    CalibrationStatus,
    CancellationToken,
    FusionLoop,
    FusionStats,
    InertialAligner,
    InMemoryCalibrationStore,
    LoopState,
    Observation,
    OrientationStampPolicy,
    StampedPose,
    TimeKeyedBuffer,
    YamlCalibrationStore,
    resolve,
)
from .io import (
    DepthFrame,
    IMUReader,
    ImageFrame,
    InertialPacket,
    InertialReading,
    InertialSource,
    ResetRequest,
    StreamQueue,
    TrackedFeature,
    TrackedFeatures,
)
from .node import VIONode

__all__ = [
    "__version__",
    # Config
    "FusionConfig",
    "InertialConfig",
    "CalibrationConfig",
    # Node
    "VIONode",
    # Fusion core
    "TimeKeyedBuffer",
    "resolve",
    "InertialAligner",
    "AlignedInertial",
    "OrientationStampPolicy",
    "CalibrationGate",
    "CalibrationState",
    "CalibrationStatus",
    "InMemoryCalibrationStore",
    "YamlCalibrationStore",
    "FusionLoop",
    "FusionStats",
    "LoopState",
    "CancellationToken",
    "Observation",
    "StampedPose",
    # Messages and streams
    "ImageFrame",
    "DepthFrame",
    "TrackedFeature",
    "TrackedFeatures",
    "ResetRequest",
    "InertialReading",
    "InertialPacket",
    "InertialSource",
    "StreamQueue",
    # Pose, camera, estimator
    "SE3",
    "CameraIntrinsics",
    "RGBDOdometry",
    "RGBDOdometryConfig",
    "TrackingStatus",
    # Replay
    "RGBDDatasetReader",
    "IMUReader",
]
