"""Temporal sensor-fusion core.

- TimeKeyedBuffer / resolve: timestamp-ordered samples and interpolation
- InertialAligner: accelerometer, gyroscope and orientation aligned to images
- CalibrationGate: one-shot intrinsics and IMU extrinsic resolution
- FusionLoop: one fused observation per image frame
"""

from .time_buffer import TimeKeyedBuffer
from .interpolation import is_fresh, resolve
from .inertial_aligner import AlignedInertial, InertialAligner, OrientationStampPolicy
from .calibration import (
    DEFAULT_BOARD_EXTRINSICS,
    BoardExtrinsic,
    BoardMatch,
    CalibrationError,
    CalibrationGate,
    CalibrationLookup,
    CalibrationState,
    CalibrationStatus,
    InMemoryCalibrationStore,
    YamlCalibrationStore,
    lookup_imu_extrinsic,
)
from .observation import Observation, StampedPose
from .fusion_loop import (
    CancellationToken,
    FusionLoop,
    FusionStats,
    LoopState,
    OutputSink,
    PoseEstimator,
)

__all__ = [
    # Buffering
    "TimeKeyedBuffer",
    "resolve",
    "is_fresh",
    # Inertial alignment
    "InertialAligner",
    "AlignedInertial",
    "OrientationStampPolicy",
    # Calibration
    "CalibrationGate",
    "CalibrationState",
    "CalibrationStatus",
    "CalibrationError",
    "CalibrationLookup",
    "InMemoryCalibrationStore",
    "YamlCalibrationStore",
    "BoardExtrinsic",
    "BoardMatch",
    "DEFAULT_BOARD_EXTRINSICS",
    "lookup_imu_extrinsic",
    # Loop
    "FusionLoop",
    "FusionStats",
    "LoopState",
    "CancellationToken",
    "PoseEstimator",
    "OutputSink",
    "Observation",
    "StampedPose",
]
