"""Stream and message types, plus replay readers."""

from .imu_reader import IMUReader
from .messages import (
    DepthFrame,
    ImageFrame,
    InertialPacket,
    InertialReading,
    ResetRequest,
    TrackedFeature,
    TrackedFeatures,
)
from .streams import InertialSource, QueueSink, StreamClosed, StreamQueue

__all__ = [
    # Messages
    "ImageFrame",
    "DepthFrame",
    "TrackedFeature",
    "TrackedFeatures",
    "ResetRequest",
    "InertialReading",
    "InertialPacket",
    # Streams
    "StreamQueue",
    "StreamClosed",
    "InertialSource",
    "QueueSink",
    # Replay
    "IMUReader",
]
