"""Message types exchanged between the device streams and the fusion loop.

These dataclasses carry primitive arrays only, so they can cross thread
or process boundaries without custom serialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass
class ImageFrame:
    """Rectified camera image with its capture metadata.

    Attributes:
        image: Image as a numpy array (grayscale or BGR)
        timestamp: Device capture timestamp (mid-exposure) in seconds
        sequence_num: Monotonic frame counter assigned by the device
        instance_num: Camera board socket the frame came from
    """

    image: np.ndarray
    timestamp: float
    sequence_num: int = 0
    instance_num: int = 0

    @property
    def width(self) -> int:
        """Image width in pixels."""
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        """Image height in pixels."""
        return int(self.image.shape[0])


@dataclass
class DepthFrame:
    """Depth map aligned to the rectified image.

    Attributes:
        depth: HxW depth map (uint16 millimeters or float32 meters)
        timestamp: Device capture timestamp in seconds
        sequence_num: Monotonic frame counter
    """

    depth: np.ndarray
    timestamp: float
    sequence_num: int = 0


@dataclass
class TrackedFeature:
    """Single 2D feature tracked by the device."""

    id: int
    x: float
    y: float
    age: int = 0


@dataclass
class TrackedFeatures:
    """Set of features tracked on one image."""

    features: list[TrackedFeature] = field(default_factory=list)
    sequence_num: int = 0

    @property
    def points(self) -> np.ndarray:
        """Return Nx2 array of feature (x, y) positions."""
        if not self.features:
            return np.empty((0, 2), dtype=np.float32)
        return np.array([[f.x, f.y] for f in self.features], dtype=np.float32)

    def __len__(self) -> int:
        """Return number of tracked features."""
        return len(self.features)


@dataclass
class ResetRequest:
    """Request to reset the estimator's internal state."""

    reason: str = ""


@dataclass
class InertialReading:
    """One timestamped reading of a single inertial series.

    Attributes:
        timestamp: Device timestamp in seconds
        values: (3,) for accelerometer/gyroscope, (4,) for a rotation
            vector stored as (i, j, k, real)
    """

    timestamp: float
    values: np.ndarray

    def __post_init__(self) -> None:
        """Ensure values are a flat float64 array."""
        self.values = np.asarray(self.values, dtype=np.float64).flatten()


@dataclass
class InertialPacket:
    """One inertial packet with up to three component readings.

    A reading is None when the device did not report that series.
    """

    accelerometer: InertialReading | None = None
    gyroscope: InertialReading | None = None
    rotation_vector: InertialReading | None = None
