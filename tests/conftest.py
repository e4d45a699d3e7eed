"""Shared fixtures and helpers for the test suite."""

import numpy as np
import pytest

from rgbd_vio.frontend.camera import CameraIntrinsics
from rgbd_vio.fusion.calibration import InMemoryCalibrationStore
from rgbd_vio.io.messages import InertialPacket, InertialReading


def _make_packet(
    timestamp: float,
    accel=(0.0, 0.0, 9.81),
    gyro=(0.0, 0.0, 0.0),
    rotation=(0.0, 0.0, 0.0, 1.0),
    rotation_timestamp: float | None = None,
) -> InertialPacket:
    """Create an inertial packet with all three series at one timestamp."""
    rot_stamp = timestamp if rotation_timestamp is None else rotation_timestamp
    return InertialPacket(
        accelerometer=InertialReading(timestamp, np.array(accel)),
        gyroscope=InertialReading(timestamp, np.array(gyro)),
        rotation_vector=InertialReading(rot_stamp, np.array(rotation)),
    )


@pytest.fixture
def make_packet():
    """Factory for inertial packets."""
    return _make_packet


@pytest.fixture
def intrinsics() -> CameraIntrinsics:
    """Native 640x480 pinhole camera."""
    return CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0, width=640, height=480)


@pytest.fixture
def oak_store(intrinsics: CameraIntrinsics) -> InMemoryCalibrationStore:
    """Calibration store of a known board with one camera on socket 1."""
    return InMemoryCalibrationStore("OAK-D", {1: intrinsics})
