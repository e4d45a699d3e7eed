"""Align asynchronously arriving inertial samples to image timestamps."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from ..frontend.pose import SE3
from ..io.messages import InertialPacket, InertialReading
from .interpolation import is_fresh, resolve
from .time_buffer import TimeKeyedBuffer


class OrientationStampPolicy(Enum):
    """Which timestamp keys the orientation series.

    OWN uses the rotation vector's own device timestamp. GYRO keys the
    orientation by the gyroscope timestamp of the same packet, for devices
    whose rotation vector is produced alongside each gyro sample.
    """

    OWN = "own"
    GYRO = "gyro"


@dataclass
class AlignedInertial:
    """Inertial triple resolved at one image timestamp.

    Attributes:
        timestamp: Query timestamp in seconds
        accelerometer: (3,) linear acceleration in m/s²
        gyroscope: (3,) angular velocity in rad/s
        orientation: (4,) rotation vector as (i, j, k, real)
    """

    timestamp: float
    accelerometer: np.ndarray
    gyroscope: np.ndarray
    orientation: np.ndarray

    def orientation_matrix(self) -> np.ndarray:
        """Return the orientation as a 3x3 rotation matrix."""
        i, j, k, real = self.orientation
        return SE3.from_quaternion(qw=real, qx=i, qy=j, qz=k).rotation


class InertialAligner:
    """Owns the accelerometer, gyroscope and orientation buffers.

    ingest() is called from the inertial producer's thread, align() from the
    fusion loop. A single lock guards all three buffers so that eviction
    never races with a concurrent insert.
    """

    def __init__(
        self,
        orientation_stamp: OrientationStampPolicy = OrientationStampPolicy.OWN,
        max_samples: int | None = 4000,
    ) -> None:
        """Initialize the aligner.

        Args:
            orientation_stamp: Timestamp used to key orientation samples
            max_samples: Cap on samples retained per series (None = unbounded)
        """
        self._orientation_stamp = orientation_stamp
        self._lock = threading.Lock()
        self._accel: TimeKeyedBuffer[np.ndarray] = TimeKeyedBuffer(max_samples)
        self._gyro: TimeKeyedBuffer[np.ndarray] = TimeKeyedBuffer(max_samples)
        self._rot: TimeKeyedBuffer[np.ndarray] = TimeKeyedBuffer(max_samples)
        self._num_ingested = 0

    def ingest(self, packets: Sequence[InertialPacket]) -> None:
        """Append one sample per series for every packet in the batch.

        Series missing from a packet are skipped. Never blocks beyond the
        short critical section.
        """
        with self._lock:
            for packet in packets:
                accel = packet.accelerometer
                gyro = packet.gyroscope
                rot = packet.rotation_vector

                if accel is not None:
                    self._accel.insert(accel.timestamp, accel.values)
                if gyro is not None:
                    self._gyro.insert(gyro.timestamp, gyro.values)
                if rot is not None:
                    stamp = self._orientation_key(rot, gyro)
                    if stamp is not None:
                        self._rot.insert(stamp, rot.values)
                self._num_ingested += 1

    def _orientation_key(
        self, rot: InertialReading, gyro: InertialReading | None
    ) -> float | None:
        if self._orientation_stamp is OrientationStampPolicy.GYRO:
            return gyro.timestamp if gyro is not None else None
        return rot.timestamp

    def align(self, timestamp: float) -> tuple[AlignedInertial | None, bool]:
        """Resolve accelerometer, gyroscope and orientation at timestamp.

        Fusion is all-or-nothing: if any series has not caught up with the
        query, nothing is resolved and no buffer is touched. Otherwise all
        three are resolved (evicting consumed history) and the result is
        returned only if every series produced a value.

        Returns:
            Tuple of (aligned inertial or None, all_ready)
        """
        with self._lock:
            buffers = (self._accel, self._gyro, self._rot)
            if not all(is_fresh(buffer, timestamp) for buffer in buffers):
                return None, False

            accel, accel_ok = resolve(self._accel, timestamp)
            gyro, gyro_ok = resolve(self._gyro, timestamp)
            rot, rot_ok = resolve(self._rot, timestamp)

        if not (accel_ok and gyro_ok and rot_ok):
            return None, False

        return (
            AlignedInertial(
                timestamp=timestamp,
                accelerometer=accel,
                gyroscope=gyro,
                orientation=rot,
            ),
            True,
        )

    def clear(self) -> None:
        """Drop all buffered samples."""
        with self._lock:
            self._accel.clear()
            self._gyro.clear()
            self._rot.clear()

    def buffer_sizes(self) -> tuple[int, int, int]:
        """Return (accelerometer, gyroscope, orientation) buffer lengths."""
        with self._lock:
            return len(self._accel), len(self._gyro), len(self._rot)

    @property
    def orientation_stamp(self) -> OrientationStampPolicy:
        """Timestamp policy for the orientation series."""
        return self._orientation_stamp

    @property
    def num_ingested(self) -> int:
        """Number of packets ingested so far."""
        with self._lock:
            return self._num_ingested
