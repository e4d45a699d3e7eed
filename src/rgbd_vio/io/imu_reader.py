"""EuRoC-style IMU data reader producing inertial packets for replay.

CSV format (imu0/data.csv):
    #timestamp [ns],w_x,w_y,w_z,a_x,a_y,a_z[,q_w,q_x,q_y,q_z]

When the optional orientation columns are missing, orientation is derived
by integrating the gyroscope from the identity.
"""

from __future__ import annotations

import bisect
from pathlib import Path

import numpy as np
from scipy.spatial.transform import Rotation

from .messages import InertialPacket, InertialReading

NS_PER_S = 1e9


class IMUReader:
    """Reader for EuRoC-format IMU data.

    Example usage:
        reader = IMUReader("data/sequence/mav0")
        packets = reader.get_packets_between(t_start_ns, t_end_ns)
        source.publish(packets)
    """

    def __init__(self, dataset_path: str | Path) -> None:
        """Initialize IMU reader.

        Args:
            dataset_path: Path to the mav0 directory

        Raises:
            FileNotFoundError: If imu0/data.csv doesn't exist
        """
        self._dataset_path = Path(dataset_path)
        self._imu_data_path = self._dataset_path / "imu0" / "data.csv"

        if not self._imu_data_path.exists():
            raise FileNotFoundError(
                f"IMU data not found: {self._imu_data_path}\n"
                f"Expected EuRoC format with imu0/data.csv"
            )

        self._timestamps: list[int] = []  # For fast binary search
        self._gyro: list[np.ndarray] = []
        self._accel: list[np.ndarray] = []
        self._orientation: list[np.ndarray] = []  # (i, j, k, real)
        self._has_orientation = True
        self._load_measurements()

        if not self._has_orientation:
            self._orientation = self._integrate_orientation()

    def _load_measurements(self) -> None:
        """Load all IMU rows from the CSV file."""
        with open(self._imu_data_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                parts = line.split(",")
                if len(parts) < 7:
                    continue

                try:
                    timestamp_ns = int(parts[0])
                    gyro = np.array([float(p) for p in parts[1:4]])
                    accel = np.array([float(p) for p in parts[4:7]])
                    orientation = None
                    if len(parts) >= 11:
                        qw, qx, qy, qz = (float(p) for p in parts[7:11])
                        orientation = np.array([qx, qy, qz, qw])
                except ValueError:
                    continue

                if self._timestamps and timestamp_ns <= self._timestamps[-1]:
                    continue  # Producers emit in time order

                self._timestamps.append(timestamp_ns)
                self._gyro.append(gyro)
                self._accel.append(accel)
                if orientation is None:
                    self._has_orientation = False
                else:
                    self._orientation.append(orientation)

    def _integrate_orientation(self) -> list[np.ndarray]:
        """Integrate the gyroscope into (i, j, k, real) orientations."""
        if not self._timestamps:
            return []

        orientation = Rotation.identity()
        result = [_to_ijkr(orientation)]
        for i in range(1, len(self._timestamps)):
            dt = (self._timestamps[i] - self._timestamps[i - 1]) / NS_PER_S
            # Mid-point angular velocity
            omega = 0.5 * (self._gyro[i - 1] + self._gyro[i])
            orientation = orientation * Rotation.from_rotvec(omega * dt)
            result.append(_to_ijkr(orientation))
        return result

    def _packet_at(self, idx: int) -> InertialPacket:
        stamp = self._timestamps[idx] / NS_PER_S
        return InertialPacket(
            accelerometer=InertialReading(stamp, self._accel[idx]),
            gyroscope=InertialReading(stamp, self._gyro[idx]),
            rotation_vector=InertialReading(stamp, self._orientation[idx]),
        )

    def get_packets_between(self, start_ns: int, end_ns: int) -> list[InertialPacket]:
        """Get packets with start_ns <= timestamp < end_ns.

        Args:
            start_ns: Start timestamp in nanoseconds (inclusive)
            end_ns: End timestamp in nanoseconds (exclusive)
        """
        start_idx = bisect.bisect_left(self._timestamps, start_ns)
        end_idx = bisect.bisect_left(self._timestamps, end_ns)
        return [self._packet_at(i) for i in range(start_idx, end_idx)]

    @property
    def has_orientation(self) -> bool:
        """True if orientation came from the file rather than integration."""
        return self._has_orientation

    @property
    def start_timestamp(self) -> int | None:
        """First IMU timestamp in nanoseconds."""
        return self._timestamps[0] if self._timestamps else None

    @property
    def end_timestamp(self) -> int | None:
        """Last IMU timestamp in nanoseconds."""
        return self._timestamps[-1] if self._timestamps else None

    def __len__(self) -> int:
        """Number of IMU measurements."""
        return len(self._timestamps)


def _to_ijkr(rotation: Rotation) -> np.ndarray:
    # scipy quaternions are already scalar-last
    return np.asarray(rotation.as_quat(), dtype=np.float64)
