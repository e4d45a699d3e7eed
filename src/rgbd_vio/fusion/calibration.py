"""One-shot resolution of camera intrinsics and IMU-to-camera extrinsics.

The gate runs once, on the first valid frame. It asks a calibration store
for the camera model of the frame's sensor at the frame's resolution plus the
device's board name, then maps the board name to the fixed IMU local
transform of that board. An unknown board is fatal: fusing inertial data
with a guessed extrinsic would silently corrupt every pose.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

import yaml

from ..frontend.camera import CameraIntrinsics, DistortionCoeffs
from ..frontend.pose import SE3


class CalibrationError(Exception):
    """Raised when calibration data for a sensor cannot be retrieved."""


class CalibrationStatus(Enum):
    """Lifecycle of the calibration gate."""

    UNINITIALIZED = "UNINITIALIZED"
    RESOLVED = "RESOLVED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class CalibrationState:
    """Tagged calibration state.

    intrinsics and imu_to_camera are set only when status is RESOLVED;
    reason is set only when status is FAILED.
    """

    status: CalibrationStatus = CalibrationStatus.UNINITIALIZED
    intrinsics: CameraIntrinsics | None = None
    imu_to_camera: SE3 | None = None
    board_name: str = ""
    reason: str = ""

    @classmethod
    def resolved_with(
        cls, intrinsics: CameraIntrinsics, imu_to_camera: SE3, board_name: str
    ) -> CalibrationState:
        """Create a RESOLVED state."""
        return cls(
            status=CalibrationStatus.RESOLVED,
            intrinsics=intrinsics,
            imu_to_camera=imu_to_camera,
            board_name=board_name,
        )

    @classmethod
    def failed(cls, reason: str, board_name: str = "") -> CalibrationState:
        """Create a FAILED state."""
        return cls(status=CalibrationStatus.FAILED, board_name=board_name, reason=reason)

    @property
    def resolved(self) -> bool:
        """Return True if calibration succeeded."""
        return self.status is CalibrationStatus.RESOLVED


class BoardMatch(Enum):
    """How a board table entry matches a board name."""

    EXACT = "exact"
    PREFIX = "prefix"


@dataclass(frozen=True)
class BoardExtrinsic:
    """IMU local transform for one board (or family of boards)."""

    name: str
    transform: SE3
    match: BoardMatch = BoardMatch.EXACT

    def matches(self, board_name: str) -> bool:
        """Return True if this entry applies to board_name."""
        if self.match is BoardMatch.PREFIX:
            return board_name.startswith(self.name)
        return board_name == self.name


# IMU local transforms of known boards, as 3x4 [R|t] rows
DEFAULT_BOARD_EXTRINSICS: tuple[BoardExtrinsic, ...] = (
    BoardExtrinsic(
        "OAK-D", SE3.from_rows(0, -1, 0, 0.0525, 1, 0, 0, 0.013662, 0, 0, 1, 0)
    ),
    BoardExtrinsic(
        "BW1098OBC", SE3.from_rows(0, -1, 0, 0.0525, 1, 0, 0, 0.013662, 0, 0, 1, 0)
    ),
    BoardExtrinsic(
        "DM9098", SE3.from_rows(0, 1, 0, 0.037945, 1, 0, 0, 0.00079, 0, 0, -1, 0)
    ),
    BoardExtrinsic(
        "NG2094", SE3.from_rows(0, 1, 0, 0.0374, 1, 0, 0, 0.00176, 0, 0, -1, 0)
    ),
    BoardExtrinsic(
        "NG9097", SE3.from_rows(0, 1, 0, 0.04, 1, 0, 0, 0.020265, 0, 0, -1, 0)
    ),
    BoardExtrinsic(
        "BK3389C",
        SE3.from_rows(-1, 0, 0, -0.059198, 0, -1, 0, -0.009289, 0, 0, 1, 0),
        BoardMatch.PREFIX,
    ),
)


def lookup_imu_extrinsic(
    board_name: str, table: tuple[BoardExtrinsic, ...] | list[BoardExtrinsic]
) -> SE3 | None:
    """Return the IMU local transform of the first matching entry, or None."""
    for entry in table:
        if entry.matches(board_name):
            return SE3.identity() @ entry.transform
    return None


class CalibrationLookup(Protocol):
    """Source of per-sensor camera models and the device board name."""

    def lookup(
        self, instance_num: int, width: int, height: int, alpha_scaling: float
    ) -> tuple[CameraIntrinsics, str]:
        """Return (intrinsics at width x height, board name)."""
        ...


class InMemoryCalibrationStore:
    """Calibration store backed by already-loaded camera models."""

    def __init__(self, board_name: str, cameras: dict[int, CameraIntrinsics]) -> None:
        """Initialize the store.

        Args:
            board_name: Board identifier reported by the device EEPROM
            cameras: Native intrinsics keyed by camera board socket
        """
        self.board_name = board_name
        self._cameras = dict(cameras)

    def lookup(
        self, instance_num: int, width: int, height: int, alpha_scaling: float = -1.0
    ) -> tuple[CameraIntrinsics, str]:
        """Return intrinsics rescaled to width x height and the board name.

        A non-negative alpha_scaling recomputes the rectified camera matrix
        for that free-scaling parameter.

        Raises:
            CalibrationError: If the socket has no calibration
        """
        native = self._cameras.get(instance_num)
        if native is None:
            raise CalibrationError(
                f"No calibration for camera socket {instance_num} "
                f"(available: {sorted(self._cameras)})"
            )

        intrinsics = native.scaled(width, height)
        if alpha_scaling >= 0:
            intrinsics = intrinsics.with_alpha(alpha_scaling)
        return intrinsics, self.board_name

    @property
    def sockets(self) -> list[int]:
        """Camera sockets with calibration data."""
        return sorted(self._cameras)


class YamlCalibrationStore(InMemoryCalibrationStore):
    """Calibration store loaded from a device calibration YAML file.

    Expected format:

        board_name: OAK-D
        cameras:
          1:
            width: 1280
            height: 800
            intrinsics: [fx, fy, cx, cy]
            distortion_coefficients: [k1, k2, p1, p2]   # optional
    """

    def __init__(self, path: str | Path) -> None:
        """Load calibration from path.

        Raises:
            FileNotFoundError: If the file doesn't exist
            CalibrationError: If the file content is invalid
        """
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"Calibration file not found: {self.path}")

        with open(self.path, "r") as f:
            data = yaml.safe_load(f) or {}

        board_name = data.get("board_name")
        if not isinstance(board_name, str):
            raise CalibrationError(f"Missing board_name in {self.path}")

        cameras: dict[int, CameraIntrinsics] = {}
        for socket, entry in (data.get("cameras") or {}).items():
            cameras[int(socket)] = self._parse_camera(entry, socket)

        super().__init__(board_name, cameras)

    def _parse_camera(self, entry: dict, socket: object) -> CameraIntrinsics:
        values = entry.get("intrinsics")
        if values is None or len(values) != 4:
            raise CalibrationError(f"Invalid intrinsics for socket {socket} in {self.path}")

        distortion = DistortionCoeffs()
        coeffs = entry.get("distortion_coefficients")
        if coeffs is not None:
            if len(coeffs) != 4:
                raise CalibrationError(
                    f"Invalid distortion coefficients for socket {socket} in {self.path}"
                )
            distortion = DistortionCoeffs(*[float(c) for c in coeffs])

        try:
            width, height = int(entry["width"]), int(entry["height"])
        except KeyError as e:
            raise CalibrationError(
                f"Missing {e.args[0]} for socket {socket} in {self.path}"
            ) from e

        return CameraIntrinsics(
            fx=float(values[0]),
            fy=float(values[1]),
            cx=float(values[2]),
            cy=float(values[3]),
            width=width,
            height=height,
            distortion=distortion,
        )


class CalibrationGate:
    """Resolves calibration exactly once.

    The first call to resolve() performs the lookup and latches the outcome;
    every later call returns the latched state without side effects.
    """

    def __init__(
        self,
        store: CalibrationLookup,
        board_table: tuple[BoardExtrinsic, ...] | list[BoardExtrinsic] = DEFAULT_BOARD_EXTRINSICS,
        alpha_scaling: float = -1.0,
    ) -> None:
        """Initialize the gate.

        Args:
            store: Calibration collaborator
            board_table: Board name to IMU local transform table
            alpha_scaling: Free-scaling hint forwarded to the store
        """
        self._store = store
        self._board_table = tuple(board_table)
        self._alpha_scaling = alpha_scaling
        self._state = CalibrationState()

    def resolve(self, instance_num: int, width: int, height: int) -> CalibrationState:
        """Resolve calibration for a sensor, or return the latched state."""
        if self._state.status is not CalibrationStatus.UNINITIALIZED:
            return self._state

        try:
            intrinsics, board_name = self._store.lookup(
                instance_num, width, height, self._alpha_scaling
            )
        except CalibrationError as e:
            print(f"[Calibration] Lookup failed: {e}")
            self._state = CalibrationState.failed(str(e))
            return self._state

        imu_to_camera = lookup_imu_extrinsic(board_name, self._board_table)
        if imu_to_camera is None:
            print(f"[Calibration] Unknown IMU local transform for {board_name}")
            self._state = CalibrationState.failed(
                f"Unknown IMU local transform for {board_name}", board_name
            )
            return self._state

        print(
            f"[Calibration] Board {board_name}, socket {instance_num}, "
            f"{width}x{height}, fx={intrinsics.fx:.1f}"
        )
        self._state = CalibrationState.resolved_with(intrinsics, imu_to_camera, board_name)
        return self._state

    @property
    def state(self) -> CalibrationState:
        """Current (possibly latched) calibration state."""
        return self._state

    @property
    def board_table(self) -> tuple[BoardExtrinsic, ...]:
        """Board name to IMU local transform table."""
        return self._board_table
