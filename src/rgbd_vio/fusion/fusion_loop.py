"""Control loop producing one fused observation per image frame.

Each cycle blocks for the next image, depth and features messages, polls the
reset stream, resolves calibration on the first frame, aligns the
buffered inertial samples to the image timestamp, runs the estimator and
publishes the pose together with the consumed image.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from ..frontend.pose import SE3
from ..io.messages import DepthFrame, ImageFrame, ResetRequest, TrackedFeatures
from ..io.streams import StreamClosed, StreamQueue
from .calibration import CalibrationGate, CalibrationStatus
from .inertial_aligner import InertialAligner
from .observation import Observation, StampedPose, keypoints_from_features


class LoopState(Enum):
    """State of the fusion loop."""

    AWAITING_FRAME = "AWAITING_FRAME"
    CALIBRATING = "CALIBRATING"
    FUSING = "FUSING"
    STOPPED = "STOPPED"


class CancellationToken:
    """Cooperative stop signal checked once per cycle."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request the loop to stop at the next cycle boundary."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return True once cancel() has been called."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout expires."""
        return self._event.wait(timeout)


class PoseEstimator(Protocol):
    """Pose engine consuming one observation per cycle."""

    def process(self, observation: Observation) -> SE3:
        """Return the camera pose for the observation."""
        ...

    def reset(self) -> None:
        """Clear internal tracking state."""
        ...

    def close(self) -> None:
        """Release resources held by the estimator."""
        ...


class OutputSink(Protocol):
    """Destination for the loop's outputs."""

    def send_pose(self, pose: StampedPose) -> None:
        """Publish the pose of a fused frame."""
        ...

    def send_passthrough_frame(self, frame: ImageFrame) -> None:
        """Publish the image consumed by the fusion cycle."""
        ...


@dataclass
class FusionStats:
    """Counters describing what the loop has done so far."""

    cycles: int = 0
    poses_emitted: int = 0
    inertial_cycles: int = 0
    vision_only_cycles: int = 0
    features_missing_cycles: int = 0
    resets: int = 0
    frames_skipped: int = 0


class FusionLoop:
    """Sequential fusion loop.

    The only blocking point is the fetch of the next image/depth/features
    messages; the reset check that follows it never blocks. Stopping is
    cooperative: cancel the token (and close the input streams to wake a
    blocked fetch). The estimator is released exactly once, on every exit
    path.
    """

    def __init__(
        self,
        image_stream: StreamQueue[ImageFrame | None],
        depth_stream: StreamQueue[DepthFrame | None],
        estimator: PoseEstimator,
        aligner: InertialAligner,
        gate: CalibrationGate,
        sink: OutputSink,
        features_stream: StreamQueue[TrackedFeatures | None] | None = None,
        reset_stream: StreamQueue[ResetRequest] | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        """Initialize the loop.

        Args:
            image_stream: Rectified image frames
            depth_stream: Depth frames aligned to the images
            estimator: Pose engine
            aligner: Inertial buffers fed by the inertial callback
            gate: One-shot calibration resolver
            sink: Receives poses and passthrough frames
            features_stream: Optional device-tracked features, one per image
            reset_stream: Optional reset requests
            token: Cancellation token (a new one is created if omitted)
        """
        self._image_stream = image_stream
        self._depth_stream = depth_stream
        self._features_stream = features_stream
        self._reset_stream = reset_stream
        self._estimator = estimator
        self._aligner = aligner
        self._gate = gate
        self._sink = sink
        self._token = token if token is not None else CancellationToken()

        self._state = LoopState.AWAITING_FRAME
        self._stats = FusionStats()
        self._released = False

    def run(self) -> LoopState:
        """Run cycles until cancelled, a stream closes, or calibration fails.

        Returns:
            The final state (always STOPPED)
        """
        try:
            while not self._token.cancelled and self._state is not LoopState.STOPPED:
                try:
                    self.step()
                except StreamClosed as e:
                    print(f"[FusionLoop] Stream '{e}' closed")
                    break
        finally:
            self._state = LoopState.STOPPED
            self._release()

        s = self._stats
        print(
            f"[FusionLoop] Stopped after {s.cycles} cycles: "
            f"{s.poses_emitted} poses, {s.inertial_cycles} with IMU, "
            f"{s.vision_only_cycles} vision-only, {s.resets} resets"
        )
        return self._state

    def step(self) -> StampedPose | None:
        """Run one fusion cycle.

        Returns:
            The published pose, or None if the cycle emitted nothing

        Raises:
            StreamClosed: If an input stream was closed
        """
        if self._state is LoopState.STOPPED:
            return None
        self._stats.cycles += 1

        image = self._image_stream.get()
        depth = self._depth_stream.get()
        features = self._features_stream.get() if self._features_stream is not None else None

        # A reset applies before the frame just fetched is processed
        if self._reset_stream is not None and self._reset_stream.try_get() is not None:
            print("[FusionLoop] Reset received")
            self._estimator.reset()
            self._stats.resets += 1

        if image is None or depth is None:
            self._stats.frames_skipped += 1
            return None
        if image.sequence_num != depth.sequence_num:
            # Image and depth producers drifted apart
            self._stats.frames_skipped += 1
            return None

        calibration = self._gate.state
        if calibration.status is CalibrationStatus.UNINITIALIZED:
            self._calibrate(image)
            return None
        if calibration.status is CalibrationStatus.FAILED:
            self._stop()
            return None

        return self._fuse(image, depth, features)

    def _calibrate(self, image: ImageFrame) -> None:
        # The first frame is consumed by calibration only
        self._state = LoopState.CALIBRATING
        calibration = self._gate.resolve(image.instance_num, image.width, image.height)
        if calibration.status is CalibrationStatus.RESOLVED:
            self._state = LoopState.FUSING
        else:
            print(f"[FusionLoop] Calibration failed, stopping: {calibration.reason}")
            self._stop()

    def _fuse(
        self, image: ImageFrame, depth: DepthFrame, features: TrackedFeatures | None
    ) -> StampedPose | None:
        self._state = LoopState.FUSING
        calibration = self._gate.state
        keypoints = None
        if features is not None:
            keypoints = keypoints_from_features(features)
        else:
            self._stats.features_missing_cycles += 1

        inertial, all_ready = self._aligner.align(image.timestamp)
        if all_ready:
            self._stats.inertial_cycles += 1
        else:
            inertial = None
            self._stats.vision_only_cycles += 1

        observation = Observation(
            image=image.image,
            depth=depth.depth,
            intrinsics=calibration.intrinsics,
            timestamp=image.timestamp,
            sequence_num=image.sequence_num,
            keypoints=keypoints,
            inertial=inertial,
            imu_to_camera=calibration.imu_to_camera,
        )

        pose = self._estimator.process(observation)
        if pose is None:
            return None

        stamped = StampedPose(
            pose=pose, timestamp=image.timestamp, sequence_num=image.sequence_num
        )
        self._sink.send_pose(stamped)
        self._sink.send_passthrough_frame(image)
        self._stats.poses_emitted += 1
        return stamped

    def _stop(self) -> None:
        self._state = LoopState.STOPPED
        self._token.cancel()

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self._estimator.close()

    def stop(self) -> None:
        """Request a cooperative stop."""
        self._token.cancel()

    @property
    def state(self) -> LoopState:
        """Current loop state."""
        return self._state

    @property
    def stats(self) -> FusionStats:
        """Counters accumulated so far."""
        return self._stats

    @property
    def token(self) -> CancellationToken:
        """Cancellation token checked at the top of every cycle."""
        return self._token

    @property
    def estimator(self) -> PoseEstimator:
        """Pose engine driven by the loop."""
        return self._estimator

    @property
    def released(self) -> bool:
        """Return True once the estimator has been released."""
        return self._released
