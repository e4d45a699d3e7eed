"""Visual-inertial odometry node.

VIONode owns the input streams, registers the inertial callback, and runs
the fusion loop on a background thread. The loop's outputs are published on
`outputs.transform` (stamped poses) and `outputs.passthrough_rect` (the
consumed image frames), and forwarded to any extra sinks.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from .config import FusionConfig
from .frontend.rgbd_odometry import RGBDOdometry
from .fusion.calibration import (
    DEFAULT_BOARD_EXTRINSICS,
    CalibrationGate,
    CalibrationLookup,
    YamlCalibrationStore,
)
from .fusion.fusion_loop import (
    CancellationToken,
    FusionLoop,
    FusionStats,
    LoopState,
    OutputSink,
    PoseEstimator,
)
from .fusion.inertial_aligner import InertialAligner
from .fusion.observation import StampedPose
from .io.messages import ImageFrame
from .io.streams import InertialSource, QueueSink, StreamQueue


class _SinkGroup:
    """Forwards outputs to several sinks in order."""

    def __init__(self, sinks: Sequence[OutputSink]) -> None:
        self._sinks = list(sinks)

    def send_pose(self, pose: StampedPose) -> None:
        for sink in self._sinks:
            sink.send_pose(pose)

    def send_passthrough_frame(self, frame: ImageFrame) -> None:
        for sink in self._sinks:
            sink.send_passthrough_frame(frame)


class VIONode:
    """Runs the fusion loop against in-process input streams.

    Example usage:
        node = VIONode(store)
        node.start()
        node.input_imu.publish(packets)
        node.input_rect.put(image_frame)
        node.input_depth.put(depth_frame)
        stamped = node.outputs.transform.get()
        node.stop()
    """

    def __init__(
        self,
        calibration_store: CalibrationLookup,
        config: FusionConfig | None = None,
        estimator: PoseEstimator | None = None,
        sinks: Sequence[OutputSink] | None = None,
        queue_size: int = 8,
    ) -> None:
        """Initialize the node.

        Args:
            calibration_store: Calibration collaborator
            config: Node configuration (defaults if omitted)
            estimator: Pose engine (RGBDOdometry built from
                config.estimator_params if omitted)
            sinks: Extra output sinks, e.g. a RerunSink
            queue_size: Capacity of every input and output queue
        """
        self.config = config if config is not None else FusionConfig()

        self.input_rect: StreamQueue = StreamQueue("rect", maxsize=queue_size)
        self.input_depth: StreamQueue = StreamQueue("depth", maxsize=queue_size)
        self.input_features: StreamQueue | None = (
            StreamQueue("features", maxsize=queue_size)
            if self.config.features_enabled
            else None
        )
        self.input_reset: StreamQueue = StreamQueue("reset", maxsize=queue_size)
        self.input_imu = InertialSource()
        self.outputs = QueueSink(maxsize=queue_size)

        self._aligner = InertialAligner(
            orientation_stamp=self.config.inertial.orientation_stamp,
            max_samples=self.config.inertial.max_samples,
        )
        self.input_imu.on_packet(self._aligner.ingest)

        # Configured boards take precedence over the built-in table
        board_table = tuple(self.config.calibration.boards) + DEFAULT_BOARD_EXTRINSICS
        self._gate = CalibrationGate(
            calibration_store,
            board_table=board_table,
            alpha_scaling=self.config.calibration.alpha_scaling,
        )

        self._estimator: PoseEstimator = (
            estimator
            if estimator is not None
            else RGBDOdometry.from_params(self.config.estimator_params)
        )
        self._extra_sinks = list(sinks or [])

        self._loop: FusionLoop | None = None
        self._thread: threading.Thread | None = None

    @classmethod
    def from_config_file(
        cls, path: str | Path, sinks: Sequence[OutputSink] | None = None
    ) -> VIONode:
        """Create a node from a YAML config naming a calibration file.

        Raises:
            ValueError: If the config has no calibration path
        """
        config = FusionConfig.from_yaml(path)
        if config.calibration.path is None:
            raise ValueError(f"calibration.path required in {path}")
        store = YamlCalibrationStore(config.calibration.path)
        return cls(store, config=config, sinks=sinks)

    def set_estimator_params(self, params: Mapping[str, Any]) -> None:
        """Recreate the estimator from named parameters.

        Raises:
            RuntimeError: If the node has already been started
        """
        if self._loop is not None:
            raise RuntimeError("Estimator parameters must be set before start()")
        self.config.estimator_params = dict(params)
        self._estimator = RGBDOdometry.from_params(self.config.estimator_params)

    def start(self) -> None:
        """Start the fusion loop thread."""
        if self._loop is not None:
            if self.is_running:
                return
            raise RuntimeError("VIONode has already run and cannot be restarted")

        self._loop = FusionLoop(
            image_stream=self.input_rect,
            depth_stream=self.input_depth,
            estimator=self._estimator,
            aligner=self._aligner,
            gate=self._gate,
            sink=_SinkGroup([self.outputs, *self._extra_sinks]),
            features_stream=self.input_features,
            reset_stream=self.input_reset,
            token=CancellationToken(),
        )
        self._thread = threading.Thread(
            target=self._loop.run, name="fusion-loop", daemon=True
        )
        self._thread.start()
        print("[VIONode] Started")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the loop and wait for its thread to finish."""
        if self._loop is None:
            return

        self._loop.stop()
        # Wake a loop blocked on an input fetch
        self.input_rect.close()
        self.input_depth.close()
        if self.input_features is not None:
            self.input_features.close()
        self.input_reset.close()
        self.input_imu.remove_handler(self._aligner.ingest)

        self.join(timeout)
        print("[VIONode] Stopped")

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop thread.

        Returns:
            True if the thread has finished
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def is_running(self) -> bool:
        """Return True while the loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self) -> LoopState:
        """State of the fusion loop."""
        if self._loop is None:
            return LoopState.AWAITING_FRAME
        return self._loop.state

    @property
    def stats(self) -> FusionStats:
        """Loop statistics (empty before start)."""
        if self._loop is None:
            return FusionStats()
        return self._loop.stats

    @property
    def aligner(self) -> InertialAligner:
        """Inertial buffers fed by input_imu."""
        return self._aligner

    @property
    def calibration_gate(self) -> CalibrationGate:
        """One-shot calibration resolver."""
        return self._gate

    @property
    def estimator(self) -> PoseEstimator:
        """Pose engine driven by the loop."""
        return self._estimator
