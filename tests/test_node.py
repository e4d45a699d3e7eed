"""Tests for VIONode."""

import time
from pathlib import Path

import numpy as np
import pytest

from rgbd_vio.config import FusionConfig
from rgbd_vio.frontend.pose import SE3
from rgbd_vio.frontend.rgbd_odometry import RGBDOdometry
from rgbd_vio.fusion.calibration import BoardExtrinsic, InMemoryCalibrationStore
from rgbd_vio.fusion.fusion_loop import LoopState
from rgbd_vio.io.messages import DepthFrame, ImageFrame, ResetRequest
from rgbd_vio.node import VIONode


class StubEstimator:
    """Estimator returning a pose at x = timestamp."""

    def __init__(self) -> None:
        self.closed = False
        self.resets = 0

    def process(self, observation):
        return SE3(rotation=np.eye(3), translation=[observation.timestamp, 0.0, 0.0])

    def reset(self):
        self.resets += 1

    def close(self):
        self.closed = True


class ListSink:
    """Extra sink collecting poses."""

    def __init__(self) -> None:
        self.poses = []
        self.frames = []

    def send_pose(self, pose):
        self.poses.append(pose)

    def send_passthrough_frame(self, frame):
        self.frames.append(frame)


def push_frame(node: VIONode, timestamp: float, seq: int) -> None:
    node.input_rect.put(
        ImageFrame(np.zeros((480, 640), dtype=np.uint8), timestamp, seq, instance_num=1)
    )
    node.input_depth.put(DepthFrame(np.ones((480, 640), dtype=np.uint16), timestamp, seq))
    if node.input_features is not None:
        node.input_features.put(None)


def wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll predicate until it holds or timeout expires."""
    deadline = time.perf_counter() + timeout
    while time.perf_counter() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class TestVIONode:
    """Test suite for VIONode."""

    def test_defaults(self, oak_store):
        """Test the node's default wiring."""
        node = VIONode(oak_store)

        assert isinstance(node.estimator, RGBDOdometry)
        assert node.input_features is not None
        assert node.state is LoopState.AWAITING_FRAME
        assert node.stats.cycles == 0
        assert not node.is_running

    def test_features_disabled(self, oak_store):
        """Test that disabling features removes the features input."""
        config = FusionConfig(features_enabled=False)

        node = VIONode(oak_store, config=config)

        assert node.input_features is None

    def test_imu_input_feeds_aligner(self, oak_store, make_packet):
        """Test that published IMU packets reach the aligner."""
        node = VIONode(oak_store, estimator=StubEstimator())

        node.input_imu.publish([make_packet(1.0), make_packet(2.0)])

        assert node.aligner.buffer_sizes() == (2, 2, 2)

    def test_configured_boards_take_precedence(self, oak_store):
        """Test that config boards come before the built-in table."""
        custom = BoardExtrinsic("OAK-D", SE3.identity())
        config = FusionConfig()
        config.calibration.boards = [custom]

        node = VIONode(oak_store, config=config, estimator=StubEstimator())

        assert node.calibration_gate.board_table[0] is custom
        assert len(node.calibration_gate.board_table) > 1

    def test_set_estimator_params(self, oak_store):
        """Test recreating the estimator from named parameters."""
        node = VIONode(oak_store)

        node.set_estimator_params({"min_inliers": "30"})

        assert node.estimator.config.min_inliers == 30
        assert node.config.estimator_params == {"min_inliers": "30"}

    def test_set_estimator_params_invalid(self, oak_store):
        """Test that unknown parameters are rejected."""
        node = VIONode(oak_store)

        with pytest.raises(ValueError, match="Unknown estimator parameter"):
            node.set_estimator_params({"nope": 1})

    def test_end_to_end(self, oak_store):
        """Test frames in, poses out, with an extra sink."""
        extra = ListSink()
        estimator = StubEstimator()
        node = VIONode(oak_store, estimator=estimator, sinks=[extra])
        node.start()

        try:
            push_frame(node, 1.0, 0)
            push_frame(node, 1.1, 1)
            push_frame(node, 1.2, 2)

            assert wait_for(lambda: len(extra.poses) == 2)
            first = node.outputs.transform.try_get()
            frame = node.outputs.passthrough_rect.try_get()
            assert first.sequence_num == 1
            assert frame.sequence_num == 1
            assert [p.sequence_num for p in extra.poses] == [1, 2]
            assert node.state is LoopState.FUSING

            with pytest.raises(RuntimeError, match="before start"):
                node.set_estimator_params({"min_inliers": 10})
        finally:
            node.stop()

        assert not node.is_running
        assert node.state is LoopState.STOPPED
        assert estimator.closed
        assert node.stats.poses_emitted == 2

    def test_reset_request(self, oak_store):
        """Test that a reset request reaches the estimator."""
        estimator = StubEstimator()
        node = VIONode(oak_store, estimator=estimator)
        node.start()

        try:
            push_frame(node, 1.0, 0)
            assert wait_for(lambda: node.calibration_gate.state.resolved)
            node.input_reset.put(ResetRequest("test"))
            push_frame(node, 1.1, 1)

            assert wait_for(
                lambda: node.stats.poses_emitted == 1 and estimator.resets == 1
            )
        finally:
            node.stop()

    def test_unknown_board_stops_node(self, intrinsics):
        """Test that the node stops itself on an unknown board."""
        estimator = StubEstimator()
        node = VIONode(InMemoryCalibrationStore("UNKNOWN", {1: intrinsics}), estimator=estimator)
        node.start()

        push_frame(node, 1.0, 0)
        assert node.join(timeout=2.0)

        assert node.state is LoopState.STOPPED
        assert estimator.closed
        assert node.outputs.transform.try_get() is None
        node.stop()

    def test_cannot_restart(self, oak_store):
        """Test that a stopped node cannot be started again."""
        node = VIONode(oak_store, estimator=StubEstimator())
        node.start()
        node.stop()

        with pytest.raises(RuntimeError, match="cannot be restarted"):
            node.start()

    def test_stop_before_start(self, oak_store):
        """Test that stop() on an idle node is a no-op."""
        VIONode(oak_store).stop()

    def test_from_config_file(self):
        """Test building a node from the example config."""
        path = Path(__file__).parent.parent / "config" / "oak-d.yaml"

        node = VIONode.from_config_file(path)

        assert node.estimator.config.min_inliers == 15
        assert node.estimator.config.max_depth == 8.0

    def test_from_config_file_requires_calibration(self, tmp_path: Path):
        """Test that a config without a calibration path is rejected."""
        path = tmp_path / "node.yaml"
        path.write_text("features_enabled: true\n")

        with pytest.raises(ValueError, match="calibration.path required"):
            VIONode.from_config_file(path)
