"""Tests for in-process streams."""

import threading
import time

import numpy as np
import pytest

from rgbd_vio.frontend.pose import SE3
from rgbd_vio.fusion.observation import StampedPose
from rgbd_vio.io.messages import ImageFrame
from rgbd_vio.io.streams import InertialSource, QueueSink, StreamClosed, StreamQueue


class TestStreamQueue:
    """Test suite for StreamQueue."""

    def test_put_get_in_order(self):
        """Test FIFO delivery."""
        stream = StreamQueue("test")
        for i in range(3):
            stream.put(i)

        assert [stream.get() for _ in range(3)] == [0, 1, 2]

    def test_try_get_empty(self):
        """Test that try_get returns None when nothing is queued."""
        assert StreamQueue("test").try_get() is None

    def test_full_queue_drops_oldest(self):
        """Test that a full non-blocking queue keeps the newest messages."""
        stream = StreamQueue("test", maxsize=2)
        for i in range(5):
            assert stream.put(i)

        assert stream.num_dropped == 3
        assert len(stream) == 2
        assert stream.get() == 3
        assert stream.get() == 4

    def test_invalid_maxsize(self):
        """Test that the capacity must be positive."""
        with pytest.raises(ValueError, match="maxsize must be positive"):
            StreamQueue("test", maxsize=0)

    def test_get_after_close_raises(self):
        """Test that reading a closed stream raises StreamClosed."""
        stream = StreamQueue("depth")
        stream.close()

        with pytest.raises(StreamClosed, match="depth"):
            stream.get()
        # Closed stays closed for later readers
        with pytest.raises(StreamClosed):
            stream.try_get()

    def test_queued_messages_delivered_before_close(self):
        """Test that messages put before close() are still read."""
        stream = StreamQueue("test")
        stream.put("a")
        stream.close()

        assert stream.get() == "a"
        with pytest.raises(StreamClosed):
            stream.get()

    def test_put_after_close(self):
        """Test that put() on a closed stream is rejected."""
        stream = StreamQueue("test")
        stream.close()

        assert not stream.put(1)
        assert stream.closed

    def test_close_wakes_blocked_reader(self):
        """Test that close() unblocks a reader waiting in get()."""
        stream = StreamQueue("test")
        raised = threading.Event()

        def reader():
            try:
                stream.get()
            except StreamClosed:
                raised.set()

        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        stream.close()
        thread.join(timeout=1.0)

        assert raised.is_set()

    def test_close_full_queue(self):
        """Test that closing a full queue still delivers the close."""
        stream = StreamQueue("test", maxsize=1)
        stream.put(1)
        stream.close()

        with pytest.raises(StreamClosed):
            stream.get()


class TestInertialSource:
    """Test suite for InertialSource."""

    def test_publish_to_handlers(self):
        """Test that every handler receives the batch."""
        source = InertialSource()
        first, second = [], []
        source.on_packet(first.append)
        source.on_packet(second.append)

        source.publish(["packet"])

        assert first == [["packet"]]
        assert second == [["packet"]]

    def test_remove_handler(self):
        """Test that removed handlers stop receiving batches."""
        source = InertialSource()
        received = []
        source.on_packet(received.append)
        source.remove_handler(received.append)

        source.publish(["packet"])

        assert received == []

    def test_remove_unknown_handler(self):
        """Test that removing an unregistered handler is ignored."""
        InertialSource().remove_handler(print)


class TestQueueSink:
    """Test suite for QueueSink."""

    def test_outputs_on_queues(self):
        """Test that poses and frames land on their own queues."""
        sink = QueueSink()

        sink.send_pose("pose")
        sink.send_passthrough_frame("frame")

        assert sink.transform.get() == "pose"
        assert sink.passthrough_rect.get() == "frame"

    def test_publishes_fusion_outputs(self):
        """Test publishing a stamped pose and the image it was computed from."""
        sink = QueueSink()
        frame = ImageFrame(np.zeros((4, 4), dtype=np.uint8), 1.5, sequence_num=3)
        pose = StampedPose(SE3.identity(), frame.timestamp, frame.sequence_num)

        sink.send_pose(pose)
        sink.send_passthrough_frame(frame)

        assert sink.transform.get() is pose
        assert sink.passthrough_rect.get() is frame

    def test_close(self):
        """Test that close() closes both queues."""
        sink = QueueSink()
        sink.close()

        assert sink.transform.closed
        assert sink.passthrough_rect.closed
