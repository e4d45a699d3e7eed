"""Tests for InertialAligner."""

import threading

import numpy as np
import pytest

from rgbd_vio.fusion.inertial_aligner import (
    AlignedInertial,
    InertialAligner,
    OrientationStampPolicy,
)
from rgbd_vio.io.messages import InertialPacket, InertialReading


class TestInertialAligner:
    """Test suite for InertialAligner."""

    def test_ingest_fills_all_buffers(self, make_packet):
        """Test that one packet adds one sample per series."""
        aligner = InertialAligner()

        aligner.ingest([make_packet(1.0), make_packet(2.0)])

        assert aligner.buffer_sizes() == (2, 2, 2)
        assert aligner.num_ingested == 2

    def test_missing_series_skipped(self):
        """Test that packets without a series leave that buffer alone."""
        aligner = InertialAligner()
        packet = InertialPacket(accelerometer=InertialReading(1.0, np.zeros(3)))

        aligner.ingest([packet])

        assert aligner.buffer_sizes() == (1, 0, 0)

    def test_align_interpolates_all_series(self, make_packet):
        """Test that every series is resolved at the image timestamp."""
        aligner = InertialAligner()
        aligner.ingest(
            [
                make_packet(1.0, accel=(0, 0, 9.0), gyro=(0.0, 0.0, 0.0)),
                make_packet(2.0, accel=(0, 0, 10.0), gyro=(0.2, 0.0, 0.0)),
            ]
        )

        inertial, ok = aligner.align(1.5)

        assert ok
        assert isinstance(inertial, AlignedInertial)
        assert inertial.timestamp == 1.5
        np.testing.assert_allclose(inertial.accelerometer, [0, 0, 9.5])
        np.testing.assert_allclose(inertial.gyroscope, [0.1, 0, 0])
        np.testing.assert_allclose(inertial.orientation, [0, 0, 0, 1])

    def test_align_is_all_or_nothing(self, make_packet):
        """Test that one lagging series blocks fusion and evicts nothing."""
        aligner = InertialAligner()
        aligner.ingest([make_packet(1.0), make_packet(2.0), make_packet(3.0)])
        # Accelerometer runs ahead, orientation lags
        aligner.ingest([InertialPacket(accelerometer=InertialReading(4.0, np.zeros(3)))])
        aligner.ingest([InertialPacket(gyroscope=InertialReading(4.0, np.zeros(3)))])

        inertial, ok = aligner.align(3.5)

        assert not ok
        assert inertial is None
        assert aligner.buffer_sizes() == (4, 4, 3)

    def test_align_evicts_consumed_history(self, make_packet):
        """Test that a successful alignment drops older samples."""
        aligner = InertialAligner()
        aligner.ingest([make_packet(t) for t in (1.0, 2.0, 3.0, 4.0)])

        _, ok = aligner.align(3.5)

        assert ok
        assert aligner.buffer_sizes() == (1, 1, 1)

    def test_align_before_evicted_history_fails(self, make_packet):
        """Test that a query older than consumed history is rejected."""
        aligner = InertialAligner()
        aligner.ingest([make_packet(t) for t in (1.0, 2.0, 3.0)])
        aligner.align(2.5)

        inertial, ok = aligner.align(1.0)

        assert not ok
        assert inertial is None

    def test_align_with_no_samples(self):
        """Test alignment before any packet arrived."""
        inertial, ok = InertialAligner().align(1.0)

        assert not ok
        assert inertial is None

    def test_own_policy_uses_rotation_timestamp(self, make_packet):
        """Test that OWN keys orientation by its own timestamp."""
        aligner = InertialAligner(orientation_stamp=OrientationStampPolicy.OWN)
        aligner.ingest([make_packet(1.0, rotation_timestamp=0.5)])

        # Orientation's newest sample is older than the query
        _, ok = aligner.align(1.0)

        assert not ok

    def test_gyro_policy_uses_gyro_timestamp(self, make_packet):
        """Test that GYRO keys orientation by the gyroscope timestamp."""
        aligner = InertialAligner(orientation_stamp=OrientationStampPolicy.GYRO)
        aligner.ingest([make_packet(1.0, rotation_timestamp=0.5)])

        inertial, ok = aligner.align(1.0)

        assert ok
        np.testing.assert_allclose(inertial.orientation, [0, 0, 0, 1])

    def test_gyro_policy_without_gyro_skips_orientation(self):
        """Test that GYRO drops orientation samples with no gyro reading."""
        aligner = InertialAligner(orientation_stamp=OrientationStampPolicy.GYRO)
        packet = InertialPacket(rotation_vector=InertialReading(1.0, [0, 0, 0, 1]))

        aligner.ingest([packet])

        assert aligner.buffer_sizes() == (0, 0, 0)
        assert aligner.num_ingested == 1

    def test_max_samples_caps_buffers(self, make_packet):
        """Test that retained history is bounded."""
        aligner = InertialAligner(max_samples=10)
        aligner.ingest([make_packet(float(t)) for t in range(50)])

        assert aligner.buffer_sizes() == (10, 10, 10)

    def test_clear(self, make_packet):
        """Test that clear() empties every buffer."""
        aligner = InertialAligner()
        aligner.ingest([make_packet(1.0)])

        aligner.clear()

        assert aligner.buffer_sizes() == (0, 0, 0)

    def test_orientation_matrix(self):
        """Test conversion of the (i, j, k, real) orientation to a matrix."""
        s = np.sqrt(0.5)
        inertial = AlignedInertial(
            timestamp=0.0,
            accelerometer=np.zeros(3),
            gyroscope=np.zeros(3),
            orientation=np.array([0.0, 0.0, s, s]),  # 90 deg about z
        )

        R = inertial.orientation_matrix()

        np.testing.assert_allclose(R @ [1, 0, 0], [0, 1, 0], atol=1e-12)

    def test_concurrent_ingest_and_align(self, make_packet):
        """Test that ingest from another thread never corrupts the buffers."""
        aligner = InertialAligner(max_samples=None)
        num_packets = 2000

        def producer():
            for i in range(num_packets):
                aligner.ingest([make_packet(i * 0.001)])

        thread = threading.Thread(target=producer)
        thread.start()
        for i in range(200):
            aligner.align(i * 0.01)
        thread.join()

        assert aligner.num_ingested == num_packets
        inertial, ok = aligner.align((num_packets - 1) * 0.001)
        assert ok
        assert inertial is not None

    @pytest.mark.parametrize("policy", list(OrientationStampPolicy))
    def test_policy_property(self, policy):
        """Test that the configured policy is reported."""
        assert InertialAligner(orientation_stamp=policy).orientation_stamp is policy
