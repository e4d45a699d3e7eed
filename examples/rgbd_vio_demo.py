#!/usr/bin/env python3
"""Replay a recorded RGB-D + IMU sequence through the VIO node.

Feeds images, depth maps and IMU packets into the node's input streams in
time order, and prints the published poses. Poses and frames are also sent
to a Rerun viewer.

Usage:
    uv run python examples/rgbd_vio_demo.py
"""

import time

from rgbd_vio import DepthFrame, IMUReader, ImageFrame, RGBDDatasetReader, VIONode
from rgbd_vio.visualization import RerunSink

# IMU packets are published ahead of each frame so the buffers cover it
IMU_LOOKAHEAD_NS = 20_000_000


def wait_for_pose(node: VIONode, timeout: float = 5.0):
    """Poll the transform output until a pose arrives or the node stops."""
    deadline = time.perf_counter() + timeout
    while time.perf_counter() < deadline:
        stamped = node.outputs.transform.try_get()
        if stamped is not None:
            return stamped
        if not node.is_running:
            return None
        time.sleep(0.001)
    return None


def main() -> None:
    """Run the replay demo."""
    dataset_path = "data/rgbd/mav0"
    config_path = "config/oak-d.yaml"
    max_frames = None  # Set to int to limit frames

    print("Initializing RGB-D VIO replay...")
    print("=" * 80)
    reader = RGBDDatasetReader(dataset_path)
    imu_reader = IMUReader(dataset_path)
    node = VIONode.from_config_file(config_path, sinks=[RerunSink()])

    print(f"Loaded {len(reader)} frames and {len(imu_reader)} IMU samples")
    print(f"IMU orientation from file: {imu_reader.has_orientation}")
    print()
    print(f"{'Frame':>6} | {'Position':^30} | {'Roll/Pitch/Yaw (rad)':^26}")
    print("-" * 70)

    node.start()
    last_imu_ns = imu_reader.start_timestamp or 0
    num_poses = 0

    for i, (image, depth, timestamp_ns) in enumerate(reader):
        if max_frames is not None and i >= max_frames:
            break

        end_ns = timestamp_ns + IMU_LOOKAHEAD_NS
        node.input_imu.publish(imu_reader.get_packets_between(last_imu_ns, end_ns))
        last_imu_ns = end_ns

        stamp = timestamp_ns / 1e9
        node.input_rect.put(ImageFrame(image=image, timestamp=stamp, sequence_num=i, instance_num=1))
        node.input_depth.put(DepthFrame(depth=depth, timestamp=stamp, sequence_num=i))
        if node.input_features is not None:
            node.input_features.put(None)

        if i == 0:
            continue  # First frame only resolves calibration

        stamped = wait_for_pose(node)
        if stamped is None:
            print("Node stopped before publishing a pose")
            break

        num_poses += 1
        if i % 50 == 0:
            x, y, z, roll, pitch, yaw = stamped.translation_and_euler()
            print(
                f"{i:6d} | [{x:8.3f}, {y:8.3f}, {z:8.3f}] | "
                f"[{roll:7.3f}, {pitch:7.3f}, {yaw:7.3f}]"
            )

    node.stop()

    stats = node.stats
    print()
    print("=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"Poses published:     {num_poses}")
    print(f"Cycles with IMU:     {stats.inertial_cycles}")
    print(f"Vision-only cycles:  {stats.vision_only_cycles}")
    print(f"Resets:              {stats.resets}")


if __name__ == "__main__":
    main()
