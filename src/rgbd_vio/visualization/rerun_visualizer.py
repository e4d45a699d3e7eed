"""Rerun-based output sink for the fusion node."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import rerun as rr
import rerun.blueprint as rrb

if TYPE_CHECKING:
    from ..fusion.observation import StampedPose
    from ..io.messages import ImageFrame


class RerunSink:
    """Logs published poses and passthrough frames to a Rerun viewer.

    Entity hierarchy:
        camera/
            image           - Passthrough image of each fused frame
        world/
            camera          - Current camera pose
            trajectory      - Accumulated camera positions (yellow)
            trajectory/current
    """

    def __init__(self, app_name: str = "python-rgbd-vio", spawn: bool = True) -> None:
        """Initialize Rerun visualization.

        Args:
            app_name: Name for the Rerun application window
            spawn: If True, automatically spawn the Rerun viewer
        """
        rr.init(app_name, spawn=spawn)
        self._positions: list[np.ndarray] = []
        # Camera convention: X-right, Y-down, Z-forward
        rr.log("world", rr.ViewCoordinates.RDF, static=True)
        rr.send_blueprint(
            rrb.Blueprint(
                rrb.Horizontal(
                    contents=[
                        rrb.Spatial2DView(name="Camera", origin="camera/image"),
                        rrb.Spatial3DView(name="Trajectory", origin="world"),
                    ]
                )
            )
        )

    def send_pose(self, pose: StampedPose) -> None:
        """Log the camera pose and extend the trajectory."""
        rr.set_time("timestamp", duration=pose.timestamp)
        rr.log(
            "world/camera",
            rr.Transform3D(
                translation=pose.pose.translation,
                mat3x3=pose.pose.rotation,
            ),
        )

        self._positions.append(pose.pose.position)
        if len(self._positions) < 2:
            return

        positions = np.array(self._positions, dtype=np.float64)
        rr.log(
            "world/trajectory",
            rr.LineStrips3D([positions], colors=[[255, 255, 0]], radii=0.01),
        )
        rr.log(
            "world/trajectory/current",
            rr.Points3D([positions[-1]], colors=[[0, 255, 255]], radii=0.05),
        )

    def send_passthrough_frame(self, frame: ImageFrame) -> None:
        """Log the image consumed by the fusion cycle."""
        rr.set_time("timestamp", duration=frame.timestamp)
        rr.log("camera/image", rr.Image(frame.image))

    def reset_trajectory(self) -> None:
        """Forget accumulated positions, e.g. after an estimator reset."""
        self._positions = []
