"""Reader for recorded RGB-D sequences in EuRoC-like layout.

Layout:
    mav0/
        cam0/data.csv        #timestamp [ns],filename
        cam0/data/*.png      rectified images
        depth0/data/*.png    16-bit depth maps (millimeters), same filenames
        imu0/data.csv        optional, see io.imu_reader
"""

from pathlib import Path
from typing import Iterator

import cv2
import numpy as np


class RGBDDatasetReader:
    """Reader for synchronized image and depth frames."""

    def __init__(self, dataset_path: str = "data/rgbd/mav0") -> None:
        """Initialize reader with path to dataset.

        Args:
            dataset_path: Path to mav0 directory

        Raises:
            FileNotFoundError: If dataset path or required directories don't exist
            ValueError: If data.csv is empty or invalid
        """
        self.dataset_path = Path(dataset_path)

        self.cam0_path = self.dataset_path / "cam0"
        self.depth0_path = self.dataset_path / "depth0"
        self.cam0_data_path = self.cam0_path / "data"
        self.depth0_data_path = self.depth0_path / "data"

        self._validate_paths()

        self._image_list = self._load_image_list()

        if not self._image_list:
            raise ValueError(f"No images found in {self.cam0_path / 'data.csv'}")

        self._current_idx = 0

    def _validate_paths(self) -> None:
        """Validate that all required paths exist."""
        if not self.dataset_path.exists():
            raise FileNotFoundError(f"Dataset path does not exist: {self.dataset_path}")

        if not self.cam0_path.exists():
            raise FileNotFoundError(
                f"cam0 directory not found: {self.cam0_path}\n"
                f"Expected structure: {self.dataset_path}/cam0/"
            )

        if not self.depth0_path.exists():
            raise FileNotFoundError(
                f"depth0 directory not found: {self.depth0_path}\n"
                f"Expected structure: {self.dataset_path}/depth0/"
            )

        if not self.cam0_data_path.exists():
            raise FileNotFoundError(
                f"cam0/data directory not found: {self.cam0_data_path}"
            )

        if not self.depth0_data_path.exists():
            raise FileNotFoundError(
                f"depth0/data directory not found: {self.depth0_data_path}"
            )

        csv_path = self.cam0_path / "data.csv"
        if not csv_path.exists():
            raise FileNotFoundError(
                f"cam0/data.csv not found: {csv_path}\n"
                f"This file is required to list image timestamps and filenames."
            )

    def _load_image_list(self) -> list[tuple[int, str]]:
        """Parse cam0/data.csv.

        Returns:
            List of (timestamp_ns, filename) tuples in chronological order
        """
        csv_path = self.cam0_path / "data.csv"
        image_list = []

        with open(csv_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                try:
                    timestamp_str, filename = line.split(",")
                    timestamp_ns = int(timestamp_str.strip())
                    image_list.append((timestamp_ns, filename.strip()))
                except ValueError as e:
                    raise ValueError(
                        f"Invalid line in {csv_path}: '{line}'\n"
                        f"Expected format: timestamp,filename"
                    ) from e

        image_list.sort(key=lambda item: item[0])
        return image_list

    def _load_frame(self, filename: str) -> tuple[np.ndarray, np.ndarray]:
        """Load an image and its depth map by filename.

        Raises:
            FileNotFoundError: If either file doesn't exist
            ValueError: If decoding fails
        """
        image_path = self.cam0_data_path / filename
        depth_path = self.depth0_data_path / filename

        if not image_path.exists():
            raise FileNotFoundError(f"Camera image not found: {image_path}")

        if not depth_path.exists():
            raise FileNotFoundError(f"Depth image not found: {depth_path}")

        image = cv2.imread(str(image_path), cv2.IMREAD_GRAYSCALE)
        depth = cv2.imread(str(depth_path), cv2.IMREAD_UNCHANGED)

        if image is None:
            raise ValueError(f"Failed to load camera image: {image_path}")

        if depth is None:
            raise ValueError(f"Failed to load depth image: {depth_path}")

        if depth.shape[:2] != image.shape[:2]:
            raise ValueError(
                f"Depth size {depth.shape[:2]} does not match image size "
                f"{image.shape[:2]} for {filename}"
            )

        return image, depth

    def get_next_frame(self) -> tuple[np.ndarray, np.ndarray, int] | None:
        """Get the next image and depth pair.

        Returns:
            Tuple of (image, depth, timestamp_ns), or None when exhausted

        Example:
            >>> reader = RGBDDatasetReader('data/rgbd/mav0')
            >>> while (frame := reader.get_next_frame()) is not None:
            ...     image, depth, timestamp = frame
        """
        if self._current_idx >= len(self._image_list):
            return None

        timestamp_ns, filename = self._image_list[self._current_idx]
        image, depth = self._load_frame(filename)

        self._current_idx += 1
        return image, depth, timestamp_ns

    def reset(self) -> None:
        """Reset iterator to beginning of dataset."""
        self._current_idx = 0

    @property
    def timestamps(self) -> list[int]:
        """Frame timestamps in nanoseconds."""
        return [timestamp for timestamp, _ in self._image_list]

    def __len__(self) -> int:
        """Return total number of frames in dataset."""
        return len(self._image_list)

    def __iter__(self) -> Iterator[tuple[np.ndarray, np.ndarray, int]]:
        """Iterate over (image, depth, timestamp_ns) from the beginning."""
        self.reset()
        return self

    def __next__(self) -> tuple[np.ndarray, np.ndarray, int]:
        """Get next frame for iterator protocol."""
        frame = self.get_next_frame()
        if frame is None:
            raise StopIteration
        return frame
