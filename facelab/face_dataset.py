"""
Face Dataset Store

This module manages the on-disk face dataset. Each registration writes:
- <user_id>_<timestamp_ms>.jpg: the square display image
- <user_id>_<timestamp_ms>.json: the grayscale pixel vector as a JSON array

The database only stores these filenames; this module owns the files.
"""
import json
import time
import numpy as np
from pathlib import Path
from typing import Optional, Tuple
import logging
import threading

from facelab.config import FACE_DATASET_DIR

logger = logging.getLogger(__name__)


class FaceDatasetStore:
    """
    File-based store for face images and pixel vectors.

    Thread-safe implementation with a re-entrant lock.
    """

    def __init__(self, root: Optional[Path] = None):
        """Initialize the store, creating the dataset directory if needed."""
        self._lock = threading.RLock()
        self.root = Path(root) if root is not None else FACE_DATASET_DIR
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, filename: str) -> Path:
        """Map a stored filename to a path inside the dataset directory."""
        path = (self.root / filename).resolve()
        if path.parent != self.root.resolve():
            raise ValueError(f"Invalid dataset filename: {filename}")
        return path

    @property
    def count(self) -> int:
        """Get the number of stored face images."""
        with self._lock:
            return sum(1 for _ in self.root.glob("*.jpg"))

    def save(self, user_id: int, display_jpeg: bytes, pixel_vector: np.ndarray) -> Tuple[str, str]:
        """
        Write the display image and pixel vector of one registration.

        Args:
            user_id: Owning user
            display_jpeg: Encoded display image
            pixel_vector: Grayscale pixel vector

        Returns:
            (face_filename, vector_filename)
        """
        with self._lock:
            timestamp = int(time.time() * 1000)
            # Keep names unique when one user registers twice in the same millisecond
            while (self.root / f"{user_id}_{timestamp}.jpg").exists():
                timestamp += 1

            face_file = f"{user_id}_{timestamp}.jpg"
            vector_file = f"{user_id}_{timestamp}.json"

            (self.root / face_file).write_bytes(display_jpeg)
            with open(self.root / vector_file, "w") as f:
                json.dump([int(v) for v in np.asarray(pixel_vector).reshape(-1)], f)

            logger.info(f"Saved face image {face_file} and vector {vector_file}")
            return face_file, vector_file

    def delete(self, *filenames: str) -> None:
        """Remove stored files, ignoring ones already gone."""
        with self._lock:
            for filename in filenames:
                self._resolve(filename).unlink(missing_ok=True)
                logger.info(f"Deleted dataset file {filename}")

    def read_image(self, face_file: str) -> bytes:
        """Read a stored display image."""
        return self._resolve(face_file).read_bytes()

    def load_vector(self, vector_file: str) -> np.ndarray:
        """Load a stored pixel vector as a uint8 array."""
        with open(self._resolve(vector_file), "r") as f:
            data = json.load(f)
        return np.asarray(data, dtype=np.uint8)


# Singleton instance
face_dataset = FaceDatasetStore()
