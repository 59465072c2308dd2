import json

import numpy as np
import pytest

from facelab.face_dataset import FaceDatasetStore
from facelab.similarity import compute_similarity


def test_save_writes_image_and_vector(tmp_path):
    store = FaceDatasetStore(tmp_path / "faces")
    vector = np.arange(10000) % 256

    face_file, vector_file = store.save(7, b"\xff\xd8jpeg", vector)

    assert face_file.startswith("7_") and face_file.endswith(".jpg")
    assert vector_file == face_file[:-4] + ".json"
    assert store.read_image(face_file) == b"\xff\xd8jpeg"
    assert json.loads((tmp_path / "faces" / vector_file).read_text())[:3] == [0, 1, 2]
    assert store.count == 1


def test_stored_vector_can_be_scored(tmp_path):
    store = FaceDatasetStore(tmp_path)
    vector = np.random.default_rng(0).integers(0, 256, size=10000)
    _, vector_file = store.save(1, b"jpeg", vector)

    loaded = store.load_vector(vector_file)
    assert loaded.dtype == np.uint8
    assert compute_similarity(vector, loaded) == 100.0


def test_repeated_saves_get_distinct_names(tmp_path):
    store = FaceDatasetStore(tmp_path)
    names = {store.save(1, b"jpeg", np.zeros(4))[0] for _ in range(5)}
    assert len(names) == 5
    assert store.count == 5


def test_rejects_paths_outside_dataset(tmp_path):
    store = FaceDatasetStore(tmp_path / "faces")
    (tmp_path / "secret.jpg").write_bytes(b"x")
    with pytest.raises(ValueError):
        store.read_image("../secret.jpg")


def test_missing_image(tmp_path):
    store = FaceDatasetStore(tmp_path)
    with pytest.raises(FileNotFoundError):
        store.read_image("1_123.jpg")
