import asyncio
import os
import tempfile
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Point the app at throwaway storage before it is imported
_TMP_DIR = Path(tempfile.mkdtemp(prefix="facelab-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'facelab.db'}"
os.environ["FACE_DATASET_DIR"] = str(_TMP_DIR / "face_dataset")

from fastapi.testclient import TestClient  # noqa: E402

import facelab.models  # noqa: E402,F401
from facelab.database import engine, Base  # noqa: E402
from facelab.face_dataset import FaceDatasetStore  # noqa: E402
from facelab.main import app, get_ai_service, get_face_dataset  # noqa: E402


def make_image_bytes(width=160, height=120, seed=0, fmt="JPEG"):
    """Encode a deterministic noisy RGB image."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    buffer = BytesIO()
    Image.fromarray(pixels, "RGB").save(buffer, format=fmt)
    return buffer.getvalue()


class FakeAIService:
    """Stands in for the Gemini service, recording what it was asked."""

    model_name = "fake-gemini"

    def __init__(self):
        self.scores = []
        self.analysis = {}
        self.summary = ""
        self.error = None
        self.calls = []

    async def score_faces(self, query_jpeg, entries):
        self.calls.append(("score_faces", query_jpeg, list(entries)))
        if self.error:
            raise self.error
        return self.scores

    async def analyze_face(self, image_bytes, mime_type="image/jpeg"):
        self.calls.append(("analyze_face", image_bytes, mime_type))
        if self.error:
            raise self.error
        return self.analysis

    async def summarize(self, text, style, max_length):
        self.calls.append(("summarize", text, style, max_length))
        if self.error:
            raise self.error
        return self.summary


async def _reset_database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def fake_ai():
    return FakeAIService()


@pytest.fixture
def dataset(tmp_path):
    return FaceDatasetStore(tmp_path / "face_dataset")


@pytest.fixture
def client(fake_ai, dataset):
    asyncio.run(_reset_database())
    app.dependency_overrides[get_ai_service] = lambda: fake_ai
    app.dependency_overrides[get_face_dataset] = lambda: dataset
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_oversized_bmp(width=30000, height=30000):
    """A small BMP whose header claims huge dimensions."""
    buffer = BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="BMP")
    data = bytearray(buffer.getvalue())
    # BITMAPINFOHEADER width and height fields
    data[18:22] = width.to_bytes(4, "little", signed=True)
    data[22:26] = height.to_bytes(4, "little", signed=True)
    return bytes(data)
