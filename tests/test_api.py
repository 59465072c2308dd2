import pytest

from facelab.repository import FaceDataRepository, UserRepository
from tests.conftest import make_image_bytes, make_oversized_bmp

ANALYSIS = {
    "age": 31,
    "gender": "Female",
    "emotion": "Happy",
    "ethnicity": "Asian",
    "confidence_scores": {"gender_pct": 97.5, "emotion_pct": 88.0, "ethnicity_pct": 71.2},
    "fun_facts": ["Bright smile.", "Great lighting.", "Confident look."],
}


def register(client, name, seed=0):
    return client.post(
        "/api/register-face",
        data={"name": name},
        files={"image": ("face.jpg", make_image_bytes(seed=seed), "image/jpeg")},
    )


def recognize(client, seed=0):
    return client.post(
        "/api/recognize-face",
        files={"image": ("query.jpg", make_image_bytes(seed=seed), "image/jpeg")},
    )


class TestRegisterFace:
    def test_registers_and_returns_preview(self, client, dataset):
        response = register(client, "Alice")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["name"] == "Alice"
        assert body["preview_image"].startswith("data:image/jpeg;base64,")
        assert dataset.count == 1

    def test_requires_name(self, client):
        response = client.post(
            "/api/register-face",
            files={"image": ("face.jpg", make_image_bytes(), "image/jpeg")},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Name and image are required"}

    def test_requires_image(self, client):
        response = client.post("/api/register-face", data={"name": "Alice"})
        assert response.status_code == 400
        assert response.json() == {"error": "Name and image are required"}

    def test_rejects_undecodable_image(self, client):
        response = client.post(
            "/api/register-face",
            data={"name": "Alice"},
            files={"image": ("face.jpg", b"garbage", "image/jpeg")},
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Failed to process image")

    def test_same_name_reuses_user(self, client):
        register(client, "Alice", seed=1)
        register(client, "Alice", seed=2)

        faces = client.get("/api/faces").json()
        assert len(faces) == 2
        assert faces[0]["userId"] == faces[1]["userId"]
        assert faces[0]["user"]["name"] == "Alice"
        assert faces[0]["facePath"].endswith(".jpg")
        assert faces[0]["vectorPath"].endswith(".json")

    def test_rejects_oversized_image_header(self, client, dataset):
        response = client.post(
            "/api/register-face",
            data={"name": "Alice"},
            files={"image": ("face.bmp", make_oversized_bmp(), "image/bmp")},
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Failed to process image")
        assert dataset.count == 0

    def test_database_failure_removes_saved_files(self, client, dataset, monkeypatch):
        async def failing_create(*args, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(FaceDataRepository, "create", staticmethod(failing_create))

        response = register(client, "Alice")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to register face"}
        assert list(dataset.root.iterdir()) == []

    def test_concurrent_first_registration_reuses_user(self, client, monkeypatch):
        register(client, "Alice", seed=1)

        real_get_by_name = UserRepository.get_by_name
        lookups = []

        async def stale_get_by_name(session, name):
            # First lookup misses, as if another request had not committed yet
            lookups.append(name)
            if len(lookups) == 1:
                return None
            return await real_get_by_name(session, name)

        monkeypatch.setattr(UserRepository, "get_by_name", staticmethod(stale_get_by_name))

        response = register(client, "Alice", seed=2)

        assert response.status_code == 200
        faces = client.get("/api/faces").json()
        assert len(faces) == 2
        assert faces[0]["userId"] == faces[1]["userId"]

    def test_stored_vectors_of_same_photo_are_identical(self, client, dataset):
        from facelab.similarity import compute_similarity

        register(client, "Alice", seed=5)
        register(client, "Bob", seed=5)

        vectors = [dataset.load_vector(face["vectorPath"]) for face in client.get("/api/faces").json()]
        assert compute_similarity(vectors[0], vectors[1]) == 100.0


class TestRecognizeFace:
    def test_requires_image(self, client):
        response = client.post("/api/recognize-face")
        assert response.status_code == 400
        assert response.json() == {"error": "Image is required"}

    def test_no_faces_registered(self, client):
        response = recognize(client)
        assert response.status_code == 400
        assert response.json() == {"error": "No faces registered yet"}

    def test_match_found(self, client, fake_ai):
        register(client, "Alice", seed=1)
        register(client, "Bob", seed=2)
        fake_ai.scores = [{"name": "Bob", "score": 86.0}, {"name": "Alice", "score": 12.0}]

        response = recognize(client, seed=3)

        assert response.status_code == 200
        body = response.json()
        assert body["match_found"] is True
        assert body["best_match"] == {"name": "Bob", "confidence": 86.0}
        assert [m["name"] for m in body["all_matches"]] == ["Bob", "Alice"]
        assert all(m["face_image"].startswith("data:image/jpeg;base64,") for m in body["all_matches"])
        assert body["annotated_image"].startswith("data:image/jpeg;base64,")

        _, query_jpeg, entries = fake_ai.calls[0]
        assert query_jpeg[:2] == b"\xff\xd8"
        assert [e.name for e in entries] == ["Alice", "Bob"]

    def test_below_threshold_is_no_match(self, client, fake_ai):
        register(client, "Alice")
        fake_ai.scores = [{"name": "Alice", "score": 39.5}]

        body = recognize(client).json()

        assert body["match_found"] is False
        assert body["best_match"] is None
        assert body["all_matches"] == []

    def test_missing_face_files(self, client, dataset, fake_ai):
        register(client, "Alice")
        for path in dataset.root.glob("*.jpg"):
            path.unlink()

        response = recognize(client)

        assert response.status_code == 400
        assert response.json() == {"error": "No face images available for comparison"}
        assert fake_ai.calls == []

    def test_model_failure(self, client, fake_ai):
        register(client, "Alice")
        fake_ai.error = RuntimeError("quota exceeded")

        response = recognize(client)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to recognize face"}


class TestAnalyzeFace:
    def test_returns_attributes(self, client, fake_ai):
        fake_ai.analysis = ANALYSIS

        response = client.post(
            "/api/analyze-face",
            files={"image": ("face.png", make_image_bytes(fmt="PNG"), "image/png")},
        )

        assert response.status_code == 200
        assert response.json() == ANALYSIS
        assert fake_ai.calls[0][2] == "image/png"

    def test_fun_facts_are_optional(self, client, fake_ai):
        fake_ai.analysis = {k: v for k, v in ANALYSIS.items() if k != "fun_facts"}

        response = client.post(
            "/api/analyze-face",
            files={"image": ("face.jpg", make_image_bytes(), "image/jpeg")},
        )

        assert response.status_code == 200
        assert "fun_facts" not in response.json()

    def test_requires_image(self, client):
        response = client.post("/api/analyze-face")
        assert response.status_code == 400
        assert response.json() == {"error": "Image is required"}

    @pytest.mark.parametrize("analysis, error", [
        ({"age": 30}, None),
        (None, RuntimeError("model unavailable")),
    ])
    def test_failures(self, client, fake_ai, analysis, error):
        fake_ai.analysis = analysis
        fake_ai.error = error

        response = client.post(
            "/api/analyze-face",
            files={"image": ("face.jpg", make_image_bytes(), "image/jpeg")},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Face analysis failed"}


class TestSummarize:
    def test_summarizes_and_stores_history(self, client, fake_ai):
        fake_ai.summary = "Cats are great pets."

        response = client.post(
            "/api/summarize",
            json={"text": "A long essay about cats.", "style": "concise", "max_length": 20},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["summary"] == "Cats are great pets."
        assert body["word_count"] == 4
        assert body["style"] == "concise"
        assert body["created_at"]
        assert fake_ai.calls[0] == ("summarize", "A long essay about cats.", "concise", 20)

        history = client.get("/api/summaries").json()
        assert len(history) == 1
        assert history[0]["originalText"] == "A long essay about cats."
        assert history[0]["modelUsed"] == "fake-gemini"
        assert history[0]["summaryStyle"] == "concise"
        assert history[0]["wordCount"] == 4

    def test_invalid_body(self, client):
        response = client.post("/api/summarize", json={"text": "hi"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")

    def test_model_failure(self, client, fake_ai):
        fake_ai.error = RuntimeError("timeout")

        response = client.post(
            "/api/summarize",
            json={"text": "x", "style": "concise", "max_length": 5},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Summarization failed"}
        assert client.get("/api/summaries").json() == []


class TestStats:
    def test_counts(self, client, fake_ai):
        assert client.get("/api/stats").json() == {"total_faces": 0, "total_summaries": 0}

        register(client, "Alice")
        register(client, "Alice", seed=1)
        fake_ai.summary = "short"
        client.post("/api/summarize", json={"text": "t", "style": "s", "max_length": 3})

        assert client.get("/api/stats").json() == {"total_faces": 2, "total_summaries": 1}

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["total_faces"] == 0

    def test_root_lists_endpoints(self, client):
        assert client.get("/").json()["endpoints"]["recognize"] == "POST /api/recognize-face"
