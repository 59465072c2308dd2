"""
Generative AI Service using Google GenAI (Gemini)

This module handles every call to the external model:
- Face recognition scoring against registered faces
- Face attribute analysis
- Text summarization
"""
import json
import re
from typing import Optional, List, Sequence
import logging

from google import genai
from google.genai import types

from facelab.config import (
    GEMINI_API_KEY,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
    MAX_OUTPUT_TOKENS
)
from facelab.recognition import FaceEntry, build_recognition_prompt, parse_scores

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """Analyze the face in this image. Return ONLY valid JSON (no markdown, no backticks, no extra text) with exactly these keys:
{
  "age": integer (estimated age),
  "gender": "Male" or "Female",
  "emotion": one of ["Happy","Neutral","Serious","Surprised","Sad"],
  "ethnicity": one of ["Caucasian","Asian","African","Latino","Middle Eastern"],
  "confidence_scores": { "gender_pct": float 0-100, "emotion_pct": float 0-100, "ethnicity_pct": float 0-100 },
  "fun_facts": [3 short, fun, personalized observations about this specific face or person based on what you see in the image - e.g. about their expression, style, features, accessories, or vibe. Each fact should be 1-2 sentences and entertaining.]
}"""

_CODE_FENCE = re.compile(r"```json|```")


class AIServiceError(RuntimeError):
    """Raised when the model cannot be reached or configured."""


class AIResponseError(ValueError):
    """Raised when a model reply cannot be interpreted."""


def parse_analysis(reply: str) -> dict:
    """Parse the attribute JSON, tolerating markdown code fences."""
    cleaned = _CODE_FENCE.sub("", reply or "").strip()
    try:
        result = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Analysis reply is not valid JSON: {e}")
    if not isinstance(result, dict):
        raise AIResponseError("Analysis reply is not a JSON object")
    return result


class GenerativeAIService:
    """
    Service class for generative model calls.

    The Gemini client is created lazily on first use so the app can start
    without credentials.
    """

    def __init__(
        self,
        api_key: Optional[str] = GEMINI_API_KEY,
        base_url: Optional[str] = GEMINI_BASE_URL,
        model_name: str = GEMINI_MODEL
    ):
        """Initialize the AI service."""
        self.api_key = api_key
        self.base_url = base_url
        self.model_name = model_name
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        """Lazy load the client on first use."""
        if self._client is None:
            if not self.api_key:
                raise AIServiceError("AI_INTEGRATIONS_GEMINI_API_KEY is not set")

            http_options = None
            if self.base_url:
                # Integration proxies expect unversioned paths
                http_options = types.HttpOptions(base_url=self.base_url, api_version="")

            self._client = genai.Client(api_key=self.api_key, http_options=http_options)
            logger.info(f"Gemini client ready for model {self.model_name}")
        return self._client

    async def _generate(self, parts: List[types.Part], max_output_tokens: Optional[int] = None) -> str:
        config = None
        if max_output_tokens:
            config = types.GenerateContentConfig(max_output_tokens=max_output_tokens)

        response = await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=[types.Content(role="user", parts=parts)],
            config=config
        )
        return response.text or ""

    async def score_faces(self, query_jpeg: bytes, entries: Sequence[FaceEntry]) -> List[dict]:
        """
        Ask the model to score the query face against registered faces.

        Args:
            query_jpeg: Query face as JPEG bytes
            entries: Registered faces, in the order they are listed

        Returns:
            List of {"name", "score"} as returned by the model; empty if
            the reply cannot be parsed
        """
        parts = [
            types.Part.from_text(text=build_recognition_prompt([e.name for e in entries])),
            types.Part.from_bytes(data=query_jpeg, mime_type="image/jpeg"),
            types.Part.from_text(text="\n\nREGISTERED FACES:"),
        ]
        for i, entry in enumerate(entries):
            parts.append(types.Part.from_text(text=f'\nPerson {i + 1} ("{entry.name}"):'))
            parts.append(types.Part.from_bytes(data=entry.image, mime_type="image/jpeg"))

        reply = await self._generate(parts)
        scores = parse_scores(reply)
        logger.info(f"Model scored {len(scores)} of {len(entries)} registered faces")
        return scores

    async def analyze_face(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> dict:
        """
        Estimate age, gender, emotion and ethnicity of the face in an image.

        Raises:
            AIResponseError: If the reply is not a JSON object
        """
        parts = [
            types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
            types.Part.from_text(text=ANALYSIS_PROMPT),
        ]
        reply = await self._generate(parts, MAX_OUTPUT_TOKENS)
        return parse_analysis(reply)

    async def summarize(self, text: str, style: str, max_length: int) -> str:
        """Summarize text in the given style within max_length words."""
        prompt = (
            "You are a professional text summarization assistant. "
            "Return only the summary, no preamble, no explanation.\n\n"
            f"Summarize the following text in {style} style, maximum {max_length} words:\n\n{text}"
        )
        return await self._generate([types.Part.from_text(text=prompt)], MAX_OUTPUT_TOKENS)


# Singleton instance
ai_service = GenerativeAIService()
