"""
Face Recognition Scoring

Prompt construction and reply post-processing for AI-based face
recognition. The model scores each registered person 0-100; this module
turns those scores into ranked matches.
"""
import json
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence
import logging

from facelab.config import MATCH_THRESHOLD

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass
class FaceEntry:
    """A registered face sent to the model for comparison."""
    name: str
    image: bytes
    face_path: Optional[str] = None


@dataclass
class RankedMatch:
    name: str
    confidence: float
    face_path: Optional[str] = None


def build_recognition_prompt(names: Sequence[str]) -> str:
    """Instructions preceding the query image."""
    name_list = "\n".join(f'Person {i + 1}: "{name}"' for i, name in enumerate(names))
    return f"""You are a strict face recognition system. Compare the QUERY face photo against {len(names)} registered face photos and determine if ANY of them are the SAME PERSON as the query.

IMPORTANT: Be very strict. Only give high scores when you are genuinely confident the faces belong to the same person. Most comparisons between different people should score BELOW 25.

For each registered person, give a similarity score from 0 to 100:
- 80-100: Clearly the same person (matching facial structure, bone structure, distinctive features)
- 50-79: Possibly the same person (several key features match closely)
- 25-49: Some superficial similarity but likely different people
- 0-24: Different person (this should be the most common score for genuinely different people)

Focus on: face shape, eye spacing and shape, nose shape and size, jawline, forehead shape, cheekbone structure, mouth shape, ear shape, distinctive facial features. Ignore: lighting, angle, expression, glasses, hair style, makeup, image quality, clothing.

CRITICAL: If the query face does not match anyone, ALL scores should be below 25. Do NOT inflate scores. Two different people should score low even if they share the same gender, age range, or ethnicity.

Registered people:
{name_list}

Respond ONLY with valid JSON array, no other text:
[{{"name": "exact name", "score": number}}]

QUERY FACE:"""


def parse_scores(reply: str) -> List[dict]:
    """
    Extract [{"name", "score"}] from a model reply.

    The first JSON array in the text is used; anything unparsable yields
    an empty list.
    """
    match = _JSON_ARRAY.search(reply or "")
    if not match:
        logger.warning("No JSON array in recognition reply")
        return []

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.error(f"Failed to parse AI scores: {reply}")
        return []

    if not isinstance(data, list):
        return []

    scores = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        score = item.get("score")
        if isinstance(name, str) and isinstance(score, (int, float)) and not isinstance(score, bool):
            scores.append({"name": name, "score": float(score)})
    return scores


def rank_matches(entries: Sequence[FaceEntry], scores: Sequence[dict]) -> List[RankedMatch]:
    """
    Attach a confidence to every entry and sort best first.

    Confidence is the model score for the exact name, clamped to [0, 100]
    and rounded to 2 decimals; names the model skipped score 0. When a
    name appears twice in the reply, the first score wins.
    """
    by_name = {}
    for item in scores:
        by_name.setdefault(item["name"], item["score"])

    matches = []
    for entry in entries:
        score = by_name.get(entry.name)
        confidence = max(0.0, min(100.0, score)) if score is not None else 0.0
        matches.append(RankedMatch(
            name=entry.name,
            confidence=round(confidence, 2),
            face_path=entry.face_path
        ))

    matches.sort(key=lambda m: m.confidence, reverse=True)
    return matches


def is_match(matches: Sequence[RankedMatch], threshold: float = MATCH_THRESHOLD) -> bool:
    """Whether the best match reaches the threshold."""
    return bool(matches) and matches[0].confidence >= threshold
