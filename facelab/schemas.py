"""
Pydantic models for API request/response schemas

Stored rows (users, face data, summaries) are rendered with camelCase keys,
the shape the front end reads them in.
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime


class StatsResponse(BaseModel):
    """Schema for aggregate counts"""
    total_faces: int = Field(..., description="Number of stored face registrations")
    total_summaries: int = Field(..., description="Number of stored summaries")


class User(BaseModel):
    """Schema for a registered user"""
    id: int
    name: str
    created_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class FaceData(BaseModel):
    """Schema for a face registration row with its user"""
    id: int
    user_id: Optional[int] = None
    face_path: Optional[str] = None
    vector_path: Optional[str] = None
    created_at: Optional[datetime] = None
    user: User

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "userId": 1,
                "facePath": "1_1718000000000.jpg",
                "vectorPath": "1_1718000000000.json",
                "createdAt": "2024-06-10T08:00:00",
                "user": {"id": 1, "name": "Alice", "createdAt": "2024-06-10T08:00:00"}
            }
        }


class SummaryRecord(BaseModel):
    """Schema for a summary history row"""
    id: int
    original_text: Optional[str] = None
    summary: Optional[str] = None
    model_used: Optional[str] = None
    summary_style: Optional[str] = None
    word_count: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        protected_namespaces = ()


class RegisterResponse(BaseModel):
    """Schema for register face response"""
    success: bool = Field(..., description="Whether the registration succeeded")
    name: str = Field(..., description="Name the face was registered under")
    preview_image: str = Field(..., description="Stored display image as a JPEG data URI")


class BestMatch(BaseModel):
    """Schema for the best recognition match"""
    name: str = Field(..., description="Registered name")
    confidence: float = Field(..., ge=0, le=100, description="Confidence score (0-100)")


class MatchResult(BaseModel):
    """Schema for a single recognition match"""
    name: str = Field(..., description="Registered name")
    confidence: float = Field(..., ge=0, le=100, description="Confidence score (0-100)")
    face_image: Optional[str] = Field(default=None, description="Registered face as a JPEG data URI")


class RecognizeResponse(BaseModel):
    """Schema for recognize face response"""
    match_found: bool = Field(..., description="Whether the best score reached the match threshold")
    best_match: Optional[BestMatch] = Field(default=None, description="Best match if found")
    all_matches: List[MatchResult] = Field(..., description="All matches, best first; empty when no match")
    annotated_image: str = Field(..., description="Query image as a JPEG data URI")

    class Config:
        json_schema_extra = {
            "example": {
                "match_found": True,
                "best_match": {"name": "Alice", "confidence": 87.5},
                "all_matches": [
                    {"name": "Alice", "confidence": 87.5, "face_image": "data:image/jpeg;base64,..."},
                    {"name": "Bob", "confidence": 12.0, "face_image": "data:image/jpeg;base64,..."}
                ],
                "annotated_image": "data:image/jpeg;base64,..."
            }
        }


class ConfidenceScores(BaseModel):
    gender_pct: float
    emotion_pct: float
    ethnicity_pct: float


class AnalysisResponse(BaseModel):
    """Schema for face attribute analysis"""
    age: float = Field(..., description="Estimated age")
    gender: str
    emotion: str
    ethnicity: str
    confidence_scores: ConfidenceScores
    fun_facts: Optional[List[str]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "age": 29,
                "gender": "Female",
                "emotion": "Happy",
                "ethnicity": "Asian",
                "confidence_scores": {"gender_pct": 96.0, "emotion_pct": 88.5, "ethnicity_pct": 74.0},
                "fun_facts": ["That smile could power a small city."]
            }
        }


class SummarizeRequest(BaseModel):
    """Schema for a summarization request"""
    text: str = Field(..., description="Text to summarize")
    style: str = Field(..., description="Summary style, e.g. concise or bullet points")
    max_length: int = Field(..., description="Maximum number of words")


class SummarizeResponse(BaseModel):
    """Schema for a summarization response"""
    summary: str
    word_count: int
    style: str
    created_at: str = Field(..., description="ISO 8601 timestamp")


class ErrorResponse(BaseModel):
    """Schema for error responses"""
    error: str = Field(..., description="Error message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Name and image are required"
            }
        }
