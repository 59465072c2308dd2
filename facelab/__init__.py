"""
FaceLab AI Backend

HTTP backend for a mobile-styled AI app using:
- Gemini (google-genai) for face recognition, face analysis and summaries
- SQLAlchemy async with PostgreSQL for users, face data and summary history
- FastAPI for RESTful API
- A standalone numpy image-similarity scorer
"""

__version__ = "1.0.0"
