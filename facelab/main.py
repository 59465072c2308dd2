"""
FaceLab AI API

HTTP backend for the FaceLab mobile web app, powered by Gemini, with
PostgreSQL for users, face data and summary history.

Endpoints:
- GET /api/stats - Aggregate counts
- GET /api/faces - List face registrations
- GET /api/summaries - List summary history
- POST /api/register-face - Register a face under a name
- POST /api/recognize-face - Recognize a face against registered faces
- POST /api/analyze-face - Estimate face attributes
- POST /api/summarize - Summarize text
"""
import time
import logging
from datetime import datetime, timezone
from typing import Optional, List
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, UploadFile, Form, HTTPException, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from facelab.config import (
    API_TITLE,
    API_DESCRIPTION,
    API_VERSION,
    GEMINI_MODEL,
    MATCH_THRESHOLD,
    QUERY_JPEG_QUALITY
)
from facelab.schemas import (
    StatsResponse,
    FaceData,
    SummaryRecord,
    RegisterResponse,
    BestMatch,
    MatchResult,
    RecognizeResponse,
    AnalysisResponse,
    SummarizeRequest,
    SummarizeResponse,
    ErrorResponse
)
from facelab.ai_service import ai_service, GenerativeAIService
from facelab.face_dataset import face_dataset, FaceDatasetStore
from facelab.image_processing import (
    ImageDecodeError,
    load_pixel_vector,
    make_display_jpeg,
    resize_to_width,
    to_data_uri
)
from facelab.recognition import FaceEntry, rank_matches, is_match
from facelab.database import async_session_maker, init_db, close_db
from facelab.repository import (
    UserRepository,
    FaceDataRepository,
    SummaryRepository,
    get_stats
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def get_db() -> AsyncSession:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_ai_service() -> GenerativeAIService:
    """Dependency to get the generative AI service."""
    return ai_service


def get_face_dataset() -> FaceDatasetStore:
    """Dependency to get the face dataset store."""
    return face_dataset


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting FaceLab AI API...")
    logger.info(f"Model: {GEMINI_MODEL}")

    # Initialize database
    await init_db()

    logger.info(f"Face dataset has {face_dataset.count} images")
    yield

    # Shutdown
    await close_db()
    logger.info("Shutting down FaceLab AI API...")


# Create FastAPI app
app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    500: {"model": ErrorResponse, "description": "Processing failed"}
}


async def read_image_upload(image: UploadFile) -> bytes:
    """Read an uploaded image, rejecting unreadable or empty files."""
    try:
        image_bytes = await image.read()
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Failed to read image: {str(e)}")

    if len(image_bytes) == 0:
        raise HTTPException(status_code=400, detail="Empty image file")

    return image_bytes


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint with API info."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "model": GEMINI_MODEL,
        "endpoints": {
            "stats": "GET /api/stats",
            "faces": "GET /api/faces",
            "summaries": "GET /api/summaries",
            "register": "POST /api/register-face",
            "recognize": "POST /api/recognize-face",
            "analyze": "POST /api/analyze-face",
            "summarize": "POST /api/summarize"
        }
    }


@app.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    dataset: FaceDatasetStore = Depends(get_face_dataset)
):
    """Health check endpoint."""
    try:
        stats = await get_stats(db)
        db_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        stats = {"total_faces": 0, "total_summaries": 0}
        db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "database_status": db_status,
        "dataset_images": dataset.count,
        **stats
    }


# ============================================================================
# Stats and History
# ============================================================================
@app.get("/api/stats", response_model=StatsResponse, responses={500: ERROR_RESPONSES[500]})
async def read_stats(db: AsyncSession = Depends(get_db)):
    """Total face registrations and summaries."""
    try:
        stats = await get_stats(db)
    except Exception as e:
        logger.error(f"Failed to fetch stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch stats")
    return StatsResponse(**stats)


@app.get("/api/faces", response_model=List[FaceData], responses={500: ERROR_RESPONSES[500]})
async def list_faces(db: AsyncSession = Depends(get_db)):
    """All face registrations with their users."""
    try:
        rows = await FaceDataRepository.get_all_with_users(db)
    except Exception as e:
        logger.error(f"Failed to fetch faces: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch faces")
    return [FaceDataRepository.db_to_schema(face, user) for face, user in rows]


@app.get("/api/summaries", response_model=List[SummaryRecord], responses={500: ERROR_RESPONSES[500]})
async def list_summaries(db: AsyncSession = Depends(get_db)):
    """All stored summaries."""
    try:
        rows = await SummaryRepository.get_all(db)
    except Exception as e:
        logger.error(f"Failed to fetch summaries: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch summaries")
    return [SummaryRepository.db_to_schema(r) for r in rows]


# ============================================================================
# API 1: REGISTER FACE
# ============================================================================
@app.post(
    "/api/register-face",
    response_model=RegisterResponse,
    responses=ERROR_RESPONSES,
    summary="Register a face",
    description="""
    Store a face photo under a name.

    **Pipeline:**
    1. Grayscale 100x100 pixel vector (cover-fit, centered crop)
    2. 400x400 display JPEG
    3. Get or create the user by name
    4. Write image and vector files to the face dataset
    5. Store the face data row
    """
)
async def register_face(
    name: Optional[str] = Form(None, description="Name to register the face under"),
    image: Optional[UploadFile] = File(None, description="Face image file"),
    db: AsyncSession = Depends(get_db),
    dataset: FaceDatasetStore = Depends(get_face_dataset)
):
    """Register a face image under a name."""
    start_time = time.time()

    if not name or image is None:
        raise HTTPException(status_code=400, detail="Name and image are required")

    image_bytes = await read_image_upload(image)

    try:
        pixel_vector = load_pixel_vector(image_bytes)
        display_jpeg = make_display_jpeg(image_bytes)
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    saved_files = ()
    try:
        user = await UserRepository.get_or_create(db, name)
        saved_files = dataset.save(user.id, display_jpeg, pixel_vector)
        face_file, vector_file = saved_files
        await FaceDataRepository.create(
            session=db,
            user_id=user.id,
            face_path=face_file,
            vector_path=vector_file
        )
    except Exception as e:
        # Rollback dataset files if DB fails
        if saved_files:
            dataset.delete(*saved_files)
        logger.error(f"Failed to register face for '{name}': {e}")
        raise HTTPException(status_code=500, detail="Failed to register face")

    processing_time = (time.time() - start_time) * 1000
    logger.info(f"Registered face for '{name}' (user {user.id}) in {processing_time:.1f}ms")

    return RegisterResponse(
        success=True,
        name=name,
        preview_image=to_data_uri(display_jpeg)
    )


# ============================================================================
# API 2: RECOGNIZE FACE
# ============================================================================
@app.post(
    "/api/recognize-face",
    response_model=RecognizeResponse,
    responses=ERROR_RESPONSES,
    summary="Recognize a face",
    description="""
    Compare a photo against every registered face.

    The generative model scores each registered person 0-100. A match is
    found when the best score reaches the match threshold; otherwise
    `all_matches` is empty.
    """
)
async def recognize_face(
    image: Optional[UploadFile] = File(None, description="Face image to recognize"),
    db: AsyncSession = Depends(get_db),
    dataset: FaceDatasetStore = Depends(get_face_dataset),
    ai: GenerativeAIService = Depends(get_ai_service)
):
    """Recognize an input face against all registered faces."""
    start_time = time.time()

    if image is None:
        raise HTTPException(status_code=400, detail="Image is required")

    rows = await FaceDataRepository.get_all_with_users(db)
    if not rows:
        raise HTTPException(status_code=400, detail="No faces registered yet")

    image_bytes = await read_image_upload(image)

    try:
        query_jpeg = make_display_jpeg(image_bytes, quality=QUERY_JPEG_QUALITY)
        annotated_jpeg = resize_to_width(image_bytes)
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    entries = []
    for face, user in rows:
        if not face.face_path:
            continue
        try:
            entries.append(FaceEntry(
                name=user.name,
                image=dataset.read_image(face.face_path),
                face_path=face.face_path
            ))
        except (OSError, ValueError) as e:
            logger.error(f"Error reading face image {face.id}: {e}")

    if not entries:
        raise HTTPException(status_code=400, detail="No face images available for comparison")

    try:
        scores = await ai.score_faces(query_jpeg, entries)
    except Exception as e:
        logger.error(f"Face recognition call failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to recognize face")

    matches = rank_matches(entries, scores)
    match_found = is_match(matches, MATCH_THRESHOLD)

    images = {entry.face_path: entry.image for entry in entries}
    all_matches = [
        MatchResult(
            name=m.name,
            confidence=m.confidence,
            face_image=to_data_uri(images[m.face_path])
        )
        for m in matches
    ] if match_found else []

    best_match = BestMatch(name=matches[0].name, confidence=matches[0].confidence) if match_found else None

    processing_time = (time.time() - start_time) * 1000
    if best_match:
        logger.info(
            f"Matched face to '{best_match.name}' "
            f"(confidence: {best_match.confidence:.2f}) in {processing_time:.1f}ms"
        )
    else:
        top_score = matches[0].confidence if matches else "N/A"
        logger.info(f"No match found (top score: {top_score}) in {processing_time:.1f}ms")

    return RecognizeResponse(
        match_found=match_found,
        best_match=best_match,
        all_matches=all_matches,
        annotated_image=to_data_uri(annotated_jpeg)
    )


# ============================================================================
# API 3: ANALYZE FACE
# ============================================================================
@app.post(
    "/api/analyze-face",
    response_model=AnalysisResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    summary="Analyze face attributes",
    description="Estimate age, gender, emotion and ethnicity, with a few fun facts."
)
async def analyze_face(
    image: Optional[UploadFile] = File(None, description="Face image to analyze"),
    ai: GenerativeAIService = Depends(get_ai_service)
):
    """Analyze the face in an uploaded image."""
    if image is None:
        raise HTTPException(status_code=400, detail="Image is required")

    image_bytes = await read_image_upload(image)
    mime_type = image.content_type or "image/jpeg"

    try:
        result = await ai.analyze_face(image_bytes, mime_type)
        analysis = AnalysisResponse(**result)
    except Exception as e:
        logger.error(f"Face analysis error: {e}")
        raise HTTPException(status_code=500, detail="Face analysis failed")

    logger.info(f"Analyzed face: {analysis.gender}, ~{analysis.age}, {analysis.emotion}")
    return analysis


# ============================================================================
# API 4: SUMMARIZE
# ============================================================================
@app.post(
    "/api/summarize",
    response_model=SummarizeResponse,
    responses=ERROR_RESPONSES,
    summary="Summarize text",
    description="Summarize text in a style within a word limit, and keep it in the history."
)
async def summarize(
    request: SummarizeRequest,
    db: AsyncSession = Depends(get_db),
    ai: GenerativeAIService = Depends(get_ai_service)
):
    """Summarize text and store the result."""
    try:
        summary = await ai.summarize(request.text, request.style, request.max_length)
        word_count = len(summary.split())

        await SummaryRepository.create(
            session=db,
            original_text=request.text,
            summary=summary,
            model_used=ai.model_name,
            summary_style=request.style,
            word_count=word_count
        )
    except Exception as e:
        logger.error(f"Summarization error: {e}")
        raise HTTPException(status_code=500, detail="Summarization failed")

    return SummarizeResponse(
        summary=summary,
        word_count=word_count,
        style=request.style,
        created_at=datetime.now(timezone.utc).isoformat()
    )


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    """Render HTTP errors as {"error": message}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Invalid request bodies are client errors."""
    fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid request: {fields}"}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
