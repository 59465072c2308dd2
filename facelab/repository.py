"""
FaceLab Repositories

Database operations for users, face_data and summary_history using
SQLAlchemy async. All methods are async and require an AsyncSession.
"""
from typing import Optional, List, Tuple
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from facelab.models import UserDB, FaceDataDB, SummaryHistoryDB
from facelab.schemas import User, FaceData, SummaryRecord

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository class for users database operations."""

    @staticmethod
    async def get_by_name(session: AsyncSession, name: str) -> Optional[UserDB]:
        """Get a user by exact name."""
        result = await session.execute(
            select(UserDB).where(UserDB.name == name)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, name: str) -> UserDB:
        """Create a new user."""
        db_user = UserDB(name=name)

        session.add(db_user)
        await session.commit()
        await session.refresh(db_user)

        logger.info(f"Created user {db_user.id} ('{name}')")
        return db_user

    @staticmethod
    async def get_or_create(session: AsyncSession, name: str) -> UserDB:
        """Return the user with this name, creating it on first registration."""
        user = await UserRepository.get_by_name(session, name)
        if user is not None:
            return user

        try:
            return await UserRepository.create(session, name)
        except IntegrityError:
            # A concurrent registration inserted the same name first
            await session.rollback()
            logger.info(f"User '{name}' created concurrently, reusing it")
            result = await session.execute(select(UserDB).where(UserDB.name == name))
            return result.scalar_one()


class FaceDataRepository:
    """Repository class for face_data database operations."""

    @staticmethod
    async def create(
        session: AsyncSession,
        user_id: int,
        face_path: str,
        vector_path: str
    ) -> FaceDataDB:
        """
        Create a new face data row.

        Args:
            session: Database session
            user_id: Owning user
            face_path: Display image filename in the face dataset
            vector_path: Pixel vector filename in the face dataset

        Returns:
            Created FaceDataDB instance
        """
        db_face = FaceDataDB(
            user_id=user_id,
            face_path=face_path,
            vector_path=vector_path
        )

        session.add(db_face)
        await session.commit()
        await session.refresh(db_face)

        logger.info(f"Created face data {db_face.id} for user {user_id}")
        return db_face

    @staticmethod
    async def get_all_with_users(session: AsyncSession) -> List[Tuple[FaceDataDB, UserDB]]:
        """Get every face data row joined with its user, oldest first."""
        result = await session.execute(
            select(FaceDataDB, UserDB)
            .join(UserDB, FaceDataDB.user_id == UserDB.id)
            .order_by(FaceDataDB.id)
        )
        return [(face, user) for face, user in result.all()]

    @staticmethod
    async def count(session: AsyncSession) -> int:
        """Get total count of face data rows."""
        result = await session.execute(select(func.count(FaceDataDB.id)))
        return result.scalar() or 0

    @staticmethod
    def db_to_schema(db_face: FaceDataDB, db_user: UserDB) -> FaceData:
        """Convert a joined face/user row to the Pydantic schema."""
        return FaceData(
            id=db_face.id,
            user_id=db_face.user_id,
            face_path=db_face.face_path,
            vector_path=db_face.vector_path,
            created_at=db_face.created_at,
            user=User(id=db_user.id, name=db_user.name, created_at=db_user.created_at)
        )


class SummaryRepository:
    """Repository class for summary_history database operations."""

    @staticmethod
    async def create(
        session: AsyncSession,
        original_text: str,
        summary: str,
        model_used: str,
        summary_style: str,
        word_count: int
    ) -> SummaryHistoryDB:
        """Store a generated summary."""
        db_summary = SummaryHistoryDB(
            original_text=original_text,
            summary=summary,
            model_used=model_used,
            summary_style=summary_style,
            word_count=word_count
        )

        session.add(db_summary)
        await session.commit()
        await session.refresh(db_summary)

        logger.info(f"Stored summary {db_summary.id} ({word_count} words, style '{summary_style}')")
        return db_summary

    @staticmethod
    async def get_all(session: AsyncSession) -> List[SummaryHistoryDB]:
        """Get all summaries, oldest first."""
        result = await session.execute(
            select(SummaryHistoryDB).order_by(SummaryHistoryDB.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count(session: AsyncSession) -> int:
        """Get total count of summaries."""
        result = await session.execute(select(func.count(SummaryHistoryDB.id)))
        return result.scalar() or 0

    @staticmethod
    def db_to_schema(db_summary: SummaryHistoryDB) -> SummaryRecord:
        """Convert database model to Pydantic schema."""
        return SummaryRecord(
            id=db_summary.id,
            original_text=db_summary.original_text,
            summary=db_summary.summary,
            model_used=db_summary.model_used,
            summary_style=db_summary.summary_style,
            word_count=db_summary.word_count,
            created_at=db_summary.created_at
        )


async def get_stats(session: AsyncSession) -> dict:
    """Aggregate counts shown on the home screen."""
    return {
        "total_faces": await FaceDataRepository.count(session),
        "total_summaries": await SummaryRepository.count(session),
    }
