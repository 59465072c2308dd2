"""
SQLAlchemy ORM Models for FaceLab Database

Defines the three tables of the app:
CREATE TABLE users (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    created_at TIMESTAMP DEFAULT NOW()
);
CREATE TABLE face_data (
    id SERIAL PRIMARY KEY,
    user_id INTEGER REFERENCES users(id),
    face_path TEXT,
    vector_path TEXT,
    created_at TIMESTAMP DEFAULT NOW()
);
CREATE TABLE summary_history (
    id SERIAL PRIMARY KEY,
    original_text TEXT,
    summary TEXT,
    model_used TEXT,
    summary_style TEXT,
    word_count INTEGER,
    created_at TIMESTAMP DEFAULT NOW()
);
"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey

from facelab.database import Base


class UserDB(Base):
    """A person whose face has been registered, unique by name."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<UserDB(id={self.id}, name='{self.name}')>"


class FaceDataDB(Base):
    """
    SQLAlchemy model for face_data table.

    Points at the display image and pixel vector files of one
    registration in the face dataset directory.
    """
    __tablename__ = "face_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    face_path = Column(Text)
    vector_path = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<FaceDataDB(id={self.id}, user_id={self.user_id}, face_path='{self.face_path}')>"


class SummaryHistoryDB(Base):
    """SQLAlchemy model for summary_history table."""
    __tablename__ = "summary_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    original_text = Column(Text)
    summary = Column(Text)
    model_used = Column(Text)
    summary_style = Column(Text)
    word_count = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<SummaryHistoryDB(id={self.id}, style='{self.summary_style}', words={self.word_count})>"
