"""
SQLAlchemy models for the application.
All database models inherit from Base (declarative base).
"""
from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.sql import func
from app.database import Base


class GalleryImage(Base):
    """
    Gallery image owned by a project or a blog post.
    Stores the provider URL, caption, display order and feature flag.
    """
    __tablename__ = "gallery_images"

    id = Column(Integer, primary_key=True, index=True)
    owner_type = Column(String(20), nullable=False, default="project", index=True)
    owner_id = Column(Integer, nullable=False, index=True)
    image_url = Column(String, nullable=False)
    caption = Column(String, nullable=True)
    display_order = Column(Integer, nullable=True, index=True)
    is_feature = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UploadedFile(Base):
    """
    A file pushed to Cloudinary as part of an upload session.
    Uncommitted files are eligible for session cleanup.
    """
    __tablename__ = "uploaded_files"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    url = Column(String, nullable=False, index=True)
    public_id = Column(String, nullable=True)
    committed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
