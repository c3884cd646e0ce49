"""File metadata model for MinIO-stored attachments."""

from sqlalchemy import Column, String, BigInteger, DateTime, ForeignKey, func
from teamchat.db.base import Base, generate_uuid


class FileMeta(Base):
    """Metadata for an attachment uploaded to MinIO."""
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    original_name = Column(String(255), nullable=False)
    object_key = Column(String(1000), nullable=False, unique=True)
    bucket = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False, default="application/octet-stream")
    size_bytes = Column(BigInteger, nullable=False, default=0)
    checksum_md5 = Column(String(32), nullable=True)
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="SET NULL"), nullable=True)
    message_id = Column(String(36), ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
