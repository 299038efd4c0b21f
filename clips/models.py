from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, UniqueConstraint
from datetime import datetime, timezone

from .database import Base

def utcnow():
    return datetime.now(timezone.utc)

class Note(Base):
    __tablename__ = "notes"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(32), index=True, nullable=False)
    text = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    clipped_count = Column(Integer, default=0, nullable=False)

class Clip(Base):
    __tablename__ = "clips"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(32), index=True, nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text)
    is_public = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_clipped_at = Column(DateTime(timezone=True))

class ClipNote(Base):
    __tablename__ = "clip_notes"
    __table_args__ = (
        UniqueConstraint("clip_id", "note_id", name="uq_clip_notes_clip_note"),
    )

    id = Column(String(32), primary_key=True)
    clip_id = Column(String(32), ForeignKey("clips.id", ondelete="CASCADE"), index=True, nullable=False)
    note_id = Column(String(32), ForeignKey("notes.id", ondelete="CASCADE"), index=True, nullable=False)
