from __future__ import annotations

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mindsy.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class Job(Base):
  __tablename__ = "note_jobs"

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  lecture_title: Mapped[str | None] = mapped_column(String, nullable=True)
  source_language: Mapped[str] = mapped_column(String(2), nullable=False, server_default="en")
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  audio_file_ref: Mapped[str] = mapped_column(String, nullable=False)
  supplementary_pdf_ref: Mapped[str | None] = mapped_column(String, nullable=True)
  source_filename: Mapped[str | None] = mapped_column(String, nullable=True)
  transcript_ref: Mapped[str | None] = mapped_column(String, nullable=True)
  notes_markdown_ref: Mapped[str | None] = mapped_column(String, nullable=True)
  output_pdf_ref: Mapped[str | None] = mapped_column(String, nullable=True)
  file_size_mb: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
  last_error: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class JobEvent(Base):
  __tablename__ = "note_job_events"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("note_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
