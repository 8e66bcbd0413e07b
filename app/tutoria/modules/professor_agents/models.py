from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tutoria.models import Base
from app.tutoria.scoping import register_ownership
from app.tutoria.utils import utcnow

if TYPE_CHECKING:
    from app.tutoria.models import University, User

VALID_LANGUAGES = ("pt-br", "en", "es")


class ProfessorAgent(Base):
    __tablename__ = "professor_agents"
    __table_args__ = (Index("idx_professor_agents_university", "university_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # One agent per professor.
    professor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    university_id: Mapped[int] = mapped_column(ForeignKey("universities.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tutor_language: Mapped[str] = mapped_column(String(16), nullable=False, default="pt-br")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    professor: Mapped["User"] = relationship("User", foreign_keys=[professor_id], lazy="selectin")
    university: Mapped["University"] = relationship("University", lazy="selectin")


register_ownership(
    "professor_agent",
    ProfessorAgent,
    university=("university_id",),
    owner=("professor_id",),
    label="Professor agent",
)
