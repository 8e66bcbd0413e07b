from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tutoria.models import Base
from app.tutoria.scoping import register_ownership
from app.tutoria.utils import utcnow

if TYPE_CHECKING:
    from app.tutoria.models import Module
    from app.tutoria.modules.professor_agents.models import ProfessorAgent

STATUS_ACTIVE = "Active"
STATUS_INACTIVE = "Inactive"

RESOURCE_MODULE = "module"
RESOURCE_PROFESSOR_AGENT = "professor_agent"


class Capability(str, Enum):
    CHAT = "chat"
    FILE_ACCESS = "file_access"


# What each bindable resource can grant.
SUPPORTED_CAPABILITIES: dict[str, frozenset[Capability]] = {
    RESOURCE_MODULE: frozenset({Capability.CHAT, Capability.FILE_ACCESS}),
    RESOURCE_PROFESSOR_AGENT: frozenset({Capability.CHAT}),
}


class CapabilityToken(Base):
    """
    Capability token bound to exactly one resource.

    `resource_type` + `resource_id` identify the target; the matching nullable FK
    (`module_id` or `professor_agent_id`) keeps referential integrity.
    """

    __tablename__ = "capability_tokens"
    __table_args__ = (
        Index("idx_capability_tokens_resource", "resource_type", "resource_id"),
        Index("idx_capability_tokens_status", "status"),
        CheckConstraint("usage_count >= 0", name="ck_capability_tokens_usage_nonnegative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    resource_type: Mapped[str] = mapped_column(String(32), nullable=False)  # module, professor_agent
    resource_id: Mapped[int] = mapped_column(Integer, nullable=False)
    module_id: Mapped[int | None] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"), nullable=True)
    professor_agent_id: Mapped[int | None] = mapped_column(
        ForeignKey("professor_agents.id", ondelete="CASCADE"),
        nullable=True,
    )

    issued_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    allow_chat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_file_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Active -> Inactive only
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ACTIVE)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    revoked_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    module: Mapped["Module | None"] = relationship("Module", lazy="selectin")
    professor_agent: Mapped["ProfessorAgent | None"] = relationship("ProfessorAgent", lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def grants(self, capability: Capability) -> bool:
        if capability is Capability.CHAT:
            return bool(self.allow_chat)
        if capability is Capability.FILE_ACCESS:
            return bool(self.allow_file_access)
        return False


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of a successful validation: what the bearer may reach."""

    token_id: int
    resource_type: str
    resource_id: int
    allow_chat: bool
    allow_file_access: bool
    expires_at: datetime | None


register_ownership(
    "module_token",
    CapabilityToken,
    university=("module", "course", "university_id"),
    course=("module", "course_id"),
    where=lambda m: m.resource_type == RESOURCE_MODULE,
    label="Access token",
)
register_ownership(
    "agent_token",
    CapabilityToken,
    university=("professor_agent", "university_id"),
    owner=("professor_agent", "professor_id"),
    where=lambda m: m.resource_type == RESOURCE_PROFESSOR_AGENT,
    label="Access token",
)
