from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.feedbackhub.constants import ROLE_USER, USER_ACTIVE

if TYPE_CHECKING:
    from app.feedbackhub.modules.teams.models import Team, TeamMember


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_USER)
    # ACTIVE, INACTIVE, SUSPENDED, PENDING_ACTIVATION
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=USER_ACTIVE)

    department: Mapped[str | None] = mapped_column(String(32), nullable=True)
    position: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    memberships: Mapped[list["TeamMember"]] = relationship(
        "TeamMember",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    managed_teams: Mapped[list["Team"]] = relationship(
        "Team",
        foreign_keys="Team.manager_id",
        viewonly=True,
        lazy="selectin",
    )

    @property
    def is_active(self) -> bool:
        return self.status == USER_ACTIVE

    @property
    def team_ids(self) -> frozenset[str]:
        return frozenset(m.team_id for m in self.memberships)

    @property
    def managed_team_ids(self) -> frozenset[str]:
        return frozenset(t.id for t in self.managed_teams)


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; feedback field history lives in feedback_history.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        Index("idx_audit_events_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "feedback.create"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Feedback"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.feedbackhub.modules.teams.models import Team, TeamMember  # noqa: E402,F401
from app.feedbackhub.modules.feedback.models import (  # noqa: E402,F401
    Competency,
    Feedback,
    FeedbackComment,
    FeedbackCompetency,
    FeedbackHistory,
)
