from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.feedbackhub.constants import TEAM_MEMBER
from app.feedbackhub.models import Base, User, new_id


class Team(Base):
    __tablename__ = "teams"
    __table_args__ = (
        Index("idx_teams_name", "name"),
        Index("idx_teams_manager_id", "manager_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    manager_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    department: Mapped[str] = mapped_column(String(32), nullable=False, default="OUTRO")
    # ACTIVE, INACTIVE, ARCHIVED
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")

    created_by_user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    manager: Mapped[User] = relationship("User", foreign_keys=[manager_id], lazy="selectin")
    members: Mapped[list["TeamMember"]] = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TeamMember.joined_at",
    )

    @property
    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]


class TeamMember(Base):
    __tablename__ = "team_members"

    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    # LEADER, MEMBER, SPECIALIST
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=TEAM_MEMBER)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    team: Mapped[Team] = relationship("Team", back_populates="members", lazy="selectin")
    user: Mapped[User] = relationship("User", back_populates="memberships", lazy="selectin")
