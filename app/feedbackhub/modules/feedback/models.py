from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.feedbackhub.constants import DEFAULT_PRIORITY, STATUS_PENDING
from app.feedbackhub.models import Base, User, new_id

if TYPE_CHECKING:
    from app.feedbackhub.modules.teams.models import Team


class Competency(Base):
    __tablename__ = "competencies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Feedback(Base):
    __tablename__ = "feedbacks"
    __table_args__ = (
        Index("idx_feedbacks_giver_id", "giver_id"),
        Index("idx_feedbacks_receiver_id", "receiver_id"),
        Index("idx_feedbacks_team_id", "team_id"),
        Index("idx_feedbacks_status", "status"),
        Index("idx_feedbacks_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    # PERFORMANCE, BEHAVIOR, PROJECT, FEEDBACK_360
    type: Mapped[str] = mapped_column(String(32), nullable=False)

    giver_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id: Mapped[str | None] = mapped_column(ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=DEFAULT_PRIORITY)

    # DRAFT -> PENDING -> IN_REVIEW -> APPROVED/REJECTED -> ARCHIVED
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING)

    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_confidential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    giver: Mapped[User] = relationship("User", foreign_keys=[giver_id], lazy="selectin")
    receiver: Mapped[User] = relationship("User", foreign_keys=[receiver_id], lazy="selectin")
    team: Mapped[Optional["Team"]] = relationship("Team", foreign_keys=[team_id], lazy="selectin")

    competencies: Mapped[list["FeedbackCompetency"]] = relationship(
        "FeedbackCompetency",
        back_populates="feedback",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FeedbackCompetency.position",
    )
    comments: Mapped[list["FeedbackComment"]] = relationship(
        "FeedbackComment",
        back_populates="feedback",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FeedbackComment.created_at.desc()",
    )
    history: Mapped[list["FeedbackHistory"]] = relationship(
        "FeedbackHistory",
        back_populates="feedback",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FeedbackHistory.id",
    )


class FeedbackCompetency(Base):
    __tablename__ = "feedback_competencies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    feedback_id: Mapped[str] = mapped_column(ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False)
    competency_id: Mapped[str] = mapped_column(ForeignKey("competencies.id", ondelete="RESTRICT"), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    feedback: Mapped[Feedback] = relationship("Feedback", back_populates="competencies")
    competency: Mapped[Competency] = relationship("Competency", lazy="selectin")


class FeedbackComment(Base):
    __tablename__ = "feedback_comments"
    __table_args__ = (
        Index("idx_feedback_comments_feedback_id", "feedback_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    feedback_id: Mapped[str] = mapped_column(ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    feedback: Mapped[Feedback] = relationship("Feedback", back_populates="comments", lazy="selectin")
    author: Mapped[User] = relationship("User", foreign_keys=[user_id], lazy="selectin")


class FeedbackHistory(Base):
    """
    Append-only field-level history of a feedback. Rows are never updated.
    """

    __tablename__ = "feedback_history"
    __table_args__ = (
        Index("idx_feedback_history_feedback_id", "feedback_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    feedback_id: Mapped[str] = mapped_column(ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    changed_field: Mapped[str | None] = mapped_column(String(64), nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    feedback: Mapped[Feedback] = relationship("Feedback", back_populates="history")
