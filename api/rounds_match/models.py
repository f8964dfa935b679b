import uuid
from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func, text
from .database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    """Read-only snapshot source owned by the profile service."""

    __tablename__ = "profile"

    id = Column(String(64), primary_key=True)
    city = Column(String, nullable=True)
    specialty = Column(String, nullable=True)
    career_stage = Column(String, nullable=True)
    age = Column(Integer, nullable=True)
    gender = Column(String, nullable=True)
    gender_preference = Column(String, nullable=True)
    interests = Column(JSON, nullable=True)
    social_preferences = Column(JSON, nullable=True)
    availability = Column(JSON, nullable=True)
    institutions = Column(JSON, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_subscribed = Column(Boolean, nullable=False, default=False)
    onboarding_complete = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MatchingRun(Base):
    __tablename__ = "matching_run"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    batch_id = Column(String(128), nullable=False)
    trigger = Column(String(16), nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    week_start_date = Column(Date, nullable=False)
    triggered_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    input_pool_size = Column(Integer, nullable=False, default=0)
    eligible_count = Column(Integer, nullable=False, default=0)
    group_count = Column(Integer, nullable=False, default=0)
    grouped_member_count = Column(Integer, nullable=False, default=0)
    rollover_member_ids = Column(JSON, nullable=False, default=list)
    bucket_summaries = Column(JSON, nullable=False, default=list)
    eligibility_debug = Column(JSON, nullable=False, default=dict)
    duration_ms = Column(Integer, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    error = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("batch_id", name="uq_matching_run_batch"),
        Index("idx_matching_run_status", "status"),
        # At most one run may hold the active-run marker.
        Index(
            "uq_matching_run_single_pending",
            "status",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_matching_run_triggered_at", "triggered_at"),
    )


class MatchGroup(Base):
    __tablename__ = "match_group"

    id = Column(String(36), primary_key=True)
    run_id = Column(String(36), ForeignKey("matching_run.id", ondelete="CASCADE"), nullable=False)
    locality = Column(String, nullable=False)
    week_start_date = Column(Date, nullable=False)
    mean_score = Column(Float, nullable=False)
    member_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_match_group_run_id", "run_id"),
        Index("idx_match_group_expires_at", "expires_at"),
    )


class MatchGroupMember(Base):
    __tablename__ = "match_group_member"

    group_id = Column(String(36), ForeignKey("match_group.id", ondelete="CASCADE"), primary_key=True)
    member_id = Column(String(64), primary_key=True)
    position = Column(Integer, nullable=False)

    __table_args__ = (Index("idx_match_group_member_member_id", "member_id"),)


class MatchHistory(Base):
    __tablename__ = "match_history"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    member_a = Column(String(64), nullable=False)
    member_b = Column(String(64), nullable=False)
    week_start_date = Column(Date, nullable=False)
    group_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index("idx_match_history_week", "week_start_date"),
        Index("idx_match_history_pair", "member_a", "member_b"),
    )


class GroupEventOutbox(Base):
    __tablename__ = "group_event_outbox"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    group_id = Column(String(36), nullable=False)
    event_type = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    week_start_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("group_id", "event_type", name="uq_group_event_outbox_group_event"),
        Index("idx_group_event_outbox_undelivered", "delivered_at"),
    )
