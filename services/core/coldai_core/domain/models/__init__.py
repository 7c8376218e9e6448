"""Domain models for the Cold AI dashboard.

SQLAlchemy ORM models for the tables the dashboard reads, observes and
writes. Message status is stored as free text: the automation layer owns
the status column and may write values the dashboard does not know yet.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class WorkflowStatus(str):
    """Workflow status values shared by ICPs and knowledge entries."""

    FORM = "form"
    GENERATING = "generating"
    PROCESSING = "processing"
    REVIEWING = "reviewing"
    DRAFT = "draft"
    ACTIVE = "active"


class ReviewStatus(str):
    """Review status values shared by ICPs and knowledge entries."""

    PENDING = "pending"
    APPROVED = "approved"


class ProfileType(str):
    """Research cache profile types."""

    PROSPECT = "prospect"
    PERSONAL_USER = "personal_user"


class SequenceProspectStatus(str):
    """Sequence prospect status values."""

    PENDING = "pending"
    PENDING_SCHEDULED = "pending_scheduled"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    REPLIED = "replied"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================================
# USERS AND SESSIONS
# =============================================================================


class DashboardUser(Base):
    """Dashboard user account (mirrors the auth provider's user id)."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # UUID
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    sessions: Mapped[list["DashboardSession"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class DashboardSession(Base):
    """Server-side session store."""

    __tablename__ = "dashboard_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # UUID
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    user: Mapped["DashboardUser"] = relationship(back_populates="sessions")

    __table_args__ = (
        Index("idx_dashboard_sessions_expires", "expires_at"),
    )


# =============================================================================
# PROSPECTS AND MESSAGES
# =============================================================================


class ResearchCache(Base):
    """Cached researched profile of a prospect (or of the user themself)."""

    __tablename__ = "research_cache"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    profile_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    profile_picture_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Written by the research workflow as either a JSON object or a JSON string
    research_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    profile_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ProfileType.PROSPECT
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    message_logs: Mapped[list["MessageGenerationLog"]] = relationship(
        back_populates="research_cache"
    )

    __table_args__ = (
        Index("idx_research_cache_user", "user_id", "deleted_at"),
    )


class MessageGenerationLog(Base):
    """One generated outreach message attempt for one prospect."""

    __tablename__ = "message_generation_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    research_cache_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("research_cache.id"), nullable=True
    )

    message_status: Mapped[str] = mapped_column(String(32), nullable=False)
    generated_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    edited_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    research_cache: Mapped[Optional["ResearchCache"]] = relationship(
        back_populates="message_logs"
    )
    sequence_prospects: Mapped[list["SequenceProspect"]] = relationship(
        back_populates="message_log", order_by="SequenceProspect.id"
    )

    __table_args__ = (
        Index("idx_message_logs_user_created", "user_id", "created_at"),
        Index("idx_message_logs_cache", "research_cache_id"),
    )


class OutreachSequence(Base):
    """Outreach sequence grouping scheduled sends."""

    __tablename__ = "outreach_sequences"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sequence_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence_type: Mapped[str] = mapped_column(String(32), nullable=False, default="message")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    message_template: Mapped[str] = mapped_column(Text, nullable=False, default="")
    daily_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    prospects: Mapped[list["SequenceProspect"]] = relationship(back_populates="sequence")


class SequenceProspect(Base):
    """Individual scheduled target in an outreach sequence."""

    __tablename__ = "sequence_prospects"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    sequence_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("outreach_sequences.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    message_log_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("message_generation_logs.id"), nullable=True
    )

    linkedin_url: Mapped[str] = mapped_column(String(512), nullable=False)
    linkedin_public_id: Mapped[str] = mapped_column(String(255), nullable=False)
    prospect_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=SequenceProspectStatus.PENDING
    )
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    sequence: Mapped["OutreachSequence"] = relationship(back_populates="prospects")
    message_log: Mapped[Optional["MessageGenerationLog"]] = relationship(
        back_populates="sequence_prospects"
    )

    __table_args__ = (
        UniqueConstraint("sequence_id", "linkedin_public_id", name="uq_sequence_prospect"),
        Index("idx_sequence_prospects_due", "status", "scheduled_for"),
    )


# =============================================================================
# ICPS AND KNOWLEDGE BASE
# =============================================================================


class KnowledgeBaseEntry(Base):
    """Product/company knowledge used to personalise messages."""

    __tablename__ = "knowledge_base"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    knowledge_type: Mapped[str] = mapped_column(String(32), nullable=False, default="product")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entry_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    workflow_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    review_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    can_restore_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ICP(Base):
    """Ideal customer profile."""

    __tablename__ = "icps"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    icp_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    job_titles: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    pain_points: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    value_drivers: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    industry_focus: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    company_characteristics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_link_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("knowledge_base.id", ondelete="SET NULL"), nullable=True
    )

    workflow_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    review_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    can_restore_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    product: Mapped[Optional["KnowledgeBaseEntry"]] = relationship()


# =============================================================================
# PROFILE SETTINGS
# =============================================================================


class UserProfile(Base):
    """Personal profile settings and LinkedIn connection state."""

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    linkedin_connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    linkedin_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    linkedin_public_identifier: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    unipile_account_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    linkedin_profile_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class BusinessProfile(Base):
    """Company profile settings."""

    __tablename__ = "business_profiles"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    industry: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


class CommunicationPreferences(Base):
    """Tone and style preferences for generated messages."""

    __tablename__ = "communication_preferences"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    style: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


# =============================================================================
# USAGE AND EVENTS
# =============================================================================


class UsageTracking(Base):
    """Daily usage counters per user."""

    __tablename__ = "usage_tracking"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    usage_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    messages_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_archived: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    research_performed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_usage_user_date"),
    )


class WebhookEvent(Base):
    """Record of every automation gateway dispatch."""

    __tablename__ = "webhook_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


# Tables whose changes are published on the realtime change bus
OBSERVED_TABLES = (
    MessageGenerationLog.__tablename__,
    ResearchCache.__tablename__,
    ICP.__tablename__,
    KnowledgeBaseEntry.__tablename__,
)
