"""Database models for Unbuilt.

Covers accounts, gap searches, action plans (phases, tasks, dependencies,
history, progress snapshots), AI conversations and the resource library.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Text, DateTime, Enum, ForeignKey, JSON, Integer,
    Float, Boolean, Index, UniqueConstraint, CheckConstraint, Table,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.dialects.postgresql import UUID

Base = declarative_base()


class PlanStatus(str, enum.Enum):
    """Status of an action plan."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskStatus(str, enum.Enum):
    """Status of a plan task."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class HistoryAction(str, enum.Enum):
    """Kind of change recorded in task history."""
    CREATED = "created"
    UPDATED = "updated"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    DELETED = "deleted"
    REORDERED = "reordered"


class MessageRole(str, enum.Enum):
    """Author of a conversation message."""
    USER = "user"
    ASSISTANT = "assistant"


class ContributionStatus(str, enum.Enum):
    """Review state of a community resource contribution."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# Accounts
# =============================================================================

class User(Base):
    """A registered user."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)

    # Subscription
    plan = Column(String(50), default="free", nullable=False)  # free, pro, enterprise
    search_count = Column(Integer, default=0, nullable=False)
    export_count = Column(Integer, default=0, nullable=False)
    last_reset_date = Column(DateTime, default=datetime.utcnow)

    # Lockout tracking
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    last_failed_login = Column(DateTime, nullable=True)
    account_locked = Column(Boolean, default=False, nullable=False)
    lockout_expires = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    preferences = Column(JSON, default=dict)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]


# =============================================================================
# Gap Searches
# =============================================================================

class Search(Base):
    """A market gap search run by a user."""

    __tablename__ = "searches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    query = Column(Text, nullable=False)
    filters = Column(JSON, default=dict)
    results_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    results = relationship(
        "SearchResult",
        back_populates="search",
        cascade="all, delete-orphan",
        order_by="SearchResult.innovation_score.desc()",
    )

    __table_args__ = (
        Index("ix_searches_user_id", "user_id"),
        Index("ix_searches_created_at", "created_at"),
    )


class SearchResult(Base):
    """A single market gap returned by a search."""

    __tablename__ = "search_results"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    search_id = Column(UUID(as_uuid=True), ForeignKey("searches.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False)
    feasibility = Column(String(20), nullable=False)  # high, medium, low
    market_potential = Column(String(20), nullable=False)  # high, medium, low
    innovation_score = Column(Integer, nullable=False)
    market_size = Column(String(100), nullable=False)
    gap_reason = Column(Text, nullable=False)
    is_saved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    search = relationship("Search", back_populates="results")

    __table_args__ = (
        Index("ix_search_results_search_id", "search_id"),
    )


# =============================================================================
# Action Plans
# =============================================================================

class PlanTemplate(Base):
    """Reusable phase/task structure applied to new plans."""

    __tablename__ = "plan_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False)  # e.g., "software", "physical_product"
    icon = Column(String(50), nullable=True)
    phases = Column(JSON, default=list)  # [{name, description, order, estimated_duration, tasks: [...]}]
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ActionPlan(Base):
    """An action plan generated for a search."""

    __tablename__ = "action_plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    search_id = Column(UUID(as_uuid=True), ForeignKey("searches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    template_id = Column(UUID(as_uuid=True), ForeignKey("plan_templates.id"), nullable=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(PlanStatus), default=PlanStatus.ACTIVE, nullable=False)

    # Never modified after creation
    original_plan = Column(JSON, default=dict, nullable=False)
    customizations = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    phases = relationship(
        "PlanPhase",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanPhase.order",
    )

    __table_args__ = (
        Index("ix_action_plans_user_id", "user_id"),
        Index("ix_action_plans_search_id", "search_id"),
        Index("ix_action_plans_status", "status"),
    )


class PlanPhase(Base):
    """An ordered phase within a plan."""

    __tablename__ = "plan_phases"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("action_plans.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False)
    estimated_duration = Column(String(50), nullable=True)  # e.g., "2 weeks"
    is_custom = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("ActionPlan", back_populates="phases")
    tasks = relationship(
        "PlanTask",
        back_populates="phase",
        cascade="all, delete-orphan",
        order_by="PlanTask.order",
    )

    __table_args__ = (
        UniqueConstraint("plan_id", "order", name="uq_plan_phases_plan_order"),
        Index("ix_plan_phases_plan_id", "plan_id"),
    )


class PlanTask(Base):
    """An ordered task within a phase."""

    __tablename__ = "plan_tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    phase_id = Column(UUID(as_uuid=True), ForeignKey("plan_phases.id", ondelete="CASCADE"), nullable=False)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("action_plans.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    estimated_time = Column(String(50), nullable=True)
    resources = Column(JSON, default=list)
    order = Column(Integer, nullable=False)
    status = Column(Enum(TaskStatus), default=TaskStatus.NOT_STARTED, nullable=False)
    is_custom = Column(Boolean, default=False, nullable=False)

    assignee_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    phase = relationship("PlanPhase", back_populates="tasks")

    __table_args__ = (
        UniqueConstraint("phase_id", "order", name="uq_plan_tasks_phase_order"),
        Index("ix_plan_tasks_plan_id", "plan_id"),
        Index("ix_plan_tasks_status", "status"),
        Index("ix_plan_tasks_assignee_id", "assignee_id"),
    )


class TaskDependency(Base):
    """Prerequisite edge: task_id cannot start until prerequisite_task_id is done."""

    __tablename__ = "task_dependencies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_id = Column(UUID(as_uuid=True), ForeignKey("plan_tasks.id", ondelete="CASCADE"), nullable=False)
    prerequisite_task_id = Column(UUID(as_uuid=True), ForeignKey("plan_tasks.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("task_id", "prerequisite_task_id", name="uq_task_dependencies_pair"),
        CheckConstraint("task_id != prerequisite_task_id", name="ck_task_dependencies_no_self"),
        Index("ix_task_dependencies_task_id", "task_id"),
        Index("ix_task_dependencies_prerequisite", "prerequisite_task_id"),
    )


class TaskHistory(Base):
    """Append-only audit trail of task changes."""

    __tablename__ = "task_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_id = Column(UUID(as_uuid=True), ForeignKey("plan_tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    action = Column(Enum(HistoryAction), nullable=False)
    previous_state = Column(JSON, nullable=True)
    new_state = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_task_history_task_id", "task_id"),
        Index("ix_task_history_timestamp", "timestamp"),
    )


class ProgressSnapshot(Base):
    """Point-in-time progress metrics for a plan."""

    __tablename__ = "progress_snapshots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("action_plans.id", ondelete="CASCADE"), nullable=False)
    total_tasks = Column(Integer, nullable=False)
    completed_tasks = Column(Integer, nullable=False)
    in_progress_tasks = Column(Integer, nullable=False)
    skipped_tasks = Column(Integer, nullable=False)
    completion_percentage = Column(Integer, nullable=False)
    average_task_time = Column(Float, nullable=True)  # hours
    velocity = Column(Float, nullable=True)  # tasks per week
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_progress_snapshots_plan_timestamp", "plan_id", "timestamp"),
    )


# =============================================================================
# Conversations
# =============================================================================

class Conversation(Base):
    """A user's AI conversation about one search (analysis)."""

    __tablename__ = "conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(UUID(as_uuid=True), ForeignKey("searches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    message_count = Column(Integer, default=0, nullable=False)
    total_tokens = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    messages = relationship(
        "ConversationMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ConversationMessage.created_at",
    )
    suggested_questions = relationship(
        "SuggestedQuestion",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="SuggestedQuestion.priority.desc()",
    )

    __table_args__ = (
        UniqueConstraint("analysis_id", "user_id", name="uq_conversations_analysis_user"),
    )


class ConversationMessage(Base):
    """A message in a conversation."""

    __tablename__ = "conversation_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    role = Column(Enum(MessageRole), nullable=False)
    content = Column(Text, nullable=False)
    message_metadata = Column(JSON, default=dict)  # tokens, processing_time_ms, deduplicated
    rating = Column(Integer, nullable=True)  # 1-5
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("ix_conversation_messages_conversation_id", "conversation_id"),
    )


class SuggestedQuestion(Base):
    """A follow-up question offered to the user."""

    __tablename__ = "suggested_questions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    question_text = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="suggested_questions")


# =============================================================================
# Resource Library
# =============================================================================

resource_tag_mappings = Table(
    "resource_tag_mappings",
    Base.metadata,
    Column("resource_id", UUID(as_uuid=True), ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", UUID(as_uuid=True), ForeignKey("resource_tags.id", ondelete="CASCADE"), primary_key=True),
)


class ResourceCategory(Base):
    """Hierarchical resource category."""

    __tablename__ = "resource_categories"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    slug = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(50), nullable=True)
    display_order = Column(Integer, default=0, nullable=False)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("resource_categories.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ResourceTag(Base):
    """Free-form resource tag."""

    __tablename__ = "resource_tags"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(50), unique=True, nullable=False)
    slug = Column(String(50), unique=True, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Resource(Base):
    """A tool, template, guide, video or article in the library."""

    __tablename__ = "resources"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    resource_type = Column(String(50), nullable=False)  # tool, template, guide, video, article
    category_id = Column(UUID(as_uuid=True), ForeignKey("resource_categories.id"), nullable=True)

    phase_relevance = Column(JSON, default=list)  # research, validation, development, launch
    idea_types = Column(JSON, default=list)  # software, physical_product, service, marketplace
    difficulty_level = Column(String(20), nullable=True)  # beginner, intermediate, advanced
    estimated_time_minutes = Column(Integer, nullable=True)

    is_premium = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Stored as rating * 100 (e.g. 4.5 -> 450)
    average_rating = Column(Integer, default=0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    bookmark_count = Column(Integer, default=0, nullable=False)

    resource_metadata = Column(JSON, default=dict)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("ResourceCategory")
    tags = relationship("ResourceTag", secondary=resource_tag_mappings)

    __table_args__ = (
        Index("ix_resources_category_id", "category_id"),
        Index("ix_resources_is_active", "is_active"),
        Index("ix_resources_average_rating", "average_rating"),
    )


class UserBookmark(Base):
    """A user's saved resource."""

    __tablename__ = "user_bookmarks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    resource_id = Column(UUID(as_uuid=True), ForeignKey("resources.id", ondelete="CASCADE"), nullable=False)
    notes = Column(Text, nullable=True)
    custom_tags = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    resource = relationship("Resource")

    __table_args__ = (
        UniqueConstraint("user_id", "resource_id", name="uq_user_bookmarks_user_resource"),
    )


class ResourceRating(Base):
    """A 1-5 star rating with optional review."""

    __tablename__ = "resource_ratings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    resource_id = Column(UUID(as_uuid=True), ForeignKey("resources.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    review = Column(Text, nullable=True)
    is_helpful_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "resource_id", name="uq_resource_ratings_user_resource"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_resource_ratings_range"),
    )


class ResourceContribution(Base):
    """A resource suggested by a user, awaiting admin review."""

    __tablename__ = "resource_contributions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    suggested_category_id = Column(UUID(as_uuid=True), ForeignKey("resource_categories.id"), nullable=True)
    suggested_tags = Column(JSON, default=list)
    status = Column(Enum(ContributionStatus), default=ContributionStatus.PENDING, nullable=False)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_resource_contributions_status", "status"),
    )


class ResourceAccess(Base):
    """A view, download or external link click on a resource."""

    __tablename__ = "resource_access_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    resource_id = Column(UUID(as_uuid=True), ForeignKey("resources.id", ondelete="CASCADE"), nullable=False)
    analysis_id = Column(UUID(as_uuid=True), ForeignKey("searches.id"), nullable=True)
    access_type = Column(String(20), nullable=False)  # view, download, external_link
    accessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_resource_access_user_resource", "user_id", "resource_id"),
    )
