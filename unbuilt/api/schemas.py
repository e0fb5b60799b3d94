"""Request and response models for the HTTP API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from unbuilt.core.models import (
    ActionPlan, Conversation, ConversationMessage, PlanPhase, PlanTask, PlanTemplate,
    ProgressSnapshot, ResourceContribution, ResourceRating, Search, SearchResult,
    SuggestedQuestion, TaskDependency, TaskHistory, User, UserBookmark,
)
from unbuilt.services.resources import resource_dict


# =============================================================================
# Auth
# =============================================================================

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=255)


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str]
    plan: str
    search_count: int
    export_count: int
    is_admin: bool
    created_at: datetime


class AuthResponse(TokenResponse):
    user: UserResponse


# =============================================================================
# Search
# =============================================================================

class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    filters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Search query cannot be empty")
        return v.strip()


class SearchResultResponse(BaseModel):
    id: str
    search_id: str
    title: str
    description: str
    category: str
    feasibility: str
    market_potential: str
    innovation_score: int
    market_size: str
    gap_reason: str
    is_saved: bool
    created_at: datetime


class SearchResponse(BaseModel):
    id: str
    query: str
    filters: Dict[str, Any]
    results_count: int
    created_at: datetime


class SearchWithResultsResponse(SearchResponse):
    results: List[SearchResultResponse]


class SaveResultRequest(BaseModel):
    is_saved: Optional[bool] = None


# =============================================================================
# Plans
# =============================================================================

class PlanCreate(BaseModel):
    search_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    template_id: Optional[str] = None
    original_plan: Optional[Dict[str, Any]] = None


class PlanUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    status: Optional[str] = None


class CustomizationsUpdate(BaseModel):
    customizations: Dict[str, Any]


class PhaseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    estimated_duration: Optional[str] = Field(None, max_length=50)


class PhaseUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    estimated_duration: Optional[str] = Field(None, max_length=50)


class ReorderRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class ApplyTemplateRequest(BaseModel):
    template_id: str


class TaskResponse(BaseModel):
    id: str
    phase_id: str
    plan_id: str
    title: str
    description: Optional[str]
    estimated_time: Optional[str]
    resources: List[Any]
    order: int
    status: str
    is_custom: bool
    assignee_id: Optional[str]
    completed_at: Optional[datetime]
    completed_by: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


class PhaseResponse(BaseModel):
    id: str
    plan_id: str
    name: str
    description: Optional[str]
    order: int
    estimated_duration: Optional[str]
    is_custom: bool
    created_at: datetime


class PhaseWithTasksResponse(PhaseResponse):
    tasks: List[TaskResponse]


class PlanResponse(BaseModel):
    id: str
    search_id: str
    template_id: Optional[str]
    title: str
    description: Optional[str]
    status: str
    customizations: Dict[str, Any]
    created_at: datetime
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]


class PlanDetailResponse(PlanResponse):
    original_plan: Dict[str, Any]
    phases: List[PhaseWithTasksResponse]


class SnapshotResponse(BaseModel):
    id: str
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    skipped_tasks: int
    completion_percentage: int
    average_task_time: Optional[float]
    velocity: Optional[float]
    timestamp: datetime


# =============================================================================
# Tasks
# =============================================================================

class TaskCreate(BaseModel):
    phase_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_time: Optional[str] = Field(None, max_length=50)
    resources: List[str] = Field(default_factory=list)
    order: Optional[int] = Field(None, ge=0)
    assignee_id: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    estimated_time: Optional[str] = Field(None, max_length=50)
    resources: Optional[List[str]] = None
    assignee_id: Optional[str] = None


class TaskStatusUpdate(BaseModel):
    status: str
    override_prerequisites: bool = False


class BulkStatusUpdate(BaseModel):
    task_ids: List[str] = Field(..., min_length=1)
    status: str


class DependencyCreate(BaseModel):
    prerequisite_task_id: str


class DependencyResponse(BaseModel):
    id: str
    task_id: str
    prerequisite_task_id: str
    created_at: datetime


class HistoryResponse(BaseModel):
    id: str
    task_id: str
    user_id: str
    action: str
    previous_state: Optional[Dict[str, Any]]
    new_state: Optional[Dict[str, Any]]
    timestamp: datetime


# =============================================================================
# Templates
# =============================================================================

class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    category: str = Field(..., min_length=1, max_length=50)
    icon: Optional[str] = None
    phases: List[Dict[str, Any]] = Field(default_factory=list)
    is_default: bool = False


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)
    icon: Optional[str] = None
    phases: Optional[List[Dict[str, Any]]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class TemplateResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    category: str
    icon: Optional[str]
    phases: List[Dict[str, Any]]
    is_default: bool
    is_active: bool
    created_at: datetime


# =============================================================================
# Conversations
# =============================================================================

class MessageCreate(BaseModel):
    content: str = Field(..., max_length=10000)


class RateMessageRequest(BaseModel):
    rating: int = Field(..., strict=True)
    feedback: Optional[str] = Field(None, max_length=2000)


class ReportMessageRequest(BaseModel):
    category: str = Field(..., pattern="^(inappropriate|inaccurate|harmful|spam|other)$")
    reason: str = Field(..., min_length=1, max_length=2000)
    details: Optional[str] = Field(None, max_length=5000)


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    role: str
    content: str
    metadata: Dict[str, Any]
    rating: Optional[int]
    created_at: datetime


class ConversationResponse(BaseModel):
    id: str
    analysis_id: str
    message_count: int
    total_tokens: int
    created_at: datetime
    updated_at: Optional[datetime]


class SuggestionResponse(BaseModel):
    id: str
    question_text: str
    category: str
    priority: int
    used: bool


class ConversationDetailResponse(ConversationResponse):
    messages: List[MessageResponse]
    suggestions: List[SuggestionResponse]
    rate_limit: Dict[str, Any]


class SendMessageResponse(BaseModel):
    user_message: MessageResponse
    ai_message: MessageResponse
    conversation: ConversationResponse
    cached: bool
    similarity: Optional[float]
    rate_limit: Dict[str, Any]


# =============================================================================
# Resources
# =============================================================================

class ResourceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    resource_type: str
    category_id: Optional[str] = None
    phase_relevance: List[str] = Field(default_factory=list)
    idea_types: List[str] = Field(default_factory=list)
    difficulty_level: Optional[str] = None
    estimated_time_minutes: Optional[int] = Field(None, ge=0)
    is_premium: bool = False
    tags: List[str] = Field(default_factory=list)


class ResourceUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    url: Optional[str] = None
    resource_type: Optional[str] = None
    category_id: Optional[str] = None
    phase_relevance: Optional[List[str]] = None
    idea_types: Optional[List[str]] = None
    difficulty_level: Optional[str] = None
    estimated_time_minutes: Optional[int] = Field(None, ge=0)
    is_premium: Optional[bool] = None
    is_active: Optional[bool] = None


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = None
    display_order: int = 0
    parent_id: Optional[str] = None


class AccessRequest(BaseModel):
    access_type: str = "view"
    analysis_id: Optional[str] = None


class BookmarkRequest(BaseModel):
    notes: Optional[str] = None
    custom_tags: Optional[List[str]] = None


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5, strict=True)
    review: Optional[str] = Field(None, max_length=5000)


class ContributionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    url: str
    suggested_category_id: Optional[str] = None
    suggested_tags: List[str] = Field(default_factory=list)


class ContributionReview(BaseModel):
    admin_notes: Optional[str] = None
    resource: Dict[str, Any] = Field(default_factory=dict)


class RatingResponse(BaseModel):
    id: str
    user_id: str
    resource_id: str
    rating: int
    review: Optional[str]
    is_helpful_count: int
    created_at: datetime


class BookmarkResponse(BaseModel):
    id: str
    resource_id: str
    notes: Optional[str]
    custom_tags: List[str]
    created_at: datetime
    resource: Optional[Dict[str, Any]] = None


class ContributionResponse(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    url: str
    suggested_category_id: Optional[str]
    suggested_tags: List[str]
    status: str
    admin_notes: Optional[str]
    reviewed_at: Optional[datetime]
    created_at: datetime


# =============================================================================
# Converters
# =============================================================================

def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        name=user.name,
        plan=user.plan,
        search_count=user.search_count or 0,
        export_count=user.export_count or 0,
        is_admin=user.is_admin,
        created_at=user.created_at,
    )


def result_to_response(result: SearchResult) -> SearchResultResponse:
    return SearchResultResponse(
        id=str(result.id),
        search_id=str(result.search_id),
        title=result.title,
        description=result.description,
        category=result.category,
        feasibility=result.feasibility,
        market_potential=result.market_potential,
        innovation_score=result.innovation_score,
        market_size=result.market_size,
        gap_reason=result.gap_reason,
        is_saved=result.is_saved,
        created_at=result.created_at,
    )


def search_to_response(search: Search, include_results: bool = False):
    fields = dict(
        id=str(search.id),
        query=search.query,
        filters=search.filters or {},
        results_count=search.results_count,
        created_at=search.created_at,
    )
    if include_results:
        return SearchWithResultsResponse(results=[result_to_response(r) for r in search.results], **fields)
    return SearchResponse(**fields)


def task_to_response(task: PlanTask) -> TaskResponse:
    return TaskResponse(
        id=str(task.id),
        phase_id=str(task.phase_id),
        plan_id=str(task.plan_id),
        title=task.title,
        description=task.description,
        estimated_time=task.estimated_time,
        resources=list(task.resources or []),
        order=task.order,
        status=task.status.value,
        is_custom=task.is_custom,
        assignee_id=_id(task.assignee_id),
        completed_at=task.completed_at,
        completed_by=_id(task.completed_by),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def phase_to_response(phase: PlanPhase, include_tasks: bool = False):
    fields = dict(
        id=str(phase.id),
        plan_id=str(phase.plan_id),
        name=phase.name,
        description=phase.description,
        order=phase.order,
        estimated_duration=phase.estimated_duration,
        is_custom=phase.is_custom,
        created_at=phase.created_at,
    )
    if include_tasks:
        return PhaseWithTasksResponse(tasks=[task_to_response(t) for t in phase.tasks], **fields)
    return PhaseResponse(**fields)


def plan_to_response(plan: ActionPlan, include_details: bool = False):
    fields = dict(
        id=str(plan.id),
        search_id=str(plan.search_id),
        template_id=_id(plan.template_id),
        title=plan.title,
        description=plan.description,
        status=plan.status.value,
        customizations=plan.customizations or {},
        created_at=plan.created_at,
        updated_at=plan.updated_at,
        completed_at=plan.completed_at,
    )
    if include_details:
        return PlanDetailResponse(
            original_plan=plan.original_plan or {},
            phases=[phase_to_response(p, include_tasks=True) for p in plan.phases],
            **fields,
        )
    return PlanResponse(**fields)


def snapshot_to_response(snapshot: ProgressSnapshot) -> SnapshotResponse:
    return SnapshotResponse(
        id=str(snapshot.id),
        total_tasks=snapshot.total_tasks,
        completed_tasks=snapshot.completed_tasks,
        in_progress_tasks=snapshot.in_progress_tasks,
        skipped_tasks=snapshot.skipped_tasks,
        completion_percentage=snapshot.completion_percentage,
        average_task_time=snapshot.average_task_time,
        velocity=snapshot.velocity,
        timestamp=snapshot.timestamp,
    )


def dependency_to_response(dependency: TaskDependency) -> DependencyResponse:
    return DependencyResponse(
        id=str(dependency.id),
        task_id=str(dependency.task_id),
        prerequisite_task_id=str(dependency.prerequisite_task_id),
        created_at=dependency.created_at,
    )


def history_to_response(entry: TaskHistory) -> HistoryResponse:
    return HistoryResponse(
        id=str(entry.id),
        task_id=str(entry.task_id),
        user_id=str(entry.user_id),
        action=entry.action.value,
        previous_state=entry.previous_state,
        new_state=entry.new_state,
        timestamp=entry.timestamp,
    )


def template_to_response(template: PlanTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=str(template.id),
        name=template.name,
        description=template.description,
        category=template.category,
        icon=template.icon,
        phases=list(template.phases or []),
        is_default=template.is_default,
        is_active=template.is_active,
        created_at=template.created_at,
    )


def message_to_response(message: ConversationMessage) -> MessageResponse:
    return MessageResponse(
        id=str(message.id),
        conversation_id=str(message.conversation_id),
        role=message.role.value,
        content=message.content,
        metadata=message.message_metadata or {},
        rating=message.rating,
        created_at=message.created_at,
    )


def conversation_to_response(conversation: Conversation) -> ConversationResponse:
    return ConversationResponse(
        id=str(conversation.id),
        analysis_id=str(conversation.analysis_id),
        message_count=conversation.message_count or 0,
        total_tokens=conversation.total_tokens or 0,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


def suggestion_to_response(suggestion: SuggestedQuestion) -> SuggestionResponse:
    return SuggestionResponse(
        id=str(suggestion.id),
        question_text=suggestion.question_text,
        category=suggestion.category,
        priority=suggestion.priority,
        used=suggestion.used,
    )


def rating_to_response(rating: ResourceRating) -> RatingResponse:
    return RatingResponse(
        id=str(rating.id),
        user_id=str(rating.user_id),
        resource_id=str(rating.resource_id),
        rating=rating.rating,
        review=rating.review,
        is_helpful_count=rating.is_helpful_count or 0,
        created_at=rating.created_at,
    )


def bookmark_to_response(bookmark: UserBookmark, include_resource: bool = False) -> BookmarkResponse:
    return BookmarkResponse(
        id=str(bookmark.id),
        resource_id=str(bookmark.resource_id),
        notes=bookmark.notes,
        custom_tags=list(bookmark.custom_tags or []),
        created_at=bookmark.created_at,
        resource=resource_dict(bookmark.resource) if include_resource and bookmark.resource else None,
    )


def contribution_to_response(contribution: ResourceContribution) -> ContributionResponse:
    return ContributionResponse(
        id=str(contribution.id),
        user_id=str(contribution.user_id),
        title=contribution.title,
        description=contribution.description,
        url=contribution.url,
        suggested_category_id=_id(contribution.suggested_category_id),
        suggested_tags=list(contribution.suggested_tags or []),
        status=contribution.status.value,
        admin_notes=contribution.admin_notes,
        reviewed_at=contribution.reviewed_at,
        created_at=contribution.created_at,
    )
