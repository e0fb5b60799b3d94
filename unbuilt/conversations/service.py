"""Conversations about a gap analysis.

A conversation belongs to one user and one search (the "analysis"). Each
message goes through tier limits, input validation, prompt-injection
detection and moderation before it is stored. The reply is reused from
history when an almost identical question was already answered, otherwise
it comes from the LLM.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from .deduplication import QueryDeduplicator, deduplicator as default_deduplicator
from .input_validator import InputValidator
from .moderation import ContentModerator
from .prompt_injection import PromptInjectionDetector
from .questions import (
    AnalysisData,
    deduplicate_questions,
    generate_follow_up_questions,
    generate_initial_questions,
)

from unbuilt.core.config import CONVERSATION_LIMITS, normalize_tier
from unbuilt.core.errors import LimitExceeded, NotFoundError, PermissionDenied, ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import (
    Conversation,
    ConversationMessage,
    MessageRole,
    Search,
    SearchResult,
    SuggestedQuestion,
    User,
)
from unbuilt.services.llm import LLMClient, get_llm_client

logger = get_logger(__name__)

CONTEXT_RESULTS = 5
HISTORY_MESSAGES = 20

SYSTEM_PROMPT = """You are an AI advisor for Unbuilt, a platform that helps entrepreneurs discover market gaps and innovation opportunities. You are having a conversation with a user about their gap analysis.

GUIDELINES:
1. Be conversational and helpful, not robotic
2. Reference specific data from the analysis when relevant
3. If you make assumptions, state them explicitly
4. For financial projections, include appropriate disclaimers
5. Stay focused on the analysis topic; politely redirect off-topic questions
6. Acknowledge uncertainty rather than making up information
7. Be encouraging but realistic about opportunities and challenges

SAFETY:
- Reject inappropriate, offensive, or harmful requests
- Do not provide legal, medical, or financial advice
- Do not make guarantees about business success

RESPONSE FORMAT:
- Use clear paragraphs
- Include bullet points for lists
- Bold key insights with **text**
- Keep responses concise (200-400 words typically)"""

INJECTION_REJECTED = "Your message contains content that violates our usage policy. Please rephrase your question."
MODERATION_REJECTED = (
    "Your message contains inappropriate content. Please keep conversations professional and respectful."
)
WITHHELD_REPLY = (
    "I'm not able to help with that. Let's keep the discussion on your analysis and "
    "how to move the opportunity forward."
)


def build_prompt(analysis_context: str, history: str, question: str) -> str:
    parts = []
    if analysis_context:
        parts += ["=== ANALYSIS CONTEXT ===", analysis_context, ""]
    if history:
        parts += ["=== CONVERSATION HISTORY ===", history, ""]
    parts += ["=== USER QUESTION ===", question]
    return "\n".join(parts)


def format_analysis_context(search: Search, results: List[SearchResult]) -> str:
    lines = [f"Original Query: {search.query}"]
    if results:
        lines.append(f"Innovation Score: {results[0].innovation_score}")
        lines.append(f"Feasibility: {results[0].feasibility}")
        lines.append("Top Gaps:")
        for index, result in enumerate(results, start=1):
            lines.append(
                f"{index}. {result.title} ({result.category}, score {result.innovation_score}, "
                f"market {result.market_size}): {result.description}"
            )
    return "\n".join(lines)


def format_history(messages: List[ConversationMessage]) -> str:
    return "\n".join(
        f"{'User' if m.role == MessageRole.USER else 'Assistant'}: {m.content}" for m in messages
    )


class ConversationService:

    def __init__(
        self,
        db: Session,
        llm: Optional[LLMClient] = None,
        validator: Optional[InputValidator] = None,
        detector: Optional[PromptInjectionDetector] = None,
        moderator: Optional[ContentModerator] = None,
        dedup: Optional[QueryDeduplicator] = None,
    ):
        self.db = db
        self.llm = llm or get_llm_client()
        self.validator = validator or InputValidator()
        self.detector = detector or PromptInjectionDetector()
        self.moderator = moderator or ContentModerator()
        self.dedup = dedup or default_deduplicator

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_analysis(self, analysis_id: UUID, user_id: UUID) -> Search:
        search = self.db.query(Search).filter(Search.id == analysis_id).first()
        if not search:
            raise NotFoundError("Analysis not found")
        if search.user_id != user_id:
            raise PermissionDenied("You do not have permission to access this analysis")
        return search

    def get_conversation(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        conversation = self.db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if not conversation:
            raise NotFoundError("Conversation not found")
        if conversation.user_id != user_id:
            raise PermissionDenied("You do not have permission to access this conversation")
        return conversation

    def top_results(self, analysis_id: UUID) -> List[SearchResult]:
        return (
            self.db.query(SearchResult)
            .filter(SearchResult.search_id == analysis_id)
            .order_by(SearchResult.innovation_score.desc())
            .limit(CONTEXT_RESULTS)
            .all()
        )

    def analysis_data(self, search: Search) -> AnalysisData:
        results = self.top_results(search.id)
        return AnalysisData(
            query=search.query,
            innovation_score=results[0].innovation_score if results else None,
            feasibility_rating=results[0].feasibility if results else None,
            top_gaps=[
                {
                    "title": r.title,
                    "category": r.category,
                    "feasibility": r.feasibility,
                    "market_potential": r.market_potential,
                    "innovation_score": r.innovation_score,
                }
                for r in results
            ],
        )

    def get_or_create(self, analysis_id: UUID, user_id: UUID) -> Conversation:
        """Return the user's conversation for an analysis, seeding suggestions when new."""
        search = self.get_analysis(analysis_id, user_id)
        conversation = (
            self.db.query(Conversation)
            .filter(Conversation.analysis_id == analysis_id, Conversation.user_id == user_id)
            .first()
        )
        if conversation:
            return conversation

        conversation = Conversation(analysis_id=analysis_id, user_id=user_id)
        self.db.add(conversation)
        self.db.flush()

        data = self.analysis_data(search)
        if data.top_gaps:
            self._store_suggestions(conversation.id, generate_initial_questions(data))

        logger.info("conversation_started", conversation_id=str(conversation.id), analysis_id=str(analysis_id))
        return conversation

    def list_messages(self, conversation_id: UUID, user_id: UUID, limit: int = 50, offset: int = 0) -> List[ConversationMessage]:
        self.get_conversation(conversation_id, user_id)
        return (
            self.db.query(ConversationMessage)
            .filter(ConversationMessage.conversation_id == conversation_id)
            .order_by(ConversationMessage.created_at, ConversationMessage.id)
            .offset(offset)
            .limit(limit)
            .all()
        )

    def recent_messages(self, conversation_id: UUID, limit: int = HISTORY_MESSAGES) -> List[ConversationMessage]:
        """Last ``limit`` messages in chronological order."""
        newest = (
            self.db.query(ConversationMessage)
            .filter(ConversationMessage.conversation_id == conversation_id)
            .order_by(ConversationMessage.created_at.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(newest))

    def delete_conversation(self, conversation_id: UUID, user_id: UUID) -> None:
        conversation = self.get_conversation(conversation_id, user_id)
        self.db.delete(conversation)
        self.db.flush()
        logger.info("conversation_deleted", conversation_id=str(conversation_id))

    def conversation_indicators(self, user_id: UUID) -> Dict[str, Dict[str, Any]]:
        """Per analysis: whether a conversation exists, its size and the latest message."""
        indicators = {}
        conversations = self.db.query(Conversation).filter(Conversation.user_id == user_id).all()
        for conversation in conversations:
            latest = (
                self.db.query(ConversationMessage)
                .filter(ConversationMessage.conversation_id == conversation.id)
                .order_by(ConversationMessage.created_at.desc())
                .first()
            )
            indicators[str(conversation.analysis_id)] = {
                "has_conversation": conversation.message_count > 0,
                "message_count": conversation.message_count,
                "last_message": {
                    "role": latest.role.value,
                    "content": latest.content,
                    "timestamp": latest.created_at.isoformat(),
                } if latest else None,
            }
        return indicators

    # =========================================================================
    # Limits
    # =========================================================================

    def _user_question_count(self, conversation_id: UUID) -> int:
        return (
            self.db.query(func.count(ConversationMessage.id))
            .filter(
                ConversationMessage.conversation_id == conversation_id,
                ConversationMessage.role == MessageRole.USER,
            )
            .scalar()
        )

    def _daily_question_count(self, user_id: UUID, now: datetime) -> int:
        midnight = datetime(now.year, now.month, now.day)
        return (
            self.db.query(func.count(ConversationMessage.id))
            .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
            .filter(
                Conversation.user_id == user_id,
                ConversationMessage.role == MessageRole.USER,
                ConversationMessage.created_at >= midnight,
            )
            .scalar()
        )

    def remaining_questions(self, conversation: Conversation, tier: str) -> Dict[str, Any]:
        limit = CONVERSATION_LIMITS[tier]["questions_per_analysis"]
        if limit == -1:
            return {"remaining": -1, "limit": -1, "unlimited": True, "tier": tier}
        used = self._user_question_count(conversation.id)
        return {"remaining": max(0, limit - used), "limit": limit, "unlimited": False, "tier": tier}

    def check_limits(self, user: User, conversation: Conversation, tier: str, now: datetime) -> None:
        limits = CONVERSATION_LIMITS[tier]

        per_analysis = limits["questions_per_analysis"]
        if per_analysis != -1:
            used = self._user_question_count(conversation.id)
            if used >= per_analysis:
                raise LimitExceeded(
                    f"You've reached the {per_analysis} question limit for {tier} users. "
                    "Upgrade to Pro for unlimited questions.",
                    used=used,
                    limit=per_analysis,
                    upgrade_required=True,
                )

        per_day = limits["questions_per_day"]
        if per_day != -1:
            used = self._daily_question_count(user.id, now)
            if used >= per_day:
                hint = "Upgrade to Pro for higher limits." if tier == "free" else "Limit resets at midnight."
                raise LimitExceeded(
                    f"You've reached your daily limit of {per_day} questions. {hint}",
                    used=used,
                    limit=per_day,
                    upgrade_required=tier == "free",
                )

    # =========================================================================
    # Messaging
    # =========================================================================

    def screen_message(self, content: str, tier: str, context: Dict[str, Any]) -> str:
        """Validate, injection-check and moderate a message. Returns the sanitised text."""
        validation = self.validator.validate(content, tier, context)
        if not validation.is_valid:
            raise ValidationFailed(validation.reason or "Invalid message content", {"severity": validation.severity})

        sanitized = validation.sanitized
        if self.detector.detect(sanitized, context).is_injection:
            raise ValidationFailed(INJECTION_REJECTED)

        if not self.moderator.moderate(sanitized, context).approved:
            raise ValidationFailed(MODERATION_REJECTED)

        return sanitized

    def send_message(self, user: User, analysis_id: UUID, content: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        tier = normalize_tier(user.plan)
        search = self.get_analysis(analysis_id, user.id)
        conversation = self.get_or_create(analysis_id, user.id)

        self.check_limits(user, conversation, tier, now)
        context = {"user_id": str(user.id), "conversation_id": str(conversation.id)}
        question = self.screen_message(content, tier, context)

        history = self.recent_messages(conversation.id)
        user_message = self._add_message(conversation, MessageRole.USER, question, {})
        self._mark_suggestion_used(conversation.id, question)

        similar = self.dedup.find_similar(question, history)
        if similar:
            reply = similar.cached_response
            metadata = {
                "tokens_used": {"input": 0, "output": 0, "total": 0},
                "processing_time_ms": 0,
                "deduplicated": True,
                "similarity": round(similar.similarity, 3),
            }
        else:
            prompt = build_prompt(
                format_analysis_context(search, self.top_results(analysis_id)),
                format_history(history),
                question,
            )
            reply, usage = self.llm.answer_question(SYSTEM_PROMPT, prompt)
            review = self.moderator.moderate_ai_response(reply)
            if not review.approved:
                logger.warning("ai_reply_withheld", conversation_id=str(conversation.id), categories=review.categories)
                reply = WITHHELD_REPLY
            metadata = {
                "tokens_used": {
                    "input": usage["input_tokens"],
                    "output": usage["output_tokens"],
                    "total": usage["tokens_used"],
                },
                "processing_time_ms": usage["processing_time_ms"],
                "cost_usd": usage["cost_usd"],
                "deduplicated": False,
            }
            conversation.total_tokens = (conversation.total_tokens or 0) + usage["tokens_used"]

        ai_message = self._add_message(conversation, MessageRole.ASSISTANT, reply, metadata)
        self.db.flush()

        logger.info(
            "conversation_message_answered",
            conversation_id=str(conversation.id),
            deduplicated=bool(similar),
            tokens=metadata["tokens_used"]["total"],
        )
        return {
            "user_message": user_message,
            "ai_message": ai_message,
            "conversation": conversation,
            "cached": bool(similar),
            "similarity": similar.similarity if similar else None,
            "rate_limit": self.remaining_questions(conversation, tier),
        }

    def _add_message(self, conversation: Conversation, role: MessageRole, content: str,
                     metadata: Dict[str, Any]) -> ConversationMessage:
        message = ConversationMessage(
            conversation_id=conversation.id,
            role=role,
            content=content,
            message_metadata=metadata,
        )
        self.db.add(message)
        conversation.message_count = (conversation.message_count or 0) + 1
        conversation.updated_at = datetime.utcnow()
        self.db.flush()
        return message

    def _get_owned_message(self, message_id: UUID, user_id: UUID) -> ConversationMessage:
        message = (
            self.db.query(ConversationMessage)
            .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
            .filter(ConversationMessage.id == message_id, Conversation.user_id == user_id)
            .first()
        )
        if not message:
            raise NotFoundError("Message not found")
        return message

    def rate_message(self, message_id: UUID, user_id: UUID, rating: int, feedback: Optional[str] = None) -> ConversationMessage:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationFailed("Rating must be between 1 and 5")

        message = self._get_owned_message(message_id, user_id)
        message.rating = rating
        metadata = dict(message.message_metadata or {})
        metadata.update({
            "rating_feedback": feedback,
            "rated_at": datetime.utcnow().isoformat(),
        })
        message.message_metadata = metadata
        self.db.flush()

        logger.info("conversation_message_rated", message_id=str(message_id), rating=rating, has_feedback=bool(feedback))
        return message

    def report_message(self, message_id: UUID, user_id: UUID, category: str, reason: str,
                       details: Optional[str] = None) -> Dict[str, Any]:
        message = self._get_owned_message(message_id, user_id)
        return self.moderator.report_message(
            message_id=str(message.id),
            reported_by=str(user_id),
            category=category,
            reason=reason,
            details=details,
            content=message.content,
            conversation_id=str(message.conversation_id),
        )

    # =========================================================================
    # Suggestions
    # =========================================================================

    def get_suggestions(self, conversation_id: UUID, user_id: UUID, include_used: bool = False) -> List[SuggestedQuestion]:
        self.get_conversation(conversation_id, user_id)
        query = self.db.query(SuggestedQuestion).filter(SuggestedQuestion.conversation_id == conversation_id)
        if not include_used:
            query = query.filter(SuggestedQuestion.used == False)
        return query.order_by(SuggestedQuestion.priority.desc()).all()

    def refresh_suggestions(self, conversation_id: UUID, user_id: UUID) -> List[SuggestedQuestion]:
        """Replace unused suggestions with follow-ups based on the conversation so far."""
        conversation = self.get_conversation(conversation_id, user_id)
        search = self.get_analysis(conversation.analysis_id, user_id)

        messages = self.recent_messages(conversation_id, limit=1000)
        questions = deduplicate_questions(generate_follow_up_questions(self.analysis_data(search), messages))

        self.db.query(SuggestedQuestion).filter(
            SuggestedQuestion.conversation_id == conversation_id,
            SuggestedQuestion.used == False,
        ).delete(synchronize_session=False)
        suggestions = self._store_suggestions(conversation_id, questions)

        logger.info("suggestions_refreshed", conversation_id=str(conversation_id), count=len(suggestions))
        return suggestions

    def _store_suggestions(self, conversation_id: UUID, questions) -> List[SuggestedQuestion]:
        rows = [
            SuggestedQuestion(
                conversation_id=conversation_id,
                question_text=q.text,
                category=q.category,
                priority=q.priority,
            )
            for q in questions
        ]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def _mark_suggestion_used(self, conversation_id: UUID, text: str) -> None:
        self.db.query(SuggestedQuestion).filter(
            SuggestedQuestion.conversation_id == conversation_id,
            SuggestedQuestion.question_text == text,
        ).update({"used": True}, synchronize_session=False)
