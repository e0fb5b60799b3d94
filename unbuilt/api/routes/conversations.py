"""Follow-up conversations about a gap analysis."""

from typing import List

from fastapi import APIRouter, Depends, Query, Response

from unbuilt.api.deps import load_user, parse_uuid
from unbuilt.api.schemas import (
    ConversationDetailResponse, MessageCreate, MessageResponse, RateMessageRequest, ReportMessageRequest,
    SendMessageResponse, SuggestionResponse, conversation_to_response, message_to_response,
    suggestion_to_response,
)
from unbuilt.conversations import ConversationService
from unbuilt.core.auth import AuthContext, get_current_auth
from unbuilt.core.database import get_db

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("/indicators")
async def indicators(auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return {"indicators": ConversationService(db).conversation_indicators(auth.user_uuid)}


@router.get("/analysis/{analysis_id}", response_model=ConversationDetailResponse)
async def get_conversation(analysis_id: str, auth: AuthContext = Depends(get_current_auth)):
    """The user's conversation for an analysis, started on first access."""
    with get_db() as db:
        service = ConversationService(db)
        conversation = service.get_or_create(parse_uuid(analysis_id, "analysis"), auth.user_uuid)
        messages = service.list_messages(conversation.id, auth.user_uuid, limit=1000)
        suggestions = service.get_suggestions(conversation.id, auth.user_uuid)
        return ConversationDetailResponse(
            messages=[message_to_response(m) for m in messages],
            suggestions=[suggestion_to_response(s) for s in suggestions],
            rate_limit=service.remaining_questions(conversation, auth.tier),
            **conversation_to_response(conversation).model_dump(),
        )


@router.post("/analysis/{analysis_id}/messages", response_model=SendMessageResponse)
async def send_message(analysis_id: str, body: MessageCreate, auth: AuthContext = Depends(get_current_auth)):
    """Ask a question about the analysis and get the assistant's answer."""
    with get_db() as db:
        user = load_user(db, auth)
        outcome = ConversationService(db).send_message(user, parse_uuid(analysis_id, "analysis"), body.content)
        return SendMessageResponse(
            user_message=message_to_response(outcome["user_message"]),
            ai_message=message_to_response(outcome["ai_message"]),
            conversation=conversation_to_response(outcome["conversation"]),
            cached=outcome["cached"],
            similarity=outcome["similarity"],
            rate_limit=outcome["rate_limit"],
        )


@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        messages = ConversationService(db).list_messages(
            parse_uuid(conversation_id, "conversation"), auth.user_uuid, limit, offset,
        )
        return [message_to_response(m) for m in messages]


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(conversation_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        ConversationService(db).delete_conversation(parse_uuid(conversation_id, "conversation"), auth.user_uuid)
    return Response(status_code=204)


@router.get("/{conversation_id}/suggestions", response_model=List[SuggestionResponse])
async def suggestions(
    conversation_id: str,
    include_used: bool = False,
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        rows = ConversationService(db).get_suggestions(
            parse_uuid(conversation_id, "conversation"), auth.user_uuid, include_used,
        )
        return [suggestion_to_response(s) for s in rows]


@router.post("/{conversation_id}/suggestions/refresh", response_model=List[SuggestionResponse])
async def refresh_suggestions(conversation_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        rows = ConversationService(db).refresh_suggestions(parse_uuid(conversation_id, "conversation"), auth.user_uuid)
        return [suggestion_to_response(s) for s in rows]


@router.post("/messages/{message_id}/rate", response_model=MessageResponse)
async def rate_message(message_id: str, body: RateMessageRequest, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        message = ConversationService(db).rate_message(
            parse_uuid(message_id, "message"), auth.user_uuid, body.rating, body.feedback,
        )
        return message_to_response(message)


@router.post("/messages/{message_id}/report")
async def report_message(message_id: str, body: ReportMessageRequest, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return ConversationService(db).report_message(
            parse_uuid(message_id, "message"), auth.user_uuid, body.category, body.reason, body.details,
        )
