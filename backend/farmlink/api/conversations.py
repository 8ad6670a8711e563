"""Direct messaging between marketplace participants."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    ConversationSummary,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
)
from farmlink.core.deps import get_db
from farmlink.core.security import get_current_user
from farmlink.models.profile import Profile
from farmlink.services import messaging as messaging_svc

router = APIRouter(tags=["messaging"])


def _summary(view: messaging_svc.ConversationView) -> ConversationSummary:
    conversation = view.conversation
    return ConversationSummary(
        **ConversationResponse.model_validate(conversation).model_dump(),
        other_participant=view.other_participant,
        contract=conversation.contract,
        last_message=view.last_message,
        unread_count=view.unread_count,
    )


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    views = await messaging_svc.list_conversations(db, user.id)
    return ConversationListResponse(conversations=[_summary(v) for v in views])


@router.post("/conversations", response_model=ConversationResponse)
async def start_conversation(
    body: ConversationCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await messaging_svc.get_or_create_conversation(
        db, user.id, body.participant_id, body.contract_id,
    )


@router.get("/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    messages = await messaging_svc.list_messages(db, conversation_id, user.id)
    return MessageListResponse(messages=messages)


@router.post("/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    body: MessageCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await messaging_svc.send_message(db, body.conversation_id, user, body.content)
