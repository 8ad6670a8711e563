"""Direct conversations between marketplace participants.

A conversation joins exactly two profiles, optionally about one contract.
Reading a thread marks the other side's messages as read.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from farmlink.models.contract import Contract
from farmlink.models.conversation import Conversation, Message
from farmlink.models.profile import Profile
from farmlink.services.profile import get_profile_by_id

logger = logging.getLogger(__name__)


@dataclass
class ConversationView:
    conversation: Conversation
    other_participant: Profile | None
    last_message: Message | None
    unread_count: int


def _other_participant(conversation: Conversation, user_id: int) -> Profile | None:
    if conversation.participant_1_id == user_id:
        return conversation.participant_2
    return conversation.participant_1


async def list_conversations(db: AsyncSession, user_id: int) -> list[ConversationView]:
    result = await db.execute(
        select(Conversation)
        .where(or_(
            Conversation.participant_1_id == user_id,
            Conversation.participant_2_id == user_id,
        ))
        .order_by(
            func.coalesce(Conversation.last_message_at, Conversation.created_at).desc(),
            Conversation.id.desc(),
        )
    )
    conversations = list(result.scalars().all())
    if not conversations:
        return []
    ids = [c.id for c in conversations]

    latest_ids = (
        select(func.max(Message.id))
        .where(Message.conversation_id.in_(ids))
        .group_by(Message.conversation_id)
    )
    latest = await db.execute(select(Message).where(Message.id.in_(latest_ids)))
    last_by_conversation = {m.conversation_id: m for m in latest.scalars().all()}

    unread = await db.execute(
        select(Message.conversation_id, func.count(Message.id))
        .where(
            Message.conversation_id.in_(ids),
            Message.sender_id != user_id,
            Message.read_at.is_(None),
        )
        .group_by(Message.conversation_id)
    )
    unread_by_conversation = dict(unread.all())

    return [
        ConversationView(
            conversation=c,
            other_participant=_other_participant(c, user_id),
            last_message=last_by_conversation.get(c.id),
            unread_count=unread_by_conversation.get(c.id, 0),
        )
        for c in conversations
    ]


async def _find_conversation(
    db: AsyncSession, first_id: int, second_id: int, contract_id: int | None,
) -> Conversation | None:
    query = select(Conversation).where(
        Conversation.participant_1_id == first_id,
        Conversation.participant_2_id == second_id,
    )
    if contract_id is None:
        query = query.where(Conversation.contract_id.is_(None))
    else:
        query = query.where(Conversation.contract_id == contract_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_or_create_conversation(
    db: AsyncSession,
    user_id: int,
    participant_id: int,
    contract_id: int | None = None,
) -> Conversation:
    """Return the conversation between two profiles, creating it on first contact.

    A contract-scoped conversation must include the contract's farmer.
    """
    if participant_id == user_id:
        raise InvalidStateError("Cannot start a conversation with yourself")
    if await get_profile_by_id(db, participant_id) is None:
        raise NotFoundError("Participant not found")

    if contract_id is not None:
        contract = await db.get(Contract, contract_id)
        if contract is None:
            raise NotFoundError("Contract not found")
        if contract.farmer_id not in (user_id, participant_id):
            raise ForbiddenError("Conversation must include the contract's farmer")

    first_id, second_id = sorted((user_id, participant_id))
    existing = await _find_conversation(db, first_id, second_id, contract_id)
    if existing is not None:
        return existing

    conversation = Conversation(
        participant_1_id=first_id,
        participant_2_id=second_id,
        contract_id=contract_id,
    )
    try:
        async with db.begin_nested():
            db.add(conversation)
    except IntegrityError:
        existing = await _find_conversation(db, first_id, second_id, contract_id)
        if existing is None:
            raise
        return existing

    await db.commit()
    await db.refresh(conversation)
    logger.info(
        "Conversation %s started by profile %s with %s (contract=%s)",
        conversation.id, user_id, participant_id, contract_id,
    )
    return conversation


async def get_conversation_for_participant(
    db: AsyncSession, conversation_id: int, user_id: int,
) -> Conversation:
    conversation = await db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if user_id not in (conversation.participant_1_id, conversation.participant_2_id):
        raise ForbiddenError("Access denied")
    return conversation


async def list_messages(db: AsyncSession, conversation_id: int, user_id: int) -> list[Message]:
    await get_conversation_for_participant(db, conversation_id, user_id)

    marked = await db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id != user_id,
            Message.read_at.is_(None),
        )
        .values(read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if marked.rowcount:
        await db.commit()

    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at, Message.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def send_message(
    db: AsyncSession, conversation_id: int, sender: Profile, content: str,
) -> Message:
    conversation = await get_conversation_for_participant(db, conversation_id, sender.id)
    recipient_id = (
        conversation.participant_2_id
        if conversation.participant_1_id == sender.id
        else conversation.participant_1_id
    )

    message = Message(conversation_id=conversation.id, sender=sender, content=content)
    db.add(message)
    await db.flush()
    conversation.last_message_at = message.created_at
    await db.commit()
    await db.refresh(message)

    logger.info("Message %s sent in conversation %s by profile %s", message.id, conversation.id, sender.id)

    from farmlink.services.notification import notify_new_message

    await notify_new_message(message, recipient_id, sender.full_name)
    return message
