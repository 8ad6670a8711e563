"""Conversations, messages and unread tracking."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from conftest import auth_headers
from farmlink.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from farmlink.models.conversation import Conversation
from farmlink.services import messaging as messaging_svc


class TestStartConversation:
    @pytest.mark.asyncio
    async def test_same_pair_reuses_conversation(self, db, farmer, buyer):
        first = await messaging_svc.get_or_create_conversation(db, buyer.id, farmer.id)
        second = await messaging_svc.get_or_create_conversation(db, farmer.id, buyer.id)

        assert second.id == first.id
        assert (first.participant_1_id, first.participant_2_id) == tuple(sorted((farmer.id, buyer.id)))
        assert await db.scalar(select(func.count(Conversation.id))) == 1

    @pytest.mark.asyncio
    async def test_contract_gets_its_own_thread(self, db, make_contract, farmer, buyer):
        contract = await make_contract(farmer)

        general = await messaging_svc.get_or_create_conversation(db, buyer.id, farmer.id)
        scoped = await messaging_svc.get_or_create_conversation(db, buyer.id, farmer.id, contract.id)

        assert scoped.id != general.id
        assert scoped.contract_id == contract.id

    @pytest.mark.asyncio
    async def test_contract_thread_needs_its_farmer(self, db, make_contract, make_profile, farmer, buyer):
        other_buyer = await make_profile("buyer", "Other Buyer")
        contract = await make_contract(farmer)

        with pytest.raises(ForbiddenError):
            await messaging_svc.get_or_create_conversation(db, buyer.id, other_buyer.id, contract.id)

    @pytest.mark.asyncio
    async def test_rejects_self_and_unknown(self, db, buyer):
        with pytest.raises(InvalidStateError):
            await messaging_svc.get_or_create_conversation(db, buyer.id, buyer.id)
        with pytest.raises(NotFoundError):
            await messaging_svc.get_or_create_conversation(db, buyer.id, 9999)


class TestMessages:
    @pytest.mark.asyncio
    async def test_send_notifies_other_participant(self, db, farmer, buyer):
        conversation = await messaging_svc.get_or_create_conversation(db, buyer.id, farmer.id)

        with patch("farmlink.services.notification.publish", new_callable=AsyncMock) as publish:
            message = await messaging_svc.send_message(db, conversation.id, buyer, "Is the maize dry?")

        event = publish.await_args.args[0]
        assert event.user_id == farmer.id
        assert event.type == "message"
        assert event.title == "New Message"
        assert event.content == "You have a new message from Bob Buyer"
        assert event.related_id == message.id

        refreshed = await messaging_svc.get_conversation_for_participant(db, conversation.id, farmer.id)
        assert refreshed.last_message_at is not None

    @pytest.mark.asyncio
    async def test_outsider_cannot_read_or_send(self, db, make_profile, farmer, buyer):
        outsider = await make_profile("buyer", "Outsider")
        conversation = await messaging_svc.get_or_create_conversation(db, buyer.id, farmer.id)

        with pytest.raises(ForbiddenError):
            await messaging_svc.list_messages(db, conversation.id, outsider.id)
        with pytest.raises(ForbiddenError):
            await messaging_svc.send_message(db, conversation.id, outsider, "hello")

    @pytest.mark.asyncio
    async def test_reading_clears_unread(self, db, farmer, buyer):
        conversation = await messaging_svc.get_or_create_conversation(db, buyer.id, farmer.id)
        await messaging_svc.send_message(db, conversation.id, buyer, "First")
        await messaging_svc.send_message(db, conversation.id, buyer, "Second")

        [view] = await messaging_svc.list_conversations(db, farmer.id)
        assert view.unread_count == 2
        assert view.last_message.content == "Second"
        assert view.other_participant.id == buyer.id

        # the sender's own messages never count as unread
        [own] = await messaging_svc.list_conversations(db, buyer.id)
        assert own.unread_count == 0

        messages = await messaging_svc.list_messages(db, conversation.id, farmer.id)
        assert [m.content for m in messages] == ["First", "Second"]
        assert all(m.read_at is not None for m in messages)

        [view] = await messaging_svc.list_conversations(db, farmer.id)
        assert view.unread_count == 0


class TestMessagingApi:
    @pytest.mark.asyncio
    async def test_conversation_flow(self, client, make_contract, farmer, buyer):
        contract = await make_contract(farmer)

        resp = await client.post(
            "/api/conversations",
            json={"participant_id": farmer.id, "contract_id": contract.id},
            headers=auth_headers(buyer),
        )
        assert resp.status_code == 200
        conversation_id = resp.json()["id"]

        resp = await client.post(
            "/api/messages",
            json={"conversation_id": conversation_id, "content": "Can you deliver in November?"},
            headers=auth_headers(buyer),
        )
        assert resp.status_code == 201
        assert resp.json()["sender"]["full_name"] == "Bob Buyer"

        listing = (await client.get("/api/conversations", headers=auth_headers(farmer))).json()
        [summary] = listing["conversations"]
        assert summary["other_participant"]["full_name"] == "Bob Buyer"
        assert summary["contract"] == {"crop_type": "Maize", "status": "pending"}
        assert summary["last_message"]["content"] == "Can you deliver in November?"
        assert summary["unread_count"] == 1

        resp = await client.get(
            f"/api/messages?conversation_id={conversation_id}", headers=auth_headers(farmer),
        )
        assert [m["content"] for m in resp.json()["messages"]] == ["Can you deliver in November?"]

    @pytest.mark.asyncio
    async def test_messages_need_conversation_id(self, client, buyer):
        resp = await client.get("/api/messages", headers=auth_headers(buyer))

        assert resp.status_code == 400
        assert "conversation_id" in resp.json()["error"]

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, client, farmer, buyer):
        resp = await client.post(
            "/api/conversations", json={"participant_id": farmer.id}, headers=auth_headers(buyer),
        )
        resp = await client.post(
            "/api/messages",
            json={"conversation_id": resp.json()["id"], "content": ""},
            headers=auth_headers(buyer),
        )

        assert resp.status_code == 400
