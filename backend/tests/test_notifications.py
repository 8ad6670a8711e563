"""Notification delivery is best-effort; the inbox API marks items read."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy import func, select

from conftest import auth_headers
from farmlink.core.config import settings
from farmlink.models.notification import Notification
from farmlink.services import notification as notification_svc
from farmlink.services.notification import NotificationEvent, publish


def _event(user_id: int, title: str = "Ping") -> NotificationEvent:
    return NotificationEvent(user_id=user_id, type="contract", title=title, content="hello", related_id=None)


class TestPublish:
    @pytest.mark.asyncio
    async def test_writes_rows(self, db, farmer, buyer):
        written = await publish(_event(farmer.id), _event(buyer.id))

        assert written == 2
        assert await db.scalar(select(func.count(Notification.id))) == 2

    @pytest.mark.asyncio
    async def test_database_failure_is_swallowed(self, farmer):
        broken = MagicMock(side_effect=RuntimeError("database unavailable"))
        with patch.object(notification_svc, "async_session_factory", broken):
            assert await publish(_event(farmer.id)) == 0

    @pytest.mark.asyncio
    async def test_broadcast_failure_keeps_rows(self, db, farmer):
        failing = AsyncMock(side_effect=httpx.ConnectError("realtime down"))
        with (
            patch.object(settings, "realtime_broadcast_url", "https://realtime.test/broadcast"),
            patch.object(notification_svc, "_broadcast", failing),
        ):
            written = await publish(_event(farmer.id))

        assert written == 1
        failing.assert_awaited_once()
        assert await db.scalar(select(func.count(Notification.id))) == 1

    @pytest.mark.asyncio
    async def test_no_recipient_skipped(self):
        assert await publish(NotificationEvent(user_id=None, type="contract", title="t", content="c")) == 0


class TestInboxApi:
    @pytest.mark.asyncio
    async def test_list_and_unread_count(self, client, farmer, buyer):
        await publish(_event(farmer.id, "First"), _event(farmer.id, "Second"), _event(buyer.id))

        resp = await client.get("/api/notifications", headers=auth_headers(farmer))

        assert resp.status_code == 200
        data = resp.json()
        assert [n["title"] for n in data["notifications"]] == ["Second", "First"]
        assert data["unread_count"] == 2

    @pytest.mark.asyncio
    async def test_mark_selected_read(self, client, db, farmer, buyer):
        await publish(_event(farmer.id, "First"), _event(farmer.id, "Second"), _event(buyer.id))
        ids = (await db.execute(select(Notification.id).order_by(Notification.id))).scalars().all()

        # the buyer's notification id is ignored for the farmer
        resp = await client.put(
            "/api/notifications", json={"notification_ids": [ids[0], ids[2]]}, headers=auth_headers(farmer),
        )

        assert resp.json() == {"updated": 1}
        listing = (await client.get("/api/notifications?unread_only=true", headers=auth_headers(farmer))).json()
        assert [n["title"] for n in listing["notifications"]] == ["Second"]
        assert listing["unread_count"] == 1

    @pytest.mark.asyncio
    async def test_mark_all_read(self, client, farmer):
        await publish(_event(farmer.id), _event(farmer.id))

        resp = await client.put("/api/notifications", json={"mark_all": True}, headers=auth_headers(farmer))

        assert resp.json() == {"updated": 2}
        listing = (await client.get("/api/notifications", headers=auth_headers(farmer))).json()
        assert listing["unread_count"] == 0
        assert all(n["read_at"] for n in listing["notifications"])

    @pytest.mark.asyncio
    async def test_mark_read_needs_ids_or_all(self, client, farmer):
        resp = await client.put("/api/notifications", json={}, headers=auth_headers(farmer))
        assert resp.status_code == 400
