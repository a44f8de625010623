"""
Tests for the chat endpoints under /v1/chat.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import OTHER_USER_ID, USER_ID, bearer
from tela.models.account import Account
from tela.services import llm


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_first_message_starts_conversation(self, client: AsyncClient):
        resp = await client.post("/v1/chat/message", json={"message": "  Help me plan a launch  "})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        data = body["data"]
        assert data["conversation"]["title"] == "Help me plan a launch"
        assert data["conversation"]["message_count"] == 2
        assert data["message"]["role"] == "assistant"
        assert data["message"]["model"] == llm.OFFLINE_MODEL
        assert data["credits_remaining"] == 999

    @pytest.mark.asyncio
    async def test_long_first_message_is_truncated_into_title(self, client: AsyncClient):
        resp = await client.post("/v1/chat/message", json={"message": "b" * 80})
        assert resp.json()["data"]["conversation"]["title"] == "b" * 50 + "..."

    @pytest.mark.asyncio
    async def test_follow_up_keeps_title_and_appends(self, client: AsyncClient):
        first = (await client.post("/v1/chat/message", json={"message": "Opening question"})).json()["data"]
        conv_id = first["conversation_id"]

        resp = await client.post(
            "/v1/chat/message",
            json={"message": "A follow-up", "conversation_id": conv_id},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["conversation"]["title"] == "Opening question"

        detail = (await client.get(f"/v1/chat/conversations/{conv_id}")).json()["data"]
        assert detail["message_count"] == 4
        assert [m["role"] for m in detail["messages"]] == ["user", "assistant", "user", "assistant"]
        assert detail["messages"][2]["content"] == "A follow-up"

    @pytest.mark.asyncio
    async def test_llm_receives_memory_context(self, client: AsyncClient, monkeypatch):
        seen = {}

        async def fake_chat(messages, **kwargs):
            seen["messages"] = messages
            return llm.Completion(content="Noted.", model="test-model", completion_tokens=2)

        monkeypatch.setattr(llm, "chat", fake_chat)
        await client.post("/v1/memory", json={"type": "preference", "key": "tone", "value": "brief", "importance": 9})

        resp = await client.post("/v1/chat/message", json={"message": "Hi"})

        assert resp.json()["data"]["message"]["model"] == "test-model"
        system = seen["messages"][0]
        assert system["role"] == "system"
        assert 'tone: "brief"' in system["content"]
        assert seen["messages"][-1] == {"role": "user", "content": "Hi"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   ", "x" * 4001])
    async def test_invalid_message_is_400(self, client: AsyncClient, message):
        resp = await client.post("/v1/chat/message", json={"message": message})
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert any(e.startswith("message") for e in body["errors"])

    @pytest.mark.asyncio
    async def test_no_credits_is_402(self, client: AsyncClient, db_session: AsyncSession):
        db_session.add(Account(user_id=USER_ID, plan="free", credits=0))
        await db_session.commit()

        resp = await client.post("/v1/chat/message", json={"message": "Hello"})
        assert resp.status_code == 402
        assert resp.json()["message"] == "Insufficient credits"

    @pytest.mark.asyncio
    async def test_credit_is_deducted(self, client: AsyncClient, db_session: AsyncSession):
        await client.post("/v1/chat/message", json={"message": "One"})
        await client.post("/v1/chat/message", json={"message": "Two"})

        account = (await db_session.execute(select(Account).where(Account.user_id == USER_ID))).scalar_one()
        assert account.credits == 998

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_404(self, client: AsyncClient):
        resp = await client.post(
            "/v1/chat/message", json={"message": "Hello", "conversation_id": "does-not-exist"}
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_conversation_limit_is_403(self, client: AsyncClient, db_session: AsyncSession):
        from tela.models.conversation import ChatConversation

        for i in range(10):
            db_session.add(ChatConversation(user_id=USER_ID, title=f"c{i}", messages=[]))
        await db_session.commit()

        resp = await client.post("/v1/chat/message", json={"message": "One too many"})
        assert resp.status_code == 403
        assert "plan limit" in resp.json()["message"].lower()


class TestConversations:
    @pytest.mark.asyncio
    async def test_list_paginates_summaries(self, client: AsyncClient):
        for i in range(3):
            await client.post("/v1/chat/message", json={"message": f"Topic {i}"})

        resp = await client.get("/v1/chat/conversations", params={"page": 1, "limit": 2})

        body = resp.json()
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
        assert len(body["data"]) == 2
        summary = body["data"][0]
        assert summary["message_count"] == 2
        assert summary["last_message"]["role"] == "assistant"

    @pytest.mark.asyncio
    async def test_conversations_are_private(self, client: AsyncClient):
        conv_id = (await client.post("/v1/chat/message", json={"message": "Mine"})).json()["data"]["conversation_id"]

        resp = await client.get(f"/v1/chat/conversations/{conv_id}", headers=bearer(OTHER_USER_ID))
        assert resp.status_code == 404

        listing = await client.get("/v1/chat/conversations", headers=bearer(OTHER_USER_ID))
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_rename(self, client: AsyncClient):
        conv_id = (await client.post("/v1/chat/message", json={"message": "Hello"})).json()["data"]["conversation_id"]

        resp = await client.put(f"/v1/chat/conversations/{conv_id}", json={"title": "Renamed"})
        assert resp.status_code == 200
        assert resp.json()["data"]["title"] == "Renamed"

    @pytest.mark.asyncio
    async def test_delete_deactivates(self, client: AsyncClient, db_session: AsyncSession):
        from tela.models.conversation import ChatConversation

        conv_id = (await client.post("/v1/chat/message", json={"message": "Bye"})).json()["data"]["conversation_id"]

        resp = await client.delete(f"/v1/chat/conversations/{conv_id}")
        assert resp.status_code == 200

        assert (await client.get(f"/v1/chat/conversations/{conv_id}")).status_code == 404
        row = await db_session.get(ChatConversation, conv_id)
        assert row is not None
        assert row.is_active is False

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient):
        conv_id = (await client.post("/v1/chat/message", json={"message": "A"})).json()["data"]["conversation_id"]
        await client.post("/v1/chat/message", json={"message": "B", "conversation_id": conv_id})
        await client.post("/v1/chat/message", json={"message": "C"})

        stats = (await client.get("/v1/chat/stats")).json()["data"]
        assert stats == {
            "total_conversations": 2,
            "total_messages": 6,
            "average_messages_per_conversation": 3.0,
        }
