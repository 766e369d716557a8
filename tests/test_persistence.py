"""Tests for message persistence and the in-memory repositories."""

from datetime import UTC, datetime, timedelta

import pytest

from clark.models.messages import TextPart, UIMessage
from clark.services.persistence import PersistenceReconciler
from clark.services.repositories import RepositoryConflictError


def message(id: str, text: str, role: str = "user") -> UIMessage:
    return UIMessage(id=id, role=role, parts=[TextPart(text=text)])


class FlakyMessages:
    """Message repository wrapper that fails for selected external ids."""

    def __init__(self, inner, failing: set[str]):
        self.inner = inner
        self.failing = failing

    async def list_by_conversation_id(self, conversation_id):
        return await self.inner.list_by_conversation_id(conversation_id)

    async def upsert_by_external_id(self, external_id, **kwargs):
        if external_id in self.failing:
            raise ConnectionError("database unavailable")
        return await self.inner.upsert_by_external_id(external_id=external_id, **kwargs)


class TestPersistenceReconciler:
    """Tests for PersistenceReconciler."""

    @pytest.mark.asyncio
    async def test_saves_new_messages(self, conversations, messages_repo):
        """Test each new message is stored under its stream id."""
        await conversations.create(conversation_id="conv_1")
        reconciler = PersistenceReconciler(messages_repo)

        report = await reconciler.reconcile([message("u1", "hi"), message("a1", "hello", "assistant")], "conv_1")

        assert report.saved == ["u1", "a1"]
        stored = await messages_repo.list_by_conversation_id("conv_1")
        assert [(m.external_id, m.role) for m in stored] == [("u1", "user"), ("a1", "assistant")]

    @pytest.mark.asyncio
    async def test_idempotent(self, conversations, messages_repo):
        """Test reconciling the same messages twice stores each once with the latest content."""
        await conversations.create(conversation_id="conv_1")
        reconciler = PersistenceReconciler(messages_repo)

        await reconciler.reconcile([message("a1", "draft", "assistant")], "conv_1")
        await reconciler.reconcile([message("a1", "final", "assistant")], "conv_1")

        (stored,) = await messages_repo.list_by_conversation_id("conv_1")
        assert stored.parts[0].text == "final"

    @pytest.mark.asyncio
    async def test_snapshot_messages_skipped(self, conversations, messages_repo):
        """Test messages stored before the turn are left untouched."""
        await conversations.create(conversation_id="conv_1")
        await messages_repo.upsert_by_external_id(
            external_id="u1", conversation_id="conv_1", role="user", parts=[TextPart(text="original")]
        )
        reconciler = PersistenceReconciler(messages_repo)
        await reconciler.take_snapshot("conv_1")

        report = await reconciler.reconcile([message("u1", "edited"), message("u2", "new")], "conv_1")

        assert report.skipped == ["u1"]
        assert report.saved == ["u2"]
        stored = await messages_repo.list_by_conversation_id("conv_1")
        assert stored[0].parts[0].text == "original"

    @pytest.mark.asyncio
    async def test_snapshot_matches_storage_ids(self, conversations, messages_repo):
        """Test a message echoed back under its storage id is recognized."""
        await conversations.create(conversation_id="conv_1")
        created = await messages_repo.create("conv_1", "user", [TextPart(text="hi")])
        reconciler = PersistenceReconciler(messages_repo)
        snapshot = await reconciler.take_snapshot("conv_1")

        report = await reconciler.reconcile([message(created.id, "hi")], "conv_1", snapshot)

        assert report.skipped == [created.id]

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, conversations, messages_repo):
        """Test one failed write is reported and the rest are still stored."""
        await conversations.create(conversation_id="conv_1")
        reconciler = PersistenceReconciler(FlakyMessages(messages_repo, failing={"u1"}))

        report = await reconciler.reconcile([message("u1", "lost"), message("a1", "kept", "assistant")], "conv_1")

        assert report.failed == ["u1"]
        assert report.saved == ["a1"]
        assert [m.external_id for m in await messages_repo.list_by_conversation_id("conv_1")] == ["a1"]


class TestRepositories:
    """Tests for the in-memory repositories."""

    @pytest.mark.asyncio
    async def test_upsert_touches_conversation(self, conversations, messages_repo):
        """Test writing a message bumps the conversation's updated time."""
        conversation = await conversations.create(conversation_id="conv_1")
        conversation.updated_at = datetime.now(UTC) - timedelta(hours=1)
        before = conversation.updated_at

        await messages_repo.upsert_by_external_id(
            external_id="u1", conversation_id="conv_1", role="user", parts=[TextPart(text="hi")]
        )

        assert (await conversations.get_by_id("conv_1")).updated_at > before

    @pytest.mark.asyncio
    async def test_upsert_requires_external_id(self, messages_repo):
        """Test an empty external id is rejected."""
        with pytest.raises(ValueError):
            await messages_repo.upsert_by_external_id(external_id="", conversation_id="conv_1", role="user", parts=[])

    @pytest.mark.asyncio
    async def test_duplicate_external_id_on_create(self, conversations, messages_repo):
        """Test create enforces unique external ids."""
        await conversations.create(conversation_id="conv_1")
        await messages_repo.create("conv_1", "user", [], external_id="u1")

        with pytest.raises(RepositoryConflictError):
            await messages_repo.create("conv_1", "user", [], external_id="u1")

    @pytest.mark.asyncio
    async def test_delete_cascades(self, conversations, messages_repo, resources):
        """Test deleting a conversation removes its messages and resources."""
        await conversations.create(conversation_id="conv_1")
        await conversations.create(conversation_id="conv_2")
        await messages_repo.create("conv_1", "user", [TextPart(text="hi")])
        await messages_repo.create("conv_2", "user", [TextPart(text="other")])
        await resources.create(type="sandbox", external_id="sbx_1", conversation_id="conv_1")

        assert await conversations.delete("conv_1")

        assert await conversations.get_by_id("conv_1") is None
        assert await messages_repo.list_by_conversation_id("conv_1") == []
        assert await resources.list_by_conversation_id("conv_1") == []
        assert len(await messages_repo.list_by_conversation_id("conv_2")) == 1
        assert not await conversations.delete("conv_1")

    @pytest.mark.asyncio
    async def test_duplicate_conversation_id(self, conversations):
        """Test conversation ids are unique."""
        await conversations.create(conversation_id="conv_1")

        with pytest.raises(RepositoryConflictError):
            await conversations.create(conversation_id="conv_1")

    @pytest.mark.asyncio
    async def test_list_recent_orders_by_update(self, conversations):
        """Test recently updated conversations come first."""
        old = await conversations.create(conversation_id="conv_old")
        await conversations.create(conversation_id="conv_new")
        old.updated_at = datetime.now(UTC) + timedelta(minutes=1)

        assert [c.id for c in await conversations.list_recent()] == ["conv_old", "conv_new"]

    @pytest.mark.asyncio
    async def test_connection_names_unique(self, connections):
        """Test connector names are unique and disabled connectors are filtered."""
        await connections.create(name="docs", url="https://docs.example.com/mcp")
        await connections.create(name="off", url="https://off.example.com/mcp", enabled=False)

        with pytest.raises(RepositoryConflictError):
            await connections.create(name="docs", url="https://other.example.com/mcp")

        assert [c.name for c in await connections.list_enabled()] == ["docs"]
        assert [c.name for c in await connections.list_all()] == ["docs", "off"]
