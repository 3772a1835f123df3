"""
Tests for MessageLedger: ordered history, appends, read receipts and the
cache staying consistent with the store across writes.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.chat.entity.chat import SenderRole
from app.chat.repository.chat_repository import next_sent_at
from app.chat.service.cache import ChatCache
from app.chat.service.message_ledger import MessageLedger
from app.core.exceptions import NotFoundError, StorageError, ValidationError


@pytest.fixture
async def thread_id(directory):
    result = await directory.initialize_thread(100, 1, 10)
    return result.thread_id


class TestNextSentAt:

    def test_uses_wall_clock_when_ahead(self):
        now = datetime(2024, 5, 1, 12, 0, 0)
        assert next_sent_at(now - timedelta(seconds=1), now) == now

    def test_first_message_uses_wall_clock(self):
        now = datetime(2024, 5, 1, 12, 0, 0)
        assert next_sent_at(None, now) == now

    def test_clock_behind_last_message_is_bumped(self):
        last = datetime(2024, 5, 1, 12, 0, 0)
        assert next_sent_at(last, last - timedelta(seconds=5)) == last + timedelta(microseconds=1)

    def test_equal_timestamps_never_repeat(self):
        last = datetime(2024, 5, 1, 12, 0, 0)
        assert next_sent_at(last, last) > last


class TestAppendMessage:

    @pytest.mark.asyncio
    async def test_append_then_list_in_order(self, ledger, thread_id):
        await ledger.append_message(thread_id, "buyer", "Hi")
        await ledger.append_message(thread_id, "seller", "Hello")
        await ledger.append_message(thread_id, "buyer", "Price?")

        messages = await ledger.list_messages(thread_id)

        assert [m.content for m in messages] == ["Hi", "Hello", "Price?"]
        assert [m.sender_role for m in messages] == [SenderRole.BUYER, SenderRole.SELLER, SenderRole.BUYER]

    @pytest.mark.asyncio
    async def test_sent_at_strictly_increasing(self, ledger, thread_id):
        for i in range(10):
            await ledger.append_message(thread_id, "buyer" if i % 2 else "seller", f"msg {i}")

        messages = await ledger.list_messages(thread_id)
        stamps = [m.sent_at for m in messages]

        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    @pytest.mark.asyncio
    async def test_concurrent_appends_get_distinct_ordered_timestamps(self, ledger, thread_id):
        results = await asyncio.gather(
            *[ledger.append_message(thread_id, "buyer" if i % 2 else "seller", f"msg {i}") for i in range(8)],
            return_exceptions=True,
        )

        assert [r for r in results if isinstance(r, Exception)] == []
        messages = await ledger.list_messages(thread_id)
        assert len(messages) == 8
        stamps = [m.sent_at for m in messages]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))
        ids = [m.id for m in messages]
        assert ids == sorted(ids)

    @pytest.mark.asyncio
    async def test_returns_committed_message(self, ledger, thread_id):
        message = await ledger.append_message(thread_id, "Seller", "  trimmed  ")

        assert message.id > 0
        assert message.thread_id == thread_id
        assert message.sender_role is SenderRole.SELLER
        assert message.content == "trimmed"
        assert message.is_read is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   ", None])
    async def test_empty_content_rejected_and_nothing_stored(self, ledger, thread_id, content):
        with pytest.raises(ValidationError) as exc:
            await ledger.append_message(thread_id, "buyer", content)
        assert exc.value.message == "Missing required fields"

        assert await ledger.list_messages(thread_id) == []

    @pytest.mark.asyncio
    async def test_missing_role_rejected(self, ledger, thread_id):
        with pytest.raises(ValidationError):
            await ledger.append_message(thread_id, None, "Hi")

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, ledger, thread_id):
        with pytest.raises(ValidationError) as exc:
            await ledger.append_message(thread_id, "admin", "Hi")
        assert "Invalid sender_role" in exc.value.message

    @pytest.mark.asyncio
    async def test_too_long_rejected(self, ledger, thread_id):
        with pytest.raises(ValidationError):
            await ledger.append_message(thread_id, "buyer", "x" * 2001)

    @pytest.mark.asyncio
    async def test_unknown_thread_not_found(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.append_message(999, "buyer", "Hello?")


class TestListMessages:

    @pytest.mark.asyncio
    async def test_repeated_reads_are_identical(self, ledger, thread_id):
        await ledger.append_message(thread_id, "buyer", "Hi")

        first = await ledger.list_messages(thread_id)
        second = await ledger.list_messages(thread_id)

        assert first == second

    @pytest.mark.asyncio
    async def test_read_populates_cache(self, ledger, chat_cache, fake_redis, thread_id):
        await ledger.append_message(thread_id, "buyer", "Hi")
        await ledger.list_messages(thread_id)

        assert await fake_redis.exists(chat_cache.messages_key(thread_id, 50)) == 1

    @pytest.mark.asyncio
    async def test_append_after_cached_read_is_visible(self, ledger, thread_id):
        await ledger.append_message(thread_id, "buyer", "Hi")
        assert len(await ledger.list_messages(thread_id)) == 1

        await ledger.append_message(thread_id, "seller", "Hello")

        assert [m.content for m in await ledger.list_messages(thread_id)] == ["Hi", "Hello"]

    @pytest.mark.asyncio
    async def test_every_cached_page_dropped_on_append(self, ledger, chat_cache, fake_redis, thread_id):
        await ledger.append_message(thread_id, "buyer", "Hi")
        await ledger.list_messages(thread_id)
        await ledger.list_messages(thread_id, limit=5)

        await ledger.append_message(thread_id, "seller", "Hello")

        assert await fake_redis.keys(chat_cache.messages_pattern(thread_id)) == []

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_is_recomputed(self, ledger, chat_cache, fake_redis, thread_id):
        await ledger.append_message(thread_id, "buyer", "Hi")
        await fake_redis.set(chat_cache.messages_key(thread_id, 50), '[{"unexpected": true}]')

        messages = await ledger.list_messages(thread_id)

        assert [m.content for m in messages] == ["Hi"]

    @pytest.mark.asyncio
    async def test_pagination_with_before_id(self, ledger, thread_id):
        sent = [await ledger.append_message(thread_id, "buyer", f"m{i}") for i in range(6)]

        latest = await ledger.list_messages(thread_id, limit=3)
        older = await ledger.list_messages(thread_id, limit=3, before_id=latest[0].id)

        assert [m.content for m in latest] == ["m3", "m4", "m5"]
        assert [m.content for m in older] == ["m0", "m1", "m2"]
        assert older[-1].id == sent[2].id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1, 201])
    async def test_limit_out_of_range_rejected(self, ledger, thread_id, limit):
        with pytest.raises(ValidationError):
            await ledger.list_messages(thread_id, limit=limit)

    @pytest.mark.asyncio
    async def test_unknown_thread_is_empty(self, ledger):
        assert await ledger.list_messages(12345) == []


class TestMarkThreadRead:

    @pytest.mark.asyncio
    async def test_marks_only_counterpart_messages(self, ledger, thread_id):
        await ledger.append_message(thread_id, "seller", "Hi")
        await ledger.append_message(thread_id, "seller", "Still there?")
        await ledger.append_message(thread_id, "buyer", "Yes")

        receipt = await ledger.mark_thread_read(thread_id, "buyer")

        assert receipt.marked_read == 2
        assert receipt.reader_role is SenderRole.BUYER
        messages = await ledger.list_messages(thread_id)
        assert [m.is_read for m in messages] == [True, True, False]
        assert messages[0].read_at is not None

    @pytest.mark.asyncio
    async def test_second_mark_is_noop(self, ledger, thread_id):
        await ledger.append_message(thread_id, "seller", "Hi")
        await ledger.mark_thread_read(thread_id, "buyer")

        receipt = await ledger.mark_thread_read(thread_id, "buyer")

        assert receipt.marked_read == 0

    @pytest.mark.asyncio
    async def test_unknown_thread_not_found(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.mark_thread_read(999, "buyer")

    @pytest.mark.asyncio
    async def test_bad_role_rejected(self, ledger, thread_id):
        with pytest.raises(ValidationError):
            await ledger.mark_thread_read(thread_id, "moderator")


class TestLedgerFaults:

    @pytest.mark.asyncio
    async def test_storage_failure_surfaces_without_invalidation(self, mock_repo):
        cache = MagicMock()
        cache.invalidate_quietly = AsyncMock()
        mock_repo.add_message.side_effect = StorageError("Failed to send message")
        ledger = MessageLedger(mock_repo, cache)

        with pytest.raises(StorageError):
            await ledger.append_message(5, "buyer", "Hi")
        cache.invalidate_quietly.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_outage_does_not_fail_append_or_read(self, chat_repo, directory):
        down = RedisConnectionError("Connection refused")
        redis = MagicMock()
        redis.async_get_value = AsyncMock(side_effect=down)
        redis.async_set_value = AsyncMock(side_effect=down)
        redis.async_delete = AsyncMock(side_effect=down)
        redis.async_delete_pattern = AsyncMock(side_effect=down)
        ledger = MessageLedger(chat_repo, ChatCache(redis))
        thread = await directory.initialize_thread(100, 1, 10)

        message = await ledger.append_message(thread.thread_id, "buyer", "Hi")

        assert [m.id for m in await ledger.list_messages(thread.thread_id)] == [message.id]
