"""
Shared fixtures for the chat tests.

The store is a throwaway file-backed SQLite database (aiosqlite) so that
concurrent sessions behave like separate connections; Redis is fakeredis.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import fakeredis

from app.chat.repository.chat_repository import ChatRepository
from app.chat.repository.sql_schema.marketplace import BookModel, BuyerModel, SellerModel
from app.chat.service.cache import ChatCache
from app.chat.service.chat_directory import ChatDirectory
from app.chat.service.message_ledger import MessageLedger
from app.chat.service.unread_aggregator import UnreadAggregator
from app.core.logger import get_logger
from pkg.db_util.postgres_conn import PostgresConnection
from pkg.db_util.types import PostgresConfig
from pkg.redis.client import RedisClient

test_logger = get_logger("chat-tests")


# =============================================================================
# Backends
# =============================================================================

@pytest.fixture
async def postgres_conn(tmp_path):
    """Fresh database with every table created."""
    conn = PostgresConnection(
        PostgresConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}"),
        test_logger,
    )
    await conn.create_tables()
    yield conn
    await conn.close_engine()


@pytest.fixture
async def fake_redis():
    server = fakeredis.FakeServer()
    client = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
    yield client
    await client.flushall()


@pytest.fixture
def redis_client(fake_redis):
    return RedisClient(test_logger, client=fake_redis)


# =============================================================================
# Chat components
# =============================================================================

@pytest.fixture
def chat_repo(postgres_conn):
    return ChatRepository(postgres_conn)


@pytest.fixture
def chat_cache(redis_client):
    return ChatCache(redis_client, prefix="chat", logger=test_logger)


@pytest.fixture
def ledger(chat_repo, chat_cache):
    return MessageLedger(chat_repo, chat_cache, messages_ttl=300, page_size=50, max_page_size=200, max_message_length=2000)


@pytest.fixture
def directory(chat_repo, chat_cache, ledger):
    return ChatDirectory(chat_repo, chat_cache, ledger)


@pytest.fixture
def aggregator(chat_repo, chat_cache):
    return UnreadAggregator(chat_repo, chat_cache, unread_ttl=30, threads_ttl=120)


@pytest.fixture
async def marketplace(postgres_conn):
    """Seed the read-only marketplace tables: one seller, two buyers, two books."""
    async with postgres_conn.get_session() as session:
        session.add_all([
            SellerModel(id=1, name="Ada Seller", email="ada@example.com"),
            BuyerModel(id=10, name="Bob Buyer", email="bob@example.com"),
            BuyerModel(id=11, name="Cleo Buyer", email="cleo@example.com"),
            BookModel(id=100, title="Dune", seller_id=1),
            BookModel(id=101, title="Neuromancer", seller_id=1),
        ])
    return {"seller_id": 1, "buyer_ids": (10, 11), "listing_ids": (100, 101)}


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_repo():
    """IChatRepository double for fault injection."""
    mock = MagicMock()
    mock.get_thread_by_participants = AsyncMock(return_value=None)
    mock.create_thread = AsyncMock()
    mock.list_messages = AsyncMock(return_value=[])
    mock.add_message = AsyncMock()
    mock.mark_messages_read = AsyncMock()
    mock.count_unread = AsyncMock(return_value=0)
    mock.list_thread_summaries = AsyncMock(return_value=[])
    return mock
