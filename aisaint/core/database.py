"""
Database configuration and connection management.

This module provides:
- Async SQLAlchemy engine and session factory construction
- Table definitions for users, commerce entitlements and transcripts
- Schema creation and connectivity helpers
"""
from typing import Optional
from sqlalchemy import MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, ForeignKeyConstraint, UniqueConstraint, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.sql import func
import os

from aisaint.core.config import MAX_CONVERSATION_ID_LENGTH, settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration (ignored by sqlite)
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour


def get_database_url() -> str:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Build an async SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    url = database_url or get_database_url()
    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)

    return create_async_engine(
        url,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=False,  # Set to True for SQL query logging
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_all_tables(engine: AsyncEngine) -> None:
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def drop_all_tables(engine: AsyncEngine) -> None:
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


async def check_connection(engine: AsyncEngine) -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


async def missing_tables(engine: AsyncEngine) -> list[str]:
    """Return the names of defined tables that do not exist in the database."""

    def _missing(sync_conn) -> list[str]:
        from sqlalchemy import inspect

        inspector = inspect(sync_conn)
        return [name for name in metadata.tables if not inspector.has_table(name)]

    async with engine.connect() as conn:
        return await conn.run_sync(_missing)


# Users table: free-tier usage counter and premium override flags
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(128), primary_key=True),
    Column('message_count', Integer, nullable=False, server_default='0'),
    Column('last_active', DateTime(timezone=True), nullable=True),
    Column('is_premium', Boolean, nullable=True),
    Column('subscription_tier', String(50), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Commerce-platform mirror, written by the external billing sync
customers = Table(
    'customers',
    metadata,
    Column('user_id', String(128), primary_key=True),
    # {product_id: {"entitlements": {entitlement_id: {"active": bool, ...}}}}
    Column('subscriptions', JSON, nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

conversations = Table(
    'conversations',
    metadata,
    Column('user_id', String(128), primary_key=True),
    Column('id', String(MAX_CONVERSATION_ID_LENGTH), primary_key=True),
    Column('last_updated', DateTime(timezone=True), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Composite index for history listing: (user_id, last_updated)
    Index('idx_conversations_user_updated', 'user_id', 'last_updated'),
)

# Append-only transcript rows
conversation_messages = Table(
    'conversation_messages',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(128), nullable=False),
    Column('conversation_id', String(MAX_CONVERSATION_ID_LENGTH), nullable=False),
    Column('position', Integer, nullable=False),
    Column('role', String(16), nullable=False),
    Column('content', Text, nullable=False),
    Column('timestamp', DateTime(timezone=True), nullable=False),
    ForeignKeyConstraint(
        ['user_id', 'conversation_id'],
        ['conversations.user_id', 'conversations.id'],
        name='fk_conversation_messages_conversation',
    ),
    # Unique slot per position: concurrent appends cannot claim the same one
    UniqueConstraint('user_id', 'conversation_id', 'position', name='uq_conversation_messages_position'),
    Index('idx_conversation_messages_conversation_position', 'user_id', 'conversation_id', 'position'),
)
