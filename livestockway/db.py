"""
Async Database Configuration
"""
from urllib.parse import parse_qs, urlparse, urlunparse

from sqlalchemy import BigInteger, Integer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

import livestockway.core.config as config

DATABASE_URL = config.DATABASE_URL

if not DATABASE_URL:
    if config.TESTING:
        # Test runs bind their own engines; this only keeps the module importable
        DATABASE_URL = "sqlite+aiosqlite:///:memory:"
    else:
        raise ValueError("DATABASE_URL environment variable is not set")

connect_args = {}
engine_kwargs = {}

if DATABASE_URL.startswith("sqlite"):
    if DATABASE_URL.startswith("sqlite://") and "+aiosqlite" not in DATABASE_URL:
        DATABASE_URL = DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
else:
    # asyncpg doesn't support psycopg2-style query parameters, so we remove them all
    parsed = urlparse(DATABASE_URL)
    query_params = parse_qs(parsed.query)
    sslmode = query_params.pop("sslmode", [None])[0]
    DATABASE_URL = urlunparse(parsed._replace(query=""))

    # Configure SSL for asyncpg (only parameter we support)
    if sslmode:
        if sslmode in ["require", "prefer", "allow", "verify-ca", "verify-full"]:
            connect_args["ssl"] = True
        elif sslmode == "disable":
            connect_args["ssl"] = False

    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
    elif DATABASE_URL.startswith("postgresql://"):
        DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine_kwargs = {
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
    **engine_kwargs,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base
Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


async def get_async_db():
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def dialect_insert(db):
    """INSERT construct for the session's dialect, so callers can use on_conflict_do_nothing."""
    from sqlalchemy.dialects import postgresql, sqlite

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect: {dialect}")
