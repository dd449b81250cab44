"""
Brimasouk — データベース接続とスキーマ

SQLAlchemy の非同期エンジンで生 SQL を実行する。
本番は PostgreSQL (asyncpg)、開発・テストは SQLite (aiosqlite)。
どちらでも動くように DDL と SQL は方言に依存しない書き方にしている。

日時は UTC の ISO 8601 文字列(マイクロ秒付き)で保存する。
同じ形式なので文字列比較がそのまま時系列比較になる。
"""

import json
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .config import DATABASE_URL

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── 日時・JSON ヘルパー ──────────────────────────


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def as_utc(value: datetime | None) -> datetime | None:
    """タイムゾーン無しの日時は UTC とみなす"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def dumps(value) -> str:
    return json.dumps(value, default=str)


def loads(value, default=None):
    if value is None:
        return default
    return json.loads(value) if isinstance(value, str) else value


# ── スキーマ ─────────────────────────────────────

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        full_name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        role TEXT NOT NULL DEFAULT 'user',
        region TEXT,
        phone_number TEXT,
        is_approved BOOLEAN NOT NULL DEFAULT FALSE,
        artisan_description TEXT,
        approved_by TEXT,
        approval_date TEXT,
        rejection_reason TEXT,
        collaborator_role TEXT,
        collaborator_approved BOOLEAN NOT NULL DEFAULT FALSE,
        collaborator_details TEXT,
        collaborator_rejection_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL,
        category TEXT NOT NULL,
        artisan_id TEXT NOT NULL,
        original_price NUMERIC(12, 2) NOT NULL,
        price NUMERIC(12, 2) NOT NULL,
        markup_percentage NUMERIC(5, 2) NOT NULL DEFAULT 30,
        is_approved BOOLEAN NOT NULL DEFAULT FALSE,
        approved_by TEXT,
        approval_date TEXT,
        rejection_reason TEXT,
        promotional_status TEXT NOT NULL DEFAULT 'none',
        discount_percentage NUMERIC(5, 2) NOT NULL DEFAULT 0,
        promotion_start_date TEXT,
        promotion_end_date TEXT,
        stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS promo_codes (
        id TEXT PRIMARY KEY,
        code TEXT NOT NULL UNIQUE,
        discount_type TEXT NOT NULL DEFAULT 'percentage',
        discount_value NUMERIC(12, 2) NOT NULL,
        max_uses INTEGER NOT NULL DEFAULT 0,
        current_uses INTEGER NOT NULL DEFAULT 0,
        start_date TEXT,
        end_date TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        min_order_value NUMERIC(12, 2) NOT NULL DEFAULT 0,
        applicable_categories TEXT,
        applicable_products TEXT,
        created_by TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        artisan_id TEXT,
        shipping_address TEXT NOT NULL,
        subtotal NUMERIC(12, 2) NOT NULL,
        shipping_cost NUMERIC(12, 2) NOT NULL DEFAULT 0,
        discount NUMERIC(12, 2) NOT NULL DEFAULT 0,
        discount_code TEXT,
        total_amount NUMERIC(12, 2) NOT NULL,
        payment_method TEXT NOT NULL DEFAULT 'card',
        payment_status TEXT NOT NULL DEFAULT 'pending',
        payment_reference TEXT,
        transaction_id TEXT,
        order_status TEXT NOT NULL DEFAULT 'pending',
        order_notes TEXT,
        is_gift BOOLEAN NOT NULL DEFAULT FALSE,
        gift_message TEXT,
        estimated_delivery TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_items (
        order_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        product_id TEXT NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity >= 1),
        price NUMERIC(12, 2) NOT NULL,
        total_price NUMERIC(12, 2) NOT NULL,
        PRIMARY KEY (order_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cart_items (
        user_id TEXT NOT NULL,
        product_id TEXT NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity >= 1),
        added_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, product_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        artisan_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        location TEXT,
        region TEXT,
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        duration INTEGER NOT NULL,
        experience_type TEXT NOT NULL DEFAULT 'workshop',
        price NUMERIC(12, 2) NOT NULL DEFAULT 0,
        max_participants INTEGER NOT NULL DEFAULT 10,
        current_participants INTEGER NOT NULL DEFAULT 0 CHECK (current_participants >= 0),
        is_approved BOOLEAN NOT NULL DEFAULT FALSE,
        approved_by TEXT,
        rejection_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reservations (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        full_name TEXT NOT NULL,
        email TEXT NOT NULL,
        phone_number TEXT,
        number_of_participants INTEGER NOT NULL DEFAULT 1,
        special_requirements TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        promo_code TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS event_store (
        aggregate_id TEXT NOT NULL,
        aggregate_type TEXT NOT NULL,
        event_type TEXT NOT NULL,
        event_data TEXT NOT NULL,
        version INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (aggregate_id, version)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_region ON events (region)",
    "CREATE INDEX IF NOT EXISTS idx_orders_user ON orders (user_id)",
]

TABLES = [
    "users", "products", "promo_codes", "orders", "order_items",
    "cart_items", "events", "reservations", "event_store",
]


async def init_schema() -> None:
    async with engine.begin() as conn:
        for ddl in SCHEMA:
            await conn.execute(text(ddl))


async def drop_schema() -> None:
    async with engine.begin() as conn:
        for table in TABLES:
            await conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
