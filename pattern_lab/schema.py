"""
テーブル定義

Outbox 側と CQRS 側のテーブルを SQLAlchemy Core で定義する。
PostgreSQL (asyncpg) と SQLite (aiosqlite) の両方で動くよう、
UUID は文字列、JSON サブドキュメントはテキストとして保存する。

┌─────────────────── Outbox ───────────────────┐
│ outbox_orders ──(同一トランザクション)── outbox_events │
└──────────────────────────────────────────────┘
┌──────────────────── CQRS ────────────────────┐
│ cqrs_products / cqrs_orders / cqrs_order_items │  Write 側
│ cqrs_event_store                               │  イベント
│ cqrs_product_read_model / cqrs_order_read_model│  Read 側
└──────────────────────────────────────────────┘
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)

metadata = MetaData()


# ── Outbox ──────────────────────────────────────

outbox_orders = Table(
    "outbox_orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_number", String(32), nullable=False, unique=True),
    Column("customer_name", String(255), nullable=False),
    Column("customer_email", String(255), nullable=False),
    Column("product_name", String(255), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price", Numeric(19, 2), nullable=False),
    Column("total_amount", Numeric(19, 2), nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True)),
)

outbox_events = Table(
    "outbox_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("aggregate_id", String(64), nullable=False),
    Column("aggregate_type", String(64), nullable=False),
    Column("event_type", String(64), nullable=False),
    Column("event_data", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("processed", Boolean, nullable=False, default=False),
    Column("processed_at", DateTime(timezone=True)),
    Column("error_message", Text),
    Index("ix_outbox_events_unprocessed", "processed", "created_at"),
)


# ── CQRS: Write 側 ──────────────────────────────

cqrs_products = Table(
    "cqrs_products",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("price", Float, nullable=False),
    Column("category_id", String(64)),
    Column("stock_quantity", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

cqrs_orders = Table(
    "cqrs_orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("customer_id", String(255), nullable=False),
    Column("total_amount", Float, nullable=False),
    Column("status", String(32), nullable=False),
    Column("shipping_address", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

cqrs_order_items = Table(
    "cqrs_order_items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("order_id", String(36), ForeignKey("cqrs_orders.id"), nullable=False),
    Column("product_id", String(36), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Float, nullable=False),
)


# ── CQRS: イベントストア ────────────────────────

cqrs_event_store = Table(
    "cqrs_event_store",
    metadata,
    Column("event_id", String(36), primary_key=True),
    Column("aggregate_id", String(36), nullable=False),
    Column("aggregate_type", String(32), nullable=False),
    Column("event_type", String(64), nullable=False),
    Column("event_data", Text, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("processed", Boolean, nullable=False, default=False),
    Index("ix_cqrs_event_store_unprocessed", "processed", "timestamp"),
)


# ── CQRS: Read 側 ───────────────────────────────

cqrs_product_read_model = Table(
    "cqrs_product_read_model",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("price", Float, nullable=False),
    Column("category", String(64)),
    Column("stock_status", String(16), nullable=False),
    Column("avg_rating", Float, nullable=False, default=0.0),
)

cqrs_order_read_model = Table(
    "cqrs_order_read_model",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("customer_info", String(255), nullable=False),
    Column("items", Text, nullable=False),
    Column("total_amount", Float, nullable=False),
    Column("status", String(32), nullable=False),
    Column("timeline", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)
