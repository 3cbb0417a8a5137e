"""
Database Schema: SQLAlchemy Core Table Definitions

Tables backing the durable cache tier and the pattern-learning store.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)

metadata = MetaData()

# Learned user patterns
user_patterns_table = Table(
    "user_patterns",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(255), nullable=False, index=True),
    Column("pattern_type", String(32), nullable=False, index=True),
    Column("pattern_data", JSON, nullable=False),
    Column("confidence_score", Float, nullable=False, default=0.6),
    Column("sample_size", Integer, nullable=False, default=1),
    Column("last_reinforced", DateTime, default=func.now()),
    Column("created_at", DateTime, default=func.now(), index=True),
    Column("updated_at", DateTime, default=func.now(), onupdate=func.now()),
    Index("idx_patterns_user_type_confidence", "user_id", "pattern_type", "confidence_score"),
)

# Pattern embeddings (1536-dim unit vectors stored as JSON arrays)
pattern_embeddings_table = Table(
    "pattern_embeddings",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("pattern_id", String(64), nullable=False, unique=True, index=True),
    Column("user_id", String(255), index=True),
    Column("embedding", JSON, nullable=False),
    Column("metadata", JSON),
    Column("created_at", DateTime, default=func.now()),
    Column("updated_at", DateTime, default=func.now(), onupdate=func.now()),
)

# Durable (L3) response cache
content_cache_table = Table(
    "content_cache",
    metadata,
    Column("id", String(128), primary_key=True),
    Column("value", Text, nullable=False),
    Column("expires_at", Float, nullable=False, index=True),
    Column("created_at", DateTime, default=func.now()),
)

TABLES = {
    "user_patterns": user_patterns_table,
    "pattern_embeddings": pattern_embeddings_table,
    "content_cache": content_cache_table,
}
