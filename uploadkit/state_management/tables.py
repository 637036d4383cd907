"""SQLAlchemy table definitions for the ledger and blob registry."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
)

metadata = MetaData()

# Ledger: one row per (file_id, chunk_index). Payload is a JSON ChunkRecord.
ledger_chunks = Table(
    "ledger_chunks",
    metadata,
    Column("file_id", Text, primary_key=True),
    Column("chunk_index", Integer, primary_key=True),
    Column("payload", Text, nullable=False),
    Column(
        "last_updated",
        DateTime(timezone=False),
        nullable=False,
        server_default=func.now(),
    ),
)

# Ledger: one session-level row per file. Payload is a JSON UploadMetadata.
ledger_sessions = Table(
    "ledger_sessions",
    metadata,
    Column("file_id", Text, primary_key=True),
    Column("payload", Text, nullable=False),
    Column(
        "last_updated",
        DateTime(timezone=False),
        nullable=False,
        server_default=func.now(),
    ),
)

# Blob registry: one row per file. Payload is a JSON BlobRecord.
blobs = Table(
    "blobs",
    metadata,
    Column("file_id", Text, primary_key=True),
    Column("payload", Text, nullable=False),
    Column("stored_at", DateTime(timezone=False), nullable=False),
)

Index("idx_ledger_chunks_file_id", ledger_chunks.c.file_id)
Index("idx_blobs_stored_at", blobs.c.stored_at)
