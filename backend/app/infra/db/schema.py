"""Table definitions mirrored by the Alembic migrations."""

from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Float, MetaData, String, Table, Text
from sqlalchemy.dialects.postgresql import JSONB

__all__ = ["BOOKS_METADATA", "BOOKS_TABLE", "build_books_table"]

PhotosType = JSON().with_variant(JSONB(), "postgresql")


def build_books_table(metadata: MetaData) -> Table:
    return Table(
        "books",
        metadata,
        Column("book_id", String(length=36), primary_key=True),
        Column("title", Text(), nullable=False),
        Column("author", Text(), nullable=False),
        Column("price", Float(), nullable=True),
        Column("description", Text(), nullable=True),
        Column("photos", PhotosType, nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=True),
    )


BOOKS_METADATA = MetaData()
BOOKS_TABLE = build_books_table(BOOKS_METADATA)
