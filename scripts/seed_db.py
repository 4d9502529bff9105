"""Seed script for the books table.

Creates a few sample books so the listing and edit pages have data to show
without uploading anything. One record keeps the legacy four-key photo
layout so the normalization path can be exercised by hand.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

from sqlalchemy import MetaData, Table, create_engine
from sqlalchemy.dialects.postgresql import insert as pg_insert

from backend.app.config import load_settings

SAMPLE_IMAGE_ROOT = "https://res.cloudinary.com/demo/image/upload"


def build_seed_books(timestamp: datetime) -> List[dict[str, object]]:
    """Return static seed data for the portfolio."""

    return [
        {
            "book_id": "00000000-0000-0000-0000-000000000001",
            "title": "Coptic-stitched sketchbook",
            "author": "Studio binding",
            "price": 45.0,
            "description": "Hand-sewn signatures, exposed spine, linen thread.",
            "photos": [
                f"{SAMPLE_IMAGE_ROOT}/coptic_front.jpg",
                f"{SAMPLE_IMAGE_ROOT}/coptic_spine.jpg",
            ],
            "created_at": timestamp,
            "updated_at": None,
        },
        {
            "book_id": "00000000-0000-0000-0000-000000000002",
            "title": "Rebound field guide",
            "author": "A. Naturalist",
            "price": None,
            "description": None,
            "photos": [f"{SAMPLE_IMAGE_ROOT}/field_guide.jpg"],
            "created_at": timestamp - timedelta(days=1),
            "updated_at": None,
        },
        {
            "book_id": "00000000-0000-0000-0000-000000000003",
            "title": "Quarter-leather journal",
            "author": "Studio binding",
            "price": 0.0,
            "description": "Stored with the older front/spine/back/inside photo map.",
            "photos": {
                "front": f"{SAMPLE_IMAGE_ROOT}/journal_front.jpg",
                "spine": f"{SAMPLE_IMAGE_ROOT}/journal_spine.jpg",
                "back": f"{SAMPLE_IMAGE_ROOT}/journal_back.jpg",
                "inside": f"{SAMPLE_IMAGE_ROOT}/journal_inside.jpg",
            },
            "created_at": timestamp - timedelta(days=2),
            "updated_at": None,
        },
    ]


def seed_books() -> int:
    settings = load_settings()
    engine = create_engine(settings.database_url, future=True)
    metadata_obj = MetaData()
    books_table = Table("books", metadata_obj, autoload_with=engine)

    records = build_seed_books(datetime.now(timezone.utc))
    stmt = pg_insert(books_table).values(records)
    update_cols = {
        col: stmt.excluded[col]
        for col in ["title", "author", "price", "description", "photos", "updated_at"]
    }

    with engine.begin() as conn:
        conn.execute(
            stmt.on_conflict_do_update(
                index_elements=[books_table.c.book_id], set_=update_cols
            )
        )

    return len(records)


def main() -> None:
    inserted = seed_books()
    print(f"Seeded {inserted} books.")


if __name__ == "__main__":
    main()
