# backend/libris/scripts/seed_catalog.py

"""
Seed the library catalog from one or more JSON files.

Usage examples:

  cd backend
  python -m libris.scripts.seed_catalog --file data/catalog.json

  # Several files; later files update books loaded by earlier ones
  python -m libris.scripts.seed_catalog \
    --file data/catalog.json \
    --file data/new_arrivals.json
"""

import argparse
import json
from pathlib import Path
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from libris.database import SessionLocal, init_db
from libris import models


def _coerce_status(raw) -> models.BookStatus:
    """
    Map JSON status string -> BookStatus enum.

    Unknown or missing statuses default to available.
    """
    if not raw:
        return models.BookStatus.AVAILABLE
    try:
        return models.BookStatus(str(raw).strip().lower())
    except ValueError:
        return models.BookStatus.AVAILABLE


def _coerce_year(raw) -> Optional[int]:
    try:
        return int(raw) if raw not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _load_books_from_file(path: Path) -> list[dict]:
    """Load a single JSON file of books, or return empty if file missing."""
    if not path.exists():
        print(f"[seed_catalog] File not found, skipping: {path}")
        return []

    print(f"[seed_catalog] Loading books from: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"Expected list of books in {path}, got {type(data)}")

    return data


def _find_existing(db: Session, isbn: Optional[str], title: str, author: str) -> Optional[models.Book]:
    if isbn:
        existing = db.query(models.Book).filter(models.Book.isbn == isbn).first()
        if existing:
            return existing
    return (
        db.query(models.Book)
        .filter(models.Book.title == title, models.Book.author == author)
        .first()
    )


def seed_books(db: Session, raw_books: list[dict]) -> dict:
    """
    Create or update catalog books. Matching is by ISBN, then (title, author).

    Returns counts of created / updated / skipped records. Commits once at the end.
    """
    created = 0
    updated = 0
    skipped = 0

    for b in raw_books:
        title = (b.get("title") or "").strip()
        author = (b.get("author") or "").strip()

        if not title or not author:
            # Hard skip any garbage rows
            skipped += 1
            continue

        isbn = (b.get("isbn") or "").strip() or None
        fields = dict(
            isbn=isbn,
            publisher=b.get("publisher"),
            format=b.get("format"),
            year=_coerce_year(b.get("year")),
            popularity_score=float(b.get("popularity_score") or 0),
            status=_coerce_status(b.get("status")),
            description=b.get("description"),
            cover_image_url=b.get("cover_image_url"),
        )
        categories = [c for c in (b.get("categories") or []) if c]
        tags = [t for t in (b.get("tags") or []) if t]

        existing = _find_existing(db, isbn, title, author)
        if existing:
            # Idempotent update: keep existing id, refresh fields from JSON
            for key, value in fields.items():
                setattr(existing, key, value)
            existing.categories = categories
            existing.tags = tags
            existing.updated_at = datetime.utcnow()
            updated += 1
            continue

        db.add(models.Book(title=title, author=author, categories=categories, tags=tags, **fields))
        # Make the new row visible to _find_existing for duplicates within the same run
        db.flush()
        created += 1

    db.commit()
    return {"created": created, "updated": updated, "skipped": skipped}


def main():
    parser = argparse.ArgumentParser(
        description="Seed the library catalog from JSON files."
    )
    parser.add_argument(
        "--file",
        "-f",
        action="append",
        dest="files",
        required=True,
        help="Path to a JSON file of books. Can be specified multiple times.",
    )
    args = parser.parse_args()

    raw_books: list[dict] = []
    for f in args.files:
        raw_books.extend(_load_books_from_file(Path(f).resolve()))

    if not raw_books:
        raise FileNotFoundError("No books loaded from: " + ", ".join(args.files))

    init_db()
    db: Session = SessionLocal()
    try:
        counts = seed_books(db, raw_books)
    finally:
        db.close()

    print(
        f"[seed_catalog] Seed complete. Created={counts['created']}, "
        f"Updated={counts['updated']}, Skipped={counts['skipped']}"
    )


if __name__ == "__main__":
    main()
