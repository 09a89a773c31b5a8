from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Enum as SQLEnum, JSON, Float, Uuid, UniqueConstraint
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
import sqlalchemy as sa
from libris.database import Base


def _enum_column(enum_cls, name: str) -> SQLEnum:
    """Store enum values (e.g. "pending-approval") rather than member names."""
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class BookStatus(str, enum.Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"
    UNAVAILABLE = "unavailable"


class InteractionEventType(str, enum.Enum):
    VIEW = "view"
    SEARCH = "search"
    BORROW = "borrow"
    RETURN = "return"
    COMPLETE = "complete"
    BOOKMARK_ADD = "bookmark_add"
    BOOKMARK_REMOVE = "bookmark_remove"
    NOTE_CREATE = "note_create"
    NOTE_UPDATE = "note_update"


class TransactionStatus(str, enum.Enum):
    PENDING_APPROVAL = "pending-approval"
    BORROWED = "borrowed"
    RETURN_REQUESTED = "return-requested"
    RETURNED = "returned"
    REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="student")
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    interactions = relationship("UserInteraction", back_populates="user")
    transactions = relationship("LoanTransaction", back_populates="user")


class BookCategory(Base):
    __tablename__ = "book_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)


class BookTag(Base):
    __tablename__ = "book_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)


class Book(Base):
    """
    Catalog book.

    Categories and tags live in ordered link tables so the candidate query can
    match on them in SQL; `book.categories` / `book.tags` read and write them as
    plain lists of strings. The first category is the book's primary category.
    """
    __tablename__ = "books"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False, index=True)
    isbn = Column(String, nullable=True, index=True)
    author = Column(String, nullable=True, index=True)
    publisher = Column(String, nullable=True, index=True)
    format = Column(String, nullable=True)
    year = Column(Integer, nullable=True)
    popularity_score = Column(Float, nullable=False, default=0.0)
    status = Column(_enum_column(BookStatus, "bookstatus"), nullable=False, default=BookStatus.AVAILABLE, index=True)
    description = Column(Text, nullable=True)
    cover_image_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category_links = relationship(
        "BookCategory",
        order_by="BookCategory.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    tag_links = relationship(
        "BookTag",
        order_by="BookTag.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    categories = association_proxy("category_links", "name", creator=lambda name: BookCategory(name=name))
    tags = association_proxy("tag_links", "name", creator=lambda name: BookTag(name=name))


class UserInteraction(Base):
    """
    One user action. Book metadata is copied at write time so profile building
    never needs to join against the catalog. Never updated once written.
    """
    __tablename__ = "user_interactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    event_type = Column(_enum_column(InteractionEventType, "interactioneventtype"), nullable=False)
    book_id = Column(Uuid, nullable=True)
    book_title = Column(String, nullable=True)
    book_categories = Column(JSON, nullable=True)
    book_tags = Column(JSON, nullable=True)
    book_author = Column(String, nullable=True)
    book_publisher = Column(String, nullable=True)
    book_format = Column(String, nullable=True)
    book_year = Column(Integer, nullable=True)
    search_query = Column(String, nullable=True)
    search_filters = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    user = relationship("User", back_populates="interactions")

    __table_args__ = (
        sa.Index("idx_user_interactions_user_timestamp", "user_id", "timestamp"),
    )


class LoanTransaction(Base):
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Uuid, ForeignKey("books.id"), nullable=False, index=True)
    book_title = Column(String, nullable=True)
    book_categories = Column(JSON, nullable=True)
    book_tags = Column(JSON, nullable=True)
    book_author = Column(String, nullable=True)
    status = Column(_enum_column(TransactionStatus, "transactionstatus"), nullable=False, index=True)
    borrowed_at = Column(DateTime, nullable=True)
    returned_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="transactions")


class Bookmark(Base):
    __tablename__ = "bookmarks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Uuid, ForeignKey("books.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_bookmarks_user_book"),
    )


class Note(Base):
    __tablename__ = "notes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Uuid, ForeignKey("books.id"), nullable=False)
    content = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PersonalLibraryEntry(Base):
    """A book the user owns (often scanned by barcode, so the ISBN may be missing)."""
    __tablename__ = "personal_libraries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=True)
    isbn = Column(String, nullable=True)
    author = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
