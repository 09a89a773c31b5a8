"""baseline_init_schema

Revision ID: 000000000000
Revises: 
Create Date: 2026-10-17 00:00:00.000000

Creates the catalog, behavior and loan tables read by the recommendation engine.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '000000000000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOK_STATUS = sa.Enum('available', 'borrowed', 'reserved', 'unavailable', name='bookstatus')
EVENT_TYPE = sa.Enum(
    'view', 'search', 'borrow', 'return', 'complete',
    'bookmark_add', 'bookmark_remove', 'note_create', 'note_update',
    name='interactioneventtype',
)
TRANSACTION_STATUS = sa.Enum(
    'pending-approval', 'borrowed', 'return-requested', 'returned', 'rejected',
    name='transactionstatus',
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'books',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('isbn', sa.String(), nullable=True),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('publisher', sa.String(), nullable=True),
        sa.Column('format', sa.String(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('popularity_score', sa.Float(), nullable=False),
        sa.Column('status', BOOK_STATUS, nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cover_image_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_books_title', 'books', ['title'])
    op.create_index('ix_books_isbn', 'books', ['isbn'])
    op.create_index('ix_books_author', 'books', ['author'])
    op.create_index('ix_books_publisher', 'books', ['publisher'])
    op.create_index('ix_books_status', 'books', ['status'])

    for table in ('book_categories', 'book_tags'):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('book_id', sa.Uuid(), sa.ForeignKey('books.id', ondelete='CASCADE'), nullable=False),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('position', sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(f'ix_{table}_book_id', table, ['book_id'])
        op.create_index(f'ix_{table}_name', table, ['name'])

    op.create_table(
        'user_interactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('event_type', EVENT_TYPE, nullable=False),
        sa.Column('book_id', sa.Uuid(), nullable=True),
        sa.Column('book_title', sa.String(), nullable=True),
        sa.Column('book_categories', sa.JSON(), nullable=True),
        sa.Column('book_tags', sa.JSON(), nullable=True),
        sa.Column('book_author', sa.String(), nullable=True),
        sa.Column('book_publisher', sa.String(), nullable=True),
        sa.Column('book_format', sa.String(), nullable=True),
        sa.Column('book_year', sa.Integer(), nullable=True),
        sa.Column('search_query', sa.String(), nullable=True),
        sa.Column('search_filters', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_interactions_user_id', 'user_interactions', ['user_id'])
    op.create_index('ix_user_interactions_timestamp', 'user_interactions', ['timestamp'])
    op.create_index('idx_user_interactions_user_timestamp', 'user_interactions', ['user_id', 'timestamp'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('book_id', sa.Uuid(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('book_title', sa.String(), nullable=True),
        sa.Column('book_categories', sa.JSON(), nullable=True),
        sa.Column('book_tags', sa.JSON(), nullable=True),
        sa.Column('book_author', sa.String(), nullable=True),
        sa.Column('status', TRANSACTION_STATUS, nullable=False),
        sa.Column('borrowed_at', sa.DateTime(), nullable=True),
        sa.Column('returned_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_book_id', 'transactions', ['book_id'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])

    op.create_table(
        'bookmarks',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('book_id', sa.Uuid(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'book_id', name='uq_bookmarks_user_book'),
    )
    op.create_index('ix_bookmarks_user_id', 'bookmarks', ['user_id'])

    op.create_table(
        'notes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('book_id', sa.Uuid(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notes_user_id', 'notes', ['user_id'])

    op.create_table(
        'personal_libraries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('isbn', sa.String(), nullable=True),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_personal_libraries_user_id', 'personal_libraries', ['user_id'])


def downgrade() -> None:
    op.drop_table('personal_libraries')
    op.drop_table('notes')
    op.drop_table('bookmarks')
    op.drop_table('transactions')
    op.drop_table('user_interactions')
    op.drop_table('book_tags')
    op.drop_table('book_categories')
    op.drop_table('books')
    op.drop_table('users')
    BOOK_STATUS.drop(op.get_bind(), checkfirst=True)
    EVENT_TYPE.drop(op.get_bind(), checkfirst=True)
    TRANSACTION_STATUS.drop(op.get_bind(), checkfirst=True)
