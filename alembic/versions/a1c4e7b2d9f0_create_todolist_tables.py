"""Create people, users, todos and todo_tags tables

Revision ID: a1c4e7b2d9f0
Revises:
Create Date: 2026-10-19T09:12:44.518203
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'a1c4e7b2d9f0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- people ---
    op.create_table(
        'people',
        sa.Column('id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('phone', sa.String(50), nullable=False),
        sa.Column('tax_id', sa.String(14), nullable=False),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tax_id'),
    )
    op.create_index('ix_people_email', 'people', ['email'], unique=True)

    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('person_id', sa.BigInteger(), sa.ForeignKey('people.id', ondelete='CASCADE'), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('status', sa.Enum('active', 'inactive', 'blocked', 'pending', name='user_status'), nullable=False),
        sa.Column('role', sa.Enum('user', 'admin', name='user_role'), nullable=False),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_login_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('person_id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_status', 'users', ['status'])

    # --- todos ---
    op.create_table(
        'todos',
        sa.Column('id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.Enum('pending', 'in_progress', 'completed', 'cancelled', name='todo_status'), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_todos_user_id', 'todos', ['user_id'])
    op.create_index('ix_todos_user_status', 'todos', ['user_id', 'status'])
    op.create_index('ix_todos_user_due_date', 'todos', ['user_id', 'due_date'])

    # --- todo_tags ---
    op.create_table(
        'todo_tags',
        sa.Column('todo_id', sa.BigInteger(), sa.ForeignKey('todos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tag', sa.String(100), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('todo_id', 'tag'),
    )
    op.create_index('ix_todo_tags_tag', 'todo_tags', ['tag'])


def downgrade() -> None:
    op.drop_table('todo_tags')
    op.drop_table('todos')
    op.drop_table('users')
    op.drop_table('people')
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS todo_status")
        op.execute("DROP TYPE IF EXISTS user_role")
        op.execute("DROP TYPE IF EXISTS user_status")
