"""Create chat, hypothesis and feedback tables

Revision ID: 8c2e41d7a9b0
Revises:
Create Date: 2026-10-18 10:12:41.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '8c2e41d7a9b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RATINGS = ('helpful', 'not_helpful', 'needs_improvement')
CATEGORIES = ('quality', 'novelty', 'feasibility', 'clarity', 'other')


def upgrade() -> None:
    usertype = postgresql.ENUM('guest', 'regular', name='usertype')
    visibility = postgresql.ENUM('private', 'public', name='visibility')
    messagerole = postgresql.ENUM('user', 'assistant', name='messagerole')
    feedbackrating = postgresql.ENUM(*RATINGS, name='feedbackrating')
    feedbackcategory = postgresql.ENUM(*CATEGORIES, name='feedbackcategory')
    for enum_type in (usertype, visibility, messagerole, feedbackrating, feedbackcategory):
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('external_user_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=True),
        sa.Column('user_type', postgresql.ENUM(name='usertype', create_type=False), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_user_id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'chats',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('visibility', postgresql.ENUM(name='visibility', create_type=False), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_chats_user_created', 'chats', ['user_id', 'created_at'])

    op.create_table(
        'chat_messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('chat_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('role', postgresql.ENUM(name='messagerole', create_type=False), nullable=False),
        sa.Column('parts', postgresql.JSONB(), nullable=False),
        sa.Column('attachments', postgresql.JSONB(), nullable=False),
        sa.Column('hypotheses', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_chat_messages_chat_created', 'chat_messages', ['chat_id', 'created_at'])

    op.create_table(
        'hypotheses',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('message_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['message_id'], ['chat_messages.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_hypotheses_message_id', 'hypotheses', ['message_id'])

    op.create_table(
        'message_feedback',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('chat_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('message_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('rating', postgresql.ENUM(name='feedbackrating', create_type=False), nullable=False),
        sa.Column('feedback_text', sa.Text(), nullable=True),
        sa.Column('feedback_type', postgresql.ENUM(name='feedbackcategory', create_type=False), nullable=True),
        sa.Column('hypothesis_ratings', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['message_id'], ['chat_messages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'message_id', name='uq_message_feedback_user_message'),
    )

    op.create_table(
        'hypothesis_feedback',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hypothesis_id', sa.String(length=100), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('rating', postgresql.ENUM(name='feedbackrating', create_type=False), nullable=False),
        sa.Column('feedback_text', sa.Text(), nullable=True),
        sa.Column('feedback_category', postgresql.ENUM(name='feedbackcategory', create_type=False), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['hypothesis_id'], ['hypotheses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'hypothesis_id', name='uq_hypothesis_feedback_user_hypothesis'),
    )
    op.create_index('idx_hypothesis_feedback_hypothesis_id', 'hypothesis_feedback', ['hypothesis_id'])
    op.create_index('idx_hypothesis_feedback_user_id', 'hypothesis_feedback', ['user_id'])

    op.create_table(
        'votes',
        sa.Column('chat_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('message_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('is_upvoted', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['message_id'], ['chat_messages.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('chat_id', 'message_id'),
    )

    op.create_table(
        'chat_streams',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('chat_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_chat_streams_chat_created', 'chat_streams', ['chat_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_chat_streams_chat_created', table_name='chat_streams')
    op.drop_table('chat_streams')
    op.drop_table('votes')
    op.drop_index('idx_hypothesis_feedback_user_id', table_name='hypothesis_feedback')
    op.drop_index('idx_hypothesis_feedback_hypothesis_id', table_name='hypothesis_feedback')
    op.drop_table('hypothesis_feedback')
    op.drop_table('message_feedback')
    op.drop_index('idx_hypotheses_message_id', table_name='hypotheses')
    op.drop_table('hypotheses')
    op.drop_index('idx_chat_messages_chat_created', table_name='chat_messages')
    op.drop_table('chat_messages')
    op.drop_index('idx_chats_user_created', table_name='chats')
    op.drop_table('chats')
    op.drop_table('users')

    for name in ('feedbackcategory', 'feedbackrating', 'messagerole', 'visibility', 'usertype'):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
