"""
Index portal chat messages by thread and support read flag for the inbox
unread counters.
"""

from alembic import op
import sqlalchemy as sa

revision = '20260115_add_chat_unread_index'
down_revision = '20260101_initial_schema'
branch_labels = None
depends_on = None

def upgrade():
    op.create_index(
        'ix_portal_chat_messages_thread_unread',
        'portal_chat_messages',
        ['thread_id', 'sender_type', 'read_by_support'],
    )


def downgrade():
    op.drop_index('ix_portal_chat_messages_thread_unread', table_name='portal_chat_messages')
