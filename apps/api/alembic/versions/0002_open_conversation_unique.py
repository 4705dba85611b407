"""One open conversation per contact and channel

Revision ID: 0002_open_conversation_unique
Revises: 0001_routing_baseline
Create Date: 2026-10-18

Concurrent first messages for the same contact+channel could each insert an
open conversation. The partial unique index makes the second insert fail so
get_or_create_conversation refetches the winner.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_open_conversation_unique'
down_revision: Union[str, Sequence[str], None] = '0001_routing_baseline'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_index(
        'uq_conversations_open_contact_channel',
        'conversations',
        ['contact_id', 'channel'],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )


def downgrade() -> None:
    op.drop_index('uq_conversations_open_contact_channel', table_name='conversations')
