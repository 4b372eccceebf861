"""001_initial_schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

Initial schema for the matchmaking backend.

Creates:
- players, player_skill_levels, coin_transactions
- rooms, room_players, room_chat_messages
- friends, friend_requests
- conversations, direct_messages
- player_ratings
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from the current models."""
    from matchroom.database.db import Base
    from matchroom.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from matchroom.database.db import Base
    from matchroom.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
