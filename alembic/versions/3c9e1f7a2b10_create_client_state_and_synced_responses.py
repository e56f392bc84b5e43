"""create_client_state_and_synced_responses

Revision ID: 3c9e1f7a2b10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c9e1f7a2b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "client_state",
        sa.Column("key", sa.String(length=64), primary_key=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_table(
        "synced_responses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("survey_id", sa.String(length=36), nullable=False),
        sa.Column("respondent_id", sa.String(length=36), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("audio_recording", sa.Text(), nullable=True),
        sa.Column("respondent_info", sa.JSON(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index(
        "ix_synced_responses_survey_id", "synced_responses", ["survey_id"]
    )
    op.create_index(
        "ix_synced_responses_respondent_id", "synced_responses", ["respondent_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_synced_responses_respondent_id", table_name="synced_responses")
    op.drop_index("ix_synced_responses_survey_id", table_name="synced_responses")
    op.drop_table("synced_responses")
    op.drop_table("client_state")
