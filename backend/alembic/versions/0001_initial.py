from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "match_record",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("played_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("game_type", sa.String(), nullable=False),
        sa.Column("target_score", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("player1_name", sa.String(), nullable=False),
        sa.Column("player1_handicap", sa.Integer(), nullable=False),
        sa.Column("player1_score", sa.Integer(), nullable=False),
        sa.Column("player2_name", sa.String(), nullable=False),
        sa.Column("player2_handicap", sa.Integer(), nullable=False),
        sa.Column("player2_score", sa.Integer(), nullable=False),
        sa.Column("winner", sa.Integer(), nullable=False),
        sa.Column("winner_name", sa.String(), nullable=False),
        sa.Column("player1_stats", sa.JSON(), nullable=False),
        sa.Column("player2_stats", sa.JSON(), nullable=False),
        sa.Column("innings", sa.JSON(), nullable=False),
    )
    op.create_index("ix_match_record_played_at", "match_record", ["played_at"])


def downgrade():
    op.drop_index("ix_match_record_played_at", table_name="match_record")
    op.drop_table("match_record")
