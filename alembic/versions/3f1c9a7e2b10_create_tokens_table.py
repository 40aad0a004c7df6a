"""create tokens table

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-19 09:12:31.402117

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f1c9a7e2b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Portable: SQLite + Postgres
    op.create_table(
        "tokens",
        sa.Column("token", sa.String(length=16), primary_key=True, nullable=False),
        sa.Column(
            "status",
            sa.String(length=16),
            server_default=sa.text("'unused'"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient", sa.String(length=255), nullable=True),
        sa.Column("consumer_identity", sa.String(length=255), nullable=True),
        sa.CheckConstraint("status IN ('unused', 'used')", name="ck_tokens_status"),
        sa.CheckConstraint(
            "(status = 'unused' AND used_at IS NULL) OR (status = 'used' AND used_at IS NOT NULL)",
            name="ck_tokens_used_at_matches_status",
        ),
    )

    op.create_index("ix_tokens_status", "tokens", ["status"], unique=False)
    op.create_index("ix_tokens_used_at", "tokens", ["used_at"], unique=False)
    op.create_index("ix_tokens_created_at", "tokens", ["created_at"], unique=False)


def downgrade():
    op.drop_index("ix_tokens_created_at", table_name="tokens")
    op.drop_index("ix_tokens_used_at", table_name="tokens")
    op.drop_index("ix_tokens_status", table_name="tokens")
    op.drop_table("tokens")
