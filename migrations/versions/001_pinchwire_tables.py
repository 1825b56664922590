"""Create the audit log and state tables.

Revision ID: 001_pinchwire
Revises:
Create Date: 2026-10-19

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001_pinchwire"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")
ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "pinchwire_audit_log",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("context", JSON_TYPE, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        comment="Append-only record of dispatch attempts, task runs and admin actions",
    )
    op.create_index(
        "idx_pinchwire_audit_type_created",
        "pinchwire_audit_log",
        ["event_type", "created_at"],
    )
    op.create_index(op.f("ix_pinchwire_audit_log_source"), "pinchwire_audit_log", ["source"])
    op.create_index(op.f("ix_pinchwire_audit_log_user_id"), "pinchwire_audit_log", ["user_id"])
    op.create_index(op.f("ix_pinchwire_audit_log_created_at"), "pinchwire_audit_log", ["created_at"])

    op.create_table(
        "pinchwire_state",
        sa.Column("key", sa.String(191), primary_key=True),
        sa.Column("value", JSON_TYPE, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("pinchwire_state")
    op.drop_index(op.f("ix_pinchwire_audit_log_created_at"), table_name="pinchwire_audit_log")
    op.drop_index(op.f("ix_pinchwire_audit_log_user_id"), table_name="pinchwire_audit_log")
    op.drop_index(op.f("ix_pinchwire_audit_log_source"), table_name="pinchwire_audit_log")
    op.drop_index("idx_pinchwire_audit_type_created", table_name="pinchwire_audit_log")
    op.drop_table("pinchwire_audit_log")
