"""Initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("phid", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("real_name", sa.String(length=128), nullable=True),
        sa.Column("email", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phid"),
        sa.UniqueConstraint("username"),
    )
    op.create_table(
        "repositories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("phid", sa.String(length=64), nullable=False),
        sa.Column("callsign", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phid"),
        sa.UniqueConstraint("callsign"),
    )
    op.create_table(
        "owners_packages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("phid", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("primary_owner_phid", sa.String(length=64), nullable=False),
        sa.Column("auditing_enabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phid"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "owners_owners",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=False),
        sa.Column("user_phid", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["package_id"], ["owners_packages.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("package_id", "user_phid", name="uq_owners_owners_package_user"),
    )
    op.create_table(
        "owners_paths",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=False),
        sa.Column("repository_phid", sa.String(length=64), nullable=False),
        sa.Column("path", sa.String(length=1024), nullable=False),
        sa.ForeignKeyConstraint(["package_id"], ["owners_packages.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_owners_paths_package_id", "owners_paths", ["package_id"])
    op.create_table(
        "outbound_mail",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("related_phid", sa.String(length=64), nullable=True),
        sa.Column("from_phid", sa.String(length=64), nullable=True),
        sa.Column("to_phids", sa.JSON(), nullable=True),
        sa.Column("subject", sa.String(length=512), nullable=False),
        sa.Column("thread_id", sa.String(length=255), nullable=True),
        sa.Column("body", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("status", sa.String(length=32), server_default=sa.text("'QUEUED'"), nullable=False),
        sa.Column("attempt_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("smtp_response", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_outbound_mail_status", "outbound_mail", ["status"])


def downgrade() -> None:
    op.drop_index("ix_outbound_mail_status", table_name="outbound_mail")
    op.drop_table("outbound_mail")
    op.drop_index("ix_owners_paths_package_id", table_name="owners_paths")
    op.drop_table("owners_paths")
    op.drop_table("owners_owners")
    op.drop_table("owners_packages")
    op.drop_table("repositories")
    op.drop_table("users")
