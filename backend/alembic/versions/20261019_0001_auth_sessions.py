"""auth_sessions

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

- users with confirmation and recovery state
- device_auth_sessions: one row per logged-in device, current refresh issued_at
- attempts: request log for the per (ip, url) sliding-window throttle
"""

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(bind, table: str) -> bool:
    insp = sa.inspect(bind)
    return insp.has_table(table)


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("login", sa.String(length=64), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            sa.Column("is_deleted", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("confirmation_code", sa.String(length=64), nullable=True),
            sa.Column("confirmation_expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_confirmed", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("recovery_code_hash", sa.String(length=128), server_default="", nullable=False),
            sa.Column("recovery_expires_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_login", "users", ["login"], unique=True)
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_confirmation_code", "users", ["confirmation_code"], unique=True)

    if not _has_table(bind, "device_auth_sessions"):
        op.create_table(
            "device_auth_sessions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id",
                sa.Integer(),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("device_id", sa.String(length=36), nullable=False),
            sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("device_name", sa.Text(), nullable=False),
            sa.Column("ip", sa.String(length=64), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_device_auth_sessions_id", "device_auth_sessions", ["id"])
        op.create_index("ix_device_auth_sessions_user_id", "device_auth_sessions", ["user_id"])
        op.create_index("ix_device_auth_sessions_device_id", "device_auth_sessions", ["device_id"], unique=True)

    if not _has_table(bind, "attempts"):
        op.create_table(
            "attempts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("ip", sa.String(length=64), nullable=False),
            sa.Column("url", sa.String(length=512), nullable=False),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_attempts_ip_url_timestamp", "attempts", ["ip", "url", "timestamp"])


def downgrade() -> None:
    op.drop_table("attempts")
    op.drop_table("device_auth_sessions")
    op.drop_table("users")
