"""social identity schema: users, social_accounts, profiles

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
            comment="创建时间 (UTC)",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
            comment="更新时间 (UTC)",
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("uuid", sa.String(36), nullable=False, comment="主键 (UUID v7)"),
        sa.Column("username", sa.String(50), nullable=False, comment="用户名"),
        sa.Column("email", sa.String(255), nullable=True, comment="用户邮箱"),
        sa.Column("password", sa.String(255), nullable=True, comment="密码哈希值"),
        sa.Column(
            "status",
            sa.String(32),
            server_default=sa.text("'active'"),
            nullable=False,
            comment="账号状态",
        ),
        sa.Column(
            "email_verified_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="邮箱验证时间 (UTC)",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("uuid", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.CheckConstraint(
            "length(username) > 0", name="ck_users_username_not_empty"
        ),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "social_accounts",
        sa.Column("uuid", sa.String(36), nullable=False, comment="主键 (UUID v7)"),
        sa.Column("user_uuid", sa.String(36), nullable=False, comment="关联用户 uuid"),
        sa.Column("provider", sa.String(50), nullable=False, comment="平台标识"),
        sa.Column("social_id", sa.String(255), nullable=False, comment="三方唯一ID"),
        sa.Column(
            "profile_data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
            comment="三方原始数据快照",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("uuid", name="pk_social_accounts"),
        sa.ForeignKeyConstraint(
            ["user_uuid"],
            ["users.uuid"],
            name="fk_social_accounts_user_uuid_users",
        ),
        sa.UniqueConstraint(
            "provider", "social_id", name="uq_social_accounts_provider_social_id"
        ),
        sa.UniqueConstraint(
            "user_uuid",
            "provider",
            "social_id",
            name="uq_social_accounts_user_provider_social_id",
        ),
    )
    op.create_index("ix_social_accounts_user_uuid", "social_accounts", ["user_uuid"])
    op.create_index("ix_social_accounts_provider", "social_accounts", ["provider"])

    op.create_table(
        "profiles",
        sa.Column("uuid", sa.String(36), nullable=False, comment="主键 (UUID v7)"),
        sa.Column("user_uuid", sa.String(36), nullable=False, comment="关联用户 uuid"),
        sa.Column("first_name", sa.String(100), nullable=True, comment="名"),
        sa.Column("last_name", sa.String(100), nullable=True, comment="姓"),
        sa.Column("photo_url", sa.String(512), nullable=True, comment="头像URL"),
        sa.Column(
            "status",
            sa.String(32),
            server_default=sa.text("'active'"),
            nullable=False,
            comment="资料状态",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("uuid", name="pk_profiles"),
        sa.ForeignKeyConstraint(
            ["user_uuid"], ["users.uuid"], name="fk_profiles_user_uuid_users"
        ),
        sa.UniqueConstraint("user_uuid", name="uq_profiles_user_uuid"),
    )


def downgrade() -> None:
    op.drop_table("profiles")
    op.drop_index("ix_social_accounts_provider", table_name="social_accounts")
    op.drop_index("ix_social_accounts_user_uuid", table_name="social_accounts")
    op.drop_table("social_accounts")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
