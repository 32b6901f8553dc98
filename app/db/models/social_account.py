"""
File: app/db/models/social_account.py
Description: 用户三方绑定模型 (Google / Facebook / GitHub / Apple 等)

本表存储 (provider, social_id) -> User 的关联边。
一个 User 可以对应多个 SocialAccount 记录 (同时绑定多个平台)。

约束：
1. (provider, social_id) 唯一：同一三方身份只能归属一个本地用户，
   这是并发"未找到 -> 注册"竞态下防止重复建号的最终保障
2. (user_uuid, provider, social_id) 唯一：重复登录只更新快照，不新增记录

注意：
采用 "No-Relationship" 模式，不显式定义 ORM relationship。
User 与 SocialAccount 的关联仅通过 user_uuid 外键物理约束。

Author: jinmozhe
Created: 2025-12-02
Updated: 2026-10-18 (Social identity links)
"""

from typing import Any

from sqlalchemy import JSON, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import UUID_LENGTH, UUIDModel


class SocialAccount(UUIDModel):
    """
    用户三方绑定表 (N:1 User)
    """

    __tablename__ = "social_accounts"

    __table_args__ = (
        UniqueConstraint(
            "provider", "social_id", name="uq_social_accounts_provider_social_id"
        ),
        UniqueConstraint(
            "user_uuid",
            "provider",
            "social_id",
            name="uq_social_accounts_user_provider_social_id",
        ),
    )

    # --------------------------------------------------------------------------
    # 外键关联
    # --------------------------------------------------------------------------

    user_uuid: Mapped[str] = mapped_column(
        String(UUID_LENGTH),
        # ❌ 严禁 ondelete="CASCADE"：解绑必须是显式操作
        ForeignKey("users.uuid"),
        nullable=False,
        index=True,
        comment="关联用户 uuid",
    )

    # --------------------------------------------------------------------------
    # 三方核心凭证
    # --------------------------------------------------------------------------

    # 平台标识: google, facebook, github, apple
    provider: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True, comment="平台标识"
    )

    # 三方唯一ID (OpenID / Sub)
    social_id: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="三方唯一ID"
    )

    # --------------------------------------------------------------------------
    # 扩展数据 (JSON)
    # --------------------------------------------------------------------------

    # 存储三方返回的原始数据快照 (每次登录覆盖为最新)
    profile_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
        comment="三方原始数据快照",
    )
