"""
File: app/db/models/profile.py
Description: 用户扩展资料模型 (默认 Schema)

首次三方登录时由 ProfileSync 惰性创建，之后归用户本人所有：
一旦存在资料记录，三方数据不再覆盖。

注意：
采用 "No-Relationship" 模式，不显式定义 ORM relationship。
User 与 Profile 的关联仅通过 user_uuid 外键物理约束 (唯一，1:1)。

Author: jinmozhe
Created: 2025-12-02
Updated: 2026-10-18 (Social profile enrichment)
"""

from sqlalchemy import ForeignKey, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import UUID_LENGTH, UUIDModel


class Profile(UUIDModel):
    """
    用户资料表 (1:1 User)
    """

    __tablename__ = "profiles"

    # --------------------------------------------------------------------------
    # 外键关联
    # --------------------------------------------------------------------------

    user_uuid: Mapped[str] = mapped_column(
        String(UUID_LENGTH),
        ForeignKey("users.uuid"),
        unique=True,  # 确保 1:1 关系，同时防止并发重复创建
        nullable=False,
        comment="关联用户 uuid",
    )

    # --------------------------------------------------------------------------
    # 基础资料
    # --------------------------------------------------------------------------

    first_name: Mapped[str | None] = mapped_column(
        String(100), nullable=True, comment="名"
    )

    last_name: Mapped[str | None] = mapped_column(
        String(100), nullable=True, comment="姓"
    )

    # 头像：存储 URL
    photo_url: Mapped[str | None] = mapped_column(
        String(512), nullable=True, comment="头像URL"
    )

    status: Mapped[str] = mapped_column(
        String(32),
        default="active",
        server_default=text("'active'"),
        nullable=False,
        comment="资料状态",
    )
