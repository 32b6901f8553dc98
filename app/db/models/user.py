"""
File: app/db/models/user.py
Description: 用户核心账号模型 (默认 Schema)

本模型定义了用户核心数据结构。
继承自 UUIDModel，自动拥有：
1. UUID v7 字符串主键 (uuid，即对外暴露的用户唯一标识)
2. created_at / updated_at (UTC)

严格模式 (Database as Source of Truth):
- username 唯一约束是并发注册时用户名去重的最终保障
  (应用层"先查后写"存在竞态窗口，冲突时由数据库拒绝第二次插入)
- email 不要求唯一，仅作为三方登录时的"软匹配"键
- password 可为空：纯三方登录账号没有本地密码

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-18 (Social-only accounts)
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import UUIDModel


class User(UUIDModel):
    """
    用户模型 (账号域)
    """

    __tablename__ = "users"

    # --------------------------------------------------------------------------
    # 数据库级约束 (Constraints)
    # --------------------------------------------------------------------------
    __table_args__ = (
        # 强制用户名非空字符串
        CheckConstraint("length(username) > 0", name="username_not_empty"),
    )

    # --------------------------------------------------------------------------
    # 核心凭证
    # --------------------------------------------------------------------------

    # 用户名：唯一，创建后仅允许用户本人修改
    username: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, comment="用户名"
    )

    # 邮箱：可为空，不要求唯一 (软匹配键)
    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True, comment="用户邮箱"
    )

    # 密码哈希：纯三方登录账号为空
    password: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="密码哈希值"
    )

    # --------------------------------------------------------------------------
    # 状态
    # --------------------------------------------------------------------------

    # 账号状态: active / pending_provisioning / ...
    status: Mapped[str] = mapped_column(
        String(32),
        default="active",
        server_default=text("'active'"),
        nullable=False,
        comment="账号状态",
    )

    # 邮箱验证时间 (三方平台声明邮箱已验证时写入)
    email_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="邮箱验证时间 (UTC)"
    )
