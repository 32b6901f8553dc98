"""
File: app/db/models/base.py
Description: ORM 模型基类与组件化定义

本模块采用"组件化组合" (Mixin) 模式：
1. UUIDBase: [基础] 提供字符串形式的 uuid 主键 (UUID v7)
2. TimestampMixin: [组件] 提供 created_at, updated_at (UTC, TIMESTAMPTZ)
3. UUIDModel: [标准] 聚合了 UUIDBase + TimestampMixin

注意：
ORM 模型只描述"默认 Schema" (用于 Alembic 迁移与测试建表)。
运行时的读写通过 app.db.schema.EntitySchema 按配置映射表名/列名，
因此主键使用可移植的字符串列，而不是 PostgreSQL 专属的 UUID 类型。

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-18 (Portable string uuid keys)
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid6 import uuid7

# 约束命名约定 (PostgreSQL / SQLite 通用)
POSTGRES_INDEXES_NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# 字符串形式 UUID 的固定长度 (含连字符)
UUID_LENGTH = 36


def new_uuid() -> str:
    """生成字符串形式的 UUID v7 (时间有序，索引友好)"""
    return str(uuid7())


def utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy 声明式元类"""

    metadata = MetaData(naming_convention=POSTGRES_INDEXES_NAMING_CONVENTION)


# ==============================================================================
# 1. 功能组件 (Mixins) - 按需插拔
# ==============================================================================


class TimestampMixin:
    """
    [组件] 时间戳混入类

    提供 created_at 和 updated_at 字段。
    规范：强制使用 UTC 时间存储 (TIMESTAMPTZ)，展示时再转本地时间。
    server_default 保证通过 Core 语句插入 (未显式赋值) 时同样有值。
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        comment="创建时间 (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
        comment="更新时间 (UTC)",
    )


# ==============================================================================
# 2. 基础模型 (Base Models)
# ==============================================================================


class UUIDBase(Base):
    """
    [纯净版] 仅包含 uuid 主键。
    """

    __abstract__ = True

    uuid: Mapped[str] = mapped_column(
        String(UUID_LENGTH), primary_key=True, default=new_uuid, comment="主键 (UUID v7)"
    )


class UUIDModel(UUIDBase, TimestampMixin):
    """
    [标准版] 全站通用的业务模型基类。

    组合了：
    1. UUIDBase (uuid 主键)
    2. TimestampMixin (UTC 创建/更新时间)
    """

    __abstract__ = True
