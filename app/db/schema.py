"""
File: app/db/schema.py
Description: 存储映射适配器 (Storage Schema Adapter)

业务代码只认识"规范字段" (canonical key，例如 uuid / email / username)，
实际的表名、列名由配置决定。本模块将一份实体配置解析为 EntitySchema：
1. table: 物理表名
2. columns: 规范字段 -> 物理列名 (未配置时回退为规范字段本身)
3. defaults: 新建记录时使用的默认值

并负责构造 SQLAlchemy Core 的轻量 table()/column() 对象，
使 Repository 层无需依赖固定的 ORM 模型即可读写任意 Schema。

Author: jinmozhe
Created: 2026-10-18
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql.expression import ColumnClause, TableClause, column, table
from sqlalchemy.types import TypeEngine

# 需要显式声明类型的规范字段 (其余列使用 NullType，由驱动直接绑定)
# 时间列需要类型处理器以兼容 SQLite，JSON 列需要序列化器
COLUMN_TYPES: Mapping[str, TypeEngine[Any]] = MappingProxyType(
    {
        "created_at": DateTime(timezone=True),
        "updated_at": DateTime(timezone=True),
        "email_verified_at": DateTime(timezone=True),
        "profile_data": JSON().with_variant(JSONB(), "postgresql"),
    }
)


def _as_str_map(value: Any) -> dict[str, str]:
    """配置容错：丢弃非字符串或空字符串的映射项"""
    if not isinstance(value, Mapping):
        return {}
    return {
        str(key): target
        for key, target in value.items()
        if isinstance(target, str) and target
    }


@dataclass(frozen=True, slots=True)
class EntitySchema:
    """
    单个实体 (users / profiles / social_accounts) 的存储映射。

    每次请求解析一次，之后所有列名查找都走这里，避免在业务代码中散落字符串拼接。
    """

    table: str
    columns: Mapping[str, str] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        table: str | None,
        columns: Any = None,
        defaults: Any = None,
        *,
        default_table: str,
    ) -> "EntitySchema":
        """从原始配置构造映射，非法项按"未配置"处理"""
        return cls(
            table=table or default_table,
            columns=MappingProxyType(_as_str_map(columns)),
            defaults=MappingProxyType(
                dict(defaults) if isinstance(defaults, Mapping) else {}
            ),
        )

    # --------------------------------------------------------------------------
    # 列名解析
    # --------------------------------------------------------------------------

    @property
    def keys(self) -> tuple[str, ...]:
        """已配置的规范字段 (保持配置顺序)"""
        return tuple(self.columns)

    @property
    def is_configured(self) -> bool:
        return bool(self.table) and bool(self.columns)

    def column_name(self, key: str) -> str:
        """规范字段 -> 物理列名"""
        return self.columns.get(key, key)

    def has_column(self, key: str) -> bool:
        return key in self.columns

    def has_default(self, key: str) -> bool:
        return key in self.defaults

    def default(self, key: str, fallback: Any = None) -> Any:
        return self.defaults.get(key, fallback)

    def manages(self, key: str) -> bool:
        """该字段是否出现在列映射或默认值中 (决定新建记录时是否写入)"""
        return self.has_column(key) or self.has_default(key)

    # --------------------------------------------------------------------------
    # SQLAlchemy Core 构造
    # --------------------------------------------------------------------------

    def sa_column(self, key: str) -> ColumnClause[Any]:
        return column(self.column_name(key), COLUMN_TYPES.get(key))

    def sa_table(self, keys: Iterable[str]) -> TableClause:
        """
        构造只包含所需列的轻量表对象。
        多个规范字段映射到同一物理列时只保留一次。
        """
        seen: dict[str, ColumnClause[Any]] = {}
        for key in keys:
            name = self.column_name(key)
            if name not in seen:
                seen[name] = self.sa_column(key)
        return table(self.table, *seen.values())

    def to_row(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """规范字段字典 -> 物理列字典"""
        return {self.column_name(key): value for key, value in values.items()}
