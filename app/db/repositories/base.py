"""
File: app/db/repositories/base.py
Description: 通用异步 Repository 基类 (按配置映射的 Core 查询接口)

本模块定义了 BaseRepository，封装了面向"可配置 Schema"的通用操作：
- select_one / select_all: 条件查询 + 列投影 + limit
- insert: 插入单条记录 (失败直接抛出，不吞异常)
- update / delete: 条件更新/删除，返回受影响行数
- transaction: 原子事务作用域，作用域内任何异常都会完整回滚

特性：
- 入参与返回值一律使用"规范字段" (canonical key)，物理列名由 EntitySchema 解析
- 纯异步: 基于 sqlalchemy.ext.asyncio
- 不缓存任何查询结果，每次调用都读取数据库当前状态

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-18 (Schema-mapped Core repository, shared timestamp helper)
"""

from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import ColumnElement, TableClause

from app.db.schema import EntitySchema


class BaseRepository:
    """
    通用仓储基类。

    参数:
    - schema: 实体的存储映射 (表名 / 列映射 / 默认值)
    - session: 异步数据库会话 (多个仓储共享同一会话时，事务也是共享的)
    """

    def __init__(self, schema: EntitySchema, session: AsyncSession):
        self.schema = schema
        self.session = session

    # --------------------------------------------------------------------------
    # 事务 (Transaction)
    # --------------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        原子事务作用域。

        用法:
            async with repo.transaction():
                await repo.insert(...)
                await other_repo.insert(...)

        正常退出时 commit；作用域内抛出任何异常都会 rollback 后原样抛出。
        """
        try:
            yield
        except Exception:
            await self.session.rollback()
            raise
        await self.session.commit()

    # --------------------------------------------------------------------------
    # 内部工具
    # --------------------------------------------------------------------------

    def _table(self, *key_groups: Iterable[str]) -> TableClause:
        keys: list[str] = []
        for group in key_groups:
            keys.extend(group)
        return self.schema.sa_table(keys)

    def _timestamps(self, now: datetime, *keys: str) -> dict[str, datetime]:
        """只写入已映射的时间列 (未配置任何列时按默认 Schema 处理)"""
        return {
            key: now
            for key in keys
            if self.schema.has_column(key) or not self.schema.columns
        }

    def _where(
        self, tbl: TableClause, filters: Mapping[str, Any]
    ) -> list[ColumnElement[bool]]:
        return [
            tbl.c[self.schema.column_name(key)] == value
            for key, value in filters.items()
        ]

    # --------------------------------------------------------------------------
    # 查询操作 (Read)
    # --------------------------------------------------------------------------

    async def select_all(
        self,
        filters: Mapping[str, Any],
        keys: Iterable[str] | None = None,
        *,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        条件查询。

        Args:
            filters: 规范字段 -> 等值条件
            keys: 需要投影的规范字段 (默认取全部已配置字段)
            limit: 返回的最大记录数

        Returns:
            list[dict]: 以规范字段为 key 的记录列表
        """
        projection = tuple(dict.fromkeys(keys if keys is not None else self.schema.keys))
        tbl = self._table(projection, filters)

        stmt = select(
            *(tbl.c[self.schema.column_name(key)].label(key) for key in projection)
        ).where(*self._where(tbl, filters))
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def select_one(
        self,
        filters: Mapping[str, Any],
        keys: Iterable[str] | None = None,
    ) -> dict[str, Any] | None:
        """条件查询首条记录，不存在返回 None"""
        rows = await self.select_all(filters, keys, limit=1)
        return rows[0] if rows else None

    async def exists(self, filters: Mapping[str, Any]) -> bool:
        """只投影一个条件列判断记录是否存在"""
        first_key = next(iter(filters))
        return await self.select_one(filters, (first_key,)) is not None

    # --------------------------------------------------------------------------
    # 写入操作 (Create / Update / Delete)
    # --------------------------------------------------------------------------

    async def insert(self, values: Mapping[str, Any]) -> None:
        """
        插入单条记录。
        注意：不会 commit（由调用方通过 transaction() 控制事务）。
        违反唯一约束等数据库错误会原样抛出。
        """
        tbl = self._table(values)
        await self.session.execute(insert(tbl).values(self.schema.to_row(values)))

    async def update(
        self, filters: Mapping[str, Any], values: Mapping[str, Any]
    ) -> int:
        """按条件更新，返回受影响行数"""
        tbl = self._table(values, filters)
        stmt = (
            update(tbl)
            .where(*self._where(tbl, filters))
            .values(self.schema.to_row(values))
        )
        result = await self.session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined]

    async def delete(self, filters: Mapping[str, Any]) -> int:
        """按条件物理删除，返回受影响行数"""
        tbl = self._table(filters)
        result = await self.session.execute(
            delete(tbl).where(*self._where(tbl, filters))
        )
        return result.rowcount  # type: ignore[attr-defined]
