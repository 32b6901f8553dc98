"""
File: app/domains/social_auth/repository.py
Description: 三方登录领域仓储层 (Repository)

本模块负责用户、三方绑定、资料三类记录的数据库访问，均继承自通用 BaseRepository。
所有表名/列名经由 EntitySchema 按配置映射，返回值一律使用规范字段。

1. UserAccountRepository: 按 uuid / email / username 查询用户、创建用户、更新状态
2. SocialAccountRepository: 三方绑定的查询、幂等 upsert、列表与解绑
3. ProfileRepository: 资料记录的查询与创建

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-18 (Schema-mapped social identity storage)
"""

from collections.abc import Mapping
from typing import Any

from app.db.models.base import new_uuid, utc_now
from app.db.repositories.base import BaseRepository

# 读取用户时始终需要的规范字段 (即使未出现在列映射中，也按同名列读取)
USER_CORE_KEYS: tuple[str, ...] = ("uuid", "username", "email")

# 三方绑定记录的规范字段
LINK_KEYS: tuple[str, ...] = (
    "uuid",
    "user_uuid",
    "provider",
    "social_id",
    "profile_data",
    "created_at",
    "updated_at",
)

# 绑定列表对外暴露的字段 (不包含原始快照)
LINK_SUMMARY_KEYS: tuple[str, ...] = ("uuid", "provider", "created_at", "updated_at")


class UserAccountRepository(BaseRepository):
    """
    用户仓储类 (按配置映射的 users 实体)。
    """

    @property
    def read_keys(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys((*USER_CORE_KEYS, *self.schema.keys)))

    async def get_by_uuid(self, user_uuid: str) -> dict[str, Any] | None:
        return await self.select_one({"uuid": user_uuid}, self.read_keys)

    async def get_by_email(self, email: str) -> dict[str, Any] | None:
        """
        根据邮箱查询用户。
        email 不要求唯一，存在多条时只取第一条。
        """
        return await self.select_one({"email": email}, self.read_keys)

    async def username_exists(self, username: str) -> bool:
        return await self.exists({"username": username})

    async def create(self, values: Mapping[str, Any]) -> None:
        """插入用户记录 (不 commit，由调用方控制事务)"""
        await self.insert(values)

    async def set_status(self, user_uuid: str, status: str) -> int:
        """更新账号状态，同时刷新已映射的 updated_at (Core 语句不会触发 ORM onupdate)"""
        return await self.update(
            {"uuid": user_uuid},
            {"status": status, **self._timestamps(utc_now(), "updated_at")},
        )


class SocialAccountRepository(BaseRepository):
    """
    三方绑定仓储类 (Account-Link Store)。
    """

    async def get_user_uuid(self, provider: str, social_id: str) -> str | None:
        """根据 (provider, social_id) 查询绑定的用户 uuid"""
        row = await self.select_one(
            {"provider": provider, "social_id": social_id}, ("user_uuid",)
        )
        if row is None or not row.get("user_uuid"):
            return None
        return str(row["user_uuid"])

    async def upsert_link(
        self,
        user_uuid: str,
        provider: str,
        social_id: str,
        profile_data: Mapping[str, Any],
    ) -> str:
        """
        幂等绑定。

        - (user_uuid, provider, social_id) 已存在: 覆盖原始快照并刷新 updated_at
        - 否则: 以新 uuid 插入一条绑定记录

        注意：不 commit；同样输入调用两次只会有一条记录，快照以最后一次为准。

        Returns:
            str: 绑定记录 uuid
        """
        triple = {"user_uuid": user_uuid, "provider": provider, "social_id": social_id}
        snapshot = dict(profile_data)
        now = utc_now()

        existing = await self.select_one(triple, ("uuid",))
        if existing is not None:
            await self.update(
                {"uuid": existing["uuid"]},
                {"profile_data": snapshot, **self._timestamps(now, "updated_at")},
            )
            return str(existing["uuid"])

        link_uuid = new_uuid()
        await self.insert(
            {
                "uuid": link_uuid,
                **triple,
                "profile_data": snapshot,
                **self._timestamps(now, "created_at", "updated_at"),
            }
        )
        return link_uuid

    async def list_for_user(self, user_uuid: str) -> list[dict[str, Any]]:
        return await self.select_all({"user_uuid": user_uuid}, LINK_SUMMARY_KEYS)

    async def unlink(self, user_uuid: str, link_uuid: str) -> int:
        """删除属于该用户的绑定，返回删除行数 (不属于该用户时为 0)"""
        return await self.delete({"uuid": link_uuid, "user_uuid": user_uuid})


class ProfileRepository(BaseRepository):
    """
    用户资料仓储类。
    """

    async def get_by_user(self, user_uuid: str) -> dict[str, Any] | None:
        return await self.select_one({"user_uuid": user_uuid}, ("user_uuid",))

    async def create(self, values: Mapping[str, Any]) -> None:
        await self.insert(values)
