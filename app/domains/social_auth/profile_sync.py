"""
File: app/domains/social_auth/profile_sync.py
Description: 三方资料一次性同步 (Profile Sync)

仅在用户还没有资料记录时，用三方数据 (名 / 姓 / 头像) 创建一条；
资料一旦存在即归用户本人所有，之后的三方登录绝不覆盖。

资料同步是"尽力而为"：任何存储错误只记录日志，不影响整体登录结果。

Author: jinmozhe
Created: 2026-10-18
"""

from collections.abc import Mapping
from typing import Any

from app.core.logging import logger
from app.db.models.base import new_uuid, utc_now
from app.domains.social_auth.config import SocialAuthConfig
from app.domains.social_auth.constants import SocialAuthError
from app.domains.social_auth.mapping import FieldMapper
from app.domains.social_auth.repository import ProfileRepository

# 可从三方 payload 同步的资料字段
PROFILE_FIELDS: tuple[str, ...] = ("first_name", "last_name", "photo_url")


class ProfileSync:
    def __init__(
        self,
        config: SocialAuthConfig,
        profiles: ProfileRepository,
        mapper: FieldMapper,
    ):
        self.config = config
        self.profiles = profiles
        self.mapper = mapper

    def _extract_fields(self, payload: Mapping[str, Any]) -> dict[str, str]:
        """只提取已配置了列映射的资料字段"""
        schema = self.profiles.schema
        fields: dict[str, str] = {}
        for key in PROFILE_FIELDS:
            if not schema.has_column(key):
                continue
            value = self.mapper.extract_str(payload, key)
            if value is not None:
                fields[key] = value
        return fields

    def _build_row(self, user_uuid: str, fields: dict[str, str]) -> dict[str, Any]:
        schema = self.profiles.schema
        now = utc_now()

        row: dict[str, Any] = dict(fields)
        if schema.has_column("uuid"):
            row["uuid"] = new_uuid()
        row["user_uuid"] = user_uuid
        if schema.has_column("created_at"):
            row["created_at"] = now
        if schema.has_column("updated_at"):
            row["updated_at"] = now
        if schema.has_column("status") and schema.has_default("status"):
            row["status"] = schema.default("status")
        return row

    async def sync(self, user: Mapping[str, Any], payload: Mapping[str, Any]) -> bool:
        """
        为用户创建资料记录 (如果还没有)。

        Args:
            user: 以规范字段为 key 的用户记录
            payload: 三方 payload

        Returns:
            bool: 本次是否新建了资料记录
        """
        if not self.config.sync_profile:
            return False
        if not self.profiles.schema.is_configured:
            return False

        user_uuid = user.get("uuid")
        if not isinstance(user_uuid, str) or not user_uuid:
            return False

        fields = self._extract_fields(payload)
        if not fields:
            return False

        try:
            async with self.profiles.transaction():
                if await self.profiles.get_by_user(user_uuid) is not None:
                    # 资料已存在：归用户所有，不覆盖
                    return False
                await self.profiles.create(self._build_row(user_uuid, fields))
        except Exception as exc:
            logger.opt(exception=exc).bind(
                user_uuid=user_uuid,
                code=SocialAuthError.PROFILE_SYNC_FAILED.code,
            ).warning("Profile sync failed, continuing without profile")
            return False

        logger.bind(user_uuid=user_uuid, fields=sorted(fields)).info(
            "Profile created from social data"
        )
        return True
