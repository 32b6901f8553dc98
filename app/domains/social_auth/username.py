"""
File: app/domains/social_auth/username.py
Description: 唯一用户名分配器 (Username Allocator)

候选用户名优先级：
1. payload 中的 username (经字段映射，非空白)
2. 名 + 姓的首字母 (jane + d -> janed)
3. 邮箱 @ 之前的部分
4. 随机兜底 user_xxxxxxxx

规整规则：小写，仅保留 [a-z0-9_]，不足 3 位补 x，最长 24 位。
冲突时依次尝试 1..9999 数字后缀 (截断 base 使总长度仍不超过 24)，
全部占用时返回 user + 8 位随机串。

注意：此处只是"先查后写"，并发场景下的最终唯一性由 users.username 唯一约束保证。

Author: jinmozhe
Created: 2026-10-18
"""

import re
import secrets
from collections.abc import Mapping
from typing import Any

from app.domains.social_auth.mapping import FieldMapper
from app.domains.social_auth.repository import UserAccountRepository

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 24
MAX_SUFFIX = 9999

_INVALID_CHARS = re.compile(r"[^a-z0-9_]")


def _random_token(length: int = 8) -> str:
    """长度为 length 的小写十六进制随机串"""
    return secrets.token_hex((length + 1) // 2)[:length]


def sanitize_username(raw: str) -> str:
    """小写并移除 [a-z0-9_] 以外的字符"""
    return _INVALID_CHARS.sub("", raw.strip().lower())


def normalize_base(raw: str) -> str:
    """规整为可用的基础用户名：空值回退 user，补齐最短长度，截断最大长度"""
    base = sanitize_username(raw) or "user"
    base = base.ljust(USERNAME_MIN_LENGTH, "x")
    return base[:USERNAME_MAX_LENGTH]


class UsernameAllocator:
    """基于 users 表的唯一用户名分配"""

    def __init__(self, users: UserAccountRepository, mapper: FieldMapper):
        self.users = users
        self.mapper = mapper

    def preferred(self, payload: Mapping[str, Any]) -> str:
        """生成未规整的候选用户名"""
        username = self.mapper.extract_str(payload, "username")
        if username:
            return username

        first_name = self.mapper.extract_str(payload, "first_name")
        if first_name:
            last_name = self.mapper.extract_str(payload, "last_name") or ""
            return first_name + last_name[:1]

        email = self.mapper.extract_str(payload, "email")
        if email:
            local_part = email.split("@", 1)[0]
            if local_part:
                return local_part

        return f"user_{_random_token()}"

    async def allocate(self, payload: Mapping[str, Any]) -> str:
        """
        分配一个当前未被占用的用户名。

        最多查询 1 + MAX_SUFFIX 次，不会无限阻塞。
        """
        base = normalize_base(self.preferred(payload))
        if not await self.users.username_exists(base):
            return base

        for i in range(1, MAX_SUFFIX + 1):
            suffix = str(i)
            candidate = base[: USERNAME_MAX_LENGTH - len(suffix)] + suffix
            if not await self.users.username_exists(candidate):
                return candidate

        return f"user{_random_token()}"
