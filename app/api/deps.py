"""
File: app/api/deps.py
Description: 全局依赖注入定义 (DB Session + Authentication)

本模块负责：
1. 数据库会话管理 (get_db / DBSession)
2. JWT 鉴权与用户身份提取 (get_current_user / CurrentUser)

令牌由外部会话服务在身份解析成功后签发，本服务只负责验签与查库。

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-18 (Schema-mapped current user)
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.error_code import SystemErrorCode
from app.core.exceptions import AppException
from app.core.security import InvalidTokenError, decode_access_token
from app.db.session import AsyncSessionLocal
from app.domains.social_auth.config import DEFAULT_USER_STATUS
from app.domains.social_auth.repository import UserAccountRepository
from app.domains.social_auth.schemas import CanonicalUser

# ------------------------------------------------------------------------------
# 1. Database Dependencies
# ------------------------------------------------------------------------------


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取异步数据库会话依赖。
    使用 async with 确保请求结束时自动关闭 session。
    """
    async with AsyncSessionLocal() as session:
        yield session


# 数据库会话依赖类型别名
DBSession = Annotated[AsyncSession, Depends(get_db)]


# ------------------------------------------------------------------------------
# 2. Authentication Dependencies (JWT 鉴权)
# ------------------------------------------------------------------------------


def _unauthorized(message: str) -> AppException:
    return AppException(SystemErrorCode.UNAUTHORIZED, message=message)


async def get_token_from_header(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """
    从 Authorization Header 提取 Bearer Token。
    格式要求: Authorization: Bearer <token>
    """
    if not authorization:
        raise _unauthorized("Missing Authorization Header")

    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "bearer" or not param:
        raise _unauthorized("Invalid Authentication Scheme")

    return param


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_header)],
    session: DBSession,
) -> CanonicalUser:
    """
    解析 JWT 并获取当前登录用户。

    流程:
    1. 校验 JWT 签名与有效期，提取 sub (用户 uuid)
    2. 按配置映射的 users 表查库，确认用户存在
    3. 存在状态列时，只允许默认状态 (active) 的用户访问
    """
    try:
        user_uuid = decode_access_token(token)
    except InvalidTokenError:
        # 使用 from None 截断异常链，避免暴露底层 jose 异常细节
        raise _unauthorized("Invalid Token or Expired") from None

    users = UserAccountRepository(settings.SOCIAL_AUTH.storage.users.to_schema(), session)
    user = await users.get_by_uuid(user_uuid)
    if user is None:
        raise _unauthorized("User not found")

    if users.schema.has_column("status"):
        active_status = users.schema.default("status", DEFAULT_USER_STATUS)
        if user.get("status") not in (None, active_status):
            raise _unauthorized("User is inactive")

    email = user.get("email")
    username = user.get("username")
    return CanonicalUser(
        uuid=str(user["uuid"]),
        email=email if isinstance(email, str) else None,
        name=username if isinstance(username, str) else None,
    )


# 已登录用户依赖
# 用法: async def endpoint(user: CurrentUser): ...
CurrentUser = Annotated[CanonicalUser, Depends(get_current_user)]
