"""
File: app/domains/social_auth/service.py
Description: 三方账号管理服务 (业务逻辑层)

本模块封装"我的三方账号"管理：
1. 列出当前用户已绑定的三方账号
2. 解绑当前用户的某个三方账号 (只能操作属于自己的绑定)

注意：
- 写操作的事务提交 (Commit) 由本层负责。
- 身份解析 (登录/注册/绑定) 见 resolver.IdentityResolver。

Author: jinmozhe
Created: 2026-10-18
"""

from app.core.exceptions import AppException
from app.core.logging import logger
from app.domains.social_auth.constants import SocialAuthError
from app.domains.social_auth.repository import SocialAccountRepository
from app.domains.social_auth.schemas import SocialAccountRead


class SocialAccountService:
    """三方账号管理服务"""

    def __init__(self, links: SocialAccountRepository):
        self.links = links

    async def list_accounts(self, user_uuid: str) -> list[SocialAccountRead]:
        rows = await self.links.list_for_user(user_uuid)
        return [SocialAccountRead.model_validate(row) for row in rows]

    async def unlink(self, user_uuid: str, link_uuid: str) -> None:
        """
        解绑三方账号。

        Raises:
            AppException: 绑定不存在或不属于当前用户 (SOCIAL_ACCOUNT_NOT_FOUND)
        """
        async with self.links.transaction():
            deleted = await self.links.unlink(user_uuid, link_uuid)
            if deleted == 0:
                raise AppException(SocialAuthError.SOCIAL_ACCOUNT_NOT_FOUND)

        logger.bind(user_uuid=user_uuid, link_uuid=link_uuid).info(
            "Social account unlinked"
        )
