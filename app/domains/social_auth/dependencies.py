"""
File: app/domains/social_auth/dependencies.py
Description: 三方登录领域依赖注入 (DI)

依赖链：
settings.SOCIAL_AUTH → PostRegistrationDispatcher (进程内单例，启动时解析钩子)
DBSession → IdentityResolver → IdentityResolverDep
DBSession → SocialAccountRepository → SocialAccountService → SocialAccountServiceDep

Author: jinmozhe
Created: 2026-10-18
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.api.deps import DBSession
from app.core.config import settings
from app.domains.social_auth.hooks import PostRegistrationDispatcher
from app.domains.social_auth.repository import SocialAccountRepository
from app.domains.social_auth.resolver import IdentityResolver
from app.domains.social_auth.service import SocialAccountService


@lru_cache
def get_post_registration_dispatcher() -> PostRegistrationDispatcher:
    """
    钩子派发器单例。
    在 lifespan 启动阶段预先调用一次，使钩子配置错误在启动日志中尽早暴露。
    """
    return PostRegistrationDispatcher(settings.SOCIAL_AUTH.post_registration)


async def get_identity_resolver(
    session: DBSession,
    dispatcher: Annotated[
        PostRegistrationDispatcher, Depends(get_post_registration_dispatcher)
    ],
) -> IdentityResolver:
    """
    获取身份解析器实例。
    供 OAuth 回调等上游流程在拿到规范化 payload 后调用 resolve()。
    """
    return IdentityResolver(settings.SOCIAL_AUTH, session, dispatcher=dispatcher)


IdentityResolverDep = Annotated[IdentityResolver, Depends(get_identity_resolver)]


async def get_social_account_repository(session: DBSession) -> SocialAccountRepository:
    return SocialAccountRepository(
        settings.SOCIAL_AUTH.storage.social_accounts.to_schema(), session
    )


SocialAccountRepoDep = Annotated[
    SocialAccountRepository, Depends(get_social_account_repository)
]


async def get_social_account_service(
    links: SocialAccountRepoDep,
) -> SocialAccountService:
    return SocialAccountService(links=links)


# Router 中只需写: service: SocialAccountServiceDep
SocialAccountServiceDep = Annotated[
    SocialAccountService, Depends(get_social_account_service)
]
