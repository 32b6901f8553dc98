"""
File: app/domains/social_auth/resolver.py
Description: 三方身份解析引擎 (Identity Resolution Engine)

输入 (provider, 规范化后的三方 payload)，输出 CanonicalUser，按顺序先到先得：

0. provider 不在 enabled_providers 中 -> PROVIDER_NOT_ENABLED
1. 提取外部唯一标识 (uuid 映射)，缺失 -> MISSING_EXTERNAL_ID (不做任何写入)
2. 按 (provider, social_id) 查绑定：命中则加载用户、同步资料后返回，不会重新注册或重新绑定
3. 按邮箱匹配已有用户 (link_accounts=True 时)：命中则幂等绑定后返回
4. auto_register=False -> AUTO_REGISTRATION_DISABLED
5. 注册：分配用户名，在同一事务内写入 users + social_accounts，
   提交后重新读取用户、同步资料、执行注册后置钩子

失败统一以 AppException(SocialAuthError.*) 抛出，存储层异常在边界处转换，
原始异常只记录日志，绝不泄露给调用方。

钩子失败的补偿策略：
用户记录已提交，此时将用户状态标记为 pending_provisioning 并报告 REGISTRATION_FAILED；
该用户下一次登录时重新执行钩子，成功后恢复默认状态。

Author: jinmozhe
Created: 2026-10-18
"""

from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException
from app.core.logging import logger
from app.db.models.base import new_uuid, utc_now
from app.domains.social_auth.config import DEFAULT_USER_STATUS, SocialAuthConfig
from app.domains.social_auth.constants import SocialAuthError
from app.domains.social_auth.hooks import (
    PostRegistrationDispatcher,
    PostRegistrationError,
    RegistrationContext,
)
from app.domains.social_auth.mapping import FieldMapper
from app.domains.social_auth.profile_sync import ProfileSync
from app.domains.social_auth.repository import (
    ProfileRepository,
    SocialAccountRepository,
    UserAccountRepository,
)
from app.domains.social_auth.schemas import CanonicalUser
from app.domains.social_auth.username import UsernameAllocator
from app.utils.masking import mask_email

_TRUTHY_STRINGS = frozenset({"1", "true", "yes"})


def is_truthy(value: Any) -> bool:
    """三方 payload 中布尔标记的宽松解析 (True / "true" / "1" / 1)"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    if isinstance(value, int | float):
        return value != 0
    return False


class IdentityResolver:
    """
    三方身份解析器。

    配置以显式参数注入；同一实例内的所有仓储共享一个 AsyncSession。
    不缓存任何解析结果，每次 resolve 都读取数据库当前状态。
    """

    def __init__(
        self,
        config: SocialAuthConfig,
        session: AsyncSession,
        dispatcher: PostRegistrationDispatcher | None = None,
    ):
        self.config = config
        self.session = session
        self.mapper = FieldMapper(config.field_mapping.social)

        storage = config.storage
        self.users = UserAccountRepository(storage.users.to_schema(), session)
        self.links = SocialAccountRepository(storage.social_accounts.to_schema(), session)
        self.profiles = ProfileRepository(storage.profiles.to_schema(), session)

        self.usernames = UsernameAllocator(self.users, self.mapper)
        self.profile_sync = ProfileSync(config, self.profiles, self.mapper)
        self.dispatcher = dispatcher or PostRegistrationDispatcher(
            config.post_registration
        )

        self._last_error: str | None = None

    @property
    def last_error(self) -> str | None:
        """最近一次 resolve 失败的可读原因 (成功时为 None)"""
        return self._last_error

    # --------------------------------------------------------------------------
    # 入口
    # --------------------------------------------------------------------------

    async def resolve(self, provider: str, payload: Mapping[str, Any]) -> CanonicalUser:
        """
        解析三方身份为本地用户。

        Raises:
            AppException: 携带 SocialAuthError 的业务异常
        """
        self._last_error = None
        provider = provider.strip().lower()

        if not self.config.is_provider_enabled(provider):
            raise self._failure(SocialAuthError.PROVIDER_NOT_ENABLED)

        social_id = self._external_id(payload)
        if social_id is None:
            raise self._failure(SocialAuthError.MISSING_EXTERNAL_ID)

        # 1. 按绑定匹配
        user = await self._find_user_by_link(provider, social_id)
        if user is not None:
            logger.bind(provider=provider, user_uuid=user.get("uuid")).info(
                "Social identity matched by linked account"
            )
            return await self._complete(provider, user, payload)

        # 2. 按邮箱匹配
        if self.config.link_accounts:
            email = self.mapper.extract_str(payload, "email")
            if email:
                user = await self.users.get_by_email(email)
                if user is not None:
                    await self._link_existing(provider, social_id, user, payload)
                    logger.bind(
                        provider=provider,
                        user_uuid=user.get("uuid"),
                        email=mask_email(email),
                    ).info("Social identity linked to existing user by email")
                    return await self._complete(provider, user, payload)

        # 3. 自动注册
        if not self.config.auto_register:
            raise self._failure(SocialAuthError.AUTO_REGISTRATION_DISABLED)

        return await self._register(provider, social_id, payload)

    # --------------------------------------------------------------------------
    # 匹配
    # --------------------------------------------------------------------------

    def _external_id(self, payload: Mapping[str, Any]) -> str | None:
        value = self.mapper.extract(payload, "uuid")
        # bool 是 int 的子类，不能作为外部标识
        if isinstance(value, bool) or not isinstance(value, str | int):
            return None
        return str(value).strip() or None

    async def _find_user_by_link(
        self, provider: str, social_id: str
    ) -> dict[str, Any] | None:
        user_uuid = await self.links.get_user_uuid(provider, social_id)
        if user_uuid is None:
            return None

        user = await self.users.get_by_uuid(user_uuid)
        if user is None:
            # 绑定指向的用户已不存在：清理悬空绑定后按未绑定处理
            logger.bind(provider=provider, user_uuid=user_uuid).warning(
                "Dangling social account link removed"
            )
            async with self.links.transaction():
                await self.links.delete({"provider": provider, "social_id": social_id})
        return user

    async def _link_existing(
        self,
        provider: str,
        social_id: str,
        user: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> None:
        user_uuid = user.get("uuid")
        if not isinstance(user_uuid, str) or not user_uuid:
            raise self._failure(SocialAuthError.MATCHED_USER_INVALID)

        try:
            async with self.links.transaction():
                await self.links.upsert_link(user_uuid, provider, social_id, payload)
        except SQLAlchemyError as exc:
            logger.opt(exception=exc).bind(
                provider=provider, user_uuid=user_uuid
            ).error("Linking social account to existing user failed")
            raise self._failure(SocialAuthError.ACCOUNT_LINK_FAILED) from None

    async def _complete(
        self, provider: str, user: dict[str, Any], payload: Mapping[str, Any]
    ) -> CanonicalUser:
        """已有用户的收尾：补偿未完成的开通、同步资料、格式化输出"""
        if self._is_pending(user):
            user = await self._retry_pending_provisioning(provider, user, payload)
        await self.profile_sync.sync(user, payload)
        return self._format_user(user)

    # --------------------------------------------------------------------------
    # 注册
    # --------------------------------------------------------------------------

    def _build_user_row(
        self, user_uuid: str, username: str, payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        schema = self.users.schema
        now = utc_now()

        values: dict[str, Any] = {
            "uuid": user_uuid,
            "username": username,
            "email": self.mapper.extract_str(payload, "email"),
        }
        for key in ("created_at", "updated_at"):
            if schema.has_column(key) or not schema.columns:
                values[key] = now
        if schema.manages("password"):
            values["password"] = schema.default("password")
        if schema.manages("status"):
            values["status"] = schema.default("status", DEFAULT_USER_STATUS)
        if schema.manages("email_verified_at") and is_truthy(
            self.mapper.extract(payload, "email_verified")
        ):
            values["email_verified_at"] = now
        return values

    async def _register(
        self, provider: str, social_id: str, payload: Mapping[str, Any]
    ) -> CanonicalUser:
        username = await self.usernames.allocate(payload)
        user_uuid = new_uuid()
        values = self._build_user_row(user_uuid, username, payload)

        # users + social_accounts 同一事务：任一失败则整体回滚
        try:
            async with self.users.transaction():
                await self.users.create(values)
                await self.links.upsert_link(user_uuid, provider, social_id, payload)
        except SQLAlchemyError as exc:
            logger.opt(exception=exc).bind(
                provider=provider, username=username
            ).error("User registration failed, transaction rolled back")
            raise self._failure(SocialAuthError.REGISTRATION_FAILED) from None

        logger.bind(provider=provider, user_uuid=user_uuid, username=username).info(
            "New user registered from social identity"
        )

        # 重新读取以获取数据库生成的字段
        user = await self.users.get_by_uuid(user_uuid) or values
        await self.profile_sync.sync(user, payload)
        await self._provision(provider, user_uuid, payload)
        return self._format_user(user)

    # --------------------------------------------------------------------------
    # 注册后置钩子
    # --------------------------------------------------------------------------

    def _is_pending(self, user: Mapping[str, Any]) -> bool:
        if not self.users.schema.has_column("status"):
            return False
        return user.get("status") == self.config.post_registration.failure_status

    async def _provision(
        self, provider: str, user_uuid: str, payload: Mapping[str, Any]
    ) -> None:
        """
        执行注册后置钩子 (用户记录已提交)。
        钩子通过 context.session 写入的数据在其成功返回后提交。
        """
        if not self.dispatcher.enabled:
            return

        context = RegistrationContext(
            provider=provider, config=self.config, session=self.session
        )
        try:
            await self.dispatcher.dispatch(user_uuid, payload, context)
            await self.session.commit()
        except (PostRegistrationError, SQLAlchemyError) as exc:
            await self.session.rollback()
            logger.opt(exception=exc).bind(provider=provider, user_uuid=user_uuid).error(
                "Post-registration provisioning failed"
            )
            await self._mark_pending(user_uuid)
            raise self._failure(SocialAuthError.REGISTRATION_FAILED) from None

    async def _mark_pending(self, user_uuid: str) -> None:
        if not self.users.schema.has_column("status"):
            return

        status = self.config.post_registration.failure_status
        try:
            async with self.users.transaction():
                await self.users.set_status(user_uuid, status)
        except SQLAlchemyError as exc:
            # 已在报告 REGISTRATION_FAILED，这里只记录，不覆盖原始失败
            logger.opt(exception=exc).bind(user_uuid=user_uuid).error(
                "Failed to mark user as pending provisioning"
            )
            return

        logger.bind(user_uuid=user_uuid, status=status).warning(
            "User marked as pending provisioning"
        )

    async def _retry_pending_provisioning(
        self, provider: str, user: dict[str, Any], payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        user_uuid = str(user["uuid"])
        await self._provision(provider, user_uuid, payload)

        status = self.users.schema.default("status", DEFAULT_USER_STATUS)
        try:
            async with self.users.transaction():
                await self.users.set_status(user_uuid, status)
        except SQLAlchemyError as exc:
            logger.opt(exception=exc).bind(user_uuid=user_uuid).error(
                "Failed to restore user status after provisioning"
            )
            raise self._failure(SocialAuthError.REGISTRATION_FAILED) from None

        logger.bind(provider=provider, user_uuid=user_uuid).info(
            "Pending provisioning completed"
        )
        return {**user, "status": status}

    # --------------------------------------------------------------------------
    # 输出
    # --------------------------------------------------------------------------

    def _failure(self, error: SocialAuthError, message: str = "") -> AppException:
        exc = AppException(error, message=message)
        self._last_error = exc.message
        return exc

    @staticmethod
    def _format_user(user: Mapping[str, Any]) -> CanonicalUser:
        """固定输出结构，与存储列名无关"""
        roles = user.get("roles")
        if isinstance(roles, str):
            roles = [role.strip() for role in roles.split(",") if role.strip()]
        elif not isinstance(roles, list | tuple):
            roles = []

        email = user.get("email")
        name = user.get("username")
        return CanonicalUser(
            uuid=str(user["uuid"]),
            email=email if isinstance(email, str) else None,
            name=name if isinstance(name, str) else None,
            roles=[str(role) for role in roles],
        )
