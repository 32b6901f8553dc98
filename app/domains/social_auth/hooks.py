"""
File: app/domains/social_auth/hooks.py
Description: 注册后置钩子 (Post-Registration Hook Dispatcher)

新用户的 users + social_accounts 记录提交后，调用业务方配置的钩子做额外开通
(例如初始化租户、发放默认权益)。钩子签名：

    handler(user_uuid: str, payload: dict, context: RegistrationContext) -> Any

同步/异步函数均可。handler 配置支持四种形式：
1. 注册表名称: @register_post_registration_handler("name") 注册的类或函数
2. 点分导入路径: "pkg.module:handler" / "pkg.module.Handler"
3. 类: 无参实例化，实例必须可调用
4. 任意可调用对象

handler 在 Dispatcher 构造时 (应用启动时) 只解析一次；配置错误会在启动日志中暴露，
并在每次派发时以 PostRegistrationError 报告。

Author: jinmozhe
Created: 2026-10-18
"""

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ImportString, TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import logger
from app.domains.social_auth.config import PostRegistrationConfig, SocialAuthConfig

PostRegistrationHandler = Callable[..., Any]

_HANDLER_REGISTRY: dict[str, Any] = {}
_IMPORT_ADAPTER: TypeAdapter[Any] = TypeAdapter(ImportString)


@dataclass(frozen=True, slots=True)
class RegistrationContext:
    """传给钩子的执行上下文"""

    provider: str
    config: SocialAuthConfig
    session: AsyncSession


class PostRegistrationError(Exception):
    """钩子解析或执行失败"""


def register_post_registration_handler(name: str) -> Callable[[Any], Any]:
    """
    以名称注册钩子 (类或函数)。

    用法:
        @register_post_registration_handler("grant_trial")
        async def grant_trial(user_uuid, payload, context): ...
    """

    def decorator(target: Any) -> Any:
        _HANDLER_REGISTRY[name] = target
        return target

    return decorator


def resolve_handler(
    handler: Any, registry: Mapping[str, Any] | None = None
) -> PostRegistrationHandler:
    """
    将配置值解析为可调用对象。

    Raises:
        PostRegistrationError: 未配置、无法导入、实例化失败或不可调用
    """
    if handler is None or handler == "":
        raise PostRegistrationError(
            "Post-registration handler is enabled but not configured"
        )

    registry = _HANDLER_REGISTRY if registry is None else registry
    target = handler

    if isinstance(handler, str):
        if handler in registry:
            target = registry[handler]
        else:
            try:
                target = _IMPORT_ADAPTER.validate_python(handler)
            except ValidationError as exc:
                raise PostRegistrationError(
                    f"Cannot import post-registration handler '{handler}'"
                ) from exc

    if inspect.isclass(target):
        try:
            target = target()
        except Exception as exc:
            raise PostRegistrationError(
                f"Cannot instantiate post-registration handler {target.__name__}"
            ) from exc

    if not callable(target):
        raise PostRegistrationError(
            "Configured post-registration handler is not callable"
        )
    return target


class PostRegistrationDispatcher:
    """
    钩子派发器。

    - 未启用: dispatch 为空操作
    - 已启用但配置错误: 每次 dispatch 抛出构造时记录的错误
    """

    def __init__(
        self,
        config: PostRegistrationConfig,
        registry: Mapping[str, Any] | None = None,
    ):
        self.config = config
        self._handler: PostRegistrationHandler | None = None
        self._error: PostRegistrationError | None = None

        if not config.enabled:
            return

        try:
            self._handler = resolve_handler(config.handler, registry)
        except PostRegistrationError as exc:
            self._error = exc
            logger.bind(handler=repr(config.handler)).error(
                f"Post-registration handler misconfigured: {exc}"
            )

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def dispatch(
        self,
        user_uuid: str,
        payload: Mapping[str, Any],
        context: RegistrationContext,
    ) -> None:
        """
        调用钩子。

        Raises:
            PostRegistrationError: 配置错误或钩子执行抛出任何异常
        """
        if not self.enabled:
            return
        if self._error is not None:
            raise PostRegistrationError(str(self._error)) from self._error
        if self._handler is None:
            raise PostRegistrationError("Post-registration handler is unavailable")

        try:
            result = self._handler(user_uuid, dict(payload), context)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            raise PostRegistrationError(
                f"Post-registration handler failed: {exc}"
            ) from exc
