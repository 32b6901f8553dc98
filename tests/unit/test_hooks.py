"""
File: tests/unit/test_hooks.py
Description: 注册后置钩子解析与派发单元测试

1. handler 的四种配置形式 (注册表名称 / 导入路径 / 类 / 可调用对象)
2. 配置错误在构造时记录，在派发时报告
3. 钩子执行异常统一包装为 PostRegistrationError

Author: jinmozhe
Created: 2026-10-18
"""

import os.path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.domains.social_auth.config import PostRegistrationConfig, SocialAuthConfig
from app.domains.social_auth.hooks import (
    PostRegistrationDispatcher,
    PostRegistrationError,
    RegistrationContext,
    register_post_registration_handler,
    resolve_handler,
)

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


class RecordingHandler:
    """无参构造、可调用的钩子类"""

    calls: list[tuple[str, dict[str, Any]]] = []

    def __call__(
        self, user_uuid: str, payload: dict[str, Any], context: RegistrationContext
    ) -> None:
        RecordingHandler.calls.append((user_uuid, payload))


class NotCallable:
    pass


@pytest.fixture
def context(db_session: AsyncSession) -> RegistrationContext:
    return RegistrationContext(
        provider="google", config=SocialAuthConfig(), session=db_session
    )


# ------------------------------------------------------------------------------
# resolve_handler
# ------------------------------------------------------------------------------


def test_resolve_plain_callable() -> None:
    def handler(user_uuid: str, payload: dict, context: Any) -> None:
        return None

    assert resolve_handler(handler) is handler


def test_resolve_class_instantiates_it() -> None:
    resolved = resolve_handler(RecordingHandler)
    assert isinstance(resolved, RecordingHandler)


def test_resolve_from_registry_name() -> None:
    def grant_trial(user_uuid: str, payload: dict, context: Any) -> None:
        return None

    registry = {"grant_trial": grant_trial}
    assert resolve_handler("grant_trial", registry) is grant_trial


def test_register_decorator_adds_to_default_registry() -> None:
    @register_post_registration_handler("test.noop_handler")
    def noop(user_uuid: str, payload: dict, context: Any) -> None:
        return None

    assert resolve_handler("test.noop_handler") is noop


def test_resolve_import_string() -> None:
    assert resolve_handler("os.path:basename") is os.path.basename


@pytest.mark.parametrize("handler", [None, ""])
def test_resolve_missing_handler(handler: Any) -> None:
    with pytest.raises(PostRegistrationError, match="not configured"):
        resolve_handler(handler)


def test_resolve_unimportable_string() -> None:
    with pytest.raises(PostRegistrationError, match="Cannot import"):
        resolve_handler("app.does_not_exist:handler")


def test_resolve_non_callable_instance() -> None:
    with pytest.raises(PostRegistrationError, match="not callable"):
        resolve_handler(NotCallable)


# ------------------------------------------------------------------------------
# PostRegistrationDispatcher
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_disabled_dispatcher_is_noop(context: RegistrationContext) -> None:
    def explode(*args: Any) -> None:
        raise AssertionError("must not be called")

    dispatcher = PostRegistrationDispatcher(
        PostRegistrationConfig(enabled=False, handler=explode)
    )

    assert dispatcher.enabled is False
    await dispatcher.dispatch("u-1", {"id": "1"}, context)


@pytest.mark.asyncio
async def test_dispatch_async_handler(context: RegistrationContext) -> None:
    received: list[tuple[str, dict[str, Any], RegistrationContext]] = []

    async def handler(
        user_uuid: str, payload: dict[str, Any], ctx: RegistrationContext
    ) -> None:
        received.append((user_uuid, payload, ctx))

    dispatcher = PostRegistrationDispatcher(
        PostRegistrationConfig(enabled=True, handler=handler)
    )
    await dispatcher.dispatch("u-1", {"id": "1"}, context)

    assert received == [("u-1", {"id": "1"}, context)]


@pytest.mark.asyncio
async def test_dispatch_class_handler(context: RegistrationContext) -> None:
    RecordingHandler.calls.clear()
    dispatcher = PostRegistrationDispatcher(
        PostRegistrationConfig(enabled=True, handler=RecordingHandler)
    )

    await dispatcher.dispatch("u-2", {"id": "2"}, context)

    assert RecordingHandler.calls == [("u-2", {"id": "2"})]


@pytest.mark.asyncio
async def test_misconfigured_dispatcher_fails_on_dispatch(
    context: RegistrationContext,
) -> None:
    dispatcher = PostRegistrationDispatcher(
        PostRegistrationConfig(enabled=True, handler="app.does_not_exist:handler")
    )

    with pytest.raises(PostRegistrationError, match="Cannot import"):
        await dispatcher.dispatch("u-1", {"id": "1"}, context)


@pytest.mark.asyncio
async def test_handler_exception_is_wrapped(context: RegistrationContext) -> None:
    def handler(user_uuid: str, payload: dict, ctx: RegistrationContext) -> None:
        raise RuntimeError("quota service down")

    dispatcher = PostRegistrationDispatcher(
        PostRegistrationConfig(enabled=True, handler=handler)
    )

    with pytest.raises(PostRegistrationError, match="quota service down"):
        await dispatcher.dispatch("u-1", {"id": "1"}, context)
