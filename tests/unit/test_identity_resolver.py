"""
File: tests/unit/test_identity_resolver.py
Description: 三方身份解析引擎单元测试

本模块测试 IdentityResolver.resolve 的核心流程：
1. 新用户注册 (users + social_accounts + profiles)
2. 重复登录幂等
3. 按邮箱关联已有用户
4. 注册事务原子性 (任一写入失败整体回滚)
5. 资料不覆盖
6. 各类失败 (缺少外部标识 / 自动注册关闭 / 平台未启用)
7. 注册后置钩子失败的补偿 (pending_provisioning -> 重试)

Author: jinmozhe
Created: 2026-10-18
"""

from collections.abc import Callable
from typing import Any

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException
from app.db.models import Profile, SocialAccount, User
from app.domains.social_auth.config import (
    DEFAULT_USER_STATUS,
    PENDING_PROVISIONING_STATUS,
)
from app.domains.social_auth.constants import SocialAuthError
from app.domains.social_auth.hooks import RegistrationContext
from app.domains.social_auth.repository import (
    ProfileRepository,
    SocialAccountRepository,
)
from app.domains.social_auth.resolver import IdentityResolver, is_truthy
from app.domains.social_auth.username import UsernameAllocator

ResolverFactory = Callable[..., IdentityResolver]

GOOGLE_PAYLOAD: dict[str, Any] = {
    "sub": "google-1001",
    "email": "jane@example.com",
    "email_verified": True,
    "given_name": "Jane",
    "family_name": "Doe",
    "picture": "https://example.com/jane.png",
}

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


async def _count(session: AsyncSession, model: type) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def _seed_user(session: AsyncSession, **fields: Any) -> User:
    user = User(**fields)
    session.add(user)
    await session.commit()
    return user


async def _user_status(session: AsyncSession, user_uuid: str) -> str:
    result = await session.execute(select(User.status).where(User.uuid == user_uuid))
    return result.scalar_one()


# ------------------------------------------------------------------------------
# 注册与幂等
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_register_new_user(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    """首次登录：创建用户、绑定与资料"""
    resolver = make_resolver()

    user = await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert user.email == "jane@example.com"
    assert user.name == "janed"
    assert user.roles == []
    assert resolver.last_error is None

    assert await _count(db_session, User) == 1
    assert await _count(db_session, SocialAccount) == 1
    assert await _count(db_session, Profile) == 1

    row = (
        await db_session.execute(
            select(User.uuid, User.status, User.email_verified_at, User.password)
        )
    ).one()
    assert row.uuid == user.uuid
    assert row.status == DEFAULT_USER_STATUS
    assert row.email_verified_at is not None
    assert row.password is None

    link = (
        await db_session.execute(
            select(
                SocialAccount.provider,
                SocialAccount.social_id,
                SocialAccount.profile_data,
            )
        )
    ).one()
    assert link.provider == "google"
    assert link.social_id == "google-1001"
    assert link.profile_data["given_name"] == "Jane"

    profile = (
        await db_session.execute(select(Profile.first_name, Profile.photo_url))
    ).one()
    assert profile.first_name == "Jane"
    assert profile.photo_url == "https://example.com/jane.png"


@pytest.mark.asyncio
async def test_unverified_email_leaves_verification_empty(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    payload = {**GOOGLE_PAYLOAD, "email_verified": "false"}

    await make_resolver().resolve("google", payload)

    verified_at = (await db_session.execute(select(User.email_verified_at))).scalar_one()
    assert verified_at is None


@pytest.mark.asyncio
async def test_reauthentication_is_idempotent(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    """同一三方身份登录两次：返回同一用户，不新增任何记录"""
    resolver = make_resolver()

    first = await resolver.resolve("google", GOOGLE_PAYLOAD)
    second = await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert first.uuid == second.uuid
    assert await _count(db_session, User) == 1
    assert await _count(db_session, SocialAccount) == 1
    assert await _count(db_session, Profile) == 1


@pytest.mark.asyncio
async def test_provider_name_is_case_insensitive(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    resolver = make_resolver()

    first = await resolver.resolve("Google", GOOGLE_PAYLOAD)
    second = await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert first.uuid == second.uuid
    assert await _count(db_session, SocialAccount) == 1


@pytest.mark.asyncio
async def test_numeric_external_id_is_stringified(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    """GitHub 的 id 为整数"""
    resolver = make_resolver()

    user = await resolver.resolve("github", {"id": 583231, "login": "octocat"})

    assert user.name == "octocat"
    social_id = (await db_session.execute(select(SocialAccount.social_id))).scalar_one()
    assert social_id == "583231"


# ------------------------------------------------------------------------------
# 按邮箱关联
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_email_fallback_links_existing_user(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    """已有邮箱用户通过不同平台登录，只新增绑定，不新增用户"""
    existing = await _seed_user(db_session, username="alice", email="a@x.com")
    resolver = make_resolver()

    via_github = await resolver.resolve("github", {"id": 7, "email": "a@x.com"})
    via_google = await resolver.resolve("google", {"sub": "g-7", "email": "a@x.com"})

    assert via_github.uuid == existing.uuid
    assert via_google.uuid == existing.uuid
    assert via_github.name == "alice"
    assert await _count(db_session, User) == 1
    assert await _count(db_session, SocialAccount) == 2


@pytest.mark.asyncio
async def test_link_accounts_disabled_registers_new_user(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    existing = await _seed_user(db_session, username="alice", email="a@x.com")
    resolver = make_resolver(link_accounts=False)

    user = await resolver.resolve("github", {"id": 7, "email": "a@x.com"})

    assert user.uuid != existing.uuid
    assert await _count(db_session, User) == 2


@pytest.mark.asyncio
async def test_email_link_failure_reports_link_error(
    make_resolver: ResolverFactory,
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await _seed_user(db_session, username="alice", email="a@x.com")

    async def failing_upsert(self: SocialAccountRepository, *args: Any) -> str:
        raise SQLAlchemyError("link insert failed")

    monkeypatch.setattr(SocialAccountRepository, "upsert_link", failing_upsert)
    resolver = make_resolver()

    with pytest.raises(AppException) as exc_info:
        await resolver.resolve("github", {"id": 7, "email": "a@x.com"})

    assert exc_info.value.error is SocialAuthError.ACCOUNT_LINK_FAILED
    assert await _count(db_session, SocialAccount) == 0


@pytest.mark.asyncio
async def test_dangling_link_is_replaced(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    """绑定指向的用户已被删除：清理旧绑定并重新注册"""
    db_session.add(
        SocialAccount(
            user_uuid="00000000-0000-0000-0000-000000000000",
            provider="google",
            social_id="google-1001",
            profile_data={},
        )
    )
    await db_session.commit()

    user = await make_resolver().resolve("google", GOOGLE_PAYLOAD)

    link_owner = (await db_session.execute(select(SocialAccount.user_uuid))).scalar_one()
    assert link_owner == user.uuid
    assert await _count(db_session, User) == 1


# ------------------------------------------------------------------------------
# 注册事务原子性
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_registration_rolls_back_when_link_insert_fails(
    make_resolver: ResolverFactory,
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """用户写入成功、绑定写入失败：整体回滚，不留下用户记录"""

    async def failing_upsert(self: SocialAccountRepository, *args: Any) -> str:
        raise SQLAlchemyError("link insert failed")

    monkeypatch.setattr(SocialAccountRepository, "upsert_link", failing_upsert)
    resolver = make_resolver()

    with pytest.raises(AppException) as exc_info:
        await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert exc_info.value.error is SocialAuthError.REGISTRATION_FAILED
    assert resolver.last_error == SocialAuthError.REGISTRATION_FAILED.msg
    assert await _count(db_session, User) == 0
    assert await _count(db_session, SocialAccount) == 0


@pytest.mark.asyncio
async def test_username_conflict_at_insert_fails_registration(
    make_resolver: ResolverFactory,
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """并发抢占同一用户名时由唯一约束拒绝第二次插入"""
    await _seed_user(db_session, username="janed")

    async def stale_allocate(self: UsernameAllocator, payload: Any) -> str:
        return "janed"

    monkeypatch.setattr(UsernameAllocator, "allocate", stale_allocate)

    with pytest.raises(AppException) as exc_info:
        await make_resolver().resolve("google", GOOGLE_PAYLOAD)

    assert exc_info.value.error is SocialAuthError.REGISTRATION_FAILED
    assert await _count(db_session, User) == 1
    assert await _count(db_session, SocialAccount) == 0


# ------------------------------------------------------------------------------
# 资料同步
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_existing_profile_is_not_overwritten(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    user = await _seed_user(db_session, username="jane", email="jane@example.com")
    db_session.add(Profile(user_uuid=user.uuid, first_name="Jane"))
    await db_session.commit()

    payload = {**GOOGLE_PAYLOAD, "given_name": "Janet"}
    await make_resolver().resolve("google", payload)

    names = (await db_session.execute(select(Profile.first_name))).scalars().all()
    assert names == ["Jane"]


@pytest.mark.asyncio
async def test_profile_sync_disabled(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    await make_resolver(sync_profile=False).resolve("google", GOOGLE_PAYLOAD)

    assert await _count(db_session, Profile) == 0


@pytest.mark.asyncio
async def test_profile_sync_failure_does_not_fail_login(
    make_resolver: ResolverFactory,
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def failing_create(self: ProfileRepository, values: Any) -> None:
        raise SQLAlchemyError("profiles table is read-only")

    monkeypatch.setattr(ProfileRepository, "create", failing_create)

    user = await make_resolver().resolve("google", GOOGLE_PAYLOAD)

    assert user.email == "jane@example.com"
    assert await _count(db_session, User) == 1
    assert await _count(db_session, Profile) == 0


# ------------------------------------------------------------------------------
# 失败场景
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_auto_register_disabled(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    resolver = make_resolver(auto_register=False)

    with pytest.raises(AppException) as exc_info:
        await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert exc_info.value.error is SocialAuthError.AUTO_REGISTRATION_DISABLED
    assert resolver.last_error == SocialAuthError.AUTO_REGISTRATION_DISABLED.msg
    assert await _count(db_session, User) == 0
    assert await _count(db_session, SocialAccount) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"email": "jane@example.com"},
        {"sub": "   ", "email": "jane@example.com"},
        {"id": None, "sub": None},
        {"id": True},
    ],
)
async def test_missing_external_id(
    make_resolver: ResolverFactory,
    db_session: AsyncSession,
    payload: dict[str, Any],
) -> None:
    with pytest.raises(AppException) as exc_info:
        await make_resolver().resolve("google", payload)

    assert exc_info.value.error is SocialAuthError.MISSING_EXTERNAL_ID
    assert await _count(db_session, User) == 0


@pytest.mark.asyncio
async def test_provider_not_enabled(make_resolver: ResolverFactory) -> None:
    resolver = make_resolver(enabled_providers=["google"])

    with pytest.raises(AppException) as exc_info:
        await resolver.resolve("github", {"id": 1})

    assert exc_info.value.error is SocialAuthError.PROVIDER_NOT_ENABLED


@pytest.mark.asyncio
async def test_empty_provider_list_allows_any_provider(
    make_resolver: ResolverFactory,
) -> None:
    user = await make_resolver(enabled_providers=[]).resolve("gitlab", {"id": "5"})
    assert user.uuid


# ------------------------------------------------------------------------------
# 注册后置钩子
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_hook_sees_committed_user(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    seen: list[str] = []

    async def handler(
        user_uuid: str, payload: dict[str, Any], context: RegistrationContext
    ) -> None:
        result = await context.session.execute(
            select(User.uuid).where(User.uuid == user_uuid)
        )
        seen.append(result.scalar_one())
        assert context.provider == "google"

    resolver = make_resolver(post_registration={"enabled": True, "handler": handler})
    user = await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert seen == [user.uuid]


@pytest.mark.asyncio
async def test_hook_runs_only_on_registration(make_resolver: ResolverFactory) -> None:
    calls: list[str] = []

    def handler(user_uuid: str, payload: dict[str, Any], context: Any) -> None:
        calls.append(user_uuid)

    resolver = make_resolver(post_registration={"enabled": True, "handler": handler})
    await resolver.resolve("google", GOOGLE_PAYLOAD)
    await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_hook_failure_marks_user_pending_and_retry_recovers(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    """钩子失败：用户已提交但标记为 pending；下次登录重试钩子并恢复状态"""
    attempts: list[str] = []

    def flaky_handler(user_uuid: str, payload: dict[str, Any], context: Any) -> None:
        attempts.append(user_uuid)
        if len(attempts) == 1:
            raise RuntimeError("billing service unavailable")

    resolver = make_resolver(
        post_registration={"enabled": True, "handler": flaky_handler}
    )

    with pytest.raises(AppException) as exc_info:
        await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert exc_info.value.error is SocialAuthError.REGISTRATION_FAILED
    assert await _count(db_session, User) == 1
    user_uuid = attempts[0]
    assert await _user_status(db_session, user_uuid) == PENDING_PROVISIONING_STATUS

    user = await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert user.uuid == user_uuid
    assert attempts == [user_uuid, user_uuid]
    assert await _user_status(db_session, user_uuid) == DEFAULT_USER_STATUS
    assert resolver.last_error is None


@pytest.mark.asyncio
async def test_misconfigured_hook_fails_registration(
    make_resolver: ResolverFactory, db_session: AsyncSession
) -> None:
    resolver = make_resolver(
        post_registration={"enabled": True, "handler": "app.does_not_exist:handler"}
    )

    with pytest.raises(AppException) as exc_info:
        await resolver.resolve("google", GOOGLE_PAYLOAD)

    assert exc_info.value.error is SocialAuthError.REGISTRATION_FAILED
    # 用户记录已提交，并被标记为待开通
    statuses = (await db_session.execute(select(User.status))).scalars().all()
    assert statuses == [PENDING_PROVISIONING_STATUS]


# ------------------------------------------------------------------------------
# 工具函数
# ------------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (True, True),
        (False, False),
        ("true", True),
        ("1", True),
        ("false", False),
        (1, True),
        (0, False),
        (None, False),
    ],
)
def test_is_truthy(value: Any, expected: bool) -> None:
    assert is_truthy(value) is expected
