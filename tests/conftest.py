"""
File: tests/conftest.py
Description: Pytest 全局 Fixtures 配置 (Async + 内存测试库)

说明：
1. 在导入 app 之前注入测试环境变量 (SECRET_KEY / 内存 SQLite DSN)
2. 每个测试使用独立的内存数据库 (StaticPool 保证同一连接)，测试之间互不影响
3. 依赖 pyproject.toml 中的 asyncio_default_fixture_loop_scope = "function"

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-18 (In-memory SQLite store)
"""

import asyncio
import os
import sys
from collections.abc import AsyncGenerator, Callable
from typing import Any

# ------------------------------------------------------------------------------
# Windows 平台特定修复 (必须在任何 async 操作之前)
# ------------------------------------------------------------------------------
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# ------------------------------------------------------------------------------
# 1. 环境配置覆写 (必须早于任何 app 模块导入)
# ------------------------------------------------------------------------------
TEST_DATABASE_URI = "sqlite+aiosqlite:///:memory:"
TEST_SECRET_KEY = "test-secret-key-for-social-identity-service"

os.environ["SECRET_KEY"] = TEST_SECRET_KEY
os.environ["SQLALCHEMY_DATABASE_URI"] = TEST_DATABASE_URI

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.core.config import settings
from app.db.models import Base
from app.domains.social_auth.config import SocialAuthConfig
from app.domains.social_auth.hooks import PostRegistrationDispatcher
from app.domains.social_auth.resolver import IdentityResolver
from app.main import app

# ------------------------------------------------------------------------------
# 2. 数据库 Fixtures
# ------------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    创建测试专用的内存数据库引擎，并按默认 Schema 建表。
    """
    engine = create_async_engine(
        TEST_DATABASE_URI,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    获取测试用的数据库会话。
    """
    async_session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_factory() as session:
        yield session


# ------------------------------------------------------------------------------
# 3. 业务 Fixtures
# ------------------------------------------------------------------------------


@pytest.fixture
def make_resolver(
    db_session: AsyncSession,
) -> Callable[..., IdentityResolver]:
    """
    身份解析器工厂。
    用法: resolver = make_resolver(auto_register=False)
    关键字参数会覆盖默认 SocialAuthConfig 的对应字段。
    """

    def _factory(
        dispatcher: PostRegistrationDispatcher | None = None, **overrides: Any
    ) -> IdentityResolver:
        config = SocialAuthConfig.model_validate(overrides)
        return IdentityResolver(config, db_session, dispatcher=dispatcher)

    return _factory


@pytest.fixture
def make_token() -> Callable[..., str]:
    """签发测试用 Access Token (模拟外部令牌服务)"""

    def _factory(subject: str, **claims: Any) -> str:
        payload = {"sub": subject, "type": "access", **claims}
        return jwt.encode(payload, TEST_SECRET_KEY, algorithm=settings.ALGORITHM)

    return _factory


# ------------------------------------------------------------------------------
# 4. HTTP Client
# ------------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    获取异步 HTTP 客户端。
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"  # type: ignore
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
