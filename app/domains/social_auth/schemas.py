"""
File: app/domains/social_auth/schemas.py
Description: 三方登录领域 Pydantic 模型 (Schema)

1. CanonicalUser: 身份解析结果，固定结构 {uuid, email, name, roles}，与存储列名无关
2. SocialAccountRead: 三方绑定列表项 (不包含原始快照)

Author: jinmozhe
Created: 2026-10-18
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CanonicalUser(BaseModel):
    """
    规范用户。
    由 IdentityResolver.resolve 返回，供下游签发会话/令牌使用。
    """

    model_config = ConfigDict(frozen=True)

    uuid: str = Field(..., description="用户唯一标识")
    email: str | None = Field(default=None, description="邮箱")
    name: str | None = Field(default=None, description="显示名称 (用户名)")
    roles: list[str] = Field(default_factory=list, description="角色列表")


class SocialAccountRead(BaseModel):
    """三方绑定响应模型"""

    model_config = ConfigDict(from_attributes=True)

    uuid: str = Field(..., description="绑定记录 uuid")
    provider: str = Field(..., description="三方平台", examples=["google", "github"])
    created_at: datetime | None = Field(default=None, description="绑定时间")
    updated_at: datetime | None = Field(default=None, description="最近一次登录刷新时间")
