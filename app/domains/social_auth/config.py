"""
File: app/domains/social_auth/config.py
Description: 三方登录配置模型 (SocialAuthConfig)

配置以显式值的形式注入 IdentityResolver 构造函数，而不是在业务代码中读取全局状态，
便于多租户/测试场景使用不同配置。
全局默认值挂载在 settings.SOCIAL_AUTH 上 (见 app/core/config.py)。

配置项：
1. auto_register / link_accounts / sync_profile / enabled_providers: 行为开关
2. field_mapping.social: 规范字段 -> 三方 payload 别名列表 (先到先得)
3. storage.<entity>: 表名、列映射、默认值
4. post_registration: 注册后置钩子

Author: jinmozhe
Created: 2026-10-18
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.db.schema import EntitySchema

# ------------------------------------------------------------------------------
# 默认映射 (与默认 Schema: users / profiles / social_accounts 对齐)
# ------------------------------------------------------------------------------

DEFAULT_SOCIAL_FIELD_MAPPING: dict[str, list[str]] = {
    "uuid": ["id", "sub"],
    "email": ["email"],
    "username": ["username", "login"],
    "first_name": ["first_name", "given_name"],
    "last_name": ["last_name", "family_name"],
    "photo_url": ["photo_url", "picture", "avatar_url"],
    "email_verified": ["verified_email", "email_verified"],
}

DEFAULT_PROVIDERS: list[str] = ["google", "facebook", "github", "apple"]

DEFAULT_USER_STATUS = "active"
PENDING_PROVISIONING_STATUS = "pending_provisioning"


class EntityStorageConfig(BaseModel):
    """单个实体的存储映射配置"""

    table: str
    columns: dict[str, str] = Field(default_factory=dict)
    defaults: dict[str, Any] = Field(default_factory=dict)

    def to_schema(self) -> EntitySchema:
        return EntitySchema.build(
            self.table, self.columns, self.defaults, default_table=self.table
        )


def _users_storage() -> EntityStorageConfig:
    return EntityStorageConfig(
        table="users",
        columns={
            "uuid": "uuid",
            "username": "username",
            "email": "email",
            "password": "password",
            "status": "status",
            "created_at": "created_at",
            "updated_at": "updated_at",
            "email_verified_at": "email_verified_at",
        },
        defaults={"status": DEFAULT_USER_STATUS, "password": None},
    )


def _profiles_storage() -> EntityStorageConfig:
    return EntityStorageConfig(
        table="profiles",
        columns={
            "uuid": "uuid",
            "user_uuid": "user_uuid",
            "first_name": "first_name",
            "last_name": "last_name",
            "photo_url": "photo_url",
            "status": "status",
            "created_at": "created_at",
            "updated_at": "updated_at",
        },
        defaults={"status": DEFAULT_USER_STATUS},
    )


def _social_accounts_storage() -> EntityStorageConfig:
    return EntityStorageConfig(
        table="social_accounts",
        columns={
            "uuid": "uuid",
            "user_uuid": "user_uuid",
            "provider": "provider",
            "social_id": "social_id",
            "profile_data": "profile_data",
            "created_at": "created_at",
            "updated_at": "updated_at",
        },
    )


class StorageConfig(BaseModel):
    """规范实体 -> 物理表映射"""

    users: EntityStorageConfig = Field(default_factory=_users_storage)
    profiles: EntityStorageConfig = Field(default_factory=_profiles_storage)
    social_accounts: EntityStorageConfig = Field(
        default_factory=_social_accounts_storage
    )


class FieldMappingConfig(BaseModel):
    """
    三方 payload 字段映射。

    social 保持宽松类型 (Any)：格式错误的映射在解析时按"未配置"处理，绝不导致启动失败。
    """

    social: Any = Field(default_factory=lambda: dict(DEFAULT_SOCIAL_FIELD_MAPPING))


class PostRegistrationConfig(BaseModel):
    """
    注册后置钩子配置。

    handler 支持：
    - 注册表名称 (@register_post_registration_handler("name"))
    - 点分导入路径 ("pkg.module:Handler" / "pkg.module.handler")
    - 类 (无参实例化后必须可调用) 或任意可调用对象
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    enabled: bool = False
    handler: Any = None
    # 钩子失败时给用户打上的状态标记，下次登录时重试钩子
    failure_status: str = PENDING_PROVISIONING_STATUS


class SocialAuthConfig(BaseModel):
    """三方登录身份解析配置"""

    enabled_providers: list[str] = Field(default_factory=lambda: list(DEFAULT_PROVIDERS))
    auto_register: bool = True  # 无匹配用户时自动注册
    link_accounts: bool = True  # 允许按邮箱关联到已有用户
    sync_profile: bool = True  # 首次登录时同步三方资料
    post_registration: PostRegistrationConfig = Field(
        default_factory=PostRegistrationConfig
    )
    field_mapping: FieldMappingConfig = Field(default_factory=FieldMappingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    def is_provider_enabled(self, provider: str) -> bool:
        """enabled_providers 为空表示不限制"""
        if not self.enabled_providers:
            return True
        return provider.lower() in {p.lower() for p in self.enabled_providers}
